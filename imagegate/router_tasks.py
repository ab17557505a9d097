"""Background task routes: submit, inspect, cancel, and stream progress."""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from .auth import require_ai_session
from .config import settings
from .http_utils import dump, ok_response, parse_model, read_json_body
from .models import (
    EditImageRequest,
    GenerateImageRequest,
    GenerateVideoRequest,
    TaskCreateRequest,
    TaskKind,
)
from .progress import as_sse

router = APIRouter(prefix="/api/tasks", tags=["tasks"], dependencies=[Depends(require_ai_session)])
logger = logging.getLogger(__name__)

KEEPALIVE_SECONDS = 15.0

_REQUEST_MODELS = {
    TaskKind.EDIT_IMAGE: EditImageRequest,
    TaskKind.GENERATE_IMAGE: GenerateImageRequest,
    TaskKind.GENERATE_VIDEO: GenerateVideoRequest,
}


def _build_job(kind: TaskKind, body):
    from .main import get_service

    service = get_service()
    if kind is TaskKind.EDIT_IMAGE:
        return lambda progress: service.edit_image(body, progress)
    if kind is TaskKind.GENERATE_IMAGE:
        return lambda progress: service.generate_image(body, progress)
    return lambda progress: service.generate_video(body, progress)


@router.post("")
async def submit_task(request: Request):
    from .main import get_task_queue

    create = parse_model(TaskCreateRequest, await read_json_body(request, settings.max_body_bytes))
    body = parse_model(_REQUEST_MODELS[create.kind], create.request)
    task = get_task_queue().submit(create.kind, body.prompt, _build_job(create.kind, body), create.board_ref)
    logger.info("Task %s queued: kind=%s", task.id, task.kind.value)
    return ok_response(status_code=202, task=dump(task))


@router.get("")
async def list_tasks():
    from .main import get_task_queue

    return ok_response(tasks=[dump(t) for t in get_task_queue().list()])


@router.post("/clear-finished")
async def clear_finished():
    from .main import get_task_queue

    return ok_response(removed=get_task_queue().clear_finished())


@router.get("/{task_id}")
async def get_task(task_id: str):
    from .main import get_task_queue

    return ok_response(task=dump(get_task_queue().get(task_id)))


@router.post("/{task_id}/cancel")
async def cancel_task(task_id: str):
    from .main import get_task_queue

    return ok_response(task=dump(get_task_queue().cancel(task_id)))


@router.delete("/{task_id}")
async def delete_task(task_id: str):
    from .main import get_task_queue

    get_task_queue().remove(task_id)
    return ok_response()


@router.get("/{task_id}/events")
async def task_events(task_id: str, request: Request):
    from .main import get_task_queue

    queue = get_task_queue()
    events = queue.subscribe(task_id, keepalive_seconds=KEEPALIVE_SECONDS)

    async def event_stream():
        try:
            async for event in events:
                if await request.is_disconnected():
                    break
                if event is None:
                    yield ": keepalive\n\n"
                    continue
                yield as_sse(event["type"], event)
        finally:
            await events.aclose()

    headers = {
        "Cache-Control": "no-cache, no-transform",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",
    }
    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=headers)

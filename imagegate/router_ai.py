"""Synchronous AI generation routes."""

import logging
import time

from fastapi import APIRouter, Depends, Request

from .auth import require_ai_session
from .config import settings
from .http_utils import dump, ok_response, parse_model, read_json_body
from .models import EditImageRequest, GenerateImageRequest, GenerateVideoRequest

router = APIRouter(prefix="/api/ai", tags=["ai"], dependencies=[Depends(require_ai_session)])
logger = logging.getLogger(__name__)


@router.post("/edit-image")
async def edit_image(request: Request):
    from .main import get_service

    body = parse_model(EditImageRequest, await read_json_body(request, settings.max_body_bytes))
    started = time.monotonic()
    result = await get_service().edit_image(body)
    logger.info(
        "edit-image: %d/%d images in %.1fs", len(result.images), body.count, time.monotonic() - started
    )
    return ok_response(result=dump(result))


@router.post("/generate-image")
async def generate_image(request: Request):
    from .main import get_service

    body = parse_model(GenerateImageRequest, await read_json_body(request, settings.max_body_bytes))
    started = time.monotonic()
    result = await get_service().generate_image(body)
    logger.info(
        "generate-image: %d/%d images in %.1fs", len(result.images), body.count, time.monotonic() - started
    )
    return ok_response(result=dump(result))


@router.post("/generate-video")
async def generate_video(request: Request):
    from .main import get_service

    body = parse_model(GenerateVideoRequest, await read_json_body(request, settings.max_body_bytes))
    started = time.monotonic()
    result = await get_service().generate_video(body)
    logger.info("generate-video: done in %.1fs", time.monotonic() - started)
    return ok_response(result=dump(result))

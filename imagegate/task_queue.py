"""Ledger of logical operations and their queued/running/terminal lifecycle.

    queued ──> running ──> succeeded | failed
      │
      └──> canceled

Only queued tasks can be canceled; a running task is awaited to its terminal
state. Only terminal tasks can be removed.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Awaitable, Callable

from pydantic import BaseModel

from .errors import GatewayError, NotFoundError, TaskStateError
from .models import TERMINAL_STATUSES, Task, TaskKind, TaskStatus
from .progress import ProgressChannel

logger = logging.getLogger(__name__)

Job = Callable[[ProgressChannel], Awaitable[Any]]

_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.QUEUED: frozenset({TaskStatus.RUNNING, TaskStatus.CANCELED}),
    TaskStatus.RUNNING: frozenset({TaskStatus.SUCCEEDED, TaskStatus.FAILED}),
    TaskStatus.SUCCEEDED: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.CANCELED: frozenset(),
}


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return target in _TRANSITIONS[current]


def _now_ms() -> int:
    return int(time.time() * 1000)


class TaskQueue:
    def __init__(self, max_concurrent: int = 4, clock: Callable[[], int] = _now_ms):
        self._tasks: dict[str, Task] = {}
        self._channels: dict[str, ProgressChannel] = {}
        self._runners: dict[str, asyncio.Task] = {}
        self._done: dict[str, asyncio.Event] = {}
        self._slots = asyncio.Semaphore(max(1, max_concurrent))
        self._clock = clock

    def _require(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"Task not found: {task_id}")
        return task

    def _transition(self, task: Task, target: TaskStatus, **fields: Any) -> None:
        if not can_transition(task.status, target):
            raise TaskStateError(f"Task {task.id}: cannot move from {task.status.value} to {target.value}")
        task.status = target
        now = self._clock()
        if target is TaskStatus.RUNNING:
            task.started_at = now
        elif target in TERMINAL_STATUSES:
            task.finished_at = now
        for key, value in fields.items():
            setattr(task, key, value)

        channel = self._channels[task.id]
        channel.publish_status(target.value, error=task.error)
        if target in TERMINAL_STATUSES:
            channel.close(status=target.value)
            self._done[task.id].set()

    # --- Producer side ---

    def create(self, kind: TaskKind, prompt: str, board_ref: str | None = None) -> Task:
        """Register a queued task without dispatching it."""
        task = Task(
            id=uuid.uuid4().hex,
            kind=kind,
            prompt=prompt,
            board_ref=board_ref,
            created_at=self._clock(),
        )
        self._tasks[task.id] = task
        self._channels[task.id] = ProgressChannel()
        self._done[task.id] = asyncio.Event()
        self._channels[task.id].publish_status(TaskStatus.QUEUED.value)
        return task.model_copy()

    def submit(self, kind: TaskKind, prompt: str, job: Job, board_ref: str | None = None) -> Task:
        """Create a queued task and schedule it; must be called on the event loop."""
        task = self.create(kind, prompt, board_ref)
        self._runners[task.id] = asyncio.create_task(self._dispatch(task.id, job))
        return task

    def start(self, task_id: str) -> Task:
        task = self._require(task_id)
        self._transition(task, TaskStatus.RUNNING)
        return task.model_copy()

    def complete(self, task_id: str, result: Any = None) -> Task:
        task = self._require(task_id)
        if isinstance(result, BaseModel):
            result = result.model_dump(mode="json", by_alias=True)
        self._transition(task, TaskStatus.SUCCEEDED, result=result, progress=None)
        return task.model_copy()

    def fail(self, task_id: str, message: str) -> Task:
        task = self._require(task_id)
        self._transition(task, TaskStatus.FAILED, error=message)
        return task.model_copy()

    def report_progress(self, task_id: str, message: str) -> None:
        task = self._require(task_id)
        if task.status is TaskStatus.RUNNING:
            task.progress = message

    async def _dispatch(self, task_id: str, job: Job) -> None:
        try:
            async with self._slots:
                task = self._tasks.get(task_id)
                if task is None or task.status is not TaskStatus.QUEUED:
                    return
                self.start(task_id)
                channel = _TaskProgress(self, task_id)
                try:
                    result = await job(channel)
                except GatewayError as e:
                    self.fail(task_id, e.message)
                except Exception as e:
                    logger.exception("Task %s crashed", task_id)
                    self.fail(task_id, str(e) or e.__class__.__name__)
                else:
                    self.complete(task_id, result)
        finally:
            self._runners.pop(task_id, None)

    # --- Consumer side ---

    def get(self, task_id: str) -> Task:
        return self._require(task_id).model_copy()

    def list(self) -> list[Task]:
        return [t.model_copy() for t in sorted(self._tasks.values(), key=lambda t: t.created_at)]

    def cancel(self, task_id: str) -> Task:
        task = self._require(task_id)
        if task.status is not TaskStatus.QUEUED:
            raise TaskStateError(f"Task {task_id}: only queued tasks can be canceled (status={task.status.value})")
        self._transition(task, TaskStatus.CANCELED)
        return task.model_copy()

    def remove(self, task_id: str) -> None:
        task = self._require(task_id)
        if task.status not in TERMINAL_STATUSES:
            raise TaskStateError(f"Task {task_id}: cannot remove a {task.status.value} task")
        self._forget(task_id)

    def clear_finished(self) -> int:
        finished = [tid for tid, t in self._tasks.items() if t.status in TERMINAL_STATUSES]
        for task_id in finished:
            self._forget(task_id)
        return len(finished)

    def _forget(self, task_id: str) -> None:
        self._tasks.pop(task_id, None)
        self._channels.pop(task_id, None)
        self._done.pop(task_id, None)

    def channel(self, task_id: str) -> ProgressChannel:
        self._require(task_id)
        return self._channels[task_id]

    def subscribe(self, task_id: str, keepalive_seconds: float | None = None):
        """Backlog-then-live event iterator for one task; ends with the task."""
        return self.channel(task_id).events(keepalive_seconds=keepalive_seconds)

    async def wait(self, task_id: str, timeout: float | None = None) -> Task:
        self._require(task_id)
        event = self._done[task_id]
        await asyncio.wait_for(event.wait(), timeout=timeout)
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"Task not found: {task_id}")
        return task.model_copy()

    async def shutdown(self) -> None:
        """Cancel in-flight jobs and settle their tasks so waiters and subscribers finish."""
        pending = dict(self._runners)
        for runner in pending.values():
            runner.cancel()
        if pending:
            await asyncio.gather(*pending.values(), return_exceptions=True)
        self._runners.clear()
        for task_id in pending:
            task = self._tasks.get(task_id)
            if task is None:
                continue
            if task.status is TaskStatus.QUEUED:
                self._transition(task, TaskStatus.CANCELED)
            elif task.status is TaskStatus.RUNNING:
                self._transition(task, TaskStatus.FAILED, error="Interrupted by gateway shutdown")


class _TaskProgress:
    """Progress sink handed to jobs; mirrors the latest message onto the task."""

    def __init__(self, queue: TaskQueue, task_id: str):
        self._queue = queue
        self._task_id = task_id
        self._inner = queue.channel(task_id)

    def publish(self, event_type: str, **fields: Any):
        return self._inner.publish(event_type, **fields)

    def publish_progress(self, message: str) -> None:
        self._queue.report_progress(self._task_id, message)
        self._inner.publish_progress(message)

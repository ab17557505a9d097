"""Ordered per-operation progress stream with bounded fanout queues."""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any

END_EVENT = "end"


class ProgressChannel:
    """Producer pushes ordered events; a terminal ``end`` event closes the stream.

    Subscribers first receive the backlog, then live events. Unsubscribing
    only detaches that subscriber; the producer keeps running.
    """

    def __init__(self, *, subscriber_queue_size: int = 200, backlog_size: int = 500):
        self._backlog: list[dict[str, Any]] = []
        self._backlog_size = max(10, backlog_size)
        self._subscribers: set[asyncio.Queue[dict[str, Any]]] = set()
        self._subscriber_queue_size = max(10, subscriber_queue_size)
        self._seq = 0
        self._closed = False
        self.dropped_events = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, event_type: str, **fields: Any) -> dict[str, Any] | None:
        if self._closed:
            return None
        self._seq += 1
        event = {"seq": self._seq, "type": event_type, "ts": int(time.time() * 1000), **fields}
        self._backlog.append(event)
        if len(self._backlog) > self._backlog_size:
            # Keep the first event (initial status) and the newest tail.
            del self._backlog[1]
        for queue in list(self._subscribers):
            if queue.full():
                try:
                    queue.get_nowait()
                    self.dropped_events += 1
                except asyncio.QueueEmpty:
                    pass
            queue.put_nowait(event)
        if event_type == END_EVENT:
            self._closed = True
        return event

    def publish_progress(self, message: str) -> None:
        self.publish("progress", message=message)

    def publish_status(self, status: str, **fields: Any) -> None:
        self.publish("status", status=status, **fields)

    def close(self, **fields: Any) -> None:
        self.publish(END_EVENT, **fields)

    def backlog(self) -> list[dict[str, Any]]:
        return list(self._backlog)

    def subscribe(self) -> asyncio.Queue[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._subscriber_queue_size)
        if not self._closed:
            self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[dict[str, Any]]) -> None:
        self._subscribers.discard(queue)

    async def events(self, keepalive_seconds: float | None = None):
        """Iterate backlog then live events until ``end``.

        Yields None on keepalive timeouts so SSE writers can emit a comment.
        """
        queue = self.subscribe()
        try:
            last_seq = 0
            for event in self.backlog():
                last_seq = event["seq"]
                yield event
                if event["type"] == END_EVENT:
                    return
            while True:
                try:
                    if keepalive_seconds:
                        event = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
                    else:
                        event = await queue.get()
                except asyncio.TimeoutError:
                    yield None
                    continue
                if event["seq"] <= last_seq:
                    continue
                last_seq = event["seq"]
                yield event
                if event["type"] == END_EVENT:
                    return
        finally:
            self.unsubscribe(queue)


def as_sse(event_name: str, payload: dict) -> str:
    return f"event: {event_name}\ndata: {json.dumps(payload, separators=(',', ':'))}\n\n"

"""Provider capability interface and shared upstream plumbing."""

from __future__ import annotations

import asyncio
import base64
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, ClassVar, TypeVar

import httpx

from ..config import settings
from ..errors import UpstreamAttemptError, UpstreamTimeoutError
from ..models import (
    EditImageRequest,
    GeneratedImage,
    GeneratedVideo,
    GenerateImageRequest,
    GenerateVideoRequest,
    Platform,
)
from ..progress import ProgressChannel

logger = logging.getLogger(__name__)

T = TypeVar("T")

DONE_STATUSES = frozenset({"success", "succeeded", "done", "completed", "finish", "finished", "ok"})
FAILED_STATUSES = frozenset({"fail", "failed", "error", "canceled", "cancelled"})

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]+)?(?P<b64>;base64)?,", re.IGNORECASE)
_SIZE_RE = re.compile(r"^\d+x\d+$", re.IGNORECASE)
_SIZE_TIERS = {"1K", "2K", "4K"}


@dataclass
class ClientOptions:
    timeout: float = 300.0
    poll_interval: float = 2.0
    poll_timeout: float = 180.0
    video_poll_interval: float = 5.0
    video_timeout: float = 600.0
    download_timeout: float = 60.0

    @classmethod
    def from_settings(cls) -> "ClientOptions":
        return cls(
            timeout=settings.upstream_timeout_seconds,
            poll_interval=settings.poll_interval_seconds,
            poll_timeout=settings.poll_timeout_seconds,
            video_poll_interval=settings.video_poll_interval_seconds,
            video_timeout=settings.video_timeout_seconds,
        )


@dataclass
class PollSnapshot:
    """What one poll response says about job completion."""

    status: str | None
    has_result: bool
    message: str | None = None
    progress: float | None = None

    @property
    def complete(self) -> bool:
        # Either signal is sufficient.
        return self.has_result or (self.status in DONE_STATUSES)

    @property
    def failed(self) -> bool:
        return not self.has_result and self.status in FAILED_STATUSES


def data_url_to_base64(href: str) -> str:
    """Strip a ``data:<mime>;base64,`` prefix if present."""
    comma = href.find(",")
    if href.startswith("data:") and comma >= 0:
        return href[comma + 1:]
    return href


def data_url_mime_type(href: str) -> str | None:
    match = _DATA_URL_RE.match(href)
    if not match:
        return None
    return match.group("mime")


def normalize_aspect_ratio(value: str | None) -> str | None:
    ratio = (value or "").strip()
    if not ratio or ratio == "auto":
        return None
    return ratio


def normalize_size_tier(value: str | None) -> str | None:
    size = (value or "").strip()
    if not size:
        return None
    if _SIZE_RE.match(size):
        return size.lower()
    upper = size.upper()
    return upper if upper in _SIZE_TIERS else None


def pick_first_string(*values: Any) -> str | None:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value
    return None


class ProviderClient(ABC):
    """One platform's connection: a single upstream call per method.

    Every method is one attempt. Failures raise UpstreamAttemptError (or
    UpstreamTimeoutError) so the failover runner can rotate to the next platform.
    """

    provider_id: ClassVar[str]
    supports_video: ClassVar[bool] = False

    def __init__(
        self,
        platform: Platform,
        http: httpx.AsyncClient,
        options: ClientOptions | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.platform = platform
        self._http = http
        self.options = options or ClientOptions.from_settings()
        self._sleep = sleep
        self._clock = clock

    @abstractmethod
    async def edit_image(self, request: EditImageRequest, *, timeout: float | None = None) -> list[GeneratedImage]:
        ...

    @abstractmethod
    async def generate_image(
        self, request: GenerateImageRequest, *, timeout: float | None = None
    ) -> list[GeneratedImage]:
        ...

    async def generate_video(
        self, request: GenerateVideoRequest, progress: ProgressChannel | None = None
    ) -> GeneratedVideo:
        raise UpstreamAttemptError(f"{self.provider_id} does not support video generation")

    async def probe(self, timeout: float) -> list[GeneratedImage]:
        """Real generation probe: one 1K text-to-image request."""
        request = GenerateImageRequest(prompt="ping", aspect_ratio="auto", size_tier="1K")
        return await self.generate_image(request, timeout=timeout)

    # --- HTTP plumbing ---

    def _describe(self) -> str:
        return f"{self.platform.id} ({self.platform.model})"

    async def _send(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        timeout: float | None = None,
        **kwargs,
    ) -> httpx.Response:
        limit = timeout or self.options.timeout
        try:
            resp = await self._http.request(method, url, timeout=limit, **kwargs)
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(f"{operation} timed out after {limit:g}s") from e
        except httpx.HTTPError as e:
            raise UpstreamAttemptError(f"{operation} request failed: {e}") from e
        if resp.status_code >= 400:
            detail = resp.text.strip()[:500] or resp.reason_phrase
            raise UpstreamAttemptError(f"{operation} HTTP {resp.status_code}: {detail}")
        return resp

    @staticmethod
    def _json(resp: httpx.Response, operation: str) -> dict[str, Any]:
        try:
            payload = resp.json()
        except ValueError as e:
            raise UpstreamAttemptError(f"{operation} returned invalid JSON") from e
        if not isinstance(payload, dict):
            raise UpstreamAttemptError(f"{operation} returned non-object JSON")
        return payload

    async def _download_base64(
        self, url: str, *, operation: str, headers: dict[str, str] | None = None
    ) -> tuple[str, str | None]:
        """Fetch an artifact URL (or decode a data URL) into base64 text."""
        if url.startswith("data:"):
            return data_url_to_base64(url), data_url_mime_type(url)
        resp = await self._send(
            "GET", url, operation=operation, timeout=self.options.download_timeout, headers=headers
        )
        mime_type = resp.headers.get("content-type")
        if mime_type:
            mime_type = mime_type.split(";", 1)[0].strip() or None
        return base64.b64encode(resp.content).decode("ascii"), mime_type

    async def _poll_until_complete(
        self,
        fetch: Callable[[], Awaitable[T]],
        inspect: Callable[[T], PollSnapshot],
        *,
        operation: str,
        interval: float,
        timeout: float,
        progress: ProgressChannel | None = None,
    ) -> T:
        deadline = self._clock() + timeout
        while True:
            payload = await fetch()
            snapshot = inspect(payload)
            if snapshot.complete:
                return payload
            if snapshot.failed:
                raise UpstreamAttemptError(
                    f"{operation} failed: {snapshot.message or snapshot.status or 'unknown error'}"
                )
            if progress is not None:
                if snapshot.progress is not None:
                    pct = snapshot.progress * 100 if snapshot.progress <= 1 else snapshot.progress
                    progress.publish_progress(f"[{self.platform.id}] generating ({round(pct)}%)")
                else:
                    progress.publish_progress(f"[{self.platform.id}] generating")
            if self._clock() >= deadline:
                raise UpstreamTimeoutError(f"{operation} timed out after {timeout:g}s waiting for result")
            await self._sleep(interval)

"""Nano-banana draw API client (create task, then poll for result URLs)."""

from __future__ import annotations

import logging
from typing import Any

from ..errors import UpstreamAttemptError
from ..models import EditImageRequest, GeneratedImage, GenerateImageRequest, MAX_IMAGE_COUNT
from ..progress import ProgressChannel
from .base import PollSnapshot, ProviderClient, normalize_size_tier, pick_first_string

logger = logging.getLogger(__name__)

DEFAULT_ASPECT_RATIO = "auto"
DEFAULT_IMAGE_SIZE = "4K"


def pick_result_urls(payload: dict) -> list[str]:
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    results = data.get("results")
    if isinstance(results, list):
        urls = [r.get("url") for r in results if isinstance(r, dict)]
        urls = [u for u in urls if isinstance(u, str) and u.strip()]
        if urls:
            return urls

    nested = payload.get("result") if isinstance(payload.get("result"), dict) else {}
    data_nested = data.get("result") if isinstance(data.get("result"), dict) else {}
    for candidate in (payload.get("urls"), nested.get("urls"), data.get("urls"), data.get("images"), data_nested.get("urls")):
        if isinstance(candidate, list):
            urls = [u for u in candidate if isinstance(u, str) and u.strip()]
            if urls:
                return urls

    single = pick_first_string(payload.get("url"), nested.get("url"), data.get("url"), data_nested.get("url"))
    return [single] if single else []


def inspect_draw_result(payload: dict) -> PollSnapshot:
    code = payload.get("code")
    if isinstance(code, int) and code != 0:
        message = pick_first_string(payload.get("msg"), payload.get("message")) or f"code={code}"
        raise UpstreamAttemptError(f"draw task failed: {message}")

    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    status = pick_first_string(payload.get("status"), payload.get("state"), data.get("status"), data.get("state"))
    message = pick_first_string(
        payload.get("msg"),
        payload.get("message"),
        data.get("message"),
        data.get("error"),
        data.get("failure_reason"),
    )
    progress = payload.get("progress")
    if not isinstance(progress, (int, float)):
        progress = data.get("progress")
    return PollSnapshot(
        status=status.lower() if status else None,
        has_result=bool(pick_result_urls(payload)),
        message=message,
        progress=float(progress) if isinstance(progress, (int, float)) else None,
    )


class NanoBananaClient(ProviderClient):
    provider_id = "nano-banana"

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "*/*",
            "Authorization": f"Bearer {self.platform.credential}",
        }

    async def _create_task(
        self,
        operation: str,
        urls: list[str],
        prompt: str,
        aspect_ratio: str | None,
        size_tier: str | None,
        timeout: float | None,
    ) -> str:
        body: dict[str, Any] = {
            "model": self.platform.model,
            "prompt": prompt,
            "aspectRatio": (aspect_ratio or "").strip() or DEFAULT_ASPECT_RATIO,
            "imageSize": normalize_size_tier(size_tier) or DEFAULT_IMAGE_SIZE,
            "urls": urls,
            "webHook": "-1",
            "shutProgress": False,
        }
        logger.info(
            "%s create platform=%s refs=%d aspectRatio=%s imageSize=%s",
            operation, self._describe(), len(urls), body["aspectRatio"], body["imageSize"],
        )
        resp = await self._send(
            "POST",
            f"{self.platform.base_url}v1/draw/nano-banana",
            operation=operation,
            timeout=timeout,
            headers=self._headers(),
            json=body,
        )
        payload = self._json(resp, operation)
        code = payload.get("code")
        if isinstance(code, int) and code != 0:
            message = pick_first_string(payload.get("msg"), payload.get("message")) or f"code={code}"
            raise UpstreamAttemptError(f"{operation} create task failed: {message}")
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        result = payload.get("result") if isinstance(payload.get("result"), dict) else {}
        task_id = pick_first_string(payload.get("id"), data.get("id"), result.get("id"))
        if not task_id:
            raise UpstreamAttemptError(f"{operation} create task did not return an id")
        return task_id

    async def _run_draw(
        self,
        operation: str,
        urls: list[str],
        prompt: str,
        aspect_ratio: str | None,
        size_tier: str | None,
        timeout: float | None,
        progress: ProgressChannel | None = None,
    ) -> list[GeneratedImage]:
        task_id = await self._create_task(operation, urls, prompt, aspect_ratio, size_tier, timeout)

        async def fetch() -> dict:
            resp = await self._send(
                "POST",
                f"{self.platform.base_url}v1/draw/result",
                operation=operation,
                timeout=timeout,
                headers=self._headers(),
                json={"id": task_id},
            )
            return self._json(resp, operation)

        result = await self._poll_until_complete(
            fetch,
            inspect_draw_result,
            operation=operation,
            interval=self.options.poll_interval,
            timeout=timeout or self.options.poll_timeout,
            progress=progress,
        )
        result_urls = pick_result_urls(result)[:MAX_IMAGE_COUNT]
        if not result_urls:
            raise UpstreamAttemptError(f"{operation}: task {task_id} finished without images")

        images = []
        for url in result_urls:
            payload, mime_type = await self._download_base64(url, operation=operation)
            images.append(GeneratedImage(payload=payload, mime_type=mime_type or "image/png"))
        logger.info("%s done platform=%s task=%s images=%d", operation, self.platform.id, task_id, len(images))
        return images

    async def edit_image(self, request: EditImageRequest, *, timeout: float | None = None) -> list[GeneratedImage]:
        urls = [img.href for img in request.images]
        if request.mask is not None:
            urls.append(request.mask.href)
        return await self._run_draw(
            "editImage", urls, request.prompt, request.aspect_ratio, request.size_tier, timeout
        )

    async def generate_image(
        self, request: GenerateImageRequest, *, timeout: float | None = None
    ) -> list[GeneratedImage]:
        return await self._run_draw(
            "generateImage", [], request.prompt, request.aspect_ratio, request.size_tier, timeout
        )

"""Gemini-compatible upstream client.

Image calls:
  POST {baseUrl}v1beta/models/{model}:generateContent
  Header: x-goog-api-key: <credential>
  Generated images are read from candidates[0].content.parts[].inlineData.

Video calls (long-running):
  POST {baseUrl}v1beta/models/{videoModel}:predictLongRunning -> {"name": "<operation>"}
  GET  {baseUrl}v1beta/{operation} until done, then download the sample URI.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from ..errors import UpstreamAttemptError
from ..models import (
    EditImageRequest,
    GeneratedImage,
    GeneratedVideo,
    GenerateImageRequest,
    GenerateVideoRequest,
    ImageInput,
)
from ..progress import ProgressChannel
from .base import (
    PollSnapshot,
    ProviderClient,
    data_url_to_base64,
    normalize_aspect_ratio,
    normalize_size_tier,
)

logger = logging.getLogger(__name__)


def _inline_part(image: ImageInput) -> dict:
    return {"inlineData": {"data": data_url_to_base64(image.href), "mimeType": image.mime_type}}


def build_image_config(aspect_ratio: str | None, size_tier: str | None) -> dict | None:
    config = {}
    ratio = normalize_aspect_ratio(aspect_ratio)
    size = normalize_size_tier(size_tier)
    if ratio:
        config["aspectRatio"] = ratio
    if size:
        config["imageSize"] = size
    return config or None


def pick_generated_images(response: dict) -> list[GeneratedImage]:
    candidates = response.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return []
    parts = (candidates[0].get("content") or {}).get("parts") or []
    images = []
    for part in parts:
        inline = part.get("inlineData") if isinstance(part, dict) else None
        if isinstance(inline, dict) and inline.get("data") and inline.get("mimeType"):
            images.append(GeneratedImage(payload=inline["data"], mime_type=inline["mimeType"]))
    return images


def summarize_response(response: dict) -> dict[str, Any]:
    """Log-safe response digest: counts and reasons, never payloads."""
    candidates = response.get("candidates") or []
    first = candidates[0] if candidates and isinstance(candidates[0], dict) else {}
    parts = (first.get("content") or {}).get("parts") or []
    feedback = response.get("promptFeedback") or {}
    return {
        "candidates": len(candidates),
        "finishReason": first.get("finishReason"),
        "parts": len(parts),
        "inlineImages": sum(1 for p in parts if isinstance(p, dict) and p.get("inlineData")),
        "textParts": sum(1 for p in parts if isinstance(p, dict) and p.get("text")),
        "blockReason": feedback.get("blockReason"),
    }


class GeminiClient(ProviderClient):
    provider_id = "gemini"
    supports_video = True

    def _headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self.platform.credential, "Content-Type": "application/json"}

    def _url(self, path: str) -> str:
        return f"{self.platform.base_url}v1beta/{path.lstrip('/')}"

    async def _generate_content(
        self,
        operation: str,
        parts: list[dict],
        image_config: dict | None,
        timeout: float | None,
    ) -> list[GeneratedImage]:
        generation_config: dict[str, Any] = {"responseModalities": ["TEXT", "IMAGE"]}
        if image_config:
            generation_config["imageConfig"] = image_config
        body = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": generation_config,
        }
        logger.info(
            "%s request platform=%s parts=%d imageConfig=%s",
            operation, self._describe(), len(parts), image_config,
        )
        started = time.monotonic()
        resp = await self._send(
            "POST",
            self._url(f"models/{self.platform.model}:generateContent"),
            operation=operation,
            timeout=timeout,
            headers=self._headers(),
            json=body,
        )
        data = self._json(resp, operation)
        summary = summarize_response(data)
        logger.info(
            "%s response platform=%s elapsed_ms=%d summary=%s",
            operation, self.platform.id, int((time.monotonic() - started) * 1000), summary,
        )
        images = pick_generated_images(data)
        if not images:
            reason = summary["blockReason"] or summary["finishReason"] or "no inline image parts"
            raise UpstreamAttemptError(f"{operation}: response did not include image data ({reason})")
        return images

    async def edit_image(self, request: EditImageRequest, *, timeout: float | None = None) -> list[GeneratedImage]:
        image_parts = [_inline_part(img) for img in request.images]
        text_part = {"text": request.prompt}
        if request.mask is not None:
            parts = [text_part, *image_parts, _inline_part(request.mask)]
        else:
            parts = [*image_parts, text_part]
        return await self._generate_content(
            "editImage", parts, build_image_config(request.aspect_ratio, request.size_tier), timeout
        )

    async def generate_image(
        self, request: GenerateImageRequest, *, timeout: float | None = None
    ) -> list[GeneratedImage]:
        return await self._generate_content(
            "generateImage",
            [{"text": request.prompt}],
            build_image_config(request.aspect_ratio, request.size_tier),
            timeout,
        )

    async def generate_video(
        self, request: GenerateVideoRequest, progress: ProgressChannel | None = None
    ) -> GeneratedVideo:
        operation = "generateVideo"
        video_model = self.platform.video_model
        if not video_model:
            raise UpstreamAttemptError(f"{operation}: platform has no video model configured")

        instance: dict[str, Any] = {"prompt": request.prompt}
        if request.image is not None:
            instance["image"] = {
                "bytesBase64Encoded": data_url_to_base64(request.image.href),
                "mimeType": request.image.mime_type,
            }
        body = {"instances": [instance], "parameters": {"aspectRatio": request.aspect_ratio}}
        logger.info("%s request platform=%s videoModel=%s", operation, self._describe(), video_model)
        resp = await self._send(
            "POST",
            self._url(f"models/{video_model}:predictLongRunning"),
            operation=operation,
            headers=self._headers(),
            json=body,
        )
        started = self._json(resp, operation)
        name = started.get("name")
        if not isinstance(name, str) or not name:
            raise UpstreamAttemptError(f"{operation}: upstream did not return an operation name")
        if progress is not None:
            progress.publish_progress(f"[{self.platform.id}] video job started")

        async def fetch() -> dict:
            poll = await self._send("GET", self._url(name), operation=operation, headers=self._headers())
            return self._json(poll, operation)

        result = await self._poll_until_complete(
            fetch,
            _inspect_operation,
            operation=operation,
            interval=self.options.video_poll_interval,
            timeout=self.options.video_timeout,
            progress=progress,
        )

        sample = _pick_video_sample(result)
        if sample is None:
            raise UpstreamAttemptError(f"{operation}: operation finished without a video")
        inline = sample.get("bytesBase64Encoded")
        if isinstance(inline, str) and inline:
            return GeneratedVideo(payload=inline, mime_type=sample.get("mimeType") or "video/mp4")
        uri = sample.get("uri")
        if not isinstance(uri, str) or not uri:
            raise UpstreamAttemptError(f"{operation}: video sample has no uri")
        if progress is not None:
            progress.publish_progress(f"[{self.platform.id}] downloading video")
        payload, mime_type = await self._download_base64(
            uri, operation=operation, headers={"x-goog-api-key": self.platform.credential}
        )
        return GeneratedVideo(payload=payload, mime_type=mime_type or "video/mp4")


def _inspect_operation(payload: dict) -> PollSnapshot:
    error = payload.get("error")
    if isinstance(error, dict) and error:
        return PollSnapshot(status="failed", has_result=False, message=error.get("message"))
    has_result = _pick_video_sample(payload) is not None
    status = "done" if payload.get("done") is True else None
    metadata = payload.get("metadata") or {}
    progress = metadata.get("progressPercent") if isinstance(metadata, dict) else None
    return PollSnapshot(
        status=status,
        has_result=has_result,
        progress=float(progress) if isinstance(progress, (int, float)) else None,
    )


def _pick_video_sample(payload: dict) -> dict | None:
    response = payload.get("response")
    if not isinstance(response, dict):
        return None
    generated = response.get("generateVideoResponse")
    samples = generated.get("generatedSamples") if isinstance(generated, dict) else None
    if not samples:
        samples = response.get("videos")
    if not isinstance(samples, list) or not samples:
        return None
    sample = samples[0]
    if not isinstance(sample, dict):
        return None
    video = sample.get("video")
    return video if isinstance(video, dict) else sample

"""Logical generation operations over the provider/platform stack."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from .config import settings
from .errors import (
    ConfigurationError,
    UpstreamAttemptError,
    UpstreamTimeoutError,
    ValidationError,
    error_message,
)
from .failover import FailoverRunner
from .generator import FillToTargetGenerator
from .models import (
    EditImageRequest,
    GeneratedImage,
    GenerateImageRequest,
    GenerateVideoRequest,
    ImageResult,
    Platform,
    VideoResult,
)
from .platform_store import PlatformRegistry
from .progress import ProgressChannel
from .provider_pool import ProviderPool
from .providers import PROVIDERS, ProviderClient

logger = logging.getLogger(__name__)


def _first_image(images: list[GeneratedImage], operation: str) -> GeneratedImage:
    if not images:
        raise UpstreamAttemptError(f"{operation}: response did not include image data")
    return images[0]


@dataclass
class ProbeOutcome:
    ok: bool
    latency_ms: int
    error_message: str | None = None


class GenerationService:
    def __init__(
        self,
        registry: PlatformRegistry,
        pool: ProviderPool,
        *,
        max_fill_attempts: int | None = None,
        default_provider: str | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.registry = registry
        self.pool = pool
        self.runner = FailoverRunner(pool)
        self.generator = FillToTargetGenerator(
            self.runner,
            max_fill_attempts if max_fill_attempts is not None else settings.fill_max_total_attempts,
            sleep=sleep,
        )
        self._default_provider = default_provider

    def _platforms(self, provider: str | None) -> list[Platform]:
        provider_id = provider or self._default_provider or settings.default_provider
        if provider_id not in PROVIDERS:
            raise ValidationError(f"Unknown provider: {provider_id}")
        platforms = self.registry.list(provider=provider_id)
        if not platforms:
            raise ConfigurationError(
                f"No {provider_id} platforms configured: add a platform, model and credential first"
            )
        return platforms

    async def edit_image(self, request: EditImageRequest, progress: ProgressChannel | None = None) -> ImageResult:
        platforms = self._platforms(request.provider)

        async def attempt(platform: Platform, client: ProviderClient) -> GeneratedImage:
            return _first_image(await client.edit_image(request), "editImage")

        images = await self.generator.generate("editImage", request.count, platforms, attempt, progress)
        return ImageResult(images=images)

    async def generate_image(
        self, request: GenerateImageRequest, progress: ProgressChannel | None = None
    ) -> ImageResult:
        platforms = self._platforms(request.provider)

        async def attempt(platform: Platform, client: ProviderClient) -> GeneratedImage:
            return _first_image(await client.generate_image(request), "generateImage")

        images = await self.generator.generate("generateImage", request.count, platforms, attempt, progress)
        return ImageResult(images=images)

    async def generate_video(
        self, request: GenerateVideoRequest, progress: ProgressChannel | None = None
    ) -> VideoResult:
        platforms = self._platforms(request.provider)

        async def attempt(platform: Platform, client: ProviderClient):
            if progress is not None:
                progress.publish_progress(f"[{platform.id}] submitting video request")
            return await client.generate_video(request, progress)

        video = await self.runner.run("generateVideo", platforms, attempt)
        return VideoResult(video=video)

    async def probe(self, platform: Platform, timeout: float) -> ProbeOutcome:
        """Real 1K image generation against one platform, bounded by ``timeout``."""
        client = self.pool.client_for(platform)
        started = time.monotonic()
        try:
            images = await asyncio.wait_for(client.probe(timeout), timeout=timeout)
            _first_image(images, "probe")
        except (asyncio.TimeoutError, UpstreamTimeoutError):
            return ProbeOutcome(
                ok=False,
                latency_ms=int((time.monotonic() - started) * 1000),
                error_message=f"probe timeout after {timeout:g}s",
            )
        except Exception as e:
            return ProbeOutcome(
                ok=False,
                latency_ms=int((time.monotonic() - started) * 1000),
                error_message=error_message(e),
            )
        return ProbeOutcome(ok=True, latency_ms=int((time.monotonic() - started) * 1000))

from __future__ import annotations

import json
from typing import Any, Callable

from imagegate.models import GeneratedImage, GeneratedVideo, Platform
from imagegate.provider_pool import ProviderPool
from imagegate.providers import ProviderClient

ADMIN_PASSWORD = "correct-horse-battery"

Behavior = Callable[[Platform, int], Any]


def make_platform(index: int, provider: str = "gemini", **overrides: Any) -> Platform:
    fields = {
        "id": f"p{index}",
        "provider": provider,
        "base_url": f"https://up{index}.example.com/",
        "model": "image-model",
        "credential": f"key-{index:04d}-secret",
    }
    fields.update(overrides)
    return Platform(**fields)


def image(tag: str = "img") -> GeneratedImage:
    return GeneratedImage(payload=f"{tag}-b64", mime_type="image/png")


def video() -> GeneratedVideo:
    return GeneratedVideo(payload="vid-b64", mime_type="video/mp4")


class FakeClient(ProviderClient):
    """Provider double: ``behavior(platform, call_no)`` returns a value or an exception to raise."""

    provider_id = "gemini"
    supports_video = True

    def __init__(self, platform: Platform, behavior: Behavior):
        super().__init__(platform, http=None)
        self.behavior = behavior
        self.calls = 0

    async def _respond(self) -> Any:
        self.calls += 1
        outcome = self.behavior(self.platform, self.calls)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def edit_image(self, request, *, timeout=None):
        return await self._respond()

    async def generate_image(self, request, *, timeout=None):
        return await self._respond()

    async def generate_video(self, request, progress=None):
        return await self._respond()


class FakeBackend:
    """Mutable behavior shared by every FakeClient a pool builds."""

    def __init__(self) -> None:
        self.behavior: Behavior = lambda platform, n: [image(platform.id)]
        self.clients: dict[str, FakeClient] = {}

    def factory(self, platform: Platform, http) -> FakeClient:
        client = FakeClient(platform, lambda p, n: self.behavior(p, n))
        self.clients[platform.id] = client
        return client

    def pool(self) -> ProviderPool:
        return ProviderPool(factory=self.factory)


def write_platforms(path: str, platforms: list[Platform]) -> None:
    providers: dict[str, Any] = {}
    for p in platforms:
        entry = {"id": p.id, "baseUrl": p.base_url, "model": p.model, "credential": p.credential}
        if p.video_model:
            entry["videoModel"] = p.video_model
        providers.setdefault(p.provider, {"platforms": []})["platforms"].append(entry)
    with open(path, "w", encoding="utf-8") as f:
        json.dump({"version": 1, "providers": providers}, f)

"""Provider client tests.

HTTP is mocked with respx; no test talks to a real upstream.
"""

from __future__ import annotations

import base64
import json

import httpx
import pytest
import respx

from imagegate.errors import UpstreamAttemptError, UpstreamTimeoutError
from imagegate.models import EditImageRequest, GenerateImageRequest, GenerateVideoRequest
from imagegate.progress import ProgressChannel
from imagegate.providers import ClientOptions, GeminiClient, NanoBananaClient, PollSnapshot
from imagegate.providers.base import normalize_aspect_ratio, normalize_size_tier
from imagegate.providers.gemini import build_image_config
from imagegate.providers.nano_banana import inspect_draw_result, pick_result_urls
from tests.helpers import make_platform

GEMINI_BASE = "https://gem.example.com/"
NANO_BASE = "https://nano.example.com/"


async def _no_sleep(delay: float) -> None:
    return None


class StepClock:
    def __init__(self, step: float):
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


def _gemini_response(*parts, finish_reason="STOP"):
    return {"candidates": [{"content": {"parts": list(parts)}, "finishReason": finish_reason}]}


@pytest.fixture
def gemini_platform():
    return make_platform(1, base_url=GEMINI_BASE, model="image-model", video_model="video-model")


@pytest.fixture
def nano_platform():
    return make_platform(2, provider="nano-banana", base_url=NANO_BASE, model="nano-banana-pro")


# =============================================================================
# Shared helpers
# =============================================================================


def test_poll_snapshot_completion_modes():
    assert PollSnapshot(status=None, has_result=True).complete is True
    assert PollSnapshot(status="succeeded", has_result=False).complete is True
    assert PollSnapshot(status="running", has_result=False).complete is False
    assert PollSnapshot(status="failed", has_result=False).failed is True
    assert PollSnapshot(status="failed", has_result=True).failed is False


def test_image_config_normalization():
    assert normalize_aspect_ratio("auto") is None
    assert normalize_aspect_ratio(" 16:9 ") == "16:9"
    assert normalize_size_tier("2k") == "2K"
    assert normalize_size_tier("1024X768") == "1024x768"
    assert normalize_size_tier("huge") is None
    assert build_image_config("auto", None) is None
    assert build_image_config("1:1", "4k") == {"aspectRatio": "1:1", "imageSize": "4K"}


# =============================================================================
# Gemini
# =============================================================================


@pytest.mark.asyncio
@respx.mock
async def test_gemini_generate_image_reads_inline_parts(gemini_platform):
    route = respx.post(f"{GEMINI_BASE}v1beta/models/image-model:generateContent").mock(
        return_value=httpx.Response(
            200,
            json=_gemini_response(
                {"text": "here you go"},
                {"inlineData": {"data": "AAAA", "mimeType": "image/png"}},
                {"inlineData": {"data": "BBBB", "mimeType": "image/jpeg"}},
            ),
        )
    )
    async with httpx.AsyncClient() as http:
        client = GeminiClient(gemini_platform, http, ClientOptions())
        images = await client.generate_image(
            GenerateImageRequest(prompt="a cat", aspect_ratio="16:9", size_tier="2k")
        )

    assert [(i.payload, i.mime_type) for i in images] == [("AAAA", "image/png"), ("BBBB", "image/jpeg")]
    request = route.calls.last.request
    assert request.headers["x-goog-api-key"] == gemini_platform.credential
    body = json.loads(request.content)
    assert body["generationConfig"]["responseModalities"] == ["TEXT", "IMAGE"]
    assert body["generationConfig"]["imageConfig"] == {"aspectRatio": "16:9", "imageSize": "2K"}
    assert body["contents"][0]["parts"] == [{"text": "a cat"}]


@pytest.mark.asyncio
@respx.mock
async def test_gemini_edit_places_prompt_first_when_masked(gemini_platform):
    route = respx.post(f"{GEMINI_BASE}v1beta/models/image-model:generateContent").mock(
        return_value=httpx.Response(200, json=_gemini_response({"inlineData": {"data": "CC", "mimeType": "image/png"}}))
    )
    request = EditImageRequest(
        images=[{"href": "data:image/png;base64,SRC", "mimeType": "image/png"}],
        mask={"href": "data:image/png;base64,MASK"},
        prompt="remove the hat",
        aspect_ratio="auto",
    )
    async with httpx.AsyncClient() as http:
        await GeminiClient(gemini_platform, http, ClientOptions()).edit_image(request)

    body = json.loads(route.calls.last.request.content)
    parts = body["contents"][0]["parts"]
    assert parts[0] == {"text": "remove the hat"}
    assert [p["inlineData"]["data"] for p in parts[1:]] == ["SRC", "MASK"]
    assert "imageConfig" not in body["generationConfig"]


@pytest.mark.asyncio
@respx.mock
async def test_gemini_response_without_images_is_an_attempt_failure(gemini_platform):
    respx.post(f"{GEMINI_BASE}v1beta/models/image-model:generateContent").mock(
        return_value=httpx.Response(200, json=_gemini_response({"text": "no"}, finish_reason="SAFETY"))
    )
    async with httpx.AsyncClient() as http:
        client = GeminiClient(gemini_platform, http, ClientOptions())
        with pytest.raises(UpstreamAttemptError, match=r"did not include image data \(SAFETY\)"):
            await client.generate_image(GenerateImageRequest(prompt="a cat"))


@pytest.mark.asyncio
@respx.mock
async def test_gemini_http_error_and_timeout_mapping(gemini_platform):
    route = respx.post(f"{GEMINI_BASE}v1beta/models/image-model:generateContent")
    async with httpx.AsyncClient() as http:
        client = GeminiClient(gemini_platform, http, ClientOptions(timeout=30))

        route.mock(return_value=httpx.Response(500, text="internal"))
        with pytest.raises(UpstreamAttemptError, match="generateImage HTTP 500: internal"):
            await client.generate_image(GenerateImageRequest(prompt="a cat"))

        route.mock(side_effect=httpx.ReadTimeout("slow"))
        with pytest.raises(UpstreamTimeoutError, match="generateImage timed out after 30s"):
            await client.generate_image(GenerateImageRequest(prompt="a cat"))

        route.mock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(UpstreamAttemptError) as exc_info:
            await client.generate_image(GenerateImageRequest(prompt="a cat"))
        assert not isinstance(exc_info.value, UpstreamTimeoutError)


@pytest.mark.asyncio
@respx.mock
async def test_gemini_video_polls_operation_and_downloads(gemini_platform):
    start = respx.post(f"{GEMINI_BASE}v1beta/models/video-model:predictLongRunning").mock(
        return_value=httpx.Response(200, json={"name": "operations/op-1"})
    )
    respx.get(f"{GEMINI_BASE}v1beta/operations/op-1").mock(
        side_effect=[
            httpx.Response(200, json={"done": False, "metadata": {"progressPercent": 50}}),
            httpx.Response(
                200,
                json={
                    "done": True,
                    "response": {
                        "generateVideoResponse": {
                            "generatedSamples": [{"video": {"uri": "https://files.example.com/v.mp4"}}]
                        }
                    },
                },
            ),
        ]
    )
    respx.get("https://files.example.com/v.mp4").mock(
        return_value=httpx.Response(200, content=b"MP4DATA", headers={"content-type": "video/mp4"})
    )
    progress = ProgressChannel()
    async with httpx.AsyncClient() as http:
        client = GeminiClient(gemini_platform, http, ClientOptions(), sleep=_no_sleep)
        result = await client.generate_video(
            GenerateVideoRequest(prompt="waves", aspect_ratio="9:16", image={"href": "data:image/png;base64,IMG"}),
            progress,
        )

    assert result.payload == base64.b64encode(b"MP4DATA").decode("ascii")
    assert result.mime_type == "video/mp4"
    body = json.loads(start.calls.last.request.content)
    assert body["parameters"] == {"aspectRatio": "9:16"}
    assert body["instances"][0]["image"] == {"bytesBase64Encoded": "IMG", "mimeType": "image/png"}
    messages = [e["message"] for e in progress.backlog()]
    assert messages == ["[p1] video job started", "[p1] generating (50%)", "[p1] downloading video"]


@pytest.mark.asyncio
@respx.mock
async def test_gemini_video_operation_error_fails_attempt(gemini_platform):
    respx.post(f"{GEMINI_BASE}v1beta/models/video-model:predictLongRunning").mock(
        return_value=httpx.Response(200, json={"name": "operations/op-2"})
    )
    respx.get(f"{GEMINI_BASE}v1beta/operations/op-2").mock(
        return_value=httpx.Response(200, json={"done": True, "error": {"message": "quota exceeded"}})
    )
    async with httpx.AsyncClient() as http:
        client = GeminiClient(gemini_platform, http, ClientOptions(), sleep=_no_sleep)
        with pytest.raises(UpstreamAttemptError, match="generateVideo failed: quota exceeded"):
            await client.generate_video(GenerateVideoRequest(prompt="waves"))


@pytest.mark.asyncio
async def test_gemini_video_requires_video_model():
    platform = make_platform(1, base_url=GEMINI_BASE)
    async with httpx.AsyncClient() as http:
        with pytest.raises(UpstreamAttemptError, match="no video model"):
            await GeminiClient(platform, http, ClientOptions()).generate_video(GenerateVideoRequest(prompt="x"))


# =============================================================================
# Nano-banana
# =============================================================================


def test_draw_result_completion_detection():
    assert inspect_draw_result({"code": 0, "data": {"results": [{"url": "https://x/a.png"}]}}).complete
    assert inspect_draw_result({"code": 0, "data": {"status": "SUCCEEDED"}}).complete
    assert not inspect_draw_result({"code": 0, "data": {"status": "running", "progress": 30}}).complete
    failed = inspect_draw_result({"code": 0, "data": {"status": "failed", "failure_reason": "nsfw"}})
    assert failed.failed and failed.message == "nsfw"
    with pytest.raises(UpstreamAttemptError, match="draw task failed: busy"):
        inspect_draw_result({"code": 7, "msg": "busy"})


def test_pick_result_urls_shapes():
    assert pick_result_urls({"data": {"results": [{"url": "u1"}, {"url": ""}]}}) == ["u1"]
    assert pick_result_urls({"result": {"urls": ["u2", "u3"]}}) == ["u2", "u3"]
    assert pick_result_urls({"data": {"url": "u4"}}) == ["u4"]
    assert pick_result_urls({"data": {}}) == []


@pytest.mark.asyncio
@respx.mock
async def test_nano_banana_creates_polls_and_downloads(nano_platform):
    create = respx.post(f"{NANO_BASE}v1/draw/nano-banana").mock(
        return_value=httpx.Response(200, json={"code": 0, "data": {"id": "task-9"}})
    )
    poll = respx.post(f"{NANO_BASE}v1/draw/result").mock(
        side_effect=[
            httpx.Response(200, json={"code": 0, "data": {"status": "running", "progress": 40}}),
            httpx.Response(200, json={"code": 0, "data": {"results": [{"url": "https://cdn.example.com/a.png"}]}}),
        ]
    )
    respx.get("https://cdn.example.com/a.png").mock(
        return_value=httpx.Response(200, content=b"PNG", headers={"content-type": "image/png; charset=binary"})
    )
    async with httpx.AsyncClient() as http:
        client = NanoBananaClient(nano_platform, http, ClientOptions(), sleep=_no_sleep)
        images = await client.edit_image(
            EditImageRequest(images=[{"href": "https://refs.example.com/in.png"}], prompt="sketch", size_tier="1k")
        )

    assert [(i.payload, i.mime_type) for i in images] == [(base64.b64encode(b"PNG").decode("ascii"), "image/png")]
    body = json.loads(create.calls.last.request.content)
    assert body == {
        "model": "nano-banana-pro",
        "prompt": "sketch",
        "aspectRatio": "auto",
        "imageSize": "1K",
        "urls": ["https://refs.example.com/in.png"],
        "webHook": "-1",
        "shutProgress": False,
    }
    assert create.calls.last.request.headers["authorization"] == f"Bearer {nano_platform.credential}"
    assert json.loads(poll.calls.last.request.content) == {"id": "task-9"}
    assert poll.call_count == 2


@pytest.mark.asyncio
@respx.mock
async def test_nano_banana_terminal_status_without_images_fails(nano_platform):
    respx.post(f"{NANO_BASE}v1/draw/nano-banana").mock(return_value=httpx.Response(200, json={"id": "t1"}))
    respx.post(f"{NANO_BASE}v1/draw/result").mock(
        return_value=httpx.Response(200, json={"code": 0, "status": "succeeded"})
    )
    async with httpx.AsyncClient() as http:
        client = NanoBananaClient(nano_platform, http, ClientOptions(), sleep=_no_sleep)
        with pytest.raises(UpstreamAttemptError, match="finished without images"):
            await client.generate_image(GenerateImageRequest(prompt="a cat"))


@pytest.mark.asyncio
@respx.mock
async def test_nano_banana_create_error_code(nano_platform):
    respx.post(f"{NANO_BASE}v1/draw/nano-banana").mock(
        return_value=httpx.Response(200, json={"code": 401, "msg": "invalid key"})
    )
    async with httpx.AsyncClient() as http:
        client = NanoBananaClient(nano_platform, http, ClientOptions())
        with pytest.raises(UpstreamAttemptError, match="create task failed: invalid key"):
            await client.generate_image(GenerateImageRequest(prompt="a cat"))


@pytest.mark.asyncio
@respx.mock
async def test_nano_banana_polling_is_bounded(nano_platform):
    respx.post(f"{NANO_BASE}v1/draw/nano-banana").mock(return_value=httpx.Response(200, json={"id": "t1"}))
    respx.post(f"{NANO_BASE}v1/draw/result").mock(
        return_value=httpx.Response(200, json={"code": 0, "data": {"status": "running"}})
    )
    async with httpx.AsyncClient() as http:
        client = NanoBananaClient(
            nano_platform, http, ClientOptions(poll_timeout=10), sleep=_no_sleep, clock=StepClock(6)
        )
        with pytest.raises(UpstreamTimeoutError, match="timed out after 10s waiting for result"):
            await client.generate_image(GenerateImageRequest(prompt="a cat"))


@pytest.mark.asyncio
async def test_nano_banana_has_no_video(nano_platform):
    async with httpx.AsyncClient() as http:
        with pytest.raises(UpstreamAttemptError, match="does not support video"):
            await NanoBananaClient(nano_platform, http, ClientOptions()).generate_video(
                GenerateVideoRequest(prompt="x")
            )

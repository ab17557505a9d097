import math
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MAX_IMAGE_COUNT = 4


def clamp_count(value: Any) -> int:
    """Coerce a requested image count into [1, MAX_IMAGE_COUNT]."""
    if isinstance(value, bool) or value is None:
        return 1
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 1
    if math.isnan(number):
        return 1
    if math.isinf(number):
        return MAX_IMAGE_COUNT if number > 0 else 1
    count = int(number)
    return max(1, min(MAX_IMAGE_COUNT, count))


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Platforms ---


class Platform(ApiModel):
    id: str
    provider: str = "gemini"
    base_url: str
    model: str
    video_model: str | None = None
    credential: str = ""


class PlatformInput(ApiModel):
    id: str | None = None
    provider: str | None = None
    base_url: str = ""
    model: str = ""
    video_model: str | None = None
    credential: str | None = None


class PlatformsUpdateRequest(ApiModel):
    platforms: list[PlatformInput]


class RedactedPlatform(ApiModel):
    id: str
    provider: str
    base_url: str
    model: str
    video_model: str | None = None
    credential_masked: str
    has_credential: bool


# --- Generation requests ---


class ImageInput(ApiModel):
    href: str = Field(..., min_length=1)
    mime_type: str = "image/png"


class EditImageRequest(ApiModel):
    images: list[ImageInput] = Field(..., min_length=1)
    prompt: str = Field(..., min_length=1)
    mask: ImageInput | None = None
    aspect_ratio: str | None = None
    size_tier: str | None = None
    count: int = 1
    provider: str | None = None

    @field_validator("count", mode="before")
    @classmethod
    def _clamp_count(cls, value: Any) -> int:
        return clamp_count(value)


class GenerateImageRequest(ApiModel):
    prompt: str = Field(..., min_length=1)
    aspect_ratio: str | None = None
    size_tier: str | None = None
    count: int = 1
    provider: str | None = None

    @field_validator("count", mode="before")
    @classmethod
    def _clamp_count(cls, value: Any) -> int:
        return clamp_count(value)


class GenerateVideoRequest(ApiModel):
    prompt: str = Field(..., min_length=1)
    aspect_ratio: Literal["16:9", "9:16"] = "16:9"
    image: ImageInput | None = None
    provider: str | None = None


# --- Generation results ---


class GeneratedImage(ApiModel):
    payload: str
    mime_type: str


class GeneratedVideo(ApiModel):
    payload: str
    mime_type: str


class ImageResult(ApiModel):
    images: list[GeneratedImage]
    text_response: str | None = None


class VideoResult(ApiModel):
    video: GeneratedVideo


# --- Monitor ---


class MonitorStatus(ApiModel):
    platform_id: str
    base_url: str
    model: str
    checked_at: str
    ok: bool
    latency_ms: int
    error_message: str | None = None


# --- Auth ---


class LoginRequest(ApiModel):
    password: str = ""

    @field_validator("password", mode="before")
    @classmethod
    def _coerce_password(cls, value: Any) -> str:
        return "" if value is None else str(value)


# --- Tasks ---


class TaskKind(str, Enum):
    EDIT_IMAGE = "edit-image"
    GENERATE_IMAGE = "generate-image"
    GENERATE_VIDEO = "generate-video"


class TaskStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


TERMINAL_STATUSES = frozenset({TaskStatus.SUCCEEDED, TaskStatus.FAILED, TaskStatus.CANCELED})


class Task(ApiModel):
    id: str
    kind: TaskKind
    status: TaskStatus = TaskStatus.QUEUED
    prompt: str
    board_ref: str | None = None
    created_at: int
    started_at: int | None = None
    finished_at: int | None = None
    progress: str | None = None
    error: str | None = None
    result: dict[str, Any] | None = None


class TaskCreateRequest(ApiModel):
    kind: TaskKind
    board_ref: str | None = None
    request: dict[str, Any]

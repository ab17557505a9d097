"""HTTP helpers for gateway route handlers."""

import json
from typing import Any, TypeVar

import pydantic
from fastapi import Request
from fastapi.responses import JSONResponse

from .errors import PayloadTooLargeError, ValidationError

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


def ok_response(status_code: int = 200, headers: dict[str, str] | None = None, **payload: Any) -> JSONResponse:
    """Success envelope: {"ok": true, ...}."""
    return JSONResponse(
        status_code=status_code,
        content={"ok": True, **payload},
        headers={"Cache-Control": "no-store", **(headers or {})},
    )


def error_response(status_code: int, message: str) -> JSONResponse:
    """Stable error envelope: {"ok": false, "message": ...}."""
    return JSONResponse(
        status_code=status_code,
        content={"ok": False, "message": message},
        headers={"Cache-Control": "no-store"},
    )


async def read_json_body(request: Request, limit_bytes: int) -> dict[str, Any]:
    """Read the request body under a size ceiling and decode it as a JSON object.

    An empty body decodes to {}.
    """
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit_bytes:
        raise PayloadTooLargeError("Request body too large")

    chunks: list[bytes] = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit_bytes:
            raise PayloadTooLargeError("Request body too large")
        chunks.append(chunk)

    raw = b"".join(chunks).decode("utf-8", errors="replace").strip()
    if not raw:
        return {}
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError("Invalid JSON body") from e
    if not isinstance(payload, dict):
        raise ValidationError("JSON body must be an object")
    return payload


def parse_model(model_cls: type[ModelT], payload: Any) -> ModelT:
    """Validate payload against a pydantic model, mapping failures to ValidationError."""
    try:
        return model_cls.model_validate(payload)
    except pydantic.ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(details or "Invalid request body") from e


def dump(model: pydantic.BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)

"""Persistent upstream platform registry."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Iterable

from .config import load_seed_platforms
from .errors import ValidationError
from .models import Platform, PlatformInput, RedactedPlatform
from .providers import PROVIDERS

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "gemini"


def normalize_base_url(value: str) -> str:
    value = value.strip()
    if not value:
        return ""
    return value.rstrip("/") + "/"


def redact_credential(value: str) -> str:
    if not value:
        return ""
    if len(value) <= 8:
        return "********"
    return f"{value[:4]}****{value[-4:]}"


def derive_platform_id(provider: str, ordinal: int, base_url: str, model: str) -> str:
    return f"{provider}#{ordinal}:{base_url}|{model}"


def redact_platform(platform: Platform) -> RedactedPlatform:
    return RedactedPlatform(
        id=platform.id,
        provider=platform.provider,
        base_url=platform.base_url,
        model=platform.model,
        video_model=platform.video_model,
        credential_masked=redact_credential(platform.credential),
        has_credential=bool(platform.credential),
    )


class PlatformRegistry:
    """Thread-safe JSON-backed store of upstream platforms.

    Document layout::

        {"version": 1, "providers": {"gemini": {"platforms": [{id, baseUrl, model, ...}]}}}
    """

    def __init__(self, path: str, seed_path: str = ""):
        self._path = Path(path)
        self._seed_path = seed_path
        self._lock = threading.Lock()
        self._loaded = False
        self._data: dict[str, Any] = {"version": 1, "providers": {}}

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        if self._path.exists():
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            providers = raw.get("providers") if isinstance(raw, dict) else None
            if isinstance(providers, dict):
                self._data = {"version": 1, "providers": providers}
        self._loaded = True

    def _persist(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._path.with_suffix(f"{self._path.suffix}.tmp")
        payload = json.dumps(data, ensure_ascii=False, indent=2)
        temp_path.write_text(payload + "\n", encoding="utf-8")
        temp_path.replace(self._path)

    def _stored_platforms(self) -> list[Platform]:
        platforms: list[Platform] = []
        for provider, section in self._data["providers"].items():
            entries = section.get("platforms") if isinstance(section, dict) else None
            if not isinstance(entries, list):
                continue
            for entry in entries:
                if not isinstance(entry, dict):
                    continue
                platform = Platform(
                    id=str(entry.get("id") or ""),
                    provider=provider,
                    base_url=normalize_base_url(str(entry.get("baseUrl") or "")),
                    model=str(entry.get("model") or "").strip(),
                    video_model=entry.get("videoModel") or None,
                    credential=str(entry.get("credential") or ""),
                )
                if platform.id and platform.base_url and platform.model and platform.credential:
                    platforms.append(platform)
        return platforms

    def seed_if_empty(self) -> int:
        """Initialize the store from the YAML seed when no document exists yet."""
        if not self._seed_path or self._path.exists():
            return 0
        entries = load_seed_platforms(self._seed_path)
        if not entries:
            return 0
        inputs = [PlatformInput.model_validate(e) for e in entries]
        platforms = self.upsert(inputs)
        logger.info("Seeded %d platforms from %s", len(platforms), self._seed_path)
        return len(platforms)

    def list(self, provider: str | None = None) -> list[Platform]:
        with self._lock:
            self._ensure_loaded()
            platforms = self._stored_platforms()
        if provider is not None:
            platforms = [p for p in platforms if p.provider == provider]
        return platforms

    def list_redacted(self) -> list[RedactedPlatform]:
        return [redact_platform(p) for p in self.list()]

    def upsert(self, inputs: Iterable[PlatformInput]) -> list[RedactedPlatform]:
        """Replace the platform list, keeping stored credentials for known ids."""
        candidates = list(inputs)
        errors: list[str] = []
        normalized: list[PlatformInput] = []
        for idx, item in enumerate(candidates):
            provider = (item.provider or DEFAULT_PROVIDER).strip()
            base_url = normalize_base_url(item.base_url or "")
            model = (item.model or "").strip()
            if provider not in PROVIDERS:
                errors.append(f"platforms[{idx}].provider '{provider}' is not supported")
            if not base_url:
                errors.append(f"platforms[{idx}].baseUrl is required")
            if not model:
                errors.append(f"platforms[{idx}].model is required")
            normalized.append(
                PlatformInput(
                    id=(item.id or "").strip() or derive_platform_id(provider, idx + 1, base_url, model),
                    provider=provider,
                    base_url=base_url,
                    model=model,
                    video_model=(item.video_model or "").strip() or None,
                    credential=(item.credential or "").strip(),
                )
            )
        if errors:
            raise ValidationError("; ".join(errors))

        with self._lock:
            self._ensure_loaded()
            current = {p.id: p for p in self._stored_platforms()}
            merged: list[Platform] = []
            seen: set[str] = set()
            for item in normalized:
                if item.id in seen:
                    raise ValidationError(f"platform {item.id}: duplicate id")
                seen.add(item.id)
                previous = current.get(item.id)
                credential = item.credential or (previous.credential if previous else "")
                if not credential:
                    raise ValidationError(
                        f"platform {item.id}: credential is required for new platforms "
                        "(existing platforms may omit it to keep the stored value)"
                    )
                merged.append(
                    Platform(
                        id=item.id,
                        provider=item.provider,
                        base_url=item.base_url,
                        model=item.model,
                        video_model=item.video_model,
                        credential=credential,
                    )
                )

            providers: dict[str, Any] = {}
            for platform in merged:
                entry = {
                    "id": platform.id,
                    "baseUrl": platform.base_url,
                    "model": platform.model,
                    "credential": platform.credential,
                }
                if platform.video_model:
                    entry["videoModel"] = platform.video_model
                providers.setdefault(platform.provider, {"platforms": []})["platforms"].append(entry)
            document = {"version": 1, "providers": providers}
            self._persist(document)
            self._data = document

        logger.info("Platform registry updated: %d platforms", len(merged))
        return [redact_platform(p) for p in merged]

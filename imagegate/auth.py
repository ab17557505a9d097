"""Signed-session authentication for the admin and AI surfaces.

A session token is ``base64url(payload) + "." + base64url(HMAC-SHA256(secret, base64url(payload)))``
where payload is the compact JSON ``{"iat": ..., "exp": ...}``. Tokens are
stateless: the secret is read on every verification, so rotating it logs every
session out.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Callable

from fastapi import Request

from .config import settings
from .errors import AuthError, ConfigurationError


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def _settings_secret() -> str:
    return settings.auth_secret or settings.admin_password or ""


class SessionAuthenticator:
    def __init__(
        self,
        secret_provider: Callable[[], str] = _settings_secret,
        ttl_seconds: int | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._secret_provider = secret_provider
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    @property
    def ttl_seconds(self) -> int:
        if self._ttl_seconds is not None:
            return self._ttl_seconds
        return settings.session_ttl_seconds

    def _sign(self, secret: str, payload_b64: str) -> str:
        digest = hmac.new(secret.encode("utf-8"), payload_b64.encode("utf-8"), hashlib.sha256).digest()
        return _b64url_encode(digest)

    def issue(self) -> str:
        secret = self._secret_provider()
        if not secret:
            raise ConfigurationError(
                "No session secret configured: set IMAGEGATE_AUTH_SECRET or IMAGEGATE_ADMIN_PASSWORD"
            )
        now = int(self._clock())
        payload = {"iat": now, "exp": now + self.ttl_seconds}
        payload_b64 = _b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
        return f"{payload_b64}.{self._sign(secret, payload_b64)}"

    def verify(self, token: str | None) -> bool:
        secret = self._secret_provider()
        if not secret or not token:
            return False

        payload_b64, sep, signature = token.partition(".")
        if not sep or not payload_b64 or not signature:
            return False
        expected = self._sign(secret, payload_b64)
        if not hmac.compare_digest(signature.encode("ascii", "replace"), expected.encode("ascii")):
            return False

        try:
            payload = json.loads(_b64url_decode(payload_b64).decode("utf-8"))
        except (ValueError, UnicodeDecodeError):
            return False
        if not isinstance(payload, dict):
            return False
        exp = payload.get("exp")
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            return False
        return self._clock() < exp


def verify_password(password: str | None) -> bool:
    expected = settings.admin_password
    if not expected:
        raise ConfigurationError("No operator password configured: set IMAGEGATE_ADMIN_PASSWORD")
    return hmac.compare_digest(str(password or "").encode("utf-8"), expected.encode("utf-8"))


def session_cookie(token: str, ttl_seconds: int) -> str:
    parts = [
        f"{settings.cookie_name}={token}",
        "HttpOnly",
        "Path=/",
        "SameSite=Lax",
        f"Max-Age={ttl_seconds}",
    ]
    if settings.cookie_secure:
        parts.append("Secure")
    return "; ".join(parts)


def cleared_session_cookie() -> str:
    return f"{settings.cookie_name}=; HttpOnly; Path=/; SameSite=Lax; Max-Age=0"


authenticator = SessionAuthenticator()


def is_logged_in(request: Request) -> bool:
    return authenticator.verify(request.cookies.get(settings.cookie_name))


async def require_session(request: Request) -> None:
    """FastAPI dependency: reject requests without a valid session cookie."""
    if not is_logged_in(request):
        raise AuthError("Not logged in")


async def require_ai_session(request: Request) -> None:
    """Session gate for AI endpoints, active only when require_auth_for_ai is set."""
    if settings.require_auth_for_ai and not is_logged_in(request):
        raise AuthError("Not logged in")

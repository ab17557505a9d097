"""Operator session routes."""

import logging

from fastapi import APIRouter, Request

from .auth import authenticator, cleared_session_cookie, is_logged_in, session_cookie, verify_password
from .config import settings
from .errors import AuthError
from .http_utils import ok_response, parse_model, read_json_body
from .models import LoginRequest

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)


@router.get("/me")
async def me(request: Request):
    return ok_response(loggedIn=is_logged_in(request))


@router.post("/login")
async def login(request: Request):
    body = parse_model(LoginRequest, await read_json_body(request, settings.login_max_body_bytes))
    if not verify_password(body.password):
        logger.warning("Rejected login from %s", request.client.host if request.client else "unknown")
        raise AuthError("Invalid password")
    token = authenticator.issue()
    return ok_response(headers={"Set-Cookie": session_cookie(token, authenticator.ttl_seconds)})


@router.post("/logout")
async def logout():
    return ok_response(headers={"Set-Cookie": cleared_session_cookie()})

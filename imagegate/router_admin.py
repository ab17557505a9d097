"""Admin routes: platform configuration and health monitor."""

import logging

from fastapi import APIRouter, Depends, Request

from .auth import require_session
from .config import settings
from .http_utils import dump, ok_response, parse_model, read_json_body
from .models import PlatformsUpdateRequest

router = APIRouter(prefix="/api", tags=["admin"], dependencies=[Depends(require_session)])
logger = logging.getLogger(__name__)


@router.get("/admin/platforms")
async def list_platforms():
    from .main import get_registry

    return ok_response(platforms=[dump(p) for p in get_registry().list_redacted()])


@router.put("/admin/platforms")
async def update_platforms(request: Request):
    from .main import get_pool, get_registry

    body = parse_model(PlatformsUpdateRequest, await read_json_body(request, settings.max_body_bytes))
    platforms = get_registry().upsert(body.platforms)
    get_pool().clear()
    logger.info("Platform list replaced: %d platforms", len(platforms))
    return ok_response(platforms=[dump(p) for p in platforms])


@router.get("/monitor")
async def monitor_status():
    from .main import get_monitor

    return ok_response(status=[dump(s) for s in get_monitor().get_snapshot()])


@router.post("/monitor/check")
async def monitor_check():
    from .main import get_monitor

    results = await get_monitor().check_once()
    return ok_response(status=[dump(s) for s in results])

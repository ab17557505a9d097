"""ImageGate: authenticated multi-platform image/video generation gateway."""

import logging
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI, Request

from . import __version__
from .config import settings
from .errors import GatewayError
from .http_utils import error_response, ok_response
from .log_utils import configure_logging
from .monitor import HealthMonitor
from .platform_store import PlatformRegistry
from .provider_pool import ProviderPool
from .service import GenerationService
from .task_queue import TaskQueue

logger = logging.getLogger(__name__)

# Shared state populated at startup
_registry: PlatformRegistry | None = None
_pool: ProviderPool | None = None
_service: GenerationService | None = None
_monitor: HealthMonitor | None = None
_task_queue: TaskQueue | None = None


def create_pool() -> ProviderPool:
    return ProviderPool()


def get_registry() -> PlatformRegistry:
    if _registry is None:
        raise RuntimeError("Platform registry is not initialized")
    return _registry


def get_pool() -> ProviderPool:
    if _pool is None:
        raise RuntimeError("Provider pool is not initialized")
    return _pool


def get_service() -> GenerationService:
    if _service is None:
        raise RuntimeError("Generation service is not initialized")
    return _service


def get_monitor() -> HealthMonitor:
    if _monitor is None:
        raise RuntimeError("Health monitor is not initialized")
    return _monitor


def get_task_queue() -> TaskQueue:
    if _task_queue is None:
        raise RuntimeError("Task queue is not initialized")
    return _task_queue


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: logging, platform registry, provider pool, monitor, task queue."""
    global _registry, _pool, _service, _monitor, _task_queue

    configure_logging(settings.log_level, settings.log_file)

    _registry = PlatformRegistry(settings.config_path, settings.seed_platforms_path)
    _registry.seed_if_empty()
    logger.info("Loaded %d platforms from %s", len(_registry.list()), settings.config_path)

    _pool = create_pool()
    await _pool.start()
    _service = GenerationService(_registry, _pool)
    _monitor = HealthMonitor(_registry, _service, settings.monitor_probe_timeout_seconds)
    if settings.monitor_enabled:
        _monitor.start(settings.monitor_interval_seconds)
    _task_queue = TaskQueue(max_concurrent=settings.task_max_concurrency)
    logger.info("ImageGate started")

    yield

    await _task_queue.shutdown()
    _task_queue = None
    _monitor.stop()
    _monitor = None
    await _pool.stop()
    _pool = None
    _service = None
    _registry = None
    logger.info("ImageGate stopped")


app = FastAPI(title="ImageGate", version=__version__, lifespan=lifespan)


# --- Error handling ---


@app.exception_handler(GatewayError)
async def gateway_exception_handler(request: Request, exc: GatewayError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(exc.status_code, exc.message)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    if isinstance(exc, httpx.ConnectError):
        return error_response(503, f"Upstream unavailable: {exc}")
    if isinstance(exc, httpx.TimeoutException):
        return error_response(504, f"Upstream timeout: {exc}")
    logger.exception("Unhandled error: %s", exc)
    return error_response(500, "Internal server error")


# --- Health endpoint ---


@app.get("/api/health")
async def health():
    return ok_response()


# --- Mount routers ---

from .router_admin import router as admin_router  # noqa: E402
from .router_ai import router as ai_router  # noqa: E402
from .router_auth import router as auth_router  # noqa: E402
from .router_tasks import router as tasks_router  # noqa: E402

app.include_router(auth_router)
app.include_router(admin_router)
app.include_router(ai_router)
app.include_router(tasks_router)


def run() -> None:
    uvicorn.run("imagegate.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())

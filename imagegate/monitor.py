"""Periodic real-generation health probing of every configured platform."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from .models import MonitorStatus
from .platform_store import PlatformRegistry
from .service import GenerationService

logger = logging.getLogger(__name__)

MIN_INTERVAL_SECONDS = 5.0


class HealthMonitor:
    """Latest probe status per platform. Probes spend real upstream quota."""

    def __init__(self, registry: PlatformRegistry, service: GenerationService, probe_timeout_seconds: float):
        self._registry = registry
        self._service = service
        self.probe_timeout_seconds = probe_timeout_seconds
        self._status_by_id: dict[str, MonitorStatus] = {}
        self._task: asyncio.Task | None = None
        self.interval_seconds: float | None = None

    def get_snapshot(self) -> list[MonitorStatus]:
        return [self._status_by_id[k] for k in sorted(self._status_by_id)]

    async def check_once(self) -> list[MonitorStatus]:
        platforms = self._registry.list()
        checked_at = datetime.now(timezone.utc).isoformat()
        current_ids = {p.id for p in platforms}
        for stale_id in set(self._status_by_id) - current_ids:
            del self._status_by_id[stale_id]

        results: list[MonitorStatus] = []
        for platform in platforms:
            outcome = await self._service.probe(platform, self.probe_timeout_seconds)
            status = MonitorStatus(
                platform_id=platform.id,
                base_url=platform.base_url,
                model=platform.model,
                checked_at=checked_at,
                ok=outcome.ok,
                latency_ms=outcome.latency_ms,
                error_message=outcome.error_message,
            )
            self._status_by_id[platform.id] = status
            results.append(status)
            if not outcome.ok:
                logger.warning("Probe failed for %s: %s", platform.id, outcome.error_message)
        logger.info(
            "Monitor check finished: %d/%d platforms ok",
            sum(1 for r in results if r.ok), len(results),
        )
        return results

    def start(self, interval_seconds: float) -> None:
        self.stop()
        self.interval_seconds = max(MIN_INTERVAL_SECONDS, float(interval_seconds or 60.0))
        self._task = asyncio.create_task(self._run_loop(self.interval_seconds))
        logger.info("Health monitor started: interval=%.0fs", self.interval_seconds)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.check_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Monitor check failed: %s", e)

"""Sequential platform failover for one logical upstream call."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Sequence, TypeVar

from .errors import AggregateFailoverError, AttemptFailure, ConfigurationError, error_message
from .models import Platform
from .provider_pool import ProviderPool
from .providers import ProviderClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

AttemptFn = Callable[[Platform, ProviderClient], Awaitable[T]]


class FailoverRunner:
    """Try platforms in rotation until one succeeds.

    Each platform is attempted at most once per run, and every attempt is a
    fresh upstream call: upstream job ids are never carried across platforms.
    """

    def __init__(self, pool: ProviderPool):
        self._pool = pool

    async def run(
        self,
        operation: str,
        platforms: Sequence[Platform],
        attempt_fn: AttemptFn[T],
        start_index: int = 0,
    ) -> T:
        count = len(platforms)
        if count == 0:
            raise ConfigurationError(f"{operation}: no platforms configured")

        failures: list[AttemptFailure] = []
        for i in range(count):
            platform = platforms[(start_index + i) % count]
            client = self._pool.client_for(platform)
            try:
                return await attempt_fn(platform, client)
            except Exception as e:
                failures.append(AttemptFailure(platform_id=platform.id, error=e))
                logger.warning(
                    "%s attempt %d/%d failed on %s (%s): %s",
                    operation, i + 1, count, platform.id, platform.base_url, error_message(e),
                )

        raise AggregateFailoverError(operation, failures)

"""Fill-to-target generation: over-provision concurrent attempts until N artifacts exist."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence

from .errors import AggregateFailoverError, AttemptFailure, ConfigurationError
from .failover import AttemptFn, FailoverRunner
from .models import GeneratedImage, Platform
from .progress import ProgressChannel

logger = logging.getLogger(__name__)


def backoff_seconds(attempts: int) -> float:
    return min(2.0, 0.2 + 0.05 * attempts)


class FillToTargetGenerator:
    def __init__(
        self,
        runner: FailoverRunner,
        max_attempts: int,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._runner = runner
        self.max_attempts = max_attempts
        self._sleep = sleep

    async def generate(
        self,
        operation: str,
        desired_count: int,
        platforms: Sequence[Platform],
        attempt_fn: AttemptFn[GeneratedImage],
        progress: ProgressChannel | None = None,
    ) -> list[GeneratedImage]:
        """Return exactly ``desired_count`` artifacts or raise AggregateFailoverError.

        Attempts within a round run concurrently and each starts its failover
        rotation one platform further along, so load spreads across platforms
        as attempts accumulate. Rounds are sequential.
        """
        if self.max_attempts < desired_count:
            raise ConfigurationError(
                f"fill max attempts ({self.max_attempts}) must be >= desired count ({desired_count})"
            )
        if not platforms:
            raise ConfigurationError(f"{operation}: no platforms configured")

        collected: list[GeneratedImage] = []
        failures: list[AttemptFailure] = []
        attempts = 0
        platform_count = len(platforms)

        while len(collected) < desired_count and attempts < self.max_attempts:
            launch = min(desired_count - len(collected), self.max_attempts - attempts)
            coros = [
                self._runner.run(operation, platforms, attempt_fn, (attempts + offset) % platform_count)
                for offset in range(launch)
            ]
            outcomes = await asyncio.gather(*coros, return_exceptions=True)
            attempts += launch

            for outcome in outcomes:
                if isinstance(outcome, AggregateFailoverError):
                    failures.extend(outcome.failures)
                elif isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    failures.append(AttemptFailure(platform_id="unknown", error=outcome))
                else:
                    collected.append(outcome)

            logger.info(
                "%s round done: filled %d/%d after %d/%d attempts",
                operation, len(collected), desired_count, attempts, self.max_attempts,
            )
            if progress is not None:
                progress.publish_progress(f"filled {len(collected)}/{desired_count}")

            if len(collected) < desired_count and attempts < self.max_attempts:
                await self._sleep(backoff_seconds(attempts))

        if len(collected) < desired_count:
            if not failures:
                failures.append(AttemptFailure(platform_id="unknown", error=RuntimeError("unknown error")))
            raise AggregateFailoverError(
                f"{operation} (filled {len(collected)}/{desired_count})", failures
            )
        return collected[:desired_count]

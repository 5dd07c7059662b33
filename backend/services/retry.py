"""Retry Policy.

Wraps a coroutine factory with classified retries: rate-limit errors wait
for the rate-limit window, other retryable errors back off exponentially
with jitter, and everything else is raised immediately.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from app.config import Settings
from app.exceptions import ErrorKind, RetryExhaustedError, TalentRankError
from app.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    rate_limit_delay: float = 60.0
    max_delay: float = 60.0
    jitter: float = 0.1

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            multiplier=settings.retry_multiplier,
            rate_limit_delay=settings.retry_rate_limit_delay,
        )

    def delay_for(self, attempt: int, error: TalentRankError) -> float:
        """Seconds to wait after the ``attempt``-th failure (1-based)."""
        if error.kind == ErrorKind.RATE_LIMITED:
            return self.rate_limit_delay

        delay = self.base_delay * (self.multiplier ** (attempt - 1))
        delay += random.uniform(0, delay * self.jitter)
        return min(delay, self.max_delay)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    operation: str = "operation",
) -> T:
    """Call ``fn`` until it succeeds, fails permanently, or attempts run out.

    Raises:
        TalentRankError: non-retryable errors, unchanged.
        RetryExhaustedError: every attempt failed with a retryable error.
    """
    attempts = max(policy.max_attempts, 1)
    attempt = 1

    while True:
        try:
            return await fn()
        except TalentRankError as exc:
            if not exc.retryable:
                raise
            if attempt >= attempts:
                raise RetryExhaustedError(attempts, exc) from exc

            wait = policy.delay_for(attempt, exc)
            logger.warning(
                "retry_scheduled",
                operation=operation,
                attempt=attempt,
                kind=exc.kind.value,
                wait_seconds=round(wait, 2),
            )
            await sleep(wait)
            attempt += 1

"""Bounded exponential backoff around a single generator call."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from storybook_observability import record_retry
from storybook_providers import is_rate_limited

from .errors import RetriesExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Run an operation up to ``1 + max_retries`` times.

    After a failed attempt ``n`` (0-based) the policy waits ``base_delay * 2**n``.
    When the failure is a rate limit and ``rate_limit_delay`` is set, it first waits an
    extra ``rate_limit_delay * 2**(n + 1)``. The policy keeps no state between calls.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    rate_limit_delay: float | None = None
    sleep: Sleep = field(default=asyncio.sleep, compare=False)

    def backoff_delays(self, attempt: int, *, rate_limited: bool) -> list[float]:
        delays: list[float] = []
        if rate_limited and self.rate_limit_delay:
            delays.append(self.rate_limit_delay * 2 ** (attempt + 1))
        delays.append(self.base_delay * 2**attempt)
        return delays

    async def run(self, operation: Callable[[], Awaitable[T]], *, label: str) -> T:
        last_error: Exception | None = None
        for attempt in range(self.max_retries + 1):
            try:
                return await operation()
            except Exception as exc:
                last_error = exc
                if attempt >= self.max_retries:
                    break
                rate_limited = is_rate_limited(exc)
                delays = self.backoff_delays(attempt, rate_limited=rate_limited)
                record_retry(label, rate_limited=rate_limited)
                logger.warning(
                    "Generator call failed, retrying",
                    extra={
                        "generator": label,
                        "attempt": attempt + 1,
                        "delay_seconds": sum(delays),
                        "rate_limited": rate_limited,
                        "error": str(exc),
                    },
                )
                for delay in delays:
                    await self.sleep(delay)

        raise RetriesExhaustedError(
            label, attempts=self.max_retries + 1, last_error=last_error
        ) from last_error


@dataclass(frozen=True)
class RetryDefaults:
    """Per-generator policies; image and speech vendors get longer cooldowns."""

    text: RetryPolicy
    image: RetryPolicy
    speech: RetryPolicy

    @classmethod
    def build(cls, *, max_retries: int = 3, sleep: Sleep = asyncio.sleep) -> "RetryDefaults":
        return cls(
            text=RetryPolicy(max_retries=max_retries, base_delay=1.0, sleep=sleep),
            image=RetryPolicy(
                max_retries=max_retries, base_delay=1.0, rate_limit_delay=2.0, sleep=sleep
            ),
            speech=RetryPolicy(
                max_retries=max_retries, base_delay=2.0, rate_limit_delay=3.0, sleep=sleep
            ),
        )

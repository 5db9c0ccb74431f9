"""Retry/backoff policy for provider calls.

Delay for a retryable failure on attempt ``n`` (0-based):

    min(base_delay * backoff_factor ** n * multiplier, max_delay)

where the multiplier comes from the failure class (3x rate limited,
2x quota, 1x unavailable or generic transport). ClientRejected stops
immediately. At most ``max_retries + 1`` attempts are made.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from layr.errors import (
    QuotaExceeded,
    RateLimited,
    ServiceUnavailable,
    TransportError,
)
from layr.schemas import RetryConfig


logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


def _describe(error: TransportError) -> str:
    if isinstance(error, RateLimited):
        return "rate limited"
    if isinstance(error, QuotaExceeded):
        return "payment/quota issue"
    if isinstance(error, ServiceUnavailable):
        return "service unavailable"
    return "request failed"


class RetryPolicy:
    """Decides whether and how long to wait before retrying a failed call."""

    def __init__(self, config: RetryConfig | None = None, sleep: Sleep | None = None):
        self.config = config or RetryConfig()
        self._sleep = sleep or asyncio.sleep

    @property
    def max_attempts(self) -> int:
        return self.config.max_retries + 1

    def compute_delay(self, attempt: int, error: TransportError) -> float:
        """Backoff delay in seconds for a retryable error on `attempt`."""
        raw = (
            self.config.base_delay
            * self.config.backoff_factor ** attempt
            * error.delay_multiplier
        )
        return min(raw, self.config.max_delay)

    def next_delay(self, attempt: int, error: Exception) -> float | None:
        """Return the delay before the next attempt, or None to stop.

        Args:
            attempt: 0-based index of the attempt that just failed
            error: The failure raised by that attempt

        Returns:
            Seconds to wait, or None when the error is not retryable or
            no attempts remain
        """
        if not isinstance(error, TransportError) or not error.retryable:
            return None
        if attempt + 1 >= self.max_attempts:
            return None
        return self.compute_delay(attempt, error)

    async def run(self, operation: Callable[[], Awaitable[T]], *, provider: str = "provider") -> T:
        """Run `operation` until it succeeds or the policy says stop.

        The last observed error is re-raised with its ``attempts`` count set.
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except TransportError as e:
                e.attempts = attempt + 1
                delay = self.next_delay(attempt, e)
                if delay is None:
                    if e.retryable:
                        logger.warning(
                            f"{provider} {_describe(e)}; giving up after {e.attempts} attempt(s)"
                        )
                    raise
                logger.info(
                    f"{provider} {_describe(e)}. Retrying in {delay:.1f}s... "
                    f"(attempt {attempt + 1}/{self.max_attempts})"
                )
                await self._sleep(delay)
                attempt += 1

"""Retry-with-backoff policy for a single provider call."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from recallbot.logging import get_logger
from recallbot.providers.base import is_transient_error

logger = get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry a call on transient failures with linearly growing delay.

    Attempt ``n`` (1-based) that fails transiently is followed by a wait of
    ``base_delay + (n - 1) * delay_step`` seconds, as long as ``n < max_attempts``.
    Any other failure, or the last attempt's failure, propagates unchanged.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    delay_step: float = 1.0
    is_retryable: Callable[[BaseException], bool] = field(default=is_transient_error)

    def delay_for(self, attempt: int) -> float:
        return self.base_delay + (attempt - 1) * self.delay_step

    async def run(self, call: Callable[[], Awaitable[T]], sleep: Sleep = asyncio.sleep) -> T:
        attempt = 1
        while True:
            try:
                return await call()
            except Exception as e:
                if attempt >= self.max_attempts or not self.is_retryable(e):
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "provider_call_retry",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    delay=delay,
                    error=str(e),
                )
                await sleep(delay)
                attempt += 1

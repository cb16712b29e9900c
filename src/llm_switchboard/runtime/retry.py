"""Retry policy applied to every individual backend call."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import anyio

from llm_switchboard.config import BackoffMode

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """Retry a backend call when it raises.

    A backend returning a failed :class:`CompletionResult` is not retried here;
    only exceptions are. ``max_retries`` counts retries after the first
    attempt. Cancellation is never intercepted.
    """

    def __init__(
        self,
        max_retries: int = 3,
        backoff: BackoffMode = BackoffMode.EXPONENTIAL,
        base_delay_s: float = 1.0,
        *,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")
        if base_delay_s < 0:
            raise ValueError("base_delay_s must not be negative")
        self.max_retries = max_retries
        self.backoff = backoff
        self.base_delay_s = base_delay_s
        self._sleep = sleep

    def delay_for(self, retry_number: int) -> float:
        if self.backoff is BackoffMode.EXPONENTIAL:
            return self.base_delay_s * (2 ** retry_number)
        return self.base_delay_s

    async def run(self, operation: Callable[[], Awaitable[T]], *, backend_name: str = "") -> T:
        retry_number = 0
        while True:
            try:
                return await operation()
            except Exception as exc:
                if retry_number >= self.max_retries:
                    raise
                retry_number += 1
                delay = self.delay_for(retry_number)
                logger.warning(
                    "Retry %d for backend %s after %.2fs due to: %s",
                    retry_number,
                    backend_name,
                    delay,
                    exc,
                    extra={"backend": backend_name, "attempt": retry_number, "delay_s": delay},
                )
                await self._sleep(delay)


__all__ = ["RetryPolicy"]

"""Rolling per-backend request statistics."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Deque

RECENT_LATENCY_CAPACITY = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class StatsSnapshot:
    name: str
    total_requests: int
    successful_requests: int
    failed_requests: int
    average_latency_ms: float
    recent_latencies_ms: tuple[float, ...]
    last_error: str | None
    last_successful_request: datetime | None
    last_used: datetime | None


class BackendStats:
    """Counters and latency history for one backend.

    Each instance owns its lock so that traffic against one backend never
    serialises updates for another.
    """

    def __init__(self, name: str, *, clock: Callable[[], datetime] = utcnow) -> None:
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._total_requests = 0
        self._successful_requests = 0
        self._failed_requests = 0
        self._average_latency_ms = 0.0
        self._recent_latencies: Deque[float] = deque(maxlen=RECENT_LATENCY_CAPACITY)
        self._last_error: str | None = None
        self._last_successful_request: datetime | None = None
        self._last_used: datetime | None = None

    @property
    def failed_requests(self) -> int:
        with self._lock:
            return self._failed_requests

    @property
    def average_latency_ms(self) -> float:
        with self._lock:
            return self._average_latency_ms

    def record_attempt(self) -> None:
        with self._lock:
            self._total_requests += 1
            self._last_used = self._clock()

    def record_success(self, latency_ms: float) -> None:
        with self._lock:
            self._successful_requests += 1
            self._fold_latency_locked(latency_ms)
            self._recent_latencies.append(latency_ms)
            self._last_successful_request = self._clock()

    def record_failure(self, error: str, latency_ms: float = 0.0) -> None:
        with self._lock:
            self._failed_requests += 1
            self._fold_latency_locked(latency_ms)
            self._last_error = error

    def _fold_latency_locked(self, latency_ms: float) -> None:
        completed = self._successful_requests + self._failed_requests
        self._average_latency_ms = (
            self._average_latency_ms * (completed - 1) + latency_ms
        ) / completed

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            return StatsSnapshot(
                name=self.name,
                total_requests=self._total_requests,
                successful_requests=self._successful_requests,
                failed_requests=self._failed_requests,
                average_latency_ms=self._average_latency_ms,
                recent_latencies_ms=tuple(self._recent_latencies),
                last_error=self._last_error,
                last_successful_request=self._last_successful_request,
                last_used=self._last_used,
            )


_ERROR_CATEGORIES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("timeout", ("timeout", "timed out")),
    ("rate_limit", ("rate limit", "429", "quota")),
    ("auth", ("auth", "401", "403", "unauthorized")),
    ("network", ("network", "connection", "dns")),
    ("api_error", ("400", "404", "500", "502", "503")),
)


def categorize_error(message: str | None) -> str:
    """Bucket an error message into a low-cardinality metric label.

    The first matching category wins, so "connection timed out" is a
    ``timeout`` and not a ``network`` error.
    """

    if not message:
        return "unknown"
    lowered = message.lower()
    for category, needles in _ERROR_CATEGORIES:
        if any(needle in lowered for needle in needles):
            return category
    return "unknown"


__all__ = ["BackendStats", "StatsSnapshot", "RECENT_LATENCY_CAPACITY", "categorize_error", "utcnow"]

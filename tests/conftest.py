from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest


class MutableClock:
    """Clock double whose current time is moved explicitly by tests."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def set(self, value: datetime) -> None:
        self.now = value

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(datetime(2025, 1, 6, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"

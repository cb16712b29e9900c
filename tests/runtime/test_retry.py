from __future__ import annotations

import anyio
import pytest

from llm_switchboard.config import BackoffMode
from llm_switchboard.runtime import RetryPolicy


class _Flaky:
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError(f"failure {self.calls}")
        return "ok"


def _policy(max_retries: int, backoff: BackoffMode = BackoffMode.EXPONENTIAL) -> tuple[RetryPolicy, list[float]]:
    delays: list[float] = []

    async def _record_sleep(delay: float) -> None:
        delays.append(delay)

    return RetryPolicy(max_retries, backoff, 0.5, sleep=_record_sleep), delays


def test_exponential_backoff_between_retries() -> None:
    policy, delays = _policy(3)
    operation = _Flaky(failures=2)

    assert anyio.run(policy.run, operation) == "ok"
    assert operation.calls == 3
    assert delays == [1.0, 2.0]


def test_fixed_backoff_uses_base_delay() -> None:
    policy, delays = _policy(3, BackoffMode.FIXED)

    anyio.run(policy.run, _Flaky(failures=3))

    assert delays == [0.5, 0.5, 0.5]


def test_exception_surfaces_after_retries_exhausted() -> None:
    policy, delays = _policy(2)
    operation = _Flaky(failures=10)

    with pytest.raises(ConnectionError, match="failure 3"):
        anyio.run(policy.run, operation)

    assert operation.calls == 3
    assert len(delays) == 2


def test_zero_retries_makes_single_attempt() -> None:
    policy, delays = _policy(0)
    operation = _Flaky(failures=1)

    with pytest.raises(ConnectionError):
        anyio.run(policy.run, operation)

    assert operation.calls == 1
    assert delays == []


def test_cancellation_is_not_retried() -> None:
    policy = RetryPolicy(5, BackoffMode.FIXED, 0.0)
    calls = 0

    async def _slow() -> str:
        nonlocal calls
        calls += 1
        await anyio.sleep(10)
        return "late"

    async def _main() -> None:
        with anyio.move_on_after(0.05):
            await policy.run(_slow)

    anyio.run(_main)
    assert calls == 1


def test_negative_retries_rejected() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(-1)

from __future__ import annotations

import random
import threading
from collections import Counter

import pytest

from llm_switchboard.backends.registry import BackendRegistry
from llm_switchboard.config import SelectionStrategy
from llm_switchboard.runtime import BackendSelector
from llm_switchboard.testing import FakeBackend
from llm_switchboard.tracking import StatisticsTracker


def _selector(*names: str, **kwargs) -> tuple[BackendSelector, StatisticsTracker]:
    registry = BackendRegistry.from_backends([FakeBackend(name) for name in names])
    tracker = StatisticsTracker(registry)
    return BackendSelector(registry, tracker, **kwargs), tracker


def _names(handles) -> list[str]:
    return [handle.name for handle in handles]


def test_failover_orders_by_failure_count_stably() -> None:
    selector, tracker = _selector("a", "b", "c")
    tracker.record_failure("a", "boom")
    tracker.record_failure("a", "boom")
    tracker.record_failure("c", "boom")

    assert _names(selector.select(SelectionStrategy.FAILOVER)) == ["b", "c", "a"]


def test_round_robin_cycles_in_registration_order() -> None:
    selector, _ = _selector("a", "b", "c")

    picks = [_names(selector.select(SelectionStrategy.ROUND_ROBIN)) for _ in range(4)]

    assert picks == [["a"], ["b"], ["c"], ["a"]]


def test_preferred_backend_does_not_advance_round_robin() -> None:
    selector, _ = _selector("a", "b", "c")

    assert _names(selector.select(SelectionStrategy.ROUND_ROBIN)) == ["a"]
    assert _names(selector.select(SelectionStrategy.ROUND_ROBIN, "C")) == ["c"]
    assert _names(selector.select(SelectionStrategy.ROUND_ROBIN)) == ["b"]


def test_unknown_preferred_backend_falls_back_to_strategy() -> None:
    selector, _ = _selector("a", "b")

    assert _names(selector.select(SelectionStrategy.FAILOVER, "nope")) == ["a", "b"]


def test_lowest_latency_puts_cold_backends_first() -> None:
    selector, tracker = _selector("slow", "fast", "cold")
    tracker.record_success("slow", 500.0)
    tracker.record_success("fast", 50.0)

    assert _names(selector.select(SelectionStrategy.LOWEST_LATENCY)) == ["cold", "fast", "slow"]


def test_random_uses_injected_generator() -> None:
    selector, _ = _selector("a", "b", "c", random_factory=lambda: random.Random(7))
    expected = ["a", "b", "c"][random.Random(7).randrange(3)]

    assert _names(selector.select(SelectionStrategy.RANDOM)) == [expected]


def test_specific_uses_configured_backend() -> None:
    selector, _ = _selector("a", "b")

    assert _names(selector.select(SelectionStrategy.SPECIFIC, specific_name="b")) == ["b"]
    assert _names(selector.select(SelectionStrategy.SPECIFIC)) == ["a", "b"]


@pytest.mark.parametrize("strategy", [SelectionStrategy.SIMULTANEOUS])
def test_simultaneous_returns_every_backend(strategy: SelectionStrategy) -> None:
    selector, _ = _selector("a", "b", "c")

    assert _names(selector.select(strategy)) == ["a", "b", "c"]


def test_round_robin_is_fair_under_concurrency() -> None:
    selector, _ = _selector("a", "b", "c")
    picks: list[str] = []
    lock = threading.Lock()

    def worker() -> None:
        for _ in range(300):
            name = selector.select(SelectionStrategy.ROUND_ROBIN)[0].name
            with lock:
                picks.append(name)

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert Counter(picks) == {"a": 600, "b": 600, "c": 600}


def test_unsorted_names_keep_configured_order() -> None:
    selector, _ = _selector("zeta", "alpha", "mike")

    assert _names(selector.select(SelectionStrategy.FAILOVER)) == ["zeta", "alpha", "mike"]
    assert _names(selector.select(SelectionStrategy.ROUND_ROBIN)) == ["zeta"]
    assert _names(selector.select(SelectionStrategy.ROUND_ROBIN)) == ["alpha"]

from __future__ import annotations

from decimal import Decimal

from llm_switchboard.backends.registry import BackendRegistry
from llm_switchboard.config import BackendConfig, SpendResetPeriod
from llm_switchboard.testing import FakeBackend
from llm_switchboard.tracking import StatisticsTracker


def _registry() -> BackendRegistry:
    return BackendRegistry(
        [
            (FakeBackend("Alpha"), BackendConfig(name="Alpha")),
            (
                FakeBackend("beta"),
                BackendConfig(name="beta", max_spend_usd=Decimal("0.50"), spend_reset_period=SpendResetPeriod.NEVER),
            ),
        ]
    )


def test_snapshot_is_keyed_by_registered_name(clock) -> None:
    tracker = StatisticsTracker(_registry(), clock=clock)

    tracker.record_attempt("alpha")
    tracker.record_success("ALPHA", 42.0)

    snapshot = tracker.snapshot()
    assert list(snapshot) == ["Alpha", "beta"]
    alpha = snapshot["Alpha"]
    assert alpha.total_requests == 1
    assert alpha.successful_requests == 1
    assert alpha.average_latency_ms == 42.0
    assert alpha.last_used == clock.now
    assert alpha.as_dict()["lastUsed"] == clock.now.isoformat()


def test_backends_without_limit_are_always_within_budget(clock) -> None:
    tracker = StatisticsTracker(_registry(), clock=clock)

    tracker.record_spend("alpha", Decimal("1000"))

    assert tracker.is_within_budget("alpha")
    assert tracker.budget_status("alpha") is None


def test_spend_past_limit_marks_backend_unavailable(clock) -> None:
    tracker = StatisticsTracker(_registry(), clock=clock)

    tracker.record_spend("beta", None)
    tracker.record_spend("beta", Decimal("0.50"))

    assert not tracker.is_within_budget("beta")
    assert tracker.snapshot()["beta"].is_available is False

    tracker.reset_budget("beta")
    assert tracker.is_within_budget("beta")


def test_budget_statuses_lists_only_budgeted_backends(clock) -> None:
    tracker = StatisticsTracker(_registry(), clock=clock)
    tracker.record_spend("BETA", Decimal("0.20"))

    statuses = tracker.budget_statuses()

    assert list(statuses) == ["beta"]
    assert statuses["beta"].current_spend == Decimal("0.20")
    assert statuses["beta"].max_spend == Decimal("0.50")

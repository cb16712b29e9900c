from __future__ import annotations

import random
from datetime import datetime, timezone
from decimal import Decimal

from llm_switchboard.config import SpendResetPeriod
from llm_switchboard.tracking.budget import BudgetLedger


def _at(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def test_spend_reaching_limit_marks_exceeded(clock) -> None:
    ledger = BudgetLedger("alpha", "1.00", SpendResetPeriod.NEVER, clock=clock)

    ledger.record_spend("0.40")
    assert ledger.is_within_budget()

    ledger.record_spend("0.60")
    status = ledger.status()
    assert status.exceeded is True
    assert status.current_spend == Decimal("1.00")
    assert not ledger.is_within_budget()


def test_non_positive_amounts_are_ignored(clock) -> None:
    ledger = BudgetLedger("alpha", "1.00", clock=clock)

    ledger.record_spend(0)
    ledger.record_spend("-5")

    assert ledger.status().current_spend == Decimal(0)


def test_daily_reset_after_midnight(clock) -> None:
    clock.set(_at(2025, 1, 9, 23, 59))
    ledger = BudgetLedger("alpha", "1.00", SpendResetPeriod.DAILY, clock=clock)
    ledger.record_spend("1.00")
    assert not ledger.is_within_budget()

    clock.set(_at(2025, 1, 10, 0, 0, 1))

    assert ledger.is_within_budget()
    status = ledger.status()
    assert status.current_spend == Decimal(0)
    assert status.exceeded is False
    assert status.period_start == _at(2025, 1, 10, 0, 0, 1)


def test_daily_does_not_reset_within_same_day(clock) -> None:
    clock.set(_at(2025, 1, 9, 0, 0, 1))
    ledger = BudgetLedger("alpha", "1.00", SpendResetPeriod.DAILY, clock=clock)
    ledger.record_spend("1.00")

    clock.set(_at(2025, 1, 9, 23, 59, 59))

    assert not ledger.is_within_budget()


def test_weekly_resets_on_configured_weekday(clock) -> None:
    # 2025-01-08 is a Wednesday; reset day is Friday (4).
    clock.set(_at(2025, 1, 8, 9, 0))
    ledger = BudgetLedger("alpha", "1.00", SpendResetPeriod.WEEKLY, reset_day_of_week=4, clock=clock)
    ledger.record_spend("1.00")

    clock.set(_at(2025, 1, 9, 10, 0))
    assert not ledger.is_within_budget()

    clock.set(_at(2025, 1, 10, 10, 0))
    assert ledger.is_within_budget()


def test_weekly_resets_after_seven_days(clock) -> None:
    clock.set(_at(2025, 1, 8, 9, 0))
    ledger = BudgetLedger("alpha", "1.00", SpendResetPeriod.WEEKLY, reset_day_of_week=1, clock=clock)
    ledger.record_spend("1.00")

    clock.set(_at(2025, 1, 15, 9, 0))

    assert ledger.is_within_budget()


def test_monthly_resets_on_configured_day(clock) -> None:
    clock.set(_at(2025, 3, 2, 12, 0))
    ledger = BudgetLedger("alpha", "1.00", SpendResetPeriod.MONTHLY, reset_day_of_month=15, clock=clock)
    ledger.record_spend("1.00")

    clock.set(_at(2025, 3, 14, 23, 0))
    assert not ledger.is_within_budget()

    clock.set(_at(2025, 3, 15, 0, 1))
    assert ledger.is_within_budget()


def test_monthly_resets_when_month_changes(clock) -> None:
    clock.set(_at(2025, 3, 20, 12, 0))
    ledger = BudgetLedger("alpha", "1.00", SpendResetPeriod.MONTHLY, reset_day_of_month=15, clock=clock)
    ledger.record_spend("1.00")

    clock.set(_at(2025, 4, 1, 0, 1))

    assert ledger.is_within_budget()


def test_never_requires_manual_reset(clock) -> None:
    ledger = BudgetLedger("alpha", "1.00", SpendResetPeriod.NEVER, clock=clock)
    ledger.record_spend("2.00")

    clock.advance(days=400)
    assert not ledger.is_within_budget()
    assert ledger.status().next_reset == "manual reset required"

    ledger.reset()
    assert ledger.is_within_budget()
    assert ledger.status().current_spend == Decimal(0)


def test_spend_total_is_order_independent(clock) -> None:
    amounts = [Decimal("0.000123"), Decimal("0.1"), Decimal("0.2"), Decimal("0.0000007"), Decimal("0.33")]
    totals = set()
    for seed in range(5):
        shuffled = list(amounts)
        random.Random(seed).shuffle(shuffled)
        ledger = BudgetLedger("alpha", "100", SpendResetPeriod.NEVER, clock=clock)
        for amount in shuffled:
            ledger.record_spend(amount)
        totals.add(ledger.status().current_spend)

    assert totals == {sum(amounts)}


def test_describe_next_reset_names_weekday(clock) -> None:
    ledger = BudgetLedger("alpha", "1", SpendResetPeriod.WEEKLY, reset_day_of_week=0, clock=clock)

    assert ledger.status().next_reset == "weekly on Monday at midnight UTC"


def test_exceeded_flips_only_when_total_reaches_limit(clock) -> None:
    amounts = [Decimal("0.25"), Decimal("0.5"), Decimal("0.125"), Decimal("0.125")]
    for seed in range(4):
        shuffled = list(amounts)
        random.Random(seed).shuffle(shuffled)
        ledger = BudgetLedger("alpha", "1.00", SpendResetPeriod.NEVER, clock=clock)
        for amount in shuffled[:-1]:
            ledger.record_spend(amount)
            assert ledger.status().exceeded is False
        ledger.record_spend(shuffled[-1])
        assert ledger.status().exceeded is True

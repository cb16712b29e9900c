"""Spend ledger enforcing a per-backend budget ceiling.

Period boundaries are evaluated lazily whenever the ledger is consulted; there
is no background timer. All arithmetic uses :class:`decimal.Decimal` so that
the accumulated spend does not depend on the order in which amounts arrive.
"""

from __future__ import annotations

import calendar
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable

from llm_switchboard.config import SpendResetPeriod

from .stats import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BudgetStatus:
    current_spend: Decimal
    max_spend: Decimal
    exceeded: bool
    period_start: datetime
    reset_period: SpendResetPeriod
    next_reset: str


class BudgetLedger:
    def __init__(
        self,
        name: str,
        max_spend_usd: Decimal | float | str,
        reset_period: SpendResetPeriod = SpendResetPeriod.MONTHLY,
        *,
        reset_day_of_week: int = 0,
        reset_day_of_month: int = 1,
        log_exceeded: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.name = name
        self.max_spend = Decimal(str(max_spend_usd))
        self.reset_period = reset_period
        self.reset_day_of_week = reset_day_of_week
        self.reset_day_of_month = reset_day_of_month
        self._log_exceeded = log_exceeded
        self._clock = clock
        self._lock = threading.Lock()
        self._current_spend = Decimal(0)
        self._period_start = clock()
        self._exceeded = False

    def record_spend(self, amount: Decimal | float | str) -> None:
        amount = Decimal(str(amount))
        if amount <= 0:
            return

        with self._lock:
            self._maybe_reset_locked()
            self._current_spend += amount
            if not self._exceeded and self._current_spend >= self.max_spend:
                self._exceeded = True
                logger.warning(
                    "Budget limit exceeded for backend %s; disabled until next reset",
                    self.name,
                    extra={
                        "backend": self.name,
                        "current_spend": str(self._current_spend),
                        "max_spend": str(self.max_spend),
                        "next_reset": self._describe_next_reset(),
                    },
                )

    def is_within_budget(self) -> bool:
        with self._lock:
            self._maybe_reset_locked()
            if self._exceeded:
                if self._log_exceeded:
                    logger.warning(
                        "Backend %s unavailable due to budget limit",
                        self.name,
                        extra={
                            "backend": self.name,
                            "current_spend": str(self._current_spend),
                            "max_spend": str(self.max_spend),
                            "period_start": self._period_start.isoformat(),
                        },
                    )
                return False
            return True

    def status(self) -> BudgetStatus:
        with self._lock:
            self._maybe_reset_locked()
            return BudgetStatus(
                current_spend=self._current_spend,
                max_spend=self.max_spend,
                exceeded=self._exceeded,
                period_start=self._period_start,
                reset_period=self.reset_period,
                next_reset=self._describe_next_reset(),
            )

    def reset(self) -> None:
        """Start a new period immediately, regardless of the reset schedule."""

        with self._lock:
            self._reset_locked(self._clock())

    def _should_reset(self, now: datetime) -> bool:
        start = self._period_start
        period = self.reset_period

        if period is SpendResetPeriod.DAILY:
            return now.date() > start.date()

        if period is SpendResetPeriod.WEEKLY:
            days_elapsed = (now - start).days
            return days_elapsed >= 7 or (
                days_elapsed > 0 and now.weekday() == self.reset_day_of_week
            )

        if period is SpendResetPeriod.MONTHLY:
            if (now.year, now.month) != (start.year, start.month):
                return True
            return now.day >= self.reset_day_of_month and start.day < self.reset_day_of_month

        return False

    def _maybe_reset_locked(self) -> None:
        now = self._clock()
        if self._should_reset(now):
            self._reset_locked(now)

    def _reset_locked(self, now: datetime) -> None:
        previous = self._current_spend
        self._current_spend = Decimal(0)
        self._exceeded = False
        self._period_start = now
        logger.info(
            "Budget period reset for backend %s",
            self.name,
            extra={
                "backend": self.name,
                "previous_spend": str(previous),
                "reset_period": self.reset_period.value,
                "period_start": now.isoformat(),
            },
        )

    def _describe_next_reset(self) -> str:
        period = self.reset_period
        if period is SpendResetPeriod.DAILY:
            return "daily at midnight UTC"
        if period is SpendResetPeriod.WEEKLY:
            return f"weekly on {calendar.day_name[self.reset_day_of_week]} at midnight UTC"
        if period is SpendResetPeriod.MONTHLY:
            return f"monthly on day {self.reset_day_of_month} at midnight UTC"
        return "manual reset required"


__all__ = ["BudgetLedger", "BudgetStatus"]

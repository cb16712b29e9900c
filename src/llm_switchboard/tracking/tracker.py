"""Facade over the per-backend statistics and budget ledgers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable

from llm_switchboard.backends.registry import BackendHandle, BackendRegistry

from .budget import BudgetLedger, BudgetStatus
from .stats import BackendStats, StatsSnapshot, utcnow


@dataclass(frozen=True)
class BackendStatistics:
    """Caller-facing statistics for one backend."""

    name: str
    total_requests: int
    successful_requests: int
    failed_requests: int
    average_latency_ms: float
    last_used: datetime | None
    is_available: bool

    def as_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "totalRequests": self.total_requests,
            "successfulRequests": self.successful_requests,
            "failedRequests": self.failed_requests,
            "averageLatencyMs": self.average_latency_ms,
            "lastUsed": self.last_used.isoformat() if self.last_used else None,
            "isAvailable": self.is_available,
        }


class StatisticsTracker:
    """Owns one :class:`BackendStats` and, when configured, one
    :class:`BudgetLedger` per registered backend."""

    def __init__(self, registry: BackendRegistry, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._stats: dict[str, BackendStats] = {}
        self._budgets: dict[str, BudgetLedger] = {}
        self._names: dict[str, str] = {}
        for handle in registry:
            self._names[handle.key] = handle.name
            self._stats[handle.key] = BackendStats(handle.name, clock=clock)
            config = handle.config
            if config.max_spend_usd is not None:
                self._budgets[handle.key] = BudgetLedger(
                    handle.name,
                    config.max_spend_usd,
                    config.spend_reset_period,
                    reset_day_of_week=config.spend_reset_day_of_week,
                    reset_day_of_month=config.spend_reset_day_of_month,
                    log_exceeded=config.log_budget_exceeded,
                    clock=clock,
                )

    @staticmethod
    def _key(backend: BackendHandle | str) -> str:
        return backend.key if isinstance(backend, BackendHandle) else backend.casefold()

    def stats_for(self, backend: BackendHandle | str) -> BackendStats:
        return self._stats[self._key(backend)]

    def budget_for(self, backend: BackendHandle | str) -> BudgetLedger | None:
        return self._budgets.get(self._key(backend))

    def record_attempt(self, backend: BackendHandle | str) -> None:
        self.stats_for(backend).record_attempt()

    def record_success(self, backend: BackendHandle | str, latency_ms: float) -> None:
        self.stats_for(backend).record_success(latency_ms)

    def record_failure(self, backend: BackendHandle | str, error: str, latency_ms: float = 0.0) -> None:
        self.stats_for(backend).record_failure(error, latency_ms)

    def record_spend(self, backend: BackendHandle | str, amount_usd: Decimal | float | None) -> None:
        ledger = self.budget_for(backend)
        if ledger is None or amount_usd is None:
            return
        ledger.record_spend(amount_usd)

    def is_within_budget(self, backend: BackendHandle | str) -> bool:
        ledger = self.budget_for(backend)
        return True if ledger is None else ledger.is_within_budget()

    def budget_status(self, backend: BackendHandle | str) -> BudgetStatus | None:
        ledger = self.budget_for(backend)
        return None if ledger is None else ledger.status()

    def budget_statuses(self) -> dict[str, BudgetStatus]:
        """Status of every budgeted backend, keyed by display name."""

        return {self._names[key]: ledger.status() for key, ledger in self._budgets.items()}

    def reset_budget(self, backend: BackendHandle | str) -> None:
        ledger = self.budget_for(backend)
        if ledger is not None:
            ledger.reset()

    def snapshot(self) -> dict[str, BackendStatistics]:
        result: dict[str, BackendStatistics] = {}
        for key, name in self._names.items():
            stats: StatsSnapshot = self._stats[key].snapshot()
            result[name] = BackendStatistics(
                name=name,
                total_requests=stats.total_requests,
                successful_requests=stats.successful_requests,
                failed_requests=stats.failed_requests,
                average_latency_ms=stats.average_latency_ms,
                last_used=stats.last_used,
                is_available=self.is_within_budget(key),
            )
        return result


__all__ = ["BackendStatistics", "StatisticsTracker"]

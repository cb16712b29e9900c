"""Per-backend statistics and spend tracking."""

from .budget import BudgetLedger, BudgetStatus
from .stats import BackendStats, StatsSnapshot, categorize_error
from .tracker import BackendStatistics, StatisticsTracker

__all__ = [
    "BackendStatistics",
    "BackendStats",
    "BudgetLedger",
    "BudgetStatus",
    "StatisticsTracker",
    "StatsSnapshot",
    "categorize_error",
]

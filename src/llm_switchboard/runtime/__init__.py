"""Runtime orchestration helpers."""

from .orchestrator import ALL_BACKENDS_FAILED, BackendOrchestrator
from .retry import RetryPolicy
from .selector import BackendSelector

__all__ = ["ALL_BACKENDS_FAILED", "BackendOrchestrator", "BackendSelector", "RetryPolicy"]

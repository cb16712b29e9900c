"""Route text-generation requests across interchangeable LLM backends."""

from __future__ import annotations

from llm_switchboard.backends import (
    AsyncBackend,
    BackendError,
    BackendHealth,
    BackendRegistry,
    ChatMessage,
    ChatRequest,
    CompletionRequest,
    CompletionResult,
    NoBackendsConfigured,
)
from llm_switchboard.config import (
    BackendConfig,
    BackoffMode,
    ConfigurationError,
    OrchestratorSettings,
    SelectionStrategy,
    SpendResetPeriod,
    load_settings,
)
from llm_switchboard.runtime import ALL_BACKENDS_FAILED, BackendOrchestrator, RetryPolicy

__all__ = [
    "ALL_BACKENDS_FAILED",
    "AsyncBackend",
    "BackendConfig",
    "BackendError",
    "BackendHealth",
    "BackendOrchestrator",
    "BackendRegistry",
    "BackoffMode",
    "ChatMessage",
    "ChatRequest",
    "CompletionRequest",
    "CompletionResult",
    "ConfigurationError",
    "NoBackendsConfigured",
    "OrchestratorSettings",
    "RetryPolicy",
    "SelectionStrategy",
    "SpendResetPeriod",
    "load_settings",
]

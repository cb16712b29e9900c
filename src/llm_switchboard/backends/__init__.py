"""Backend contracts and registry."""

from llm_switchboard.backends.base import (
    AsyncBackend,
    BackendError,
    BackendHealth,
    ChatMessage,
    ChatRequest,
    CompletionRequest,
    CompletionResult,
    NoBackendsConfigured,
)
from llm_switchboard.backends.registry import BackendHandle, BackendRegistry

__all__ = [
    "AsyncBackend",
    "BackendError",
    "BackendHandle",
    "BackendHealth",
    "BackendRegistry",
    "ChatMessage",
    "ChatRequest",
    "CompletionRequest",
    "CompletionResult",
    "NoBackendsConfigured",
]

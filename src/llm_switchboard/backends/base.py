"""Core backend interfaces and request/response models.

This module defines the contracts that all backend implementations must
implement in order to integrate with the orchestrator. The interfaces
deliberately focus on asynchronous interactions because the orchestrator
coordinates retries, failover and fan-out using ``anyio`` task groups.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class CompletionRequest:
    """Normalized request payload supplied to completion backends."""

    prompt: str
    system_message: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    stop_sequences: tuple[str, ...] | None = None
    stream: bool = False
    preferred_backend: str | None = None
    metadata: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str
    name: str | None = None


@dataclass(frozen=True)
class ChatRequest(CompletionRequest):
    """Chat completion request carrying the conversation history."""

    prompt: str = ""
    messages: tuple[ChatMessage, ...] = ()


@dataclass(frozen=True)
class CompletionResult:
    """Uniform result returned by backends and by the orchestrator.

    ``alternative_results`` is populated by the orchestrator only. Simultaneous
    execution attaches every non-primary attempt for comparison. When failover
    runs out of candidates, every failed attempt is attached in the order it
    was tried, so the last entry carries the final cause.
    """

    success: bool
    text: str = ""
    backend_name: str | None = None
    model: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None
    duration_ms: float = 0.0
    finish_reason: str | None = None
    error_message: str | None = None
    exception: BaseException | None = field(default=None, compare=False, repr=False)
    alternative_results: tuple["CompletionResult", ...] = ()

    def is_success(self) -> bool:
        return self.success

    @classmethod
    def failure(
        cls,
        error_message: str,
        *,
        backend_name: str | None = None,
        exception: BaseException | None = None,
        duration_ms: float = 0.0,
        model: str | None = None,
    ) -> "CompletionResult":
        return cls(
            success=False,
            backend_name=backend_name,
            model=model,
            error_message=error_message,
            exception=exception,
            duration_ms=duration_ms,
        )


@dataclass(frozen=True)
class BackendHealth:
    """Point-in-time health view of a single backend."""

    is_healthy: bool
    average_latency_ms: float = 0.0
    successful_requests: int = 0
    failed_requests: int = 0
    last_error: str | None = None
    last_successful_request: datetime | None = None
    within_budget: bool = True


@runtime_checkable
class AsyncBackend(Protocol):
    """Protocol that all backend implementations must satisfy.

    Backends may additionally expose ``async ais_available() -> bool`` and
    ``async aclose()``; the orchestrator discovers both with ``getattr``.
    """

    name: str

    async def acomplete(self, request: CompletionRequest) -> CompletionResult:
        """Return a full completion for ``request``."""

    async def achat(self, request: ChatRequest) -> CompletionResult:
        """Return a chat completion for ``request``."""


class BackendError(Exception):
    """Base exception for backend orchestration errors."""


class NoBackendsConfigured(BackendError):
    """Raised when a request is routed while no backend is registered."""


__all__ = [
    "AsyncBackend",
    "BackendError",
    "BackendHealth",
    "ChatMessage",
    "ChatRequest",
    "CompletionRequest",
    "CompletionResult",
    "NoBackendsConfigured",
]

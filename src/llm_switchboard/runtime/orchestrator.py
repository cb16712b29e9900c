"""Backend orchestration: retries, failover and fan-out across backends."""

from __future__ import annotations

import logging
import threading
import time
import weakref
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from typing import Callable, Literal

import anyio

from llm_switchboard.backends.base import (
    AsyncBackend,
    BackendHealth,
    ChatRequest,
    CompletionRequest,
    CompletionResult,
)
from llm_switchboard.backends.factory import build_registry
from llm_switchboard.backends.registry import BackendHandle, BackendRegistry
from llm_switchboard.config import OrchestratorSettings, SelectionStrategy
from llm_switchboard.telemetry import CallbackOptions, Observation, Status, StatusCode, get_meter, get_tracer
from llm_switchboard.tracking import BackendStatistics, BudgetStatus, StatisticsTracker, categorize_error
from llm_switchboard.tracking.stats import utcnow

from .retry import RetryPolicy
from .selector import BackendSelector

logger = logging.getLogger(__name__)

ALL_BACKENDS_FAILED = "All backends failed"

_Operation = Literal["acomplete", "achat"]

_LIVE_TRACKERS: "weakref.WeakSet[StatisticsTracker]" = weakref.WeakSet()
_GAUGE_LOCK = threading.Lock()
_budget_gauge_registered = False


def _observe_budgets(options: CallbackOptions) -> Iterable[Observation]:
    with _GAUGE_LOCK:
        trackers = list(_LIVE_TRACKERS)
    for tracker in trackers:
        for name, status in tracker.budget_statuses().items():
            yield Observation(float(status.current_spend), {"backend": name, "kind": "current"})
            yield Observation(float(status.max_spend), {"backend": name, "kind": "max"})


def _watch_budgets(tracker: StatisticsTracker) -> None:
    """Expose ``tracker``'s ledgers through the process-wide spend gauge."""

    global _budget_gauge_registered

    with _GAUGE_LOCK:
        _LIVE_TRACKERS.add(tracker)
        if _budget_gauge_registered:
            return
        # One gauge per process: the SDK keeps the first instrument registered under a name.
        get_meter(__name__).create_observable_gauge(
            "llm_switchboard_budget_spend_usd",
            callbacks=[_observe_budgets],
            description="Current spend and spend limit per budgeted backend, split by kind.",
        )
        _budget_gauge_registered = True


class BackendOrchestrator:
    """Route requests to registered backends according to the configured strategy.

    Structured failures and raised exceptions travel on separate channels:
    under failover both are absorbed and the next candidate is tried, under
    every other strategy a structured failure is returned as-is and an
    exception propagates to the caller untouched.
    """

    def __init__(
        self,
        registry: BackendRegistry,
        settings: OrchestratorSettings | None = None,
        *,
        tracker: StatisticsTracker | None = None,
        selector: BackendSelector | None = None,
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._registry = registry
        self._settings = settings or OrchestratorSettings()
        self._tracker = tracker or StatisticsTracker(registry, clock=clock)
        self._selector = selector or BackendSelector(registry, self._tracker)
        self._retry_policy = retry_policy or RetryPolicy(
            self._settings.max_retries,
            self._settings.backoff,
            self._settings.retry_delay_s,
        )

        self._tracer = get_tracer(f"{__name__}.{self.__class__.__name__}")
        self._meter = get_meter(f"{__name__}.{self.__class__.__name__}")
        self._attempt_counter = self._meter.create_counter(
            "llm_switchboard_backend_attempts",
            description="Backend attempts grouped by backend and outcome.",
        )
        self._attempt_latency = self._meter.create_histogram(
            "llm_switchboard_backend_attempt_duration_seconds",
            unit="s",
            description="Duration of individual backend attempts, retries included.",
        )
        self._error_counter = self._meter.create_counter(
            "llm_switchboard_backend_errors",
            description="Failed backend attempts grouped by backend and error category.",
        )
        self._token_counter = self._meter.create_counter(
            "llm_switchboard_tokens",
            description="Tokens reported by successful attempts, split into prompt and completion.",
        )
        self._cost_counter = self._meter.create_counter(
            "llm_switchboard_estimated_cost_usd",
            description="Estimated spend in USD for priced backends.",
        )
        _watch_budgets(self._tracker)

    @classmethod
    def from_settings(
        cls,
        settings: OrchestratorSettings,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> "BackendOrchestrator":
        return cls(build_registry(settings), settings, clock=clock)

    @property
    def settings(self) -> OrchestratorSettings:
        return self._settings

    @property
    def tracker(self) -> StatisticsTracker:
        return self._tracker

    async def acomplete(
        self,
        request: CompletionRequest,
        *,
        preferred_backend: str | None = None,
    ) -> CompletionResult:
        return await self._execute(request, "acomplete", preferred_backend)

    async def achat(
        self,
        request: ChatRequest,
        *,
        preferred_backend: str | None = None,
    ) -> CompletionResult:
        return await self._execute(request, "achat", preferred_backend)

    async def _execute(
        self,
        request: CompletionRequest,
        operation: _Operation,
        preferred_backend: str | None,
    ) -> CompletionResult:
        strategy = self._settings.selection_strategy
        candidates = self._selector.select(
            strategy,
            preferred_backend or request.preferred_backend,
            specific_name=self._settings.default_backend,
        )

        with self._tracer.start_as_current_span("orchestrator.execute") as span:
            span.set_attributes(
                {
                    "orchestrator.operation": operation,
                    "orchestrator.strategy": strategy.value,
                    "orchestrator.candidates": len(candidates),
                }
            )
            if strategy is SelectionStrategy.SIMULTANEOUS and len(candidates) > 1:
                result = await self._fan_out(candidates, request, operation)
            else:
                result = await self._iterate(strategy, candidates, request, operation)

            span.set_attribute("orchestrator.backend", result.backend_name or "")
            if result.success:
                span.set_status(Status(StatusCode.OK))
            else:
                span.set_status(Status(StatusCode.ERROR, result.error_message or ""))
            return result

    async def _iterate(
        self,
        strategy: SelectionStrategy,
        candidates: list[BackendHandle],
        request: CompletionRequest,
        operation: _Operation,
    ) -> CompletionResult:
        attempts: list[CompletionResult] = []
        last_exception: BaseException | None = None

        for handle in candidates:
            try:
                result = await self._attempt(handle, request, operation)
            except Exception as exc:
                if strategy is not SelectionStrategy.FAILOVER:
                    raise
                logger.exception(
                    "Backend %s raised during request; failing over",
                    handle.name,
                    extra={"backend": handle.name, "operation": operation},
                )
                last_exception = exc
                attempts.append(
                    CompletionResult.failure(
                        str(exc) or type(exc).__name__,
                        backend_name=handle.name,
                        exception=exc,
                    )
                )
                continue

            if result.success:
                return result

            logger.warning(
                "Backend %s request failed: %s",
                handle.name,
                result.error_message,
                extra={"backend": handle.name, "operation": operation},
            )
            if strategy is not SelectionStrategy.FAILOVER:
                return result
            last_exception = result.exception
            attempts.append(result)

        # Every failed attempt rides along in try order; the last one is the cause.
        return replace(
            CompletionResult.failure(
                ALL_BACKENDS_FAILED,
                backend_name=attempts[-1].backend_name if attempts else None,
                exception=last_exception,
            ),
            alternative_results=tuple(attempts),
        )

    async def _fan_out(
        self,
        candidates: list[BackendHandle],
        request: CompletionRequest,
        operation: _Operation,
    ) -> CompletionResult:
        logger.info(
            "Executing simultaneous %s across %d backends",
            operation,
            len(candidates),
            extra={"backends": [handle.name for handle in candidates]},
        )

        completed: list[CompletionResult] = []

        async def run_one(handle: BackendHandle) -> None:
            try:
                result = await self._attempt(handle, request, operation)
            except Exception as exc:
                logger.error(
                    "Backend %s raised during simultaneous request",
                    handle.name,
                    exc_info=exc,
                    extra={"backend": handle.name, "operation": operation},
                )
                result = CompletionResult.failure(
                    str(exc) or type(exc).__name__,
                    backend_name=handle.name,
                    exception=exc,
                )
            completed.append(result)

        async with anyio.create_task_group() as tg:
            for handle in candidates:
                tg.start_soon(run_one, handle, name=f"fan-out:{handle.name}")

        successes = sum(1 for result in completed if result.success)
        logger.info(
            "Simultaneous %s completed: %d/%d successful",
            operation,
            successes,
            len(completed),
        )

        primary = next((result for result in completed if result.success), None)
        if primary is None:
            first = completed[0]
            return replace(
                CompletionResult.failure(
                    ALL_BACKENDS_FAILED,
                    backend_name=first.backend_name,
                    exception=first.exception,
                ),
                alternative_results=tuple(completed[1:]),
            )

        return replace(
            primary,
            alternative_results=tuple(result for result in completed if result is not primary),
        )

    async def _attempt(
        self,
        handle: BackendHandle,
        request: CompletionRequest,
        operation: _Operation,
    ) -> CompletionResult:
        """Run one backend through the retry policy and record the outcome."""

        self._tracker.record_attempt(handle)
        call = getattr(handle.backend, operation)
        attributes = {"backend": handle.name, "operation": operation}

        with self._tracer.start_as_current_span("orchestrator.attempt") as span:
            span.set_attributes(attributes)
            start = time.perf_counter()
            try:
                result: CompletionResult = await self._retry_policy.run(
                    lambda: call(request),
                    backend_name=handle.name,
                )
            except Exception as exc:
                elapsed_ms = (time.perf_counter() - start) * 1000
                error = f"{type(exc).__name__}: {exc}"
                self._tracker.record_failure(handle, error, elapsed_ms)
                self._attempt_counter.add(1, {**attributes, "outcome": "exception"})
                self._error_counter.add(1, {"backend": handle.name, "category": categorize_error(error)})
                self._attempt_latency.record(elapsed_ms / 1000, attributes)
                span.record_exception(exc)
                span.set_status(Status(StatusCode.ERROR, str(exc)))
                raise

            elapsed_ms = (time.perf_counter() - start) * 1000
            latency_ms = result.duration_ms or elapsed_ms
            if result.backend_name is None:
                result = replace(result, backend_name=handle.name)

            if result.success:
                self._tracker.record_success(handle, latency_ms)
                self._record_usage(handle, result)
                span.set_status(Status(StatusCode.OK))
            else:
                self._tracker.record_failure(handle, result.error_message or "unknown error", latency_ms)
                self._error_counter.add(
                    1, {"backend": handle.name, "category": categorize_error(result.error_message)}
                )
                span.set_status(Status(StatusCode.ERROR, result.error_message or ""))

            self._attempt_counter.add(1, {**attributes, "outcome": "success" if result.success else "failure"})
            self._attempt_latency.record(latency_ms / 1000, attributes)
            return result

    def _record_usage(self, handle: BackendHandle, result: CompletionResult) -> None:
        for token_type, count in (("prompt", result.prompt_tokens), ("completion", result.completion_tokens)):
            if count:
                self._token_counter.add(count, {"backend": handle.name, "token_type": token_type})

        cost = handle.config.estimate_cost(result.prompt_tokens, result.completion_tokens)
        if cost is None:
            return
        self._tracker.record_spend(handle, cost)
        self._cost_counter.add(float(cost), {"backend": handle.name})

    def statistics(self) -> dict[str, BackendStatistics]:
        return self._tracker.snapshot()

    def available_backends(self) -> list[str]:
        return self._registry.names()

    def get_backend(self, name: str) -> AsyncBackend | None:
        handle = self._registry.get(name)
        return handle.backend if handle else None

    def budget_status(self, name: str) -> BudgetStatus | None:
        if self._registry.get(name) is None:
            raise KeyError(name)
        return self._tracker.budget_status(name)

    def reset_budget(self, name: str) -> None:
        if self._registry.get(name) is None:
            raise KeyError(name)
        self._tracker.reset_budget(name)

    async def is_available(self, name: str) -> bool:
        """Budget check first, then the backend's own availability check when it has one."""

        handle = self._registry.get(name)
        if handle is None or not self._tracker.is_within_budget(handle):
            return False
        check = getattr(handle.backend, "ais_available", None)
        if check is None:
            return True
        return bool(await check())

    async def test_backends(self) -> dict[str, BackendHealth]:
        results: dict[str, BackendHealth] = {}
        for handle in self._registry:
            snapshot = self._tracker.stats_for(handle).snapshot()
            within_budget = self._tracker.is_within_budget(handle)
            last_error = snapshot.last_error
            try:
                check = getattr(handle.backend, "ais_available", None)
                reachable = True if check is None else bool(await check())
            except Exception as exc:
                logger.error(
                    "Health check failed for backend %s",
                    handle.name,
                    exc_info=exc,
                    extra={"backend": handle.name},
                )
                reachable = False
                last_error = str(exc)

            results[handle.name] = BackendHealth(
                is_healthy=reachable
                and within_budget
                and (snapshot.successful_requests > 0 or snapshot.failed_requests == 0),
                average_latency_ms=snapshot.average_latency_ms,
                successful_requests=snapshot.successful_requests,
                failed_requests=snapshot.failed_requests,
                last_error=last_error,
                last_successful_request=snapshot.last_successful_request,
                within_budget=within_budget,
            )
        return results

    async def aclose(self) -> None:
        for handle in self._registry:
            closer = getattr(handle.backend, "aclose", None)
            if closer is not None:
                await closer()

    async def __aenter__(self) -> "BackendOrchestrator":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


__all__ = ["ALL_BACKENDS_FAILED", "BackendOrchestrator"]

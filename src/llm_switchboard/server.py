"""HTTP surface over a :class:`BackendOrchestrator`."""

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from llm_switchboard.backends.base import CompletionRequest, CompletionResult, NoBackendsConfigured
from llm_switchboard.config import load_settings
from llm_switchboard.logging_config import configure_logging
from llm_switchboard.runtime import BackendOrchestrator
from llm_switchboard.telemetry import configure_telemetry
from llm_switchboard.validation import ValidationError, parse_chat_request, parse_completion_request

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "LLM_SWITCHBOARD_CONFIG"


def serialize_result(result: CompletionResult) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "success": result.success,
        "text": result.text,
        "backend": result.backend_name,
        "model": result.model,
        "promptTokens": result.prompt_tokens,
        "completionTokens": result.completion_tokens,
        "totalTokens": result.total_tokens,
        "durationMs": result.duration_ms,
        "finishReason": result.finish_reason,
        "errorMessage": result.error_message,
    }
    if result.alternative_results:
        payload["alternatives"] = [serialize_result(alternative) for alternative in result.alternative_results]
    return payload


async def _read_json(request: Request) -> Any:
    content_type = request.headers.get("content-type", "").lower()
    if "application/json" not in content_type:
        raise ValidationError(code="invalid_request", message="Request must be JSON.", status_code=400)
    try:
        return await request.json()
    except json.JSONDecodeError as exc:
        raise ValidationError(
            code="invalid_request",
            message="Request must be JSON.",
            status_code=400,
            details=str(exc),
        ) from exc


def create_app(orchestrator: BackendOrchestrator) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            await orchestrator.aclose()

    app = FastAPI(title="llm-switchboard", lifespan=lifespan)
    app.state.orchestrator = orchestrator

    async def _dispatch(
        request: Request,
        parse: Callable[[Any], CompletionRequest],
        call: Callable[[Any], Awaitable[CompletionResult]],
    ) -> JSONResponse:
        start = time.perf_counter()
        try:
            backend_request = parse(await _read_json(request))
        except ValidationError as error:
            logger.warning(
                "Request validation failed",
                extra={"error_code": error.code, "details": error.details},
            )
            return JSONResponse(
                {"error": error.code, "message": error.message, "details": error.details},
                status_code=error.status_code,
            )

        try:
            result = await call(backend_request)
        except NoBackendsConfigured as exc:
            return JSONResponse(
                {"error": "no_backends_configured", "message": str(exc)},
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            )
        except Exception as exc:
            logger.exception("Backend raised while serving request")
            return JSONResponse(
                {"error": "backend_exception", "message": str(exc), "type": type(exc).__name__},
                status_code=status.HTTP_502_BAD_GATEWAY,
            )

        logger.info(
            "Request served",
            extra={
                "backend": result.backend_name,
                "success": result.success,
                "duration_s": time.perf_counter() - start,
            },
        )
        status_code = status.HTTP_200_OK if result.success else status.HTTP_502_BAD_GATEWAY
        return JSONResponse(serialize_result(result), status_code=status_code)

    @app.post("/v1/completions")
    async def complete(request: Request) -> JSONResponse:
        return await _dispatch(request, parse_completion_request, orchestrator.acomplete)

    @app.post("/v1/chat")
    async def chat(request: Request) -> JSONResponse:
        return await _dispatch(request, parse_chat_request, orchestrator.achat)

    @app.get("/v1/backends")
    async def backend_statistics() -> JSONResponse:
        return JSONResponse(
            {name: stats.as_dict() for name, stats in orchestrator.statistics().items()}
        )

    @app.get("/v1/backends/health")
    async def backend_health() -> JSONResponse:
        health = await orchestrator.test_backends()
        payload = {name: asdict(entry) for name, entry in health.items()}
        return JSONResponse(json.loads(json.dumps(payload, default=str)))

    @app.get("/v1/backends/{name}/budget")
    async def backend_budget(name: str) -> JSONResponse:
        try:
            budget = orchestrator.budget_status(name)
        except KeyError:
            return JSONResponse(
                {"error": "unknown_backend", "message": f"Backend {name!r} is not registered."},
                status_code=status.HTTP_404_NOT_FOUND,
            )
        if budget is None:
            return JSONResponse({"backend": name, "budget": None})
        return JSONResponse(
            {
                "backend": name,
                "budget": {
                    "currentSpendUsd": str(budget.current_spend),
                    "maxSpendUsd": str(budget.max_spend),
                    "exceeded": budget.exceeded,
                    "periodStart": budget.period_start.isoformat(),
                    "resetPeriod": budget.reset_period.value,
                    "nextReset": budget.next_reset,
                },
            }
        )

    @app.get("/health")
    async def health_check() -> JSONResponse:
        return JSONResponse({"status": "healthy", "backends": orchestrator.available_backends()})

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


def create_app_from_env() -> FastAPI:
    """Factory used by ``uvicorn --factory`` and the ``serve`` command."""

    configure_logging()
    configure_telemetry()
    path = os.environ.get(CONFIG_ENV_VAR, "llm-switchboard.json")
    return create_app(BackendOrchestrator.from_settings(load_settings(path)))


__all__ = ["CONFIG_ENV_VAR", "create_app", "create_app_from_env", "serialize_result"]

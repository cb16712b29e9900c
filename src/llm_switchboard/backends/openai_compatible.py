"""Backend for any server exposing the OpenAI-compatible completion API."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

from llm_switchboard.config import BackendConfig

from .base import ChatRequest, CompletionRequest, CompletionResult

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_S = 120.0


def _sampling_options(request: CompletionRequest, config: BackendConfig) -> dict[str, Any]:
    options: dict[str, Any] = {"model": config.model_name or "default"}
    temperature = request.temperature if request.temperature is not None else config.temperature
    max_tokens = request.max_tokens if request.max_tokens is not None else config.max_output_tokens
    if temperature is not None:
        options["temperature"] = temperature
    if max_tokens is not None:
        options["max_tokens"] = max_tokens
    if request.top_p is not None:
        options["top_p"] = request.top_p
    if request.frequency_penalty is not None:
        options["frequency_penalty"] = request.frequency_penalty
    if request.presence_penalty is not None:
        options["presence_penalty"] = request.presence_penalty
    if request.stop_sequences:
        options["stop"] = list(request.stop_sequences)
    return options


def _completion_payload(request: CompletionRequest, config: BackendConfig) -> dict[str, Any]:
    prompt = request.prompt
    if request.system_message:
        prompt = f"{request.system_message}\n\n{prompt}"
    return {**_sampling_options(request, config), "prompt": prompt}


def _chat_payload(request: ChatRequest, config: BackendConfig) -> dict[str, Any]:
    messages: list[dict[str, str]] = []
    if request.system_message:
        messages.append({"role": "system", "content": request.system_message})
    for message in request.messages:
        entry = {"role": message.role, "content": message.content}
        if message.name:
            entry["name"] = message.name
        messages.append(entry)
    if request.prompt:
        messages.append({"role": "user", "content": request.prompt})
    return {**_sampling_options(request, config), "messages": messages}


def _completion_extractor(choice: dict[str, Any]) -> str | None:
    text = choice.get("text")
    return text if isinstance(text, str) else None


def _chat_extractor(choice: dict[str, Any]) -> str | None:
    message = choice.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    return content if isinstance(content, str) else None


class OpenAICompatibleBackend:
    """Async backend talking to ``/v1/completions`` and ``/v1/chat/completions``.

    Transport failures raise so that the orchestrator's retry policy can
    retry them; HTTP error statuses and malformed payloads are reported as
    failed :class:`CompletionResult` objects.
    """

    def __init__(self, config: BackendConfig, *, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._base_url = config.base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout_s or _DEFAULT_TIMEOUT_S)

    @property
    def name(self) -> str:
        return self._config.name

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", **self._config.additional_headers}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        return headers

    async def acomplete(self, request: CompletionRequest) -> CompletionResult:
        return await self._post(
            "/v1/completions",
            _completion_payload(request, self._config),
            _completion_extractor,
        )

    async def achat(self, request: ChatRequest) -> CompletionResult:
        return await self._post(
            "/v1/chat/completions",
            _chat_payload(request, self._config),
            _chat_extractor,
        )

    async def ais_available(self) -> bool:
        try:
            response = await self._client.get(f"{self._base_url}/v1/models", headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning(
                "Availability check failed for backend %s",
                self.name,
                extra={"backend": self.name, "error": str(exc)},
            )
            return False
        return response.is_success

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _post(
        self,
        path: str,
        payload: dict[str, Any],
        extractor: Callable[[dict[str, Any]], str | None],
    ) -> CompletionResult:
        url = f"{self._base_url}{path}"
        logger.info("Calling backend %s", self.name, extra={"backend": self.name, "url": url})

        start = time.perf_counter()
        try:
            response = await self._client.post(url, headers=self._headers(), json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            logger.warning(
                "HTTP error from backend %s",
                self.name,
                extra={"backend": self.name, "status_code": status_code},
            )
            return self._failure(_build_http_error_detail(exc), start)
        duration_ms = _elapsed_ms(start)

        try:
            data = response.json()
        except ValueError as exc:
            # Covers JSONDecodeError and UnicodeDecodeError from undecodable bodies.
            logger.error("Invalid JSON from backend %s", self.name, extra={"error": str(exc)})
            return self._failure(f"Failed to decode JSON response: {exc}", start)

        choices = data.get("choices") if isinstance(data, dict) else None
        choice = choices[0] if isinstance(choices, list) and choices and isinstance(choices[0], dict) else None
        text = extractor(choice) if choice is not None else None
        if text is None:
            logger.error("Unexpected payload structure from backend %s", self.name, extra={"payload": data})
            return self._failure(f"Unexpected JSON payload: {json.dumps(data)[:200]}", start)

        usage = data.get("usage")
        if not isinstance(usage, dict):
            usage = {}
        return CompletionResult(
            success=True,
            text=text.strip(),
            backend_name=self.name,
            model=data.get("model") or self._config.model_name,
            prompt_tokens=_token_count(usage, "prompt_tokens"),
            completion_tokens=_token_count(usage, "completion_tokens"),
            total_tokens=_token_count(usage, "total_tokens"),
            duration_ms=max(duration_ms, 1.0),
            finish_reason=choice.get("finish_reason"),
        )

    def _failure(self, message: str, start: float) -> CompletionResult:
        return CompletionResult.failure(
            message,
            backend_name=self.name,
            model=self._config.model_name,
            duration_ms=_elapsed_ms(start),
        )


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _token_count(usage: dict[str, Any], key: str) -> int | None:
    value = usage.get(key)
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    return None


def _build_http_error_detail(exc: httpx.HTTPStatusError) -> str:
    response = exc.response
    snippet = f" Response body: {response.text[:200]}" if response.text else ""
    return f"HTTP error {response.status_code}.{snippet}"


__all__ = ["OpenAICompatibleBackend"]

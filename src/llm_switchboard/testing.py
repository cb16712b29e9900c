"""In-process fake backend for tests, demos and offline development."""

from __future__ import annotations

import anyio

from llm_switchboard.backends.base import ChatRequest, CompletionRequest, CompletionResult
from llm_switchboard.config import BackendConfig


class FakeBackend:
    """Backend double with controllable latency, failures and token counts.

    ``response_text`` may reference ``{name}``, ``{prompt}`` and
    ``{request_count}``.
    """

    def __init__(
        self,
        name: str = "fake",
        *,
        response_text: str = "Fake response from {name}",
        model: str = "fake-model-1",
        latency_ms: float = 0.0,
        prompt_tokens: int | None = 10,
        completion_tokens: int | None = 20,
        simulate_failure: bool = False,
        failure_message: str = "Simulated failure",
        raise_exception: Exception | None = None,
        is_available: bool = True,
    ) -> None:
        self.name = name
        self.response_text = response_text
        self.model = model
        self.latency_ms = latency_ms
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.simulate_failure = simulate_failure
        self.failure_message = failure_message
        self.raise_exception = raise_exception
        self.is_available = is_available
        self.request_count = 0
        self.last_request: CompletionRequest | None = None
        self.last_chat_request: ChatRequest | None = None

    @classmethod
    def from_config(cls, config: BackendConfig) -> "FakeBackend":
        options = dict(config.options)
        return cls(
            config.name,
            response_text=options.get("response_text", "Fake response from {name}"),
            model=config.model_name or "fake-model-1",
            latency_ms=float(options.get("latency_ms", 0.0)),
            simulate_failure=bool(options.get("simulate_failure", False)),
            failure_message=options.get("failure_message", "Simulated failure"),
        )

    async def acomplete(self, request: CompletionRequest) -> CompletionResult:
        self.last_request = request
        return await self._respond(request.prompt)

    async def achat(self, request: ChatRequest) -> CompletionResult:
        self.last_chat_request = request
        prompt = request.prompt or (request.messages[-1].content if request.messages else "")
        return await self._respond(prompt)

    async def ais_available(self) -> bool:
        return self.is_available

    async def _respond(self, prompt: str) -> CompletionResult:
        self.request_count += 1
        if self.latency_ms:
            await anyio.sleep(self.latency_ms / 1000)
        if self.raise_exception is not None:
            raise self.raise_exception
        if self.simulate_failure:
            return CompletionResult.failure(
                self.failure_message,
                backend_name=self.name,
                model=self.model,
                duration_ms=self.latency_ms,
            )

        text = self.response_text.format(name=self.name, prompt=prompt, request_count=self.request_count)
        total = None
        if self.prompt_tokens is not None and self.completion_tokens is not None:
            total = self.prompt_tokens + self.completion_tokens
        return CompletionResult(
            success=True,
            text=text,
            backend_name=self.name,
            model=self.model,
            prompt_tokens=self.prompt_tokens,
            completion_tokens=self.completion_tokens,
            total_tokens=total,
            duration_ms=max(self.latency_ms, 1.0),
            finish_reason="stop",
        )


__all__ = ["FakeBackend"]

"""Validation of inbound HTTP payloads.

Each :class:`ValidationError` carries both a machine-friendly ``code`` and an
HTTP status code so that the API layer can translate failures into consistent
responses without bespoke mapping logic.

``invalid_request`` (400)
    The body is not a JSON object or does not match the request schema.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from llm_switchboard.backends.base import ChatMessage, ChatRequest, CompletionRequest


@dataclass(frozen=True)
class ValidationError(Exception):
    code: str
    message: str
    status_code: int
    details: str | None = None

    def __str__(self) -> str:  # pragma: no cover - trivial override
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class _RequestBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prompt: str = ""
    system_message: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    stop_sequences: list[str] | None = None
    preferred_backend: str | None = None

    def _common(self) -> dict[str, Any]:
        return {
            "prompt": self.prompt,
            "system_message": self.system_message,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
            "frequency_penalty": self.frequency_penalty,
            "presence_penalty": self.presence_penalty,
            "stop_sequences": tuple(self.stop_sequences) if self.stop_sequences else None,
            "preferred_backend": self.preferred_backend,
        }


class CompletionBody(_RequestBody):
    prompt: str = Field(min_length=1)

    def to_request(self) -> CompletionRequest:
        return CompletionRequest(**self._common())


class ChatMessageBody(BaseModel):
    role: str = Field(pattern="^(system|user|assistant)$")
    content: str
    name: str | None = None


class ChatBody(_RequestBody):
    messages: list[ChatMessageBody] = Field(min_length=1)

    def to_request(self) -> ChatRequest:
        return ChatRequest(
            **self._common(),
            messages=tuple(
                ChatMessage(role=message.role, content=message.content, name=message.name)
                for message in self.messages
            ),
        )


def _parse(model: type[_RequestBody], payload: Any) -> _RequestBody:
    if not isinstance(payload, dict):
        raise ValidationError(
            code="invalid_request",
            message="Request body must be a JSON object.",
            status_code=400,
        )
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(
            code="invalid_request",
            message="Request body failed validation.",
            status_code=400,
            details="; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
            ),
        ) from exc


def parse_completion_request(payload: Any) -> CompletionRequest:
    return _parse(CompletionBody, payload).to_request()  # type: ignore[attr-defined]


def parse_chat_request(payload: Any) -> ChatRequest:
    return _parse(ChatBody, payload).to_request()  # type: ignore[attr-defined]


__all__ = ["ValidationError", "parse_chat_request", "parse_completion_request"]

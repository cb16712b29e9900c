"""Configuration models and loaders for the backend orchestrator."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Callable, Final, Optional, TypeVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StringConstraints
from pydantic import ValidationError as PydanticValidationError

ENV_PREFIX: Final[str] = "LLM_"

_WEEKDAYS: Final[tuple[str, ...]] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


class ConfigurationError(ValueError):
    """Raised when settings are missing or malformed."""


class _LenientEnum(str, Enum):
    """String enum that also accepts ``RoundRobin``, ``round-robin`` and ``ROUND_ROBIN``."""

    @classmethod
    def _missing_(cls, value: object) -> Any:
        if not isinstance(value, str):
            return None
        compact = value.strip().lower().replace("-", "").replace("_", "")
        for member in cls:
            if member.value.replace("_", "") == compact:
                return member
        return None


class SelectionStrategy(_LenientEnum):
    FAILOVER = "failover"
    ROUND_ROBIN = "round_robin"
    SPECIFIC = "specific"
    LOWEST_LATENCY = "lowest_latency"
    RANDOM = "random"
    SIMULTANEOUS = "simultaneous"


class BackoffMode(_LenientEnum):
    EXPONENTIAL = "exponential"
    FIXED = "fixed"


class SpendResetPeriod(_LenientEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    NEVER = "never"


_E = TypeVar("_E", bound=Enum)


def _enum_parser(enum_cls: type[_E]) -> Callable[[Any], _E]:
    def parse(raw: Any) -> _E:
        return enum_cls(raw)

    return parse


def _blank_to_none(raw: Any) -> Any:
    if raw == "":
        return None
    # Go through str() so 0.6 becomes Decimal("0.6") rather than its binary expansion.
    return str(raw) if isinstance(raw, float) else raw


def _weekday(raw: Any) -> Any:
    if isinstance(raw, str) and not raw.strip().isdigit():
        name = raw.strip().lower()
        if name not in _WEEKDAYS:
            raise ValueError(f"unknown weekday {raw!r}")
        return _WEEKDAYS.index(name)
    return raw


def _lower(raw: Any) -> Any:
    return raw.strip().lower() if isinstance(raw, str) else raw


_Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
_Money = Annotated[Decimal, Field(ge=0, allow_inf_nan=False)]
_OptionalMoney = Annotated[Optional[_Money], BeforeValidator(_blank_to_none)]
_Seconds = Annotated[float, Field(gt=0)]
_Weekday = Annotated[int, BeforeValidator(_weekday), Field(ge=0, le=6)]


class BackendConfig(BaseModel):
    """Per-backend settings.

    ``priority`` is carried for completeness but does not influence failover
    ordering, which follows observed failure counts instead.

    ``spend_reset_day_of_week`` counts from Monday: 0 is Monday and 6 is
    Sunday, matching :meth:`datetime.date.weekday`. Weekday names such as
    ``"sunday"`` are accepted too and are the safer spelling when porting a
    configuration that numbered Sunday as 0.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", protected_namespaces=())

    name: _Name
    type: Annotated[str, BeforeValidator(_lower)] = "openai"
    base_url: str = ""
    api_key: str | None = None
    model_name: str | None = None
    enabled: bool = True
    priority: int = 100
    timeout_s: Optional[_Seconds] = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_output_tokens: int | None = Field(default=None, gt=0)
    additional_headers: dict[str, str] = Field(default_factory=dict)
    cost_per_million_input_tokens: _OptionalMoney = None
    cost_per_million_output_tokens: _OptionalMoney = None
    max_spend_usd: _OptionalMoney = None
    spend_reset_period: Annotated[
        SpendResetPeriod, BeforeValidator(_enum_parser(SpendResetPeriod))
    ] = SpendResetPeriod.MONTHLY
    spend_reset_day_of_week: _Weekday = 0
    spend_reset_day_of_month: int = Field(default=1, ge=1, le=31)
    log_budget_exceeded: bool = True
    options: dict[str, Any] = Field(default_factory=dict)

    def estimate_cost(self, prompt_tokens: int | None, completion_tokens: int | None) -> Decimal | None:
        """Price a call from its token counts, or ``None`` when unpriced."""

        if prompt_tokens is None or completion_tokens is None:
            return None
        if self.cost_per_million_input_tokens is None or self.cost_per_million_output_tokens is None:
            return None
        million = Decimal(1_000_000)
        return (
            Decimal(prompt_tokens) * self.cost_per_million_input_tokens / million
            + Decimal(completion_tokens) * self.cost_per_million_output_tokens / million
        )


class OrchestratorSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    backends: tuple[BackendConfig, ...] = ()
    selection_strategy: Annotated[
        SelectionStrategy, BeforeValidator(_enum_parser(SelectionStrategy))
    ] = SelectionStrategy.FAILOVER
    default_backend: str | None = None
    max_retries: int = Field(default=3, ge=0)
    backoff: Annotated[BackoffMode, BeforeValidator(_enum_parser(BackoffMode))] = BackoffMode.EXPONENTIAL
    retry_delay_s: float = Field(default=1.0, ge=0, allow_inf_nan=False)
    timeout_s: _Seconds = 120.0


_M = TypeVar("_M", bound=BaseModel)


def _describe(exc: PydanticValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "settings"
        problems.append(f"{location}: {error['msg']}")
    return "; ".join(problems)


def _validate(model: type[_M], data: Any) -> _M:
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ConfigurationError(_describe(exc)) from exc


def backend_from_mapping(data: Mapping[str, Any]) -> BackendConfig:
    return _validate(BackendConfig, dict(data))


def settings_from_mapping(data: Mapping[str, Any]) -> OrchestratorSettings:
    """Build :class:`OrchestratorSettings` from a plain mapping."""

    raw_backends = data.get("backends") or []
    if not isinstance(raw_backends, list):
        raise ConfigurationError("'backends' must be a list")
    return _validate(OrchestratorSettings, {**data, "backends": raw_backends})


def _env_key(backend_name: str) -> str:
    return "".join(ch if ch.isalnum() else "_" for ch in backend_name).upper()


_ENV_FIELDS: Final[Mapping[str, str]] = {
    "SELECTION_STRATEGY": "selection_strategy",
    "BACKOFF": "backoff",
    "DEFAULT_BACKEND": "default_backend",
    "MAX_RETRIES": "max_retries",
    "RETRY_DELAY_S": "retry_delay_s",
}


def apply_environment(
    settings: OrchestratorSettings,
    environ: Mapping[str, str] | None = None,
) -> OrchestratorSettings:
    """Overlay ``LLM_*`` environment variables onto ``settings``."""

    env = os.environ if environ is None else environ
    overrides: dict[str, Any] = {
        field_name: value
        for suffix, field_name in _ENV_FIELDS.items()
        if (value := env.get(f"{ENV_PREFIX}{suffix}"))
    }

    backends = []
    for backend in settings.backends:
        api_key = env.get(f"{ENV_PREFIX}{_env_key(backend.name)}_API_KEY")
        backends.append(backend.model_copy(update={"api_key": api_key}) if api_key else backend)

    return _validate(
        OrchestratorSettings,
        {**settings.model_dump(exclude={"backends"}), **overrides, "backends": backends},
    )


def load_settings(path: str | Path, environ: Mapping[str, str] | None = None) -> OrchestratorSettings:
    """Load settings from a JSON document and apply the environment overlay."""

    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Configuration file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Configuration file {path} is not valid JSON: {exc}") from exc

    if not isinstance(data, Mapping):
        raise ConfigurationError("Configuration root must be a JSON object")
    return apply_environment(settings_from_mapping(data), environ)


__all__ = [
    "BackendConfig",
    "BackoffMode",
    "ConfigurationError",
    "OrchestratorSettings",
    "SelectionStrategy",
    "SpendResetPeriod",
    "apply_environment",
    "backend_from_mapping",
    "load_settings",
    "settings_from_mapping",
]

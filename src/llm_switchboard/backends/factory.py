"""Construct backends from configuration."""

from __future__ import annotations

import logging
from collections.abc import Callable

from llm_switchboard.config import BackendConfig, ConfigurationError, OrchestratorSettings
from llm_switchboard.testing import FakeBackend

from .base import AsyncBackend
from .openai_compatible import OpenAICompatibleBackend
from .registry import BackendRegistry

logger = logging.getLogger(__name__)

BackendBuilder = Callable[[BackendConfig], AsyncBackend]

_BUILDERS: dict[str, BackendBuilder] = {
    "openai": OpenAICompatibleBackend,
    "fake": FakeBackend.from_config,
}


def register_backend_type(type_name: str, builder: BackendBuilder) -> None:
    """Make ``builder`` available for backends configured with ``type_name``."""

    _BUILDERS[type_name.lower()] = builder


def create_backend(config: BackendConfig) -> AsyncBackend:
    builder = _BUILDERS.get(config.type.lower())
    if builder is None:
        known = ", ".join(sorted(_BUILDERS))
        raise ConfigurationError(f"Unknown backend type {config.type!r} for {config.name!r}; known: {known}")
    return builder(config)


def build_registry(settings: OrchestratorSettings) -> BackendRegistry:
    entries: list[tuple[AsyncBackend, BackendConfig]] = []
    for config in settings.backends:
        if not config.enabled:
            logger.info("Skipping disabled backend %s", config.name, extra={"backend": config.name})
            continue
        entries.append((create_backend(config), config))
    logger.info("Registered %d backends", len(entries), extra={"backends": [c.name for _, c in entries]})
    return BackendRegistry(entries)


__all__ = ["BackendBuilder", "build_registry", "create_backend", "register_backend_type"]

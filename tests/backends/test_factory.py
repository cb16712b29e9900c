from __future__ import annotations

import pytest

from llm_switchboard.backends.factory import build_registry, create_backend, register_backend_type
from llm_switchboard.backends.openai_compatible import OpenAICompatibleBackend
from llm_switchboard.config import BackendConfig, ConfigurationError, OrchestratorSettings, settings_from_mapping
from llm_switchboard.testing import FakeBackend


def test_create_backend_by_type() -> None:
    assert isinstance(create_backend(BackendConfig(name="a", base_url="http://x")), OpenAICompatibleBackend)
    fake = create_backend(BackendConfig(name="b", type="FAKE", options={"latency_ms": 5}))
    assert isinstance(fake, FakeBackend)
    assert fake.latency_ms == 5.0


def test_unknown_type_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="Unknown backend type"):
        create_backend(BackendConfig(name="a", type="carrier-pigeon"))


def test_registered_builder_is_used() -> None:
    register_backend_type("Echo", lambda config: FakeBackend(config.name, response_text="{prompt}"))

    backend = create_backend(BackendConfig(name="echo-1", type="echo"))

    assert isinstance(backend, FakeBackend)
    assert backend.name == "echo-1"


def test_build_registry_skips_disabled_backends() -> None:
    settings = OrchestratorSettings(
        backends=(
            BackendConfig(name="first", type="fake"),
            BackendConfig(name="off", type="fake", enabled=False),
            BackendConfig(name="second", type="fake"),
        )
    )

    registry = build_registry(settings)

    assert registry.names() == ["first", "second"]
    assert registry.get("second").config.type == "fake"


def test_build_registry_follows_file_order() -> None:
    settings = settings_from_mapping(
        {"backends": [{"name": "zeta", "type": "fake"}, {"name": "Alpha", "type": "fake"}]}
    )

    assert build_registry(settings).names() == ["zeta", "Alpha"]

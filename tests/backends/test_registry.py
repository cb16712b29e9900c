from __future__ import annotations

import pytest

from llm_switchboard.backends import BackendRegistry, NoBackendsConfigured
from llm_switchboard.config import BackendConfig, ConfigurationError
from llm_switchboard.testing import FakeBackend


def test_lookup_is_case_insensitive() -> None:
    registry = BackendRegistry.from_backends([FakeBackend("OpenAI"), FakeBackend("local")])

    handle = registry.get("openai")
    assert handle is not None
    assert handle.name == "OpenAI"
    assert registry.get("missing") is None
    assert registry.get(None) is None
    assert registry.get("") is None


def test_registration_order_is_preserved() -> None:
    registry = BackendRegistry.from_backends([FakeBackend("zeta"), FakeBackend("alpha")])

    assert registry.names() == ["zeta", "alpha"]
    assert [handle.index for handle in registry] == [0, 1]


def test_duplicate_names_are_rejected() -> None:
    with pytest.raises(ConfigurationError):
        BackendRegistry(
            [
                (FakeBackend("a"), BackendConfig(name="dup")),
                (FakeBackend("b"), BackendConfig(name="DUP")),
            ]
        )


def test_require_any_raises_when_empty() -> None:
    with pytest.raises(NoBackendsConfigured):
        BackendRegistry([]).require_any()

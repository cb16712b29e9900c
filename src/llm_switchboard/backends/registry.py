"""Immutable registry of the backends available to the orchestrator."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

from llm_switchboard.config import BackendConfig, ConfigurationError

from .base import AsyncBackend, NoBackendsConfigured


@dataclass(frozen=True, eq=False)
class BackendHandle:
    """Opaque reference to one registered backend."""

    name: str
    backend: AsyncBackend
    config: BackendConfig
    index: int

    @property
    def key(self) -> str:
        return self.name.casefold()


class BackendRegistry(Sequence[BackendHandle]):
    """Ordered, read-only collection of :class:`BackendHandle` objects.

    Names are unique and looked up case-insensitively. The registry never
    changes after construction.

    Iteration order is the order entries were given in, which for
    configuration files is file order. Handles are not sorted by name, so
    failover ties and round-robin rotation follow file order.
    """

    def __init__(self, entries: Iterable[tuple[AsyncBackend, BackendConfig]]) -> None:
        handles: list[BackendHandle] = []
        by_key: dict[str, BackendHandle] = {}
        for backend, config in entries:
            handle = BackendHandle(name=config.name, backend=backend, config=config, index=len(handles))
            if handle.key in by_key:
                raise ConfigurationError(f"Duplicate backend name {config.name!r}")
            by_key[handle.key] = handle
            handles.append(handle)
        self._handles: tuple[BackendHandle, ...] = tuple(handles)
        self._by_key = by_key

    @classmethod
    def from_backends(cls, backends: Iterable[AsyncBackend]) -> "BackendRegistry":
        """Register backends that need no configuration beyond their name."""

        return cls((backend, BackendConfig(name=backend.name)) for backend in backends)

    def __getitem__(self, index):  # type: ignore[override]
        return self._handles[index]

    def __len__(self) -> int:
        return len(self._handles)

    def __iter__(self) -> Iterator[BackendHandle]:
        return iter(self._handles)

    def get(self, name: str | None) -> BackendHandle | None:
        if not name:
            return None
        return self._by_key.get(name.casefold())

    def names(self) -> list[str]:
        return [handle.name for handle in self._handles]

    def require_any(self) -> tuple[BackendHandle, ...]:
        if not self._handles:
            raise NoBackendsConfigured("No backends are configured")
        return self._handles


__all__ = ["BackendHandle", "BackendRegistry"]

"""Backend selection strategies."""

from __future__ import annotations

import random
import threading
from typing import Callable

from llm_switchboard.backends.registry import BackendHandle, BackendRegistry
from llm_switchboard.config import SelectionStrategy
from llm_switchboard.tracking import StatisticsTracker


class BackendSelector:
    """Produce the candidate list for one request.

    Failover and lowest-latency orderings read live statistics, so two
    requests issued back to back may see different orders. The round-robin
    counter is shared by every caller of this selector.
    """

    def __init__(
        self,
        registry: BackendRegistry,
        tracker: StatisticsTracker,
        *,
        random_factory: Callable[[], random.Random] = random.Random,
    ) -> None:
        self._registry = registry
        self._tracker = tracker
        self._random_factory = random_factory
        self._round_robin_lock = threading.Lock()
        self._round_robin_counter = 0

    def select(
        self,
        strategy: SelectionStrategy,
        preferred_name: str | None = None,
        *,
        specific_name: str | None = None,
    ) -> list[BackendHandle]:
        handles = self._registry.require_any()

        preferred = self._registry.get(preferred_name)
        if preferred is not None:
            return [preferred]

        if strategy is SelectionStrategy.FAILOVER:
            return sorted(handles, key=lambda handle: self._tracker.stats_for(handle).failed_requests)

        if strategy is SelectionStrategy.ROUND_ROBIN:
            return [handles[self._next_slot() % len(handles)]]

        if strategy is SelectionStrategy.LOWEST_LATENCY:
            # Backends without completed requests report 0 ms and sort first.
            return sorted(handles, key=lambda handle: self._tracker.stats_for(handle).average_latency_ms)

        if strategy is SelectionStrategy.RANDOM:
            return [handles[self._random_factory().randrange(len(handles))]]

        if strategy is SelectionStrategy.SPECIFIC:
            specific = self._registry.get(specific_name)
            if specific is not None:
                return [specific]

        return list(handles)

    def _next_slot(self) -> int:
        # The first call gets slot 0, so rotation starts at the first registered backend.
        with self._round_robin_lock:
            slot = self._round_robin_counter
            self._round_robin_counter += 1
            return slot


__all__ = ["BackendSelector"]

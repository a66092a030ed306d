# =============================================================================
# Bounded LRU + TTL Cache
# =============================================================================
#
# Small in-memory cache for merged retrieval results. Entries expire after
# `ttl_seconds` and the least recently used entry is evicted once
# `max_entries` is reached.
#
# DESIGN DECISION: Instance-owned, not module state.
# Each RetrievalOrchestrator owns its cache, so two orchestrators pointed
# at different backends can never serve each other's results, and tests
# get a fresh cache by building a fresh orchestrator.
#
# DESIGN DECISION: No locking.
# All access happens on the event loop thread. Two concurrent misses for
# the same key both fetch, and the later put() wins; cached values are
# immutable tuples, so either result is valid.
# =============================================================================

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from typing import Generic, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """LRU cache whose entries also expire after a fixed time-to-live."""

    def __init__(
        self,
        max_entries: int,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._max_entries = max_entries
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[Hashable, tuple[float, V]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            self.misses += 1
            return None

        self._entries.move_to_end(key)
        self.hits += 1
        return value

    def put(self, key: Hashable, value: V) -> None:
        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = (self._clock() + self._ttl, value)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock() < entry[0]

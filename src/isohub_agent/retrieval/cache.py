"""Bounded caches with explicit lifetime, injected into the components using them.

`BoundedCache` is a plain capacity-capped mapping that clears itself on
overflow. `EmbeddingCache` adds single-flight: concurrent requests for the
same text share one in-flight computation instead of each calling the
embedding provider.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")


class BoundedCache(Generic[K, V]):
    """Capacity-capped cache; inserting past capacity clears every entry."""

    def __init__(self, capacity: int = 1000) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._store: dict[K, V] = {}

    def get(self, key: K) -> V | None:
        return self._store.get(key)

    def put(self, key: K, value: V) -> None:
        if key not in self._store and len(self._store) >= self._capacity:
            logger.debug("Cache at capacity (%d); clearing", self._capacity)
            self._store.clear()
        self._store[key] = value

    def invalidate(self, key: K) -> bool:
        return self._store.pop(key, None) is not None

    def clear(self) -> None:
        self._store.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._store

    def __len__(self) -> int:
        return len(self._store)


class EmbeddingCache:
    """Content-addressed embedding cache with single-flight computation."""

    def __init__(self, capacity: int = 1000) -> None:
        self._values: BoundedCache[str, list[float]] = BoundedCache(capacity)
        self._in_flight: dict[str, asyncio.Task[list[float]]] = {}

    def get(self, text: str) -> list[float] | None:
        return self._values.get(text)

    def put(self, text: str, embedding: list[float]) -> None:
        self._values.put(text, embedding)

    async def get_or_compute(
        self,
        text: str,
        compute: Callable[[str], Awaitable[list[float]]],
    ) -> list[float]:
        """Return the cached embedding or share the in-flight computation.

        The computation runs in its own task and callers await it shielded,
        so one caller being cancelled does not cancel it for the others.
        Failures are propagated to every waiter and are not cached.
        """
        cached = self._values.get(text)
        if cached is not None:
            return cached

        task = self._in_flight.get(text)
        if task is None:
            task = asyncio.ensure_future(self._compute(text, compute))
            self._in_flight[text] = task
        return await asyncio.shield(task)

    async def _compute(
        self,
        text: str,
        compute: Callable[[str], Awaitable[list[float]]],
    ) -> list[float]:
        try:
            embedding = await compute(text)
            self._values.put(text, embedding)
            return embedding
        finally:
            self._in_flight.pop(text, None)

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def __len__(self) -> int:
        return len(self._values)

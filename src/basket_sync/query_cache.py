"""Keyed read cache invalidated by database change notifications."""

import logging
from collections.abc import Awaitable, Callable, Hashable
from typing import Any, TypeVar

from .change_bus import ChangeBus

logger = logging.getLogger(__name__)

T = TypeVar("T")

CacheKey = tuple[Hashable, ...]


class QueryCache:
    """Caches loader results under tuple keys such as ("items", store_id).

    Any change notification drops every entry, since notifications do not say
    what changed.
    """

    def __init__(self) -> None:
        self._entries: dict[CacheKey, Any] = {}
        # Bumped on invalidation so loads already in flight are not stored
        self._generation = 0

    async def get(self, key: CacheKey, loader: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value for key, loading it on a miss."""
        if key in self._entries:
            return self._entries[key]

        generation = self._generation
        value = await loader()
        if generation == self._generation:
            self._entries[key] = value
        return value

    def peek(self, key: CacheKey, default: Any = None) -> Any:
        """Return the cached value for key without loading it."""
        return self._entries.get(key, default)

    def set(self, key: CacheKey, value: Any) -> None:
        """Store a value directly, replacing any cached one."""
        self._entries[key] = value

    def cancel_loads(self) -> None:
        """Keep loads already in flight from storing their results."""
        self._generation += 1

    def invalidate(self, prefix: CacheKey) -> int:
        """Drop entries whose key starts with prefix.

        Returns:
            Number of entries removed
        """
        stale = [key for key in self._entries if key[: len(prefix)] == prefix]
        for key in stale:
            del self._entries[key]
        self._generation += 1
        return len(stale)

    def invalidate_all(self) -> None:
        self._entries.clear()
        self._generation += 1

    def attach(self, bus: ChangeBus) -> Callable[[], None]:
        """Clear the cache on every change notification from bus.

        Returns:
            A callable that detaches the cache
        """
        return bus.on_change(self.invalidate_all)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

"""Optimistic cache updates around database writes.

The cache is changed before the write is sent so reads see the expected
result at once. A failed write restores the previous entries; either way the
affected keys are invalidated afterwards so the next read reflects the
server.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from .query_cache import CacheKey, QueryCache

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()


@dataclass
class CacheUpdate:
    """A change to apply to one cached entry.

    Attributes:
        key: Cache key of the entry
        update: Function receiving the cached value and returning the new one
    """

    key: CacheKey
    update: Callable[[Any], Any]


async def run_optimistic(
    cache: QueryCache,
    mutation: Callable[[], Awaitable[T]],
    updates: Sequence[CacheUpdate],
    invalidate_keys: Sequence[CacheKey] | None = None,
) -> T:
    """Apply updates to the cache, run mutation, and roll back if it fails.

    Entries that are not cached are left alone. Loads in flight when the
    updates are applied are not stored.

    Args:
        cache: Cache holding the entries to update
        mutation: Coroutine function performing the write
        updates: Changes to apply before the write
        invalidate_keys: Key prefixes to invalidate once the write settles;
                         the whole cache when omitted

    Returns:
        The mutation's result

    Raises:
        Exception: Whatever the mutation raised, after the rollback
    """
    cache.cancel_loads()

    snapshots = []
    for change in updates:
        previous = cache.peek(change.key, _MISSING)
        if previous is _MISSING:
            continue
        snapshots.append((change.key, previous))
        cache.set(change.key, change.update(previous))

    try:
        return await mutation()
    except Exception:
        logger.debug("Rolling back %d optimistic cache entries", len(snapshots))
        for key, previous in snapshots:
            cache.set(key, previous)
        raise
    finally:
        if invalidate_keys is None:
            cache.invalidate_all()
        else:
            for prefix in invalidate_keys:
                cache.invalidate(prefix)

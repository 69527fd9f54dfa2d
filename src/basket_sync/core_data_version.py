"""Invalidate cached reference tables when the app version changes.

Quantity units and app settings rarely change, so they are cached until an
upgrade may have changed their contents.
"""

import logging

from .query_cache import QueryCache
from .storage import KeyValueStorage

logger = logging.getLogger(__name__)

CORE_DATA_VERSION_KEY = "coreDataVersion"
CORE_DATA_KEYS = (("quantity_units",), ("app_settings",))


def _invalidate_core_data(cache: QueryCache) -> None:
    for prefix in CORE_DATA_KEYS:
        cache.invalidate(prefix)


async def check_and_invalidate_core_data_cache(
    storage: KeyValueStorage,
    cache: QueryCache,
    app_version: str,
) -> bool:
    """Invalidate core data caches if the stored version differs from app_version.

    Returns:
        True if the cache was invalidated
    """
    stored_version = await storage.get(CORE_DATA_VERSION_KEY)
    if stored_version == app_version:
        return False

    logger.info(
        "App version changed from %s to %s, invalidating core data cache",
        stored_version or "unknown",
        app_version,
    )
    _invalidate_core_data(cache)
    await storage.set(CORE_DATA_VERSION_KEY, app_version)
    return True


async def force_clear_core_data_cache(storage: KeyValueStorage, cache: QueryCache) -> None:
    """Invalidate core data caches and forget the stored version."""
    logger.info("Force clearing core data cache")
    _invalidate_core_data(cache)
    await storage.remove(CORE_DATA_VERSION_KEY)

"""Construction and lifecycle of the active entity database."""

import asyncio
import logging
from collections.abc import Sequence
from functools import partial

from .api_client import ApiClient
from .change_bus import ChangeBus
from .config import ConfigManager
from .core_data_version import check_and_invalidate_core_data_cache
from .database import DEFAULT_TABLES_TO_PERSIST, BaseDatabase, DatabaseType
from .errors import ApiError
from .fake_database import FakeDatabase
from .mutation_queue import MutationQueue
from .query_cache import QueryCache
from .remote_database import RemoteDatabase
from .storage import KeyValueStorage, StorageBackend, create_storage

logger = logging.getLogger(__name__)


class DatabaseFactory:
    """Owns one database instance and the components it is wired to.

    The database is created and initialized on first use; concurrent first
    callers share one initialization.
    """

    def __init__(
        self,
        config: ConfigManager | None = None,
        database_type: DatabaseType | str | None = None,
        storage: KeyValueStorage | None = None,
        client: ApiClient | None = None,
    ):
        """Initialize the factory.

        Args:
            config: Configuration; loaded from the standard locations if omitted
            database_type: Overrides the configured database type
            storage: Overrides the configured key-value storage
            client: Overrides the HTTP client built from configuration
        """
        self.config = config or ConfigManager()
        self.database_type = DatabaseType(database_type or self.config.database.type)
        self._storage = storage
        self._client = client
        self._queue: MutationQueue | None = None
        self.change_bus = ChangeBus()
        self.cache = QueryCache()
        self.cache.attach(self.change_bus)
        self._database: BaseDatabase | None = None
        self._lock = asyncio.Lock()

    @property
    def storage(self) -> KeyValueStorage:
        if self._storage is None:
            self._storage = create_storage(
                StorageBackend(self.config.storage.backend),
                data_dir=self.config.storage.storage_dir,
            )
        return self._storage

    @property
    def client(self) -> ApiClient:
        if self._client is None:
            api = self.config.api
            self._client = ApiClient(
                base_url=api.base_url,
                timeout=api.timeout_seconds,
                access_token=api.access_token,
                refresh_token=api.refresh_token,
            )
        return self._client

    @property
    def queue(self) -> MutationQueue:
        if self._queue is None:
            self._queue = MutationQueue(
                self.storage, max_retry_count=self.config.queue.max_retry_count
            )
        return self._queue

    def _create_database(self) -> BaseDatabase:
        if self.database_type == DatabaseType.FAKE:
            return FakeDatabase(change_bus=self.change_bus, seed_sample_data=True)
        return RemoteDatabase(
            self.client, self.queue, storage=self.storage, change_bus=self.change_bus
        )

    async def get_database(self) -> BaseDatabase:
        """Return the initialized database, creating it on first call.

        A newly created database also has its reference data preloaded into
        the cache.
        """
        async with self._lock:
            created = self._database is None
            if created:
                self._database = self._create_database()
                logger.debug("Created %s database", self.database_type.value)
            await self._database.initialize()
            if created:
                await self.preload_core_data(self._database)
            return self._database

    async def preload_core_data(self, database: BaseDatabase) -> None:
        """Check the core data version, then warm the cache with reference data.

        Units, stores and each store's aisles and sections are loaded. A
        failed load is logged and never blocks startup.
        """
        await check_and_invalidate_core_data_cache(
            self.storage, self.cache, self.config.app.version
        )
        try:
            await self.cache.get(("quantity_units",), database.load_all_quantity_units)
            stores = await self.cache.get(("stores",), database.load_all_stores)
            await asyncio.gather(
                *(
                    self.cache.get((table, store.id), partial(loader, store.id))
                    for store in stores
                    for table, loader in (
                        ("aisles", database.get_aisles_by_store),
                        ("sections", database.get_sections_by_store),
                    )
                )
            )
        except ApiError as error:
            logger.warning("Failed to preload core data: %s", error)

    async def close(self) -> None:
        """Close the database; the next get_database() creates a new one."""
        async with self._lock:
            if self._database is not None:
                await self._database.close()
                self._database = None
            if self._client is not None:
                await self._client.close()

    async def reset(self, tables_to_persist: Sequence[str] = DEFAULT_TABLES_TO_PERSIST) -> None:
        """Reset the database, keeping the named tables."""
        database = await self.get_database()
        await database.reset(tables_to_persist)

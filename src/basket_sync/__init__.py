"""Basket Sync - Offline-resilient data layer for shared shopping lists."""

from .api_client import ApiClient
from .change_bus import ChangeBus
from .config import ConfigManager
from .database import BaseDatabase, DatabaseType, Table
from .errors import ApiError, BasketSyncError, EntityNotFoundError
from .factory import DatabaseFactory
from .fake_database import FakeDatabase
from .models import (
    AppSetting,
    CheckConflictResult,
    ConflictUser,
    HttpMethod,
    ProcessResult,
    QuantityUnit,
    QueuedMutation,
    ShoppingListItem,
    ShoppingListItemInput,
    ShoppingListItemWithDetails,
    SortOrderUpdate,
    Store,
    StoreAisle,
    StoreItem,
    StoreItemWithDetails,
    StoreSection,
)
from .mutation_queue import MutationQueue, QueueState
from .optimistic import CacheUpdate, run_optimistic
from .output_formatter import OutputFormatter
from .query_cache import QueryCache
from .remote_database import RemoteDatabase
from .storage import StorageBackend, create_storage
from .sync import SyncResult, sync_pending_changes

__version__ = "0.1.0"

__all__ = [
    "ApiClient",
    "ApiError",
    "AppSetting",
    "BaseDatabase",
    "BasketSyncError",
    "CacheUpdate",
    "ChangeBus",
    "CheckConflictResult",
    "ConfigManager",
    "ConflictUser",
    "create_storage",
    "DatabaseFactory",
    "DatabaseType",
    "EntityNotFoundError",
    "FakeDatabase",
    "HttpMethod",
    "MutationQueue",
    "OutputFormatter",
    "ProcessResult",
    "QuantityUnit",
    "QueryCache",
    "QueuedMutation",
    "QueueState",
    "RemoteDatabase",
    "run_optimistic",
    "ShoppingListItem",
    "ShoppingListItemInput",
    "ShoppingListItemWithDetails",
    "SortOrderUpdate",
    "StorageBackend",
    "Store",
    "StoreAisle",
    "StoreItem",
    "StoreItemWithDetails",
    "StoreSection",
    "SyncResult",
    "sync_pending_changes",
    "Table",
]

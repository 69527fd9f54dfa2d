"""Entity database interface shared by the remote and in-memory backends."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from enum import Enum

from .change_bus import ChangeBus, ChangeListener
from .models import (
    AppSetting,
    CheckConflictResult,
    QuantityUnit,
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


class DatabaseType(str, Enum):
    """Entity database backend types."""

    REMOTE = "remote"
    FAKE = "fake"


class Table(str, Enum):
    """Tables that reset() can preserve."""

    STORE = "store"
    STORE_AISLE = "store_aisle"
    STORE_SECTION = "store_section"
    STORE_ITEM = "store_item"
    SHOPPING_LIST_ITEM = "shopping_list_item"
    APP_SETTING = "app_setting"
    MUTATION_QUEUE = "mutation_queue"


# Catalog and layout survive a reset; the shopping list and queue are wiped
DEFAULT_TABLES_TO_PERSIST: tuple[str, ...] = (
    Table.STORE.value,
    Table.STORE_AISLE.value,
    Table.STORE_SECTION.value,
    Table.STORE_ITEM.value,
    Table.APP_SETTING.value,
)

# Wiping a table also wipes the tables that reference it
TABLE_DEPENDENCIES: dict[str, tuple[str, ...]] = {
    Table.STORE.value: (),
    Table.STORE_AISLE.value: (Table.STORE.value,),
    Table.STORE_SECTION.value: (Table.STORE.value, Table.STORE_AISLE.value),
    Table.STORE_ITEM.value: (Table.STORE.value,),
    Table.SHOPPING_LIST_ITEM.value: (Table.STORE.value, Table.STORE_ITEM.value),
    Table.APP_SETTING.value: (),
    Table.MUTATION_QUEUE.value: (),
}


def tables_to_wipe(tables_to_persist: Iterable[str]) -> set[str]:
    """Resolve which tables a reset clears, following parent dependencies."""
    keep = {Table(table).value for table in tables_to_persist}
    wiped = {table for table in TABLE_DEPENDENCIES if table not in keep}
    changed = True
    while changed:
        changed = False
        for table, parents in TABLE_DEPENDENCIES.items():
            if table not in wiped and any(parent in wiped for parent in parents):
                wiped.add(table)
                changed = True
    return wiped


class BaseDatabase(ABC):
    """Uniform CRUD interface over stores, layout, catalog and shopping list.

    Every successful mutation fires a change notification on the bus.
    Lookups return None for missing entities; mutations on missing entities
    raise EntityNotFoundError (or the server's 404 ApiError).
    """

    def __init__(self, change_bus: ChangeBus | None = None):
        self.change_bus = change_bus or ChangeBus()
        self._initialized = False

    # --- Lifecycle ---

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Prepare storage and seed initial data. Safe to call repeatedly."""
        if self._initialized:
            return
        await self.initialize_storage()
        await self.ensure_initial_data()
        self._initialized = True

    async def ensure_initial_data(self) -> None:
        """Seed data for an empty database. Backends override as needed."""

    @abstractmethod
    async def initialize_storage(self) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...

    @abstractmethod
    async def reset(self, tables_to_persist: Sequence[str] = DEFAULT_TABLES_TO_PERSIST) -> None: ...

    # --- Change notification ---

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        return self.change_bus.on_change(listener)

    def notify_change(self) -> None:
        self.change_bus.notify_change()

    # --- Stores ---

    @abstractmethod
    async def insert_store(self, name: str) -> Store: ...

    @abstractmethod
    async def load_all_stores(self) -> list[Store]: ...

    @abstractmethod
    async def get_store_by_id(self, store_id: str) -> Store | None: ...

    @abstractmethod
    async def update_store(self, store_id: str, name: str) -> Store: ...

    @abstractmethod
    async def delete_store(self, store_id: str) -> None: ...

    # --- App settings and reference data ---

    @abstractmethod
    async def get_app_setting(self, key: str) -> AppSetting | None: ...

    @abstractmethod
    async def set_app_setting(self, key: str, value: str) -> None: ...

    @abstractmethod
    async def load_all_quantity_units(self) -> list[QuantityUnit]: ...

    # --- Aisles ---

    @abstractmethod
    async def insert_aisle(self, store_id: str, name: str) -> StoreAisle: ...

    @abstractmethod
    async def get_aisles_by_store(self, store_id: str) -> list[StoreAisle]: ...

    @abstractmethod
    async def get_aisle_by_id(self, store_id: str, aisle_id: str) -> StoreAisle | None: ...

    @abstractmethod
    async def update_aisle(self, store_id: str, aisle_id: str, name: str) -> StoreAisle: ...

    @abstractmethod
    async def delete_aisle(self, store_id: str, aisle_id: str) -> None: ...

    @abstractmethod
    async def reorder_aisles(self, store_id: str, updates: Sequence[SortOrderUpdate]) -> None: ...

    # --- Sections ---

    @abstractmethod
    async def insert_section(self, store_id: str, name: str, aisle_id: str) -> StoreSection: ...

    @abstractmethod
    async def get_sections_by_store(self, store_id: str) -> list[StoreSection]: ...

    @abstractmethod
    async def get_section_by_id(self, store_id: str, section_id: str) -> StoreSection | None: ...

    @abstractmethod
    async def update_section(
        self, store_id: str, section_id: str, name: str, aisle_id: str
    ) -> StoreSection: ...

    @abstractmethod
    async def delete_section(self, store_id: str, section_id: str) -> None: ...

    @abstractmethod
    async def reorder_sections(
        self, store_id: str, updates: Sequence[SortOrderUpdate]
    ) -> None: ...

    # --- Catalog items ---

    @abstractmethod
    async def insert_item(
        self,
        store_id: str,
        name: str,
        aisle_id: str | None = None,
        section_id: str | None = None,
    ) -> StoreItem: ...

    @abstractmethod
    async def get_items_by_store(self, store_id: str) -> list[StoreItem]: ...

    @abstractmethod
    async def get_items_by_store_with_details(self, store_id: str) -> list[StoreItemWithDetails]: ...

    @abstractmethod
    async def get_item_by_id(self, store_id: str, item_id: str) -> StoreItem | None: ...

    @abstractmethod
    async def update_item(
        self,
        store_id: str,
        item_id: str,
        name: str,
        aisle_id: str | None = None,
        section_id: str | None = None,
    ) -> StoreItem: ...

    @abstractmethod
    async def toggle_item_favorite(self, store_id: str, item_id: str) -> StoreItem: ...

    @abstractmethod
    async def delete_item(self, store_id: str, item_id: str) -> None: ...

    @abstractmethod
    async def search_store_items(
        self, store_id: str, search_term: str, limit: int = 10
    ) -> list[StoreItem]: ...

    @abstractmethod
    async def get_or_create_store_item_by_name(
        self,
        store_id: str,
        name: str,
        aisle_id: str | None = None,
        section_id: str | None = None,
    ) -> StoreItem: ...

    # --- Shopping list ---

    @abstractmethod
    async def get_shopping_list_items(self, store_id: str) -> list[ShoppingListItemWithDetails]: ...

    @abstractmethod
    async def upsert_shopping_list_item(self, params: ShoppingListItemInput) -> ShoppingListItem: ...

    @abstractmethod
    async def toggle_shopping_list_item_checked(
        self, store_id: str, item_id: str, is_checked: bool
    ) -> CheckConflictResult: ...

    @abstractmethod
    async def delete_shopping_list_item(self, store_id: str, item_id: str) -> None: ...

    @abstractmethod
    async def remove_shopping_list_item(self, store_id: str, item_id: str) -> None: ...

    @abstractmethod
    async def clear_checked_shopping_list_items(self, store_id: str) -> int: ...


def normalize_location(
    aisle_id: str | None, section_id: str | None
) -> tuple[str | None, str | None]:
    """Apply the section-wins rule: a section implies a null aisle.

    Returns:
        Tuple of (aisle_id, section_id) to store
    """
    if section_id:
        return None, section_id
    return aisle_id or None, None


def search_rank_key(search_norm: str):
    """Sort key for search results.

    Starts-with matches first, then usage count and recency descending, then
    alphabetical by normalized name.
    """

    def key(item: StoreItem):
        last_used = item.last_used_at.timestamp() if item.last_used_at else float("-inf")
        return (
            not item.name_norm.startswith(search_norm),
            -item.usage_count,
            -last_used,
            item.name_norm,
        )

    return key

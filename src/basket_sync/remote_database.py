"""Entity database backed by the Basket HTTP API.

Every write goes through _execute_mutation: a write that fails because the
server could not be reached is queued for later replay and the error is
re-raised so the caller can tell the user.
"""

import json
import logging
from collections.abc import Sequence
from typing import Any, TypeVar
from urllib.parse import quote

from pydantic import BaseModel, TypeAdapter, ValidationError

from .api_client import ApiClient
from .change_bus import ChangeBus
from .database import (
    DEFAULT_TABLES_TO_PERSIST,
    BaseDatabase,
    Table,
    normalize_location,
    tables_to_wipe,
)
from .errors import ApiError, should_queue_error
from .item_normalizer import normalize_item_name
from .models import (
    AppSetting,
    CheckConflictResult,
    HttpMethod,
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
    utcnow,
)
from .mutation_queue import MutationQueue
from .storage import KeyValueStorage, MemoryStorage

logger = logging.getLogger(__name__)

APP_SETTINGS_STORAGE_KEY = "app_settings"

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)


def _parse(payload: Any, key: str, adapter: TypeAdapter[T]) -> T:
    """Validate one field of a response envelope.

    Raises:
        ApiError: If the envelope is missing the field or it does not validate
    """
    if not isinstance(payload, dict) or key not in payload:
        raise ApiError(f"Response is missing '{key}'", code="INVALID_RESPONSE")
    try:
        return adapter.validate_python(payload[key])
    except ValidationError as err:
        raise ApiError(f"Response field '{key}' is malformed: {err}", code="INVALID_RESPONSE") from err


def _model(model: type[ModelT]) -> TypeAdapter[ModelT]:
    return TypeAdapter(model)


def _models(model: type[ModelT]) -> TypeAdapter[list[ModelT]]:
    return TypeAdapter(list[model])


def _wire_updates(updates: Sequence[SortOrderUpdate]) -> list[dict]:
    return [update.to_wire() for update in updates]


class RemoteDatabase(BaseDatabase):
    """Maps every database operation onto the REST API."""

    def __init__(
        self,
        client: ApiClient,
        queue: MutationQueue,
        storage: KeyValueStorage | None = None,
        change_bus: ChangeBus | None = None,
    ):
        """Initialize the remote database.

        Args:
            client: HTTP client for the backend
            queue: Queue receiving writes that fail with a network error
            storage: Local storage for app settings, which are device-local
            change_bus: Bus to notify after every successful write
        """
        super().__init__(change_bus)
        self.client = client
        self.queue = queue
        self.storage = storage or MemoryStorage()

    async def _execute_mutation(
        self,
        operation: str,
        endpoint: str,
        method: HttpMethod,
        data: Any = None,
    ) -> Any:
        """Send a write, queueing it for replay if the server is unreachable.

        Raises:
            ApiError: Always re-raised, whether or not the write was queued
        """
        try:
            payload = await self.client.request(method.value, endpoint, data)
        except ApiError as error:
            if should_queue_error(error):
                try:
                    await self.queue.enqueue(operation, endpoint, method, data)
                except Exception:
                    logger.exception("Failed to queue %s", operation)
                else:
                    logger.info("Queued %s for later retry", operation)
            raise error

        self.notify_change()
        return payload

    async def _lookup(self, endpoint: str, key: str, model: type[ModelT]) -> ModelT | None:
        """Fetch one entity, mapping 404 to None."""
        try:
            payload = await self.client.get(endpoint)
        except ApiError as error:
            if error.status == 404:
                return None
            raise
        return _parse(payload, key, _model(model))

    # --- Lifecycle ---

    async def initialize_storage(self) -> None:
        await self.queue.load()
        self.notify_change()

    async def close(self) -> None:
        await self.client.close()
        self._initialized = False

    async def reset(self, tables_to_persist: Sequence[str] = DEFAULT_TABLES_TO_PERSIST) -> None:
        """Reset local state.

        Server-side data is never touched. Pending writes are discarded unless
        mutation_queue is among the persisted tables.
        """
        wiped = tables_to_wipe(tables_to_persist)
        if Table.MUTATION_QUEUE.value in wiped:
            size = self.queue.get_queue_size()
            await self.queue.clear_queue()
            if size:
                logger.warning("Discarded %d pending mutations on reset", size)
        if Table.APP_SETTING.value in wiped:
            await self.storage.remove(APP_SETTINGS_STORAGE_KEY)
        self.notify_change()

    # --- Stores ---

    async def insert_store(self, name: str) -> Store:
        data = {"name": name}
        payload = await self._execute_mutation("insertStore", "/api/stores", HttpMethod.POST, data)
        return _parse(payload, "store", _model(Store))

    async def load_all_stores(self) -> list[Store]:
        payload = await self.client.get("/api/stores")
        return _parse(payload, "stores", _models(Store))

    async def get_store_by_id(self, store_id: str) -> Store | None:
        return await self._lookup(f"/api/stores/{store_id}", "store", Store)

    async def update_store(self, store_id: str, name: str) -> Store:
        payload = await self._execute_mutation(
            "updateStore", f"/api/stores/{store_id}", HttpMethod.PUT, {"name": name}
        )
        return _parse(payload, "store", _model(Store))

    async def delete_store(self, store_id: str) -> None:
        await self._execute_mutation("deleteStore", f"/api/stores/{store_id}", HttpMethod.DELETE)

    # --- App settings and reference data ---

    async def _load_settings(self) -> dict[str, dict]:
        raw = await self.storage.get(APP_SETTINGS_STORAGE_KEY)
        if not raw:
            return {}
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.exception("Discarding unreadable app settings")
            return {}

    async def get_app_setting(self, key: str) -> AppSetting | None:
        settings = await self._load_settings()
        if key not in settings:
            return None
        return AppSetting.model_validate(settings[key])

    async def set_app_setting(self, key: str, value: str) -> None:
        settings = await self._load_settings()
        settings[key] = AppSetting(key=key, value=value).to_wire()
        await self.storage.set(APP_SETTINGS_STORAGE_KEY, json.dumps(settings))
        self.notify_change()

    async def load_all_quantity_units(self) -> list[QuantityUnit]:
        payload = await self.client.get("/api/quantity-units")
        return _parse(payload, "units", _models(QuantityUnit))

    # --- Aisles ---

    async def insert_aisle(self, store_id: str, name: str) -> StoreAisle:
        payload = await self._execute_mutation(
            "insertAisle", f"/api/stores/{store_id}/aisles", HttpMethod.POST, {"name": name}
        )
        return _parse(payload, "aisle", _model(StoreAisle))

    async def get_aisles_by_store(self, store_id: str) -> list[StoreAisle]:
        payload = await self.client.get(f"/api/stores/{store_id}/aisles")
        return _parse(payload, "aisles", _models(StoreAisle))

    async def get_aisle_by_id(self, store_id: str, aisle_id: str) -> StoreAisle | None:
        return await self._lookup(f"/api/stores/{store_id}/aisles/{aisle_id}", "aisle", StoreAisle)

    async def update_aisle(self, store_id: str, aisle_id: str, name: str) -> StoreAisle:
        payload = await self._execute_mutation(
            "updateAisle",
            f"/api/stores/{store_id}/aisles/{aisle_id}",
            HttpMethod.PUT,
            {"name": name},
        )
        return _parse(payload, "aisle", _model(StoreAisle))

    async def delete_aisle(self, store_id: str, aisle_id: str) -> None:
        await self._execute_mutation(
            "deleteAisle", f"/api/stores/{store_id}/aisles/{aisle_id}", HttpMethod.DELETE
        )

    async def reorder_aisles(self, store_id: str, updates: Sequence[SortOrderUpdate]) -> None:
        await self._execute_mutation(
            "reorderAisles",
            f"/api/stores/{store_id}/aisles/reorder",
            HttpMethod.POST,
            {"updates": _wire_updates(updates)},
        )

    # --- Sections ---

    async def insert_section(self, store_id: str, name: str, aisle_id: str) -> StoreSection:
        payload = await self._execute_mutation(
            "insertSection",
            f"/api/stores/{store_id}/sections",
            HttpMethod.POST,
            {"name": name, "aisleId": aisle_id},
        )
        return _parse(payload, "section", _model(StoreSection))

    async def get_sections_by_store(self, store_id: str) -> list[StoreSection]:
        payload = await self.client.get(f"/api/stores/{store_id}/sections")
        return _parse(payload, "sections", _models(StoreSection))

    async def get_section_by_id(self, store_id: str, section_id: str) -> StoreSection | None:
        return await self._lookup(
            f"/api/stores/{store_id}/sections/{section_id}", "section", StoreSection
        )

    async def update_section(
        self, store_id: str, section_id: str, name: str, aisle_id: str
    ) -> StoreSection:
        payload = await self._execute_mutation(
            "updateSection",
            f"/api/stores/{store_id}/sections/{section_id}",
            HttpMethod.PUT,
            {"name": name, "aisleId": aisle_id},
        )
        return _parse(payload, "section", _model(StoreSection))

    async def delete_section(self, store_id: str, section_id: str) -> None:
        await self._execute_mutation(
            "deleteSection", f"/api/stores/{store_id}/sections/{section_id}", HttpMethod.DELETE
        )

    async def reorder_sections(self, store_id: str, updates: Sequence[SortOrderUpdate]) -> None:
        await self._execute_mutation(
            "reorderSections",
            f"/api/stores/{store_id}/sections/reorder",
            HttpMethod.POST,
            {"updates": _wire_updates(updates)},
        )

    # --- Catalog items ---

    async def insert_item(
        self,
        store_id: str,
        name: str,
        aisle_id: str | None = None,
        section_id: str | None = None,
    ) -> StoreItem:
        aisle_id, section_id = normalize_location(aisle_id, section_id)
        payload = await self._execute_mutation(
            "insertItem",
            f"/api/stores/{store_id}/items",
            HttpMethod.POST,
            {"name": name, "aisleId": aisle_id, "sectionId": section_id},
        )
        return _parse(payload, "item", _model(StoreItem))

    async def get_items_by_store(self, store_id: str) -> list[StoreItem]:
        payload = await self.client.get(f"/api/stores/{store_id}/items")
        return _parse(payload, "items", _models(StoreItem))

    async def get_items_by_store_with_details(self, store_id: str) -> list[StoreItemWithDetails]:
        payload = await self.client.get(f"/api/stores/{store_id}/items")
        return _parse(payload, "items", _models(StoreItemWithDetails))

    async def get_item_by_id(self, store_id: str, item_id: str) -> StoreItem | None:
        return await self._lookup(f"/api/stores/{store_id}/items/{item_id}", "item", StoreItem)

    async def update_item(
        self,
        store_id: str,
        item_id: str,
        name: str,
        aisle_id: str | None = None,
        section_id: str | None = None,
    ) -> StoreItem:
        aisle_id, section_id = normalize_location(aisle_id, section_id)
        return await self._put_item(
            store_id, item_id, {"name": name, "aisleId": aisle_id, "sectionId": section_id}
        )

    async def _put_item(self, store_id: str, item_id: str, data: dict) -> StoreItem:
        payload = await self._execute_mutation(
            "updateItem", f"/api/stores/{store_id}/items/{item_id}", HttpMethod.PUT, data
        )
        return _parse(payload, "item", _model(StoreItem))

    async def toggle_item_favorite(self, store_id: str, item_id: str) -> StoreItem:
        payload = await self._execute_mutation(
            "toggleItemFavorite",
            f"/api/stores/{store_id}/items/{item_id}/favorite",
            HttpMethod.POST,
            {},
        )
        return _parse(payload, "item", _model(StoreItem))

    async def delete_item(self, store_id: str, item_id: str) -> None:
        await self._execute_mutation(
            "deleteItem", f"/api/stores/{store_id}/items/{item_id}", HttpMethod.DELETE
        )

    async def search_store_items(
        self, store_id: str, search_term: str, limit: int = 10
    ) -> list[StoreItem]:
        payload = await self.client.get(
            f"/api/stores/{store_id}/items/search?q={quote(search_term)}&limit={limit}"
        )
        return _parse(payload, "items", _models(StoreItem))

    async def get_or_create_store_item_by_name(
        self,
        store_id: str,
        name: str,
        aisle_id: str | None = None,
        section_id: str | None = None,
    ) -> StoreItem:
        """Reuse the item whose normalized name matches, or create one.

        Reuse sends one PUT carrying the (possibly new) location together
        with the incremented usage count. The whole catalog is scanned, since
        ranked search results can push the exact match past any limit.
        """
        name_norm = normalize_item_name(name)
        candidates = await self.get_items_by_store(store_id)
        existing = next((item for item in candidates if item.name_norm == name_norm), None)
        if existing is None:
            return await self.insert_item(store_id, name, aisle_id, section_id)

        if aisle_id or section_id:
            aisle_id, section_id = normalize_location(aisle_id, section_id)
        else:
            aisle_id, section_id = existing.aisle_id, existing.section_id

        return await self._put_item(
            store_id,
            existing.id,
            {
                "name": existing.name,
                "aisleId": aisle_id,
                "sectionId": section_id,
                "usageCount": existing.usage_count + 1,
                "lastUsedAt": utcnow().isoformat(),
            },
        )

    # --- Shopping list ---

    async def get_shopping_list_items(self, store_id: str) -> list[ShoppingListItemWithDetails]:
        payload = await self.client.get(f"/api/stores/{store_id}/shopping-list")
        return _parse(payload, "items", _models(ShoppingListItemWithDetails))

    async def upsert_shopping_list_item(self, params: ShoppingListItemInput) -> ShoppingListItem:
        # Only the provided fields travel, so the server applies a partial update
        data = params.to_wire(exclude_unset=True)
        data["storeId"] = params.store_id
        payload = await self._execute_mutation(
            "upsertShoppingListItem",
            f"/api/stores/{params.store_id}/shopping-list",
            HttpMethod.POST,
            data,
        )
        return _parse(payload, "item", _model(ShoppingListItem))

    async def toggle_shopping_list_item_checked(
        self, store_id: str, item_id: str, is_checked: bool
    ) -> CheckConflictResult:
        payload = await self._execute_mutation(
            "toggleShoppingListItemChecked",
            f"/api/stores/{store_id}/shopping-list/{item_id}/toggle",
            HttpMethod.POST,
            {"isChecked": is_checked},
        )
        try:
            return CheckConflictResult.model_validate(payload)
        except ValidationError as err:
            raise ApiError(f"Malformed toggle response: {err}", code="INVALID_RESPONSE") from err

    async def delete_shopping_list_item(self, store_id: str, item_id: str) -> None:
        await self._execute_mutation(
            "deleteShoppingListItem",
            f"/api/stores/{store_id}/shopping-list/{item_id}/delete-with-item",
            HttpMethod.DELETE,
        )

    async def remove_shopping_list_item(self, store_id: str, item_id: str) -> None:
        await self._execute_mutation(
            "removeShoppingListItem",
            f"/api/stores/{store_id}/shopping-list/{item_id}",
            HttpMethod.DELETE,
        )

    async def clear_checked_shopping_list_items(self, store_id: str) -> int:
        payload = await self._execute_mutation(
            "clearCheckedShoppingListItems",
            f"/api/stores/{store_id}/shopping-list/clear-checked",
            HttpMethod.POST,
            {},
        )
        return _parse(payload, "count", TypeAdapter(int))

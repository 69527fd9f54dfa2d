"""In-memory entity database for offline and demo use.

Implements the same interface and failure semantics as RemoteDatabase so the
two are interchangeable in tests. Nothing survives a process restart.
"""

import logging
from collections.abc import Sequence
from typing import TypeVar

from pydantic import BaseModel

from .change_bus import ChangeBus
from .database import (
    DEFAULT_TABLES_TO_PERSIST,
    BaseDatabase,
    Table,
    normalize_location,
    search_rank_key,
    tables_to_wipe,
)
from .date_utils import normalize_snooze_date
from .errors import EntityNotFoundError
from .item_normalizer import normalize_item_name
from .models import (
    MOCK_USER_ID,
    QUANTITY_UNITS,
    AppSetting,
    CheckConflictResult,
    ConflictUser,
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

logger = logging.getLogger(__name__)

SAMPLE_STORE_NAME = "Sample Store"
SAMPLE_AISLES = ("Deli", "Bakery", "Produce", "Aisle 1", "Aisle 2")

# Sorts entries without a location after every located one
_UNPLACED = 999999

ModelT = TypeVar("ModelT", bound=BaseModel)


def check_dense_order(updates: Sequence[SortOrderUpdate], expected_ids: set[str]) -> None:
    """Validate that updates give every id in scope a distinct 0-based position.

    Raises:
        ValueError: If ids are missing, duplicated or the order has gaps
    """
    ids = [update.id for update in updates]
    if len(set(ids)) != len(ids):
        raise ValueError("Reorder updates contain duplicate ids")
    if set(ids) != expected_ids:
        raise ValueError("Reorder updates must cover every entry in the scope exactly once")
    if sorted(update.sort_order for update in updates) != list(range(len(updates))):
        raise ValueError("Sort orders must be dense and start at 0")


def _revalidate(model: ModelT, **changes) -> ModelT:
    """Copy a model with changes applied, running field validation again."""
    return type(model).model_validate({**model.model_dump(), **changes})


class FakeDatabase(BaseDatabase):
    """Entity database backed by dictionaries."""

    def __init__(
        self,
        change_bus: ChangeBus | None = None,
        user_id: str = MOCK_USER_ID,
        user_names: dict[str, str] | None = None,
        seed_sample_data: bool = False,
    ):
        """Initialize the fake database.

        Args:
            change_bus: Bus to notify on every mutation
            user_id: User recorded in audit fields; may be changed to act as
                     another collaborator
            user_names: Display names for users, reported in conflicts
            seed_sample_data: Create a sample store when the database is empty
        """
        super().__init__(change_bus)
        self.user_id = user_id
        self.user_names = dict(user_names or {})
        self.seed_sample_data = seed_sample_data
        self.stores: dict[str, Store] = {}
        self.aisles: dict[str, StoreAisle] = {}
        self.sections: dict[str, StoreSection] = {}
        self.items: dict[str, StoreItem] = {}
        self.shopping_list_items: dict[str, ShoppingListItem] = {}
        self.app_settings: dict[str, AppSetting] = {}
        self.quantity_units: dict[str, QuantityUnit] = {}

    # --- Lifecycle ---

    async def initialize_storage(self) -> None:
        self.quantity_units = {unit.id: unit for unit in QUANTITY_UNITS}
        self.notify_change()

    async def ensure_initial_data(self) -> None:
        if self.stores or not self.seed_sample_data:
            return

        store = await self.insert_store(SAMPLE_STORE_NAME)
        for name in SAMPLE_AISLES:
            await self.insert_aisle(store.id, name)
        logger.info("Seeded sample store %s", store.id)

    async def close(self) -> None:
        self._initialized = False
        self.notify_change()

    async def reset(self, tables_to_persist: Sequence[str] = DEFAULT_TABLES_TO_PERSIST) -> None:
        """Clear all data except the named tables (and what they depend on)."""
        wiped = tables_to_wipe(tables_to_persist)
        tables = {
            Table.STORE.value: self.stores,
            Table.STORE_AISLE.value: self.aisles,
            Table.STORE_SECTION.value: self.sections,
            Table.STORE_ITEM.value: self.items,
            Table.SHOPPING_LIST_ITEM.value: self.shopping_list_items,
            Table.APP_SETTING.value: self.app_settings,
        }
        for name, table in tables.items():
            if name in wiped:
                table.clear()

        # Surviving items lose locations that no longer exist
        for item in list(self.items.values()):
            aisle_id = item.aisle_id if item.aisle_id in self.aisles else None
            section_id = item.section_id if item.section_id in self.sections else None
            if (aisle_id, section_id) != (item.aisle_id, item.section_id):
                self.items[item.id] = item.model_copy(
                    update={"aisle_id": aisle_id, "section_id": section_id}
                )

        await self.ensure_initial_data()
        self.notify_change()

    # --- Helpers ---

    def _audit(self) -> dict:
        now = utcnow()
        return {
            "created_by_id": self.user_id,
            "updated_by_id": self.user_id,
            "created_at": now,
            "updated_at": now,
        }

    def _touch(self) -> dict:
        return {"updated_by_id": self.user_id, "updated_at": utcnow()}

    def _require_store(self, store_id: str) -> Store:
        store = self.stores.get(store_id)
        if store is None:
            raise EntityNotFoundError("Store", store_id)
        return store

    def _require_aisle(self, store_id: str, aisle_id: str) -> StoreAisle:
        aisle = self.aisles.get(aisle_id)
        if aisle is None or aisle.store_id != store_id:
            raise EntityNotFoundError("Aisle", aisle_id)
        return aisle

    def _require_section(self, store_id: str, section_id: str) -> StoreSection:
        section = self.sections.get(section_id)
        if section is None or section.store_id != store_id:
            raise EntityNotFoundError("Section", section_id)
        return section

    def _require_item(self, store_id: str, item_id: str) -> StoreItem:
        item = self.items.get(item_id)
        if item is None or item.store_id != store_id:
            raise EntityNotFoundError("Item", item_id)
        return item

    def _require_list_item(self, store_id: str, item_id: str) -> ShoppingListItem:
        list_item = self.shopping_list_items.get(item_id)
        if list_item is None or list_item.store_id != store_id:
            raise EntityNotFoundError("Shopping list item", item_id)
        return list_item

    def _resolve_location(
        self, item: StoreItem | None
    ) -> tuple[StoreAisle | None, StoreSection | None]:
        """Follow section -> aisle, falling back to the item's own aisle."""
        if item is None:
            return None, None
        section = self.sections.get(item.section_id) if item.section_id else None
        aisle_id = section.aisle_id if section else item.aisle_id
        aisle = self.aisles.get(aisle_id) if aisle_id else None
        return aisle, section

    # --- Stores ---

    async def insert_store(self, name: str) -> Store:
        store = Store(name=name, **self._audit())
        self.stores[store.id] = store
        self.notify_change()
        return store

    async def load_all_stores(self) -> list[Store]:
        return sorted(self.stores.values(), key=lambda s: s.name.casefold())

    async def get_store_by_id(self, store_id: str) -> Store | None:
        return self.stores.get(store_id)

    async def update_store(self, store_id: str, name: str) -> Store:
        store = self._require_store(store_id)
        updated = _revalidate(store, name=name, **self._touch())
        self.stores[store_id] = updated
        self.notify_change()
        return updated

    async def delete_store(self, store_id: str) -> None:
        self._require_store(store_id)

        for table in (self.shopping_list_items, self.items, self.sections, self.aisles):
            for entity_id in [k for k, v in table.items() if v.store_id == store_id]:
                del table[entity_id]

        del self.stores[store_id]
        self.notify_change()

    # --- App settings and reference data ---

    async def get_app_setting(self, key: str) -> AppSetting | None:
        return self.app_settings.get(key)

    async def set_app_setting(self, key: str, value: str) -> None:
        self.app_settings[key] = AppSetting(key=key, value=value)
        self.notify_change()

    async def load_all_quantity_units(self) -> list[QuantityUnit]:
        return sorted(self.quantity_units.values(), key=lambda u: u.sort_order)

    # --- Aisles ---

    async def insert_aisle(self, store_id: str, name: str) -> StoreAisle:
        self._require_store(store_id)
        sort_order = sum(1 for a in self.aisles.values() if a.store_id == store_id)
        aisle = StoreAisle(store_id=store_id, name=name, sort_order=sort_order, **self._audit())
        self.aisles[aisle.id] = aisle
        self.notify_change()
        return aisle

    async def get_aisles_by_store(self, store_id: str) -> list[StoreAisle]:
        return sorted(
            (a for a in self.aisles.values() if a.store_id == store_id),
            key=lambda a: a.sort_order,
        )

    async def get_aisle_by_id(self, store_id: str, aisle_id: str) -> StoreAisle | None:
        aisle = self.aisles.get(aisle_id)
        return aisle if aisle is not None and aisle.store_id == store_id else None

    async def update_aisle(self, store_id: str, aisle_id: str, name: str) -> StoreAisle:
        aisle = self._require_aisle(store_id, aisle_id)
        updated = _revalidate(aisle, name=name, **self._touch())
        self.aisles[aisle_id] = updated
        self.notify_change()
        return updated

    async def delete_aisle(self, store_id: str, aisle_id: str) -> None:
        """Delete an aisle and its sections; items located there lose their location."""
        self._require_aisle(store_id, aisle_id)
        section_ids = {s.id for s in self.sections.values() if s.aisle_id == aisle_id}

        for section_id in section_ids:
            del self.sections[section_id]
        for item in list(self.items.values()):
            if item.aisle_id == aisle_id or item.section_id in section_ids:
                self.items[item.id] = item.model_copy(update={"aisle_id": None, "section_id": None})

        del self.aisles[aisle_id]
        self._compact_aisles(store_id)
        self.notify_change()

    def _compact_aisles(self, store_id: str) -> None:
        remaining = sorted(
            (a for a in self.aisles.values() if a.store_id == store_id),
            key=lambda a: a.sort_order,
        )
        for position, aisle in enumerate(remaining):
            if aisle.sort_order != position:
                self.aisles[aisle.id] = aisle.model_copy(update={"sort_order": position})

    async def reorder_aisles(self, store_id: str, updates: Sequence[SortOrderUpdate]) -> None:
        self._require_store(store_id)
        scope = {a.id for a in self.aisles.values() if a.store_id == store_id}
        check_dense_order(updates, scope)

        now = utcnow()
        for update in updates:
            self.aisles[update.id] = self.aisles[update.id].model_copy(
                update={"sort_order": update.sort_order, "updated_at": now}
            )
        self.notify_change()

    # --- Sections ---

    async def insert_section(self, store_id: str, name: str, aisle_id: str) -> StoreSection:
        self._require_aisle(store_id, aisle_id)
        sort_order = sum(1 for s in self.sections.values() if s.aisle_id == aisle_id)
        section = StoreSection(
            store_id=store_id,
            aisle_id=aisle_id,
            name=name,
            sort_order=sort_order,
            **self._audit(),
        )
        self.sections[section.id] = section
        self.notify_change()
        return section

    async def get_sections_by_store(self, store_id: str) -> list[StoreSection]:
        aisle_order = {a.id: a.sort_order for a in self.aisles.values()}
        return sorted(
            (s for s in self.sections.values() if s.store_id == store_id),
            key=lambda s: (aisle_order.get(s.aisle_id, _UNPLACED), s.sort_order),
        )

    async def get_section_by_id(self, store_id: str, section_id: str) -> StoreSection | None:
        section = self.sections.get(section_id)
        return section if section is not None and section.store_id == store_id else None

    async def update_section(
        self, store_id: str, section_id: str, name: str, aisle_id: str
    ) -> StoreSection:
        section = self._require_section(store_id, section_id)
        self._require_aisle(store_id, aisle_id)

        changes: dict = {"name": name, "aisle_id": aisle_id, **self._touch()}
        if aisle_id != section.aisle_id:
            changes["sort_order"] = sum(
                1 for s in self.sections.values() if s.aisle_id == aisle_id
            )
        updated = _revalidate(section, **changes)
        self.sections[section_id] = updated
        if aisle_id != section.aisle_id:
            self._compact_sections(section.aisle_id)
        self.notify_change()
        return updated

    async def delete_section(self, store_id: str, section_id: str) -> None:
        """Delete a section; items located there lose their location."""
        section = self._require_section(store_id, section_id)
        for item in list(self.items.values()):
            if item.section_id == section_id:
                self.items[item.id] = item.model_copy(update={"section_id": None})

        del self.sections[section_id]
        self._compact_sections(section.aisle_id)
        self.notify_change()

    def _compact_sections(self, aisle_id: str) -> None:
        remaining = sorted(
            (s for s in self.sections.values() if s.aisle_id == aisle_id),
            key=lambda s: s.sort_order,
        )
        for position, section in enumerate(remaining):
            if section.sort_order != position:
                self.sections[section.id] = section.model_copy(update={"sort_order": position})

    async def reorder_sections(self, store_id: str, updates: Sequence[SortOrderUpdate]) -> None:
        """Rewrite section positions; each affected aisle must be fully covered."""
        by_aisle: dict[str, list[SortOrderUpdate]] = {}
        for update in updates:
            section = self._require_section(store_id, update.id)
            by_aisle.setdefault(section.aisle_id, []).append(update)

        for aisle_id, aisle_updates in by_aisle.items():
            scope = {s.id for s in self.sections.values() if s.aisle_id == aisle_id}
            check_dense_order(aisle_updates, scope)

        now = utcnow()
        for update in updates:
            self.sections[update.id] = self.sections[update.id].model_copy(
                update={"sort_order": update.sort_order, "updated_at": now}
            )
        self.notify_change()

    # --- Catalog items ---

    async def insert_item(
        self,
        store_id: str,
        name: str,
        aisle_id: str | None = None,
        section_id: str | None = None,
    ) -> StoreItem:
        self._require_store(store_id)
        aisle_id, section_id = normalize_location(aisle_id, section_id)
        item = StoreItem(
            store_id=store_id,
            name=name,
            name_norm=normalize_item_name(name),
            aisle_id=aisle_id,
            section_id=section_id,
            **self._audit(),
        )
        self.items[item.id] = item
        self.notify_change()
        return item

    async def get_items_by_store(self, store_id: str) -> list[StoreItem]:
        return sorted(
            (i for i in self.items.values() if i.store_id == store_id and not i.is_hidden),
            key=lambda i: i.name_norm,
        )

    async def get_items_by_store_with_details(self, store_id: str) -> list[StoreItemWithDetails]:
        details = []
        for item in await self.get_items_by_store(store_id):
            aisle, section = self._resolve_location(item)
            details.append(
                StoreItemWithDetails(
                    **item.model_dump(exclude={"aisle_id"}),
                    aisle_id=aisle.id if aisle else None,
                    aisle_name=aisle.name if aisle else None,
                    aisle_sort_order=aisle.sort_order if aisle else None,
                    section_name=section.name if section else None,
                    section_sort_order=section.sort_order if section else None,
                )
            )

        return sorted(
            details,
            key=lambda d: (
                _UNPLACED if d.aisle_sort_order is None else d.aisle_sort_order,
                _UNPLACED if d.section_sort_order is None else d.section_sort_order,
                d.name_norm,
            ),
        )

    async def get_item_by_id(self, store_id: str, item_id: str) -> StoreItem | None:
        item = self.items.get(item_id)
        return item if item is not None and item.store_id == store_id else None

    async def update_item(
        self,
        store_id: str,
        item_id: str,
        name: str,
        aisle_id: str | None = None,
        section_id: str | None = None,
    ) -> StoreItem:
        item = self._require_item(store_id, item_id)
        aisle_id, section_id = normalize_location(aisle_id, section_id)
        updated = _revalidate(
            item,
            name=name,
            name_norm=normalize_item_name(name),
            aisle_id=aisle_id,
            section_id=section_id,
            **self._touch(),
        )
        self.items[item_id] = updated
        self.notify_change()
        return updated

    async def toggle_item_favorite(self, store_id: str, item_id: str) -> StoreItem:
        item = self._require_item(store_id, item_id)
        updated = item.model_copy(update={"is_favorite": not item.is_favorite, **self._touch()})
        self.items[item_id] = updated
        self.notify_change()
        return updated

    async def delete_item(self, store_id: str, item_id: str) -> None:
        self._require_item(store_id, item_id)
        self._remove_item(item_id)
        self.notify_change()

    def _remove_item(self, item_id: str) -> None:
        # List entries referencing the item go with it
        self.items.pop(item_id, None)
        for list_item in list(self.shopping_list_items.values()):
            if list_item.store_item_id == item_id:
                del self.shopping_list_items[list_item.id]

    async def search_store_items(
        self, store_id: str, search_term: str, limit: int = 10
    ) -> list[StoreItem]:
        search_norm = normalize_item_name(search_term)
        matches = [
            item
            for item in self.items.values()
            if item.store_id == store_id and not item.is_hidden and search_norm in item.name_norm
        ]
        return sorted(matches, key=search_rank_key(search_norm))[:limit]

    async def get_or_create_store_item_by_name(
        self,
        store_id: str,
        name: str,
        aisle_id: str | None = None,
        section_id: str | None = None,
    ) -> StoreItem:
        """Find an item by normalized name, recording the reuse, or create it.

        A provided location replaces the existing one; when none is provided
        the existing location is kept.
        """
        name_norm = normalize_item_name(name)
        existing = next(
            (
                item
                for item in self.items.values()
                if item.store_id == store_id and item.name_norm == name_norm
            ),
            None,
        )
        if existing is None:
            return await self.insert_item(store_id, name, aisle_id, section_id)

        if section_id or aisle_id:
            new_aisle_id, new_section_id = normalize_location(aisle_id, section_id)
        else:
            new_aisle_id, new_section_id = existing.aisle_id, existing.section_id

        now = utcnow()
        updated = existing.model_copy(
            update={
                "usage_count": existing.usage_count + 1,
                "last_used_at": now,
                "aisle_id": new_aisle_id,
                "section_id": new_section_id,
                "updated_by_id": self.user_id,
                "updated_at": now,
            }
        )
        self.items[existing.id] = updated
        self.notify_change()
        return updated

    # --- Shopping list ---

    async def get_shopping_list_items(self, store_id: str) -> list[ShoppingListItemWithDetails]:
        details = []
        for list_item in self.shopping_list_items.values():
            if list_item.store_id != store_id:
                continue

            store_item = self.items.get(list_item.store_item_id) if list_item.store_item_id else None
            unit = self.quantity_units.get(list_item.unit_id) if list_item.unit_id else None
            aisle, section = self._resolve_location(store_item)

            details.append(
                ShoppingListItemWithDetails(
                    **list_item.model_dump(),
                    item_name=store_item.name if store_item else None,
                    unit_abbreviation=unit.abbreviation if unit else None,
                    aisle_id=aisle.id if aisle else None,
                    section_id=section.id if section else None,
                    aisle_name=aisle.name if aisle else None,
                    aisle_sort_order=aisle.sort_order if aisle else None,
                    section_name=section.name if section else None,
                    section_sort_order=section.sort_order if section else None,
                    checked_by_name=self.user_names.get(list_item.checked_by or ""),
                )
            )

        # Unchecked first, ideas first, then store layout, then name
        return sorted(
            details,
            key=lambda d: (
                d.is_checked,
                not d.is_idea,
                _UNPLACED if d.aisle_sort_order is None else d.aisle_sort_order,
                _UNPLACED if d.section_sort_order is None else d.section_sort_order,
                (d.item_name or d.notes or "").casefold(),
            ),
        )

    async def upsert_shopping_list_item(self, params: ShoppingListItemInput) -> ShoppingListItem:
        """Create a list entry, or update only the fields provided in params.

        A name without a store_item_id is resolved through
        get_or_create_store_item_by_name.
        """
        self._require_store(params.store_id)
        provided = params.model_fields_set
        changes = {
            field: getattr(params, field)
            for field in (
                "store_item_id",
                "qty",
                "unit_id",
                "notes",
                "is_idea",
                "is_unsure",
                "is_sample",
                "snoozed_until",
            )
            if field in provided
        }
        if changes.get("snoozed_until") is not None:
            changes["snoozed_until"] = normalize_snooze_date(changes["snoozed_until"])
        if changes.get("is_idea") is None:
            changes.pop("is_idea", None)

        existing = None
        if params.id is not None:
            existing = self._require_list_item(params.store_id, params.id)

        if params.name and not params.store_item_id and not params.is_idea:
            store_item = await self.get_or_create_store_item_by_name(
                params.store_id, params.name, params.aisle_id, params.section_id
            )
            changes["store_item_id"] = store_item.id

        now = utcnow()
        if existing is not None:
            if params.is_checked is not None and params.is_checked != existing.is_checked:
                changes.update(self._check_state(params.is_checked, now))
            updated = existing.model_copy(
                update={**changes, "updated_by_id": self.user_id, "updated_at": now}
            )
            self.shopping_list_items[updated.id] = updated
            self.notify_change()
            return updated

        is_checked = bool(params.is_checked)
        created = ShoppingListItem(
            store_id=params.store_id,
            **changes,
            **self._check_state(is_checked, now),
            **self._audit(),
        )
        self.shopping_list_items[created.id] = created
        self.notify_change()
        return created

    def _check_state(self, is_checked: bool, now) -> dict:
        return {
            "is_checked": is_checked,
            "checked_at": now if is_checked else None,
            "checked_by": self.user_id if is_checked else None,
        }

    async def toggle_shopping_list_item_checked(
        self, store_id: str, item_id: str, is_checked: bool
    ) -> CheckConflictResult:
        """Set an entry's checked state.

        If the entry is already in the requested state because another user
        checked it, nothing changes and a conflict result is returned.
        """
        list_item = self._require_list_item(store_id, item_id)
        store_item = self.items.get(list_item.store_item_id) if list_item.store_item_id else None
        item_name = store_item.name if store_item else list_item.notes

        if (
            list_item.is_checked == is_checked
            and list_item.checked_by is not None
            and list_item.checked_by != self.user_id
        ):
            return CheckConflictResult(
                conflict=True,
                item_id=item_id,
                item_name=item_name,
                conflict_user=ConflictUser(
                    id=list_item.checked_by,
                    name=self.user_names.get(list_item.checked_by, "Another user"),
                ),
            )

        now = utcnow()
        self.shopping_list_items[item_id] = list_item.model_copy(
            update={**self._check_state(is_checked, now), **self._touch()}
        )
        self.notify_change()
        return CheckConflictResult(conflict=False, item_id=item_id, item_name=item_name)

    async def delete_shopping_list_item(self, store_id: str, item_id: str) -> None:
        """Remove the list entry and its catalog item, with every entry using it."""
        list_item = self._require_list_item(store_id, item_id)
        del self.shopping_list_items[item_id]
        if list_item.store_item_id:
            self._remove_item(list_item.store_item_id)
        self.notify_change()

    async def remove_shopping_list_item(self, store_id: str, item_id: str) -> None:
        """Remove the list entry only; the catalog item survives."""
        self._require_list_item(store_id, item_id)
        del self.shopping_list_items[item_id]
        self.notify_change()

    async def clear_checked_shopping_list_items(self, store_id: str) -> int:
        checked = [
            list_item.id
            for list_item in self.shopping_list_items.values()
            if list_item.store_id == store_id and list_item.is_checked
        ]
        for item_id in checked:
            del self.shopping_list_items[item_id]
        self.notify_change()
        return len(checked)

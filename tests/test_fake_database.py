"""Tests for the in-memory database."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from basket_sync.database import DEFAULT_TABLES_TO_PERSIST
from basket_sync.errors import ApiError, EntityNotFoundError
from basket_sync.fake_database import SAMPLE_AISLES, SAMPLE_STORE_NAME, FakeDatabase
from basket_sync.models import MOCK_USER_ID, ShoppingListItemInput, SortOrderUpdate


def run(coro):
    return asyncio.run(coro)


class TestLifecycle:
    """Tests for initialization, reset and close."""

    def test_initialize_is_idempotent(self, change_bus):
        """Repeated initialization seeds only once."""
        db = FakeDatabase(change_bus=change_bus, seed_sample_data=True)

        run(db.initialize())
        run(db.initialize())

        stores = run(db.load_all_stores())
        assert [s.name for s in stores] == [SAMPLE_STORE_NAME]
        aisles = run(db.get_aisles_by_store(stores[0].id))
        assert [a.name for a in aisles] == list(SAMPLE_AISLES)
        assert [a.sort_order for a in aisles] == list(range(len(SAMPLE_AISLES)))

    def test_quantity_units_loaded(self, fake_db):
        """The static unit table is available after initialization."""
        units = run(fake_db.load_all_quantity_units())

        assert len(units) == 14
        assert units[0].id == "unit"
        assert [u.sort_order for u in units] == sorted(u.sort_order for u in units)

    def test_default_reset_keeps_catalog(self, fake_db, store):
        """The default reset wipes only the shopping list."""
        run(fake_db.insert_item(store.id, "Milk"))
        run(fake_db.upsert_shopping_list_item(ShoppingListItemInput(store_id=store.id, name="Eggs")))

        run(fake_db.reset())

        assert run(fake_db.get_store_by_id(store.id)) is not None
        assert len(run(fake_db.get_items_by_store(store.id))) == 2
        assert run(fake_db.get_shopping_list_items(store.id)) == []

    def test_reset_cascades_to_dependents(self, fake_db, store):
        """Wiping stores wipes everything that belongs to a store."""
        aisle = run(fake_db.insert_aisle(store.id, "Dairy"))
        run(fake_db.insert_item(store.id, "Milk", aisle_id=aisle.id))
        run(fake_db.set_app_setting("theme", "dark"))

        run(fake_db.reset(["app_setting", "store_aisle", "store_item"]))

        assert run(fake_db.load_all_stores()) == []
        assert fake_db.aisles == {}
        assert fake_db.items == {}
        assert run(fake_db.get_app_setting("theme")).value == "dark"

    def test_wiping_catalog_wipes_shopping_list(self, fake_db, store):
        """List entries never outlive the items they point at."""
        run(fake_db.upsert_shopping_list_item(ShoppingListItemInput(store_id=store.id, name="Eggs")))

        run(fake_db.reset(["store", "shopping_list_item"]))

        assert fake_db.items == {}
        assert fake_db.shopping_list_items == {}

    def test_wiping_layout_clears_item_locations(self, fake_db, store):
        """Kept items drop aisles and sections that were wiped."""
        aisle = run(fake_db.insert_aisle(store.id, "Dairy"))
        section = run(fake_db.insert_section(store.id, "Cold", aisle.id))
        item = run(fake_db.insert_item(store.id, "Milk", aisle.id, section.id))

        run(fake_db.reset(["store", "store_item"]))

        kept = run(fake_db.get_item_by_id(store.id, item.id))
        assert (kept.aisle_id, kept.section_id) == (None, None)

    def test_reset_rejects_unknown_table(self, fake_db):
        """Table names are validated."""
        with pytest.raises(ValueError):
            run(fake_db.reset(["recipes"]))

    def test_default_tables_exclude_shopping_list(self):
        """The shopping list is not persisted by default."""
        assert "shopping_list_item" not in DEFAULT_TABLES_TO_PERSIST

    def test_close_marks_uninitialized(self, fake_db):
        """A closed database can be initialized again."""
        run(fake_db.close())

        assert not fake_db.is_initialized


class TestChangeNotifications:
    """Tests for change notifications."""

    def test_mutations_notify(self, fake_db, change_bus, store):
        """Every successful write notifies the bus."""
        calls = []
        change_bus.on_change(lambda: calls.append(1))

        aisle = run(fake_db.insert_aisle(store.id, "Dairy"))
        run(fake_db.update_aisle(store.id, aisle.id, "Dairy & Eggs"))
        run(fake_db.delete_aisle(store.id, aisle.id))

        assert len(calls) == 3

    def test_reads_do_not_notify(self, fake_db, change_bus, store):
        """Lookups leave the bus quiet."""
        calls = []
        change_bus.on_change(lambda: calls.append(1))

        run(fake_db.load_all_stores())
        run(fake_db.get_shopping_list_items(store.id))
        run(fake_db.search_store_items(store.id, "milk"))

        assert calls == []

    def test_failed_mutation_does_not_notify(self, fake_db, change_bus):
        """A write that raises leaves the bus quiet."""
        calls = []
        change_bus.on_change(lambda: calls.append(1))

        with pytest.raises(EntityNotFoundError):
            run(fake_db.update_store("missing", "Name"))

        assert calls == []


class TestStores:
    """Tests for store operations."""

    def test_insert_and_lookup(self, fake_db):
        """A new store can be found by id."""
        store = run(fake_db.insert_store("Aldi"))

        assert run(fake_db.get_store_by_id(store.id)) == store
        assert store.created_by_id == MOCK_USER_ID

    def test_lookup_missing_returns_none(self, fake_db):
        """Missing stores are None, not errors."""
        assert run(fake_db.get_store_by_id("missing")) is None

    def test_update_missing_raises_not_found(self, fake_db):
        """Writes to missing stores raise a 404 error."""
        with pytest.raises(ApiError) as exc_info:
            run(fake_db.update_store("missing", "Aldi"))

        assert exc_info.value.status == 404
        assert exc_info.value.is_permanent

    def test_update_validates_name(self, fake_db, store):
        """Renaming re-runs field validation."""
        with pytest.raises(ValidationError):
            run(fake_db.update_store(store.id, ""))

    def test_stores_sorted_by_name(self, fake_db):
        """Stores list alphabetically."""
        for name in ("Trader Joe's", "aldi", "Giant"):
            run(fake_db.insert_store(name))

        assert [s.name for s in run(fake_db.load_all_stores())] == [
            "aldi",
            "Giant",
            "Trader Joe's",
        ]

    def test_delete_cascades(self, fake_db, store):
        """Deleting a store deletes everything in it."""
        aisle = run(fake_db.insert_aisle(store.id, "Dairy"))
        run(fake_db.insert_section(store.id, "Milk", aisle.id))
        run(fake_db.upsert_shopping_list_item(ShoppingListItemInput(store_id=store.id, name="Milk")))

        run(fake_db.delete_store(store.id))

        assert fake_db.stores == {}
        assert fake_db.aisles == {}
        assert fake_db.sections == {}
        assert fake_db.items == {}
        assert fake_db.shopping_list_items == {}


class TestAislesAndSections:
    """Tests for store layout."""

    def test_insert_appends_dense_order(self, fake_db, store):
        """New aisles go to the end."""
        for name in ("Produce", "Dairy", "Frozen"):
            run(fake_db.insert_aisle(store.id, name))

        aisles = run(fake_db.get_aisles_by_store(store.id))
        assert [(a.name, a.sort_order) for a in aisles] == [
            ("Produce", 0),
            ("Dairy", 1),
            ("Frozen", 2),
        ]

    def test_reorder_aisles(self, fake_db, store):
        """A complete ordering is applied."""
        a, b, c = (run(fake_db.insert_aisle(store.id, n)) for n in ("A", "B", "C"))

        run(
            fake_db.reorder_aisles(
                store.id,
                [
                    SortOrderUpdate(id=c.id, sort_order=0),
                    SortOrderUpdate(id=a.id, sort_order=1),
                    SortOrderUpdate(id=b.id, sort_order=2),
                ],
            )
        )

        assert [x.name for x in run(fake_db.get_aisles_by_store(store.id))] == ["C", "A", "B"]

    def test_reorder_rejects_gaps(self, fake_db, store):
        """Orders must be dense."""
        a, b = (run(fake_db.insert_aisle(store.id, n)) for n in ("A", "B"))

        with pytest.raises(ValueError):
            run(
                fake_db.reorder_aisles(
                    store.id,
                    [SortOrderUpdate(id=a.id, sort_order=0), SortOrderUpdate(id=b.id, sort_order=2)],
                )
            )

    def test_reorder_rejects_partial_scope(self, fake_db, store):
        """Every aisle of the store must be placed."""
        a, _ = (run(fake_db.insert_aisle(store.id, n)) for n in ("A", "B"))

        with pytest.raises(ValueError):
            run(fake_db.reorder_aisles(store.id, [SortOrderUpdate(id=a.id, sort_order=0)]))

    def test_delete_aisle_compacts_and_cascades(self, fake_db, store):
        """Deleting an aisle removes its sections and keeps orders dense."""
        a, b, c = (run(fake_db.insert_aisle(store.id, n)) for n in ("A", "B", "C"))
        section = run(fake_db.insert_section(store.id, "Milk", b.id))
        item = run(fake_db.insert_item(store.id, "Whole Milk", section_id=section.id))
        other = run(fake_db.insert_item(store.id, "Butter", aisle_id=b.id))

        run(fake_db.delete_aisle(store.id, b.id))

        aisles = run(fake_db.get_aisles_by_store(store.id))
        assert [(x.name, x.sort_order) for x in aisles] == [("A", 0), ("C", 1)]
        assert run(fake_db.get_section_by_id(store.id, section.id)) is None
        assert run(fake_db.get_item_by_id(store.id, item.id)).section_id is None
        assert run(fake_db.get_item_by_id(store.id, other.id)).aisle_id is None

    def test_aisle_lookup_scoped_to_store(self, fake_db, store):
        """An aisle is not found through another store."""
        other = run(fake_db.insert_store("Other"))
        aisle = run(fake_db.insert_aisle(store.id, "Dairy"))

        assert run(fake_db.get_aisle_by_id(other.id, aisle.id)) is None

    def test_sections_ordered_per_aisle(self, fake_db, store):
        """Section orders are dense within each aisle."""
        a1 = run(fake_db.insert_aisle(store.id, "A1"))
        a2 = run(fake_db.insert_aisle(store.id, "A2"))
        s1 = run(fake_db.insert_section(store.id, "S1", a1.id))
        s2 = run(fake_db.insert_section(store.id, "S2", a2.id))
        s3 = run(fake_db.insert_section(store.id, "S3", a1.id))

        assert (s1.sort_order, s2.sort_order, s3.sort_order) == (0, 0, 1)
        sections = run(fake_db.get_sections_by_store(store.id))
        assert [s.name for s in sections] == ["S1", "S3", "S2"]

    def test_move_section_to_other_aisle(self, fake_db, store):
        """Moving a section appends it to the new aisle and compacts the old one."""
        a1 = run(fake_db.insert_aisle(store.id, "A1"))
        a2 = run(fake_db.insert_aisle(store.id, "A2"))
        s1 = run(fake_db.insert_section(store.id, "S1", a1.id))
        s2 = run(fake_db.insert_section(store.id, "S2", a1.id))
        run(fake_db.insert_section(store.id, "S3", a2.id))

        moved = run(fake_db.update_section(store.id, s1.id, "S1", a2.id))

        assert moved.aisle_id == a2.id
        assert moved.sort_order == 1
        assert run(fake_db.get_section_by_id(store.id, s2.id)).sort_order == 0

    def test_reorder_sections_per_aisle(self, fake_db, store):
        """Each aisle touched by a reorder must be fully covered."""
        aisle = run(fake_db.insert_aisle(store.id, "A"))
        s1 = run(fake_db.insert_section(store.id, "S1", aisle.id))
        s2 = run(fake_db.insert_section(store.id, "S2", aisle.id))

        run(
            fake_db.reorder_sections(
                store.id,
                [SortOrderUpdate(id=s2.id, sort_order=0), SortOrderUpdate(id=s1.id, sort_order=1)],
            )
        )

        assert [s.name for s in run(fake_db.get_sections_by_store(store.id))] == ["S2", "S1"]

    def test_insert_section_missing_aisle(self, fake_db, store):
        """Sections need an existing aisle."""
        with pytest.raises(EntityNotFoundError):
            run(fake_db.insert_section(store.id, "S", "missing"))


class TestItems:
    """Tests for catalog items."""

    def test_section_wins_over_aisle(self, fake_db, store):
        """When both are given only the section is stored."""
        aisle = run(fake_db.insert_aisle(store.id, "Dairy"))
        section = run(fake_db.insert_section(store.id, "Milk", aisle.id))

        item = run(fake_db.insert_item(store.id, "Milk", aisle_id=aisle.id, section_id=section.id))

        assert item.section_id == section.id
        assert item.aisle_id is None

    def test_update_applies_section_wins(self, fake_db, store):
        """The rule holds on update too."""
        aisle = run(fake_db.insert_aisle(store.id, "Dairy"))
        section = run(fake_db.insert_section(store.id, "Milk", aisle.id))
        item = run(fake_db.insert_item(store.id, "Milk", aisle_id=aisle.id))

        updated = run(
            fake_db.update_item(store.id, item.id, "Milk", aisle_id=aisle.id, section_id=section.id)
        )

        assert (updated.aisle_id, updated.section_id) == (None, section.id)

    def test_details_derive_aisle_through_section(self, fake_db, store):
        """Detailed items report the aisle of their section."""
        aisle = run(fake_db.insert_aisle(store.id, "Dairy"))
        section = run(fake_db.insert_section(store.id, "Milk", aisle.id))
        run(fake_db.insert_item(store.id, "Whole Milk", section_id=section.id))

        (detail,) = run(fake_db.get_items_by_store_with_details(store.id))

        assert detail.aisle_id == aisle.id
        assert detail.aisle_name == "Dairy"
        assert detail.section_name == "Milk"

    def test_name_is_normalized(self, fake_db, store):
        """The normalized name is lowercased and singular."""
        item = run(fake_db.insert_item(store.id, "Fresh Tomatoes"))

        assert item.name_norm == "fresh tomato"

    def test_get_or_create_reuses_and_counts(self, fake_db, store):
        """Case and plural variants match the same item."""
        first = run(fake_db.get_or_create_store_item_by_name(store.id, "Apple"))
        second = run(fake_db.get_or_create_store_item_by_name(store.id, "apples"))

        assert second.id == first.id
        assert first.usage_count == 0
        assert second.usage_count == 1
        assert second.last_used_at is not None

    def test_get_or_create_keeps_location_without_new_one(self, fake_db, store):
        """Reuse without a location keeps the stored one."""
        aisle = run(fake_db.insert_aisle(store.id, "Produce"))
        run(fake_db.insert_item(store.id, "Apple", aisle_id=aisle.id))

        item = run(fake_db.get_or_create_store_item_by_name(store.id, "Apple"))

        assert item.aisle_id == aisle.id

    def test_get_or_create_updates_location(self, fake_db, store):
        """A provided location replaces the stored one."""
        aisle = run(fake_db.insert_aisle(store.id, "Produce"))
        section = run(fake_db.insert_section(store.id, "Fruit", aisle.id))
        run(fake_db.insert_item(store.id, "Apple", aisle_id=aisle.id))

        item = run(
            fake_db.get_or_create_store_item_by_name(
                store.id, "Apple", aisle_id=aisle.id, section_id=section.id
            )
        )

        assert (item.aisle_id, item.section_id) == (None, section.id)

    def test_get_or_create_scoped_to_store(self, fake_db, store):
        """Items are not shared between stores."""
        other = run(fake_db.insert_store("Other"))
        first = run(fake_db.get_or_create_store_item_by_name(store.id, "Apple"))
        second = run(fake_db.get_or_create_store_item_by_name(other.id, "Apple"))

        assert first.id != second.id

    def test_toggle_favorite(self, fake_db, store):
        """Favorite flips each call."""
        item = run(fake_db.insert_item(store.id, "Milk"))

        assert run(fake_db.toggle_item_favorite(store.id, item.id)).is_favorite is True
        assert run(fake_db.toggle_item_favorite(store.id, item.id)).is_favorite is False

    def test_delete_item_removes_list_entries(self, fake_db, store):
        """List entries pointing at a deleted item go with it."""
        entry = run(
            fake_db.upsert_shopping_list_item(ShoppingListItemInput(store_id=store.id, name="Milk"))
        )

        run(fake_db.delete_item(store.id, entry.store_item_id))

        assert run(fake_db.get_shopping_list_items(store.id)) == []


class TestSearch:
    """Tests for catalog search ranking."""

    def test_ranking(self, fake_db, store):
        """Prefix matches first, then usage, recency and name."""
        now = datetime.now(timezone.utc)
        for name, usage, last_used in [
            ("Chocolate Milk", 10, now),
            ("Milk", 1, now - timedelta(days=2)),
            ("Milk Chocolate", 1, now),
            ("Oat Milk", 0, None),
            ("Almond Milk", 0, None),
            ("Bread", 50, now),
        ]:
            item = run(fake_db.insert_item(store.id, name))
            fake_db.items[item.id] = item.model_copy(
                update={"usage_count": usage, "last_used_at": last_used}
            )

        results = run(fake_db.search_store_items(store.id, "milk"))

        assert [i.name for i in results] == [
            "Milk Chocolate",
            "Milk",
            "Chocolate Milk",
            "Almond Milk",
            "Oat Milk",
        ]

    def test_search_normalizes_term(self, fake_db, store):
        """Plural search terms find singular names."""
        run(fake_db.insert_item(store.id, "Tomato"))

        assert [i.name for i in run(fake_db.search_store_items(store.id, "Tomatoes"))] == [
            "Tomato"
        ]

    def test_search_limit(self, fake_db, store):
        """At most limit results are returned."""
        for n in range(5):
            run(fake_db.insert_item(store.id, f"Apple {n}"))

        assert len(run(fake_db.search_store_items(store.id, "apple", limit=3))) == 3

    def test_search_excludes_hidden(self, fake_db, store):
        """Hidden items are not suggested."""
        item = run(fake_db.insert_item(store.id, "Milk"))
        fake_db.items[item.id] = item.model_copy(update={"is_hidden": True})

        assert run(fake_db.search_store_items(store.id, "milk")) == []


class TestShoppingList:
    """Tests for shopping list entries."""

    def test_create_by_name_creates_catalog_item(self, fake_db, store):
        """Adding by name links a catalog item."""
        entry = run(
            fake_db.upsert_shopping_list_item(
                ShoppingListItemInput(store_id=store.id, name="Bananas", qty=6)
            )
        )

        item = run(fake_db.get_item_by_id(store.id, entry.store_item_id))
        assert item.name == "Bananas"
        assert entry.qty == 6
        assert entry.is_checked is False
        assert entry.checked_at is None

    def test_create_idea_without_catalog_item(self, fake_db, store):
        """Ideas are free-form notes."""
        entry = run(
            fake_db.upsert_shopping_list_item(
                ShoppingListItemInput(store_id=store.id, notes="Something for dinner", is_idea=True)
            )
        )

        assert entry.store_item_id is None
        assert entry.is_idea is True
        assert fake_db.items == {}

    def test_partial_update_keeps_other_fields(self, fake_db, store):
        """Only provided fields change."""
        entry = run(
            fake_db.upsert_shopping_list_item(
                ShoppingListItemInput(store_id=store.id, name="Milk", qty=2, notes="2%")
            )
        )

        updated = run(
            fake_db.upsert_shopping_list_item(
                ShoppingListItemInput(id=entry.id, store_id=store.id, qty=3)
            )
        )

        assert updated.qty == 3
        assert updated.notes == "2%"
        assert updated.store_item_id == entry.store_item_id

    def test_partial_update_can_clear_field(self, fake_db, store):
        """An explicit None clears a field."""
        entry = run(
            fake_db.upsert_shopping_list_item(
                ShoppingListItemInput(store_id=store.id, name="Milk", notes="2%")
            )
        )

        updated = run(
            fake_db.upsert_shopping_list_item(
                ShoppingListItemInput(id=entry.id, store_id=store.id, notes=None)
            )
        )

        assert updated.notes is None

    def test_snooze_normalized_to_utc_midnight(self, fake_db, store):
        """Snooze dates keep only the calendar date."""
        entry = run(
            fake_db.upsert_shopping_list_item(
                ShoppingListItemInput(
                    store_id=store.id,
                    name="Milk",
                    snoozed_until="2026-01-25T14:30:00-08:00",
                )
            )
        )

        assert entry.snoozed_until == datetime(2026, 1, 25, tzinfo=timezone.utc)

    def test_update_missing_entry_raises(self, fake_db, store):
        """Updating a missing entry is a not-found error."""
        with pytest.raises(EntityNotFoundError):
            run(
                fake_db.upsert_shopping_list_item(
                    ShoppingListItemInput(id="missing", store_id=store.id, qty=1)
                )
            )

    def test_checked_at_follows_is_checked(self, fake_db, store):
        """checked_at is set exactly while the entry is checked."""
        entry = run(
            fake_db.upsert_shopping_list_item(ShoppingListItemInput(store_id=store.id, name="Milk"))
        )

        run(fake_db.toggle_shopping_list_item_checked(store.id, entry.id, True))
        checked = fake_db.shopping_list_items[entry.id]
        assert checked.is_checked and checked.checked_at is not None
        assert checked.checked_by == MOCK_USER_ID

        run(fake_db.toggle_shopping_list_item_checked(store.id, entry.id, False))
        unchecked = fake_db.shopping_list_items[entry.id]
        assert not unchecked.is_checked and unchecked.checked_at is None

        run(
            fake_db.upsert_shopping_list_item(
                ShoppingListItemInput(id=entry.id, store_id=store.id, is_checked=True)
            )
        )
        assert fake_db.shopping_list_items[entry.id].checked_at is not None

    def test_toggle_conflict_with_other_user(self, fake_db, store):
        """Checking an item someone else already checked reports a conflict."""
        fake_db.user_names = {"user-b": "Bea"}
        entry = run(
            fake_db.upsert_shopping_list_item(ShoppingListItemInput(store_id=store.id, name="Milk"))
        )
        fake_db.user_id = "user-b"
        run(fake_db.toggle_shopping_list_item_checked(store.id, entry.id, True))
        before = fake_db.shopping_list_items[entry.id]

        fake_db.user_id = MOCK_USER_ID
        result = run(fake_db.toggle_shopping_list_item_checked(store.id, entry.id, True))

        assert result.conflict is True
        assert result.item_name == "Milk"
        assert result.conflict_user.id == "user-b"
        assert result.conflict_user.name == "Bea"
        assert fake_db.shopping_list_items[entry.id] == before

    def test_toggle_without_conflict(self, fake_db, store):
        """A normal toggle reports no conflict."""
        entry = run(
            fake_db.upsert_shopping_list_item(ShoppingListItemInput(store_id=store.id, name="Milk"))
        )

        result = run(fake_db.toggle_shopping_list_item_checked(store.id, entry.id, True))

        assert result.conflict is False
        assert result.item_id == entry.id
        assert result.conflict_user is None

    def test_clear_checked_returns_count(self, fake_db, store):
        """Only checked entries are removed."""
        entries = [
            run(
                fake_db.upsert_shopping_list_item(
                    ShoppingListItemInput(store_id=store.id, name=name)
                )
            )
            for name in ("Milk", "Eggs", "Bread")
        ]
        for entry in entries[:2]:
            run(fake_db.toggle_shopping_list_item_checked(store.id, entry.id, True))

        assert run(fake_db.clear_checked_shopping_list_items(store.id)) == 2
        assert [i.item_name for i in run(fake_db.get_shopping_list_items(store.id))] == ["Bread"]

    def test_delete_removes_catalog_item(self, fake_db, store):
        """Delete takes the catalog item with it."""
        entry = run(
            fake_db.upsert_shopping_list_item(ShoppingListItemInput(store_id=store.id, name="Milk"))
        )

        run(fake_db.delete_shopping_list_item(store.id, entry.id))

        assert run(fake_db.get_item_by_id(store.id, entry.store_item_id)) is None

    def test_delete_cascades_to_entries_sharing_item(self, fake_db, store):
        """Other entries for the deleted catalog item go too."""
        item = run(fake_db.insert_item(store.id, "Milk"))
        first, second = (
            run(
                fake_db.upsert_shopping_list_item(
                    ShoppingListItemInput(store_id=store.id, store_item_id=item.id)
                )
            )
            for _ in range(2)
        )

        run(fake_db.delete_shopping_list_item(store.id, first.id))

        assert fake_db.items == {}
        assert second.id not in fake_db.shopping_list_items

    def test_update_of_missing_entry_writes_nothing(self, fake_db, store, change_bus):
        """A failed update leaves the catalog untouched and stays silent."""
        calls = []
        change_bus.on_change(lambda: calls.append(1))

        with pytest.raises(EntityNotFoundError):
            run(
                fake_db.upsert_shopping_list_item(
                    ShoppingListItemInput(store_id=store.id, id="missing", name="Bananas")
                )
            )

        assert fake_db.items == {}
        assert calls == []

    def test_remove_keeps_catalog_item(self, fake_db, store):
        """Remove leaves the catalog item for later reuse."""
        entry = run(
            fake_db.upsert_shopping_list_item(ShoppingListItemInput(store_id=store.id, name="Milk"))
        )

        run(fake_db.remove_shopping_list_item(store.id, entry.id))

        assert run(fake_db.get_item_by_id(store.id, entry.store_item_id)) is not None
        assert run(fake_db.get_shopping_list_items(store.id)) == []

    def test_list_order(self, fake_db, store):
        """Unchecked before checked, ideas first, then by aisle order."""
        first = run(fake_db.insert_aisle(store.id, "First"))
        second = run(fake_db.insert_aisle(store.id, "Second"))

        def add(name, aisle=None):
            return run(
                fake_db.upsert_shopping_list_item(
                    ShoppingListItemInput(
                        store_id=store.id, name=name, aisle_id=aisle.id if aisle else None
                    )
                )
            )

        bread = add("Bread", second)
        add("Apples", first)
        add("Zucchini")
        run(
            fake_db.upsert_shopping_list_item(
                ShoppingListItemInput(store_id=store.id, notes="Dessert?", is_idea=True)
            )
        )
        run(fake_db.toggle_shopping_list_item_checked(store.id, bread.id, True))

        names = [i.item_name or i.notes for i in run(fake_db.get_shopping_list_items(store.id))]
        assert names == ["Dessert?", "Apples", "Zucchini", "Bread"]

    def test_details_include_unit(self, fake_db, store):
        """List entries carry their unit abbreviation."""
        run(
            fake_db.upsert_shopping_list_item(
                ShoppingListItemInput(store_id=store.id, name="Flour", qty=2, unit_id="lb")
            )
        )

        (entry,) = run(fake_db.get_shopping_list_items(store.id))
        assert entry.unit_abbreviation == "lb"

"""Core data models for Basket Sync.

Attributes are snake_case in Python; the wire format (HTTP bodies and the
persisted mutation queue) is camelCase through field aliases.
"""

import random
import string
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

MOCK_USER_ID = "00000000-0000-0000-0000-000000000000"
DEFAULT_HOUSEHOLD_ID = "00000000-0000-0000-0000-000000000001"

MAX_NAME_LENGTH = 100
MAX_NOTES_LENGTH = 1000


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate a new entity ID."""
    return str(uuid4())


class WireModel(BaseModel):
    """Base for models exchanged with the backend as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self, **kwargs: Any) -> dict[str, Any]:
        """Dump to a JSON-compatible camelCase dict."""
        return self.model_dump(mode="json", by_alias=True, **kwargs)


class HttpMethod(str, Enum):
    """HTTP methods a queued mutation can be replayed with."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class AuditedModel(WireModel):
    """Fields shared by every user-editable entity."""

    created_by_id: str = MOCK_USER_ID
    updated_by_id: str = MOCK_USER_ID
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Store(AuditedModel):
    """A physical store with its own layout and shopping list."""

    id: str = Field(default_factory=new_id)
    household_id: str | None = None
    name: str = Field(min_length=1, max_length=MAX_NAME_LENGTH)
    is_hidden: bool = False


class StoreAisle(AuditedModel):
    """An aisle within a store."""

    id: str = Field(default_factory=new_id)
    store_id: str
    name: str = Field(min_length=1, max_length=MAX_NAME_LENGTH)
    sort_order: int = Field(default=0, ge=0)


class StoreSection(AuditedModel):
    """A section within an aisle."""

    id: str = Field(default_factory=new_id)
    store_id: str
    aisle_id: str
    name: str = Field(min_length=1, max_length=MAX_NAME_LENGTH)
    sort_order: int = Field(default=0, ge=0)


class StoreItem(AuditedModel):
    """A catalog item known to a store.

    Located by either aisle_id or section_id, never both: when a section is
    set the aisle is derived through the section and aisle_id stays None.
    """

    id: str = Field(default_factory=new_id)
    store_id: str
    name: str = Field(min_length=1, max_length=MAX_NAME_LENGTH)
    name_norm: str
    aisle_id: str | None = None
    section_id: str | None = None
    usage_count: int = Field(default=0, ge=0)
    last_used_at: datetime | None = None
    is_hidden: bool = False
    is_favorite: bool = False


class StoreItemWithDetails(StoreItem):
    """A catalog item joined with its resolved aisle and section."""

    aisle_name: str | None = None
    aisle_sort_order: int | None = None
    section_name: str | None = None
    section_sort_order: int | None = None


class ShoppingListItem(AuditedModel):
    """An entry on a store's shopping list."""

    id: str = Field(default_factory=new_id)
    store_id: str
    store_item_id: str | None = None
    qty: float | None = None
    unit_id: str | None = None
    notes: str | None = Field(default=None, max_length=MAX_NOTES_LENGTH)
    is_checked: bool = False
    checked_at: datetime | None = None
    checked_by: str | None = None
    is_idea: bool = False
    is_unsure: bool | None = None
    is_sample: bool | None = None
    snoozed_until: datetime | None = None


class ShoppingListItemWithDetails(ShoppingListItem):
    """A shopping list entry joined with its catalog item, unit and location."""

    item_name: str | None = None
    unit_abbreviation: str | None = None
    aisle_id: str | None = None
    section_id: str | None = None
    aisle_name: str | None = None
    aisle_sort_order: int | None = None
    section_name: str | None = None
    section_sort_order: int | None = None
    checked_by_name: str | None = None


class ShoppingListItemInput(WireModel):
    """Parameters for creating (no id) or partially updating (id) a list entry.

    Only explicitly provided fields are applied on update.
    """

    id: str | None = None
    store_id: str
    name: str | None = Field(default=None, max_length=MAX_NAME_LENGTH)
    aisle_id: str | None = None
    section_id: str | None = None
    store_item_id: str | None = None
    qty: float | None = None
    unit_id: str | None = None
    notes: str | None = Field(default=None, max_length=MAX_NOTES_LENGTH)
    is_checked: bool | None = None
    is_idea: bool | None = None
    is_unsure: bool | None = None
    is_sample: bool | None = None
    snoozed_until: datetime | None = None

    @model_validator(mode="after")
    def _check_content(self) -> "ShoppingListItemInput":
        if self.qty is not None and self.qty <= 0:
            raise ValueError("Quantity must be greater than 0.")
        if self.name is not None:
            self.name = self.name.strip()

        # Partial updates carry only the fields being changed
        if self.id is not None:
            return self

        if self.is_idea:
            if not self.notes or not self.notes.strip():
                raise ValueError("Note is required for an Idea.")
        elif not self.name and not self.store_item_id:
            raise ValueError("Name or store item reference is required.")
        return self


class SortOrderUpdate(WireModel):
    """One entry of a bulk reorder request."""

    id: str
    sort_order: int = Field(ge=0)


class ConflictUser(WireModel):
    """The collaborator who changed an item first."""

    id: str
    name: str


class CheckConflictResult(WireModel):
    """Outcome of toggling a list entry's checked state."""

    conflict: bool = False
    item_id: str | None = None
    item_name: str | None = None
    conflict_user: ConflictUser | None = None


class QuantityUnit(WireModel):
    """A unit of measure for list quantities."""

    id: str
    name: str
    abbreviation: str
    sort_order: int
    category: str


class AppSetting(WireModel):
    """A key/value application setting."""

    key: str = Field(max_length=100)
    value: str = Field(max_length=1000)
    updated_at: datetime = Field(default_factory=utcnow)


QUANTITY_UNITS: tuple[QuantityUnit, ...] = tuple(
    QuantityUnit(id=uid, name=name, abbreviation=abbr, sort_order=order, category=category)
    for order, (uid, name, abbr, category) in enumerate(
        [
            ("unit", "Unit", "unit", "count"),
            ("lb", "Pound", "lb", "weight"),
            ("oz", "Ounce", "oz", "weight"),
            ("kg", "Kilogram", "kg", "weight"),
            ("g", "Gram", "g", "weight"),
            ("gal", "Gallon", "gal", "volume"),
            ("qt", "Quart", "qt", "volume"),
            ("pt", "Pint", "pt", "volume"),
            ("cup", "Cup", "cup", "volume"),
            ("fl-oz", "Fluid Ounce", "fl oz", "volume"),
            ("tbsp", "Tablespoon", "tbsp", "volume"),
            ("tsp", "Teaspoon", "tsp", "volume"),
            ("l", "Liter", "L", "volume"),
            ("ml", "Milliliter", "mL", "volume"),
        ],
        start=1,
    )
)


def new_mutation_id() -> str:
    """Time-plus-random ID for a queued mutation."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"{int(time.time() * 1000)}-{suffix}"


class QueuedMutation(WireModel):
    """A failed write persisted for later replay."""

    id: str = Field(default_factory=new_mutation_id)
    timestamp: int = Field(default_factory=lambda: int(time.time() * 1000))
    operation: str
    endpoint: str
    method: HttpMethod
    data: Any = None
    retry_count: int = 0
    last_error: str | None = None


class ProcessResult(BaseModel):
    """Counts from one pass over the mutation queue."""

    success: int = 0
    failed: int = 0

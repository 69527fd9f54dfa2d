"""Date-only helpers for snoozed shopping list items.

A snooze date means "hidden until the start of that calendar day". It is
stored as midnight UTC of the chosen date so the comparison never shifts by
a day with the device's timezone.
"""

from collections.abc import Iterable
from datetime import date, datetime, time, timezone
from typing import TypeVar

from .models import ShoppingListItem

ItemT = TypeVar("ItemT", bound=ShoppingListItem)


def normalize_snooze_date(value: date | datetime | str) -> datetime:
    """Normalize a snooze date to midnight UTC of its calendar date.

    Time and timezone information are discarded, not converted.

    Example:
        normalize_snooze_date("2026-01-25T14:30:00-08:00")
        # datetime(2026, 1, 25, 0, 0, tzinfo=timezone.utc)
    """
    if isinstance(value, str):
        value = date.fromisoformat(value.split("T")[0])
    elif isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def is_currently_snoozed(snoozed_until: datetime | None, today: date | None = None) -> bool:
    """Check if an item is hidden because its snooze date is after today.

    An item snoozed until Jan 25 is hidden on Jan 24 and visible from Jan 25.
    """
    if snoozed_until is None:
        return False
    today = today or date.today()
    return normalize_snooze_date(snoozed_until).date() > today


def filter_snoozed(items: Iterable[ItemT], today: date | None = None) -> list[ItemT]:
    """Drop currently snoozed items, as the default list view does."""
    return [item for item in items if not is_currently_snoozed(item.snoozed_until, today)]

"""Entry ordering: manual positions, built-in timestamps or any current field."""

from __future__ import annotations

from typing import Any, List

from content_type import (
    BUILTIN_ORDER_FIELDS,
    DEFAULT_ORDER_BY,
    ORDER_MANUAL,
    ContentReferenceError,
    find_field,
)
from field_types import is_blank


class StaleOrderReference(ContentReferenceError):
    pass


def order_manually(content_type: dict) -> bool:
    return content_type.get("order_by") == ORDER_MANUAL


def _creation_order(entries: List[dict]) -> List[dict]:
    # stable: equal timestamps keep the order the store returned them in
    return sorted(entries, key=lambda e: e.get("created_at") or "")


def _sort_key(value: Any) -> tuple:
    # a retyped field can hold values of its old type next to new ones
    if isinstance(value, (bool, int, float)):
        return (0, value, "")
    if isinstance(value, str):
        return (1, 0, value)
    return (2, 0, str(value))


def _value_getter(content_type: dict):
    order_by = content_type.get("order_by") or DEFAULT_ORDER_BY
    if order_by in BUILTIN_ORDER_FIELDS:
        return lambda entry: entry.get(order_by)
    field = find_field(content_type, order_by)
    if field is None:
        raise StaleOrderReference("order_by field no longer exists", content_type.get("id"), order_by)
    field_id = field["id"]
    return lambda entry: (entry.get("values") or {}).get(field_id)


def ordered_entries(content_type: dict, entries: List[dict]) -> List[dict]:
    """Return entries in the content type's configured order.

    Manual order sorts by ``position`` and ignores the direction. Otherwise
    entries lacking a value for the ordering field come last whatever the
    direction; ties and the missing group keep creation order.

    Raises:
        StaleOrderReference: ``order_by`` names a field that was removed.
    """
    base = _creation_order(list(entries or []))
    if order_manually(content_type):
        return sorted(base, key=lambda e: e.get("position") if e.get("position") is not None else float("inf"))

    get_value = _value_getter(content_type)
    present = [e for e in base if not is_blank(get_value(e))]
    missing = [e for e in base if is_blank(get_value(e))]
    descending = (content_type.get("order_direction") or "asc") == "desc"
    present.sort(key=lambda e: _sort_key(get_value(e)), reverse=descending)
    return present + missing


def ordered_entries_or_default(content_type: dict, entries: List[dict]) -> tuple[List[dict], StaleOrderReference | None]:
    """Like ordered_entries, falling back to creation order on a stale reference.

    Returns the entries and the caught error (None when the configured
    order applied).
    """
    try:
        return ordered_entries(content_type, entries), None
    except StaleOrderReference as exc:
        fallback = dict(content_type, order_by=DEFAULT_ORDER_BY, order_direction="asc")
        return ordered_entries(fallback, entries), exc

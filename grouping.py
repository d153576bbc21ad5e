"""Group entries by the target entries of a belongs_to field."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from content_type import ContentReferenceError, find_field
from entry_projection import entry_label
from ordering import ordered_entries_or_default

logger = logging.getLogger("contype.grouping")


class InvalidGroupField(ContentReferenceError):
    pass


def group_by_belongs_to(
    content_type: dict,
    field: dict | str | None,
    entries: List[dict],
    target_type: dict,
    target_entries: List[dict],
) -> List[Dict[str, Any]]:
    """Partition entries by the referenced target entry.

    Groups follow the target content type's own order and every target gets
    a group. Entries whose reference is unset or points at a missing target
    land in a final orphan group (``key`` None), emitted only when
    non-empty. Entries keep the order they were passed in. A target type
    ordering by a removed field is grouped in creation order.

    Raises:
        InvalidGroupField: the field is not a belongs_to field of the content type.
    """
    field_id = field.get("id") if isinstance(field, dict) else field
    group_field = find_field(content_type, field_id)
    if group_field is None or group_field.get("type") != "belongs_to":
        raise InvalidGroupField("group field must be a belongs_to field", content_type.get("id"), field_id)

    buckets: Dict[str, List[dict]] = {}
    orphans: List[dict] = []
    target_ids = {t.get("id") for t in target_entries or []}
    for entry in entries or []:
        ref = (entry.get("values") or {}).get(group_field["id"])
        if ref in target_ids:
            buckets.setdefault(ref, []).append(entry)
        else:
            orphans.append(entry)

    ordered_targets, stale = ordered_entries_or_default(target_type, target_entries or [])
    if stale is not None:
        logger.warning("group_target_order_stale content_type_id=%s order_by=%s", target_type.get("id"), stale.reference)

    groups: List[Dict[str, Any]] = []
    for target in ordered_targets:
        groups.append(
            {
                "key": target,
                "name": entry_label(target_type, target),
                "entries": buckets.get(target.get("id"), []),
            }
        )
    if orphans:
        groups.append({"key": None, "name": None, "entries": orphans})
    return groups

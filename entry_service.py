"""Entries scoped to a content type: CRUD, ordered and grouped views."""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from content_type import ORDER_MANUAL, belongs_to_fields, find_field
from content_type_registry import ENTRIES, ContentTypeRegistry
from entry_projection import (
    assign_attributes,
    entry_attributes,
    entry_label,
    get_attribute,
    orphan_value_ids,
    validate_entry,
)
from field_types import is_blank
from grouping import InvalidGroupField, group_by_belongs_to
from ordering import ordered_entries_or_default


Issue = Dict[str, Any]

logger = logging.getLogger("contype.entries")

_MISSING_TARGET_TYPE = {"id": None, "fields": [], "order_by": "created_at", "order_direction": "asc"}


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def _fail(code: str, message: str, path: str | None = None) -> dict:
    return {"ok": False, "errors": [_issue(code, message, path)], "warnings": []}


def serialize_entry(content_type: dict, entry: dict) -> dict:
    return {
        "id": entry.get("id"),
        "content_type_id": entry.get("content_type_id"),
        "position": entry.get("position"),
        "created_at": entry.get("created_at"),
        "updated_at": entry.get("updated_at"),
        "label": entry_label(content_type, entry),
        "attributes": entry_attributes(content_type, entry),
    }


class EntryService:
    """Entry operations; every call reads the current content type first."""

    def __init__(self, registry: ContentTypeRegistry) -> None:
        self._registry = registry
        self._store = registry.store

    def _content_type(self, content_type_id: str) -> dict | None:
        return self._registry.get(content_type_id)

    def list(self, content_type_id: str) -> list[dict]:
        return self._store.list(ENTRIES, {"content_type_id": content_type_id})

    def get(self, content_type_id: str, entry_id: str) -> dict | None:
        entry = self._store.find(ENTRIES, entry_id)
        if not entry or entry.get("content_type_id") != content_type_id:
            return None
        return entry

    def read_attribute(self, content_type_id: str, entry_id: str, name: str) -> Any:
        """Read one attribute by its current name.

        Raises:
            UnknownAttribute: no current field has this name.
            KeyError: the content type or entry does not exist.
        """
        content_type = self._content_type(content_type_id)
        entry = self.get(content_type_id, entry_id)
        if content_type is None or entry is None:
            raise KeyError("entry not found")
        return get_attribute(content_type, entry, name)

    def _check_references(self, content_type: dict, entry: dict, previous: dict | None = None) -> List[Issue]:
        """Check references set or changed since ``previous``.

        A stored reference whose target was deleted since is left alone.
        """
        errors: List[Issue] = []
        values = entry.get("values") or {}
        before = (previous or {}).get("values") or {}
        for field in belongs_to_fields(content_type):
            ref = values.get(field["id"])
            if is_blank(ref) or (previous is not None and before.get(field["id"]) == ref):
                continue
            target_type = self._registry.resolve_class_name(content_type.get("site_id"), field.get("class_name"))
            target = self._store.find(ENTRIES, ref)
            if target_type is None or target is None or target.get("content_type_id") != target_type.get("id"):
                errors.append(_issue("UNKNOWN_REFERENCE", "does not match an entry of the target content type", field["name"]))
        return errors

    def _next_position(self, content_type_id: str) -> int:
        positions = [e.get("position") for e in self.list(content_type_id) if isinstance(e.get("position"), int)]
        return max(positions) + 1 if positions else 0

    def create(self, content_type_id: str, attrs: dict | None = None) -> dict:
        content_type = self._content_type(content_type_id)
        if content_type is None:
            return _fail("CONTENT_TYPE_NOT_FOUND", "Content type not found", "content_type_id")
        entry = {"content_type_id": content_type_id, "values": {}}
        errors = assign_attributes(content_type, entry, attrs or {})
        errors.extend(validate_entry(content_type, entry))
        errors.extend(self._check_references(content_type, entry))
        if errors:
            return {"ok": False, "errors": errors, "warnings": []}
        now = _now()
        entry["position"] = self._next_position(content_type_id)
        entry["created_at"] = now
        entry["updated_at"] = now
        entry["id"] = self._store.create(ENTRIES, entry)
        logger.info("entry_created content_type_id=%s entry_id=%s", content_type_id, entry["id"])
        return {"ok": True, "errors": [], "warnings": [], "entry": entry}

    def update(self, content_type_id: str, entry_id: str, attrs: dict | None = None) -> dict:
        content_type = self._content_type(content_type_id)
        if content_type is None:
            return _fail("CONTENT_TYPE_NOT_FOUND", "Content type not found", "content_type_id")
        entry = self.get(content_type_id, entry_id)
        if entry is None:
            return _fail("ENTRY_NOT_FOUND", "Entry not found", "entry_id")
        previous = copy.deepcopy(entry)
        errors = assign_attributes(content_type, entry, attrs or {})
        errors.extend(validate_entry(content_type, entry))
        errors.extend(self._check_references(content_type, entry, previous))
        if errors:
            return {"ok": False, "errors": errors, "warnings": []}
        entry["updated_at"] = _now()
        self._store.update(ENTRIES, entry_id, {"values": entry["values"], "updated_at": entry["updated_at"]})
        return {"ok": True, "errors": [], "warnings": [], "entry": entry}

    def delete(self, content_type_id: str, entry_id: str) -> dict:
        if self.get(content_type_id, entry_id) is None:
            return _fail("ENTRY_NOT_FOUND", "Entry not found", "entry_id")
        self._store.delete_all(ENTRIES, {"id": entry_id})
        logger.info("entry_deleted content_type_id=%s entry_id=%s", content_type_id, entry_id)
        return {"ok": True, "errors": [], "warnings": []}

    def ordered_entries(self, content_type_id: str) -> dict:
        content_type = self._content_type(content_type_id)
        if content_type is None:
            return _fail("CONTENT_TYPE_NOT_FOUND", "Content type not found", "content_type_id")
        entries, stale = ordered_entries_or_default(content_type, self.list(content_type_id))
        warnings: List[Issue] = []
        if stale is not None:
            logger.warning("order_by_stale content_type_id=%s order_by=%s", content_type_id, stale.reference)
            warnings.append(_issue("STALE_ORDER_REFERENCE", "order_by field no longer exists; using creation order", "order_by"))
        return {"ok": True, "errors": [], "warnings": warnings, "content_type": content_type, "entries": entries}

    def grouped_entries(self, content_type_id: str, field_id: str | None = None) -> dict:
        ordered = self.ordered_entries(content_type_id)
        if not ordered["ok"]:
            return ordered
        content_type = ordered["content_type"]
        field = find_field(content_type, field_id or content_type.get("group_by_field_id"))
        target_type = None
        if field is not None:
            target_type = self._registry.resolve_class_name(content_type.get("site_id"), field.get("class_name"))
        target_entries = self.list(target_type["id"]) if target_type else []
        try:
            groups = group_by_belongs_to(
                content_type,
                field,
                ordered["entries"],
                target_type or _MISSING_TARGET_TYPE,
                target_entries,
            )
        except InvalidGroupField:
            return _fail("INVALID_GROUP_FIELD", "must reference a belongs_to field", "field_id")
        return {
            "ok": True,
            "errors": [],
            "warnings": ordered["warnings"],
            "content_type": content_type,
            "target_type": target_type,
            "groups": groups,
        }

    def sort_entries(self, content_type_id: str, entry_ids: List[str]) -> dict:
        """Assign manual positions: listed entries first, the rest after in their current manual order."""
        content_type = self._content_type(content_type_id)
        if content_type is None:
            return _fail("CONTENT_TYPE_NOT_FOUND", "Content type not found", "content_type_id")
        entries, _ = ordered_entries_or_default(dict(content_type, order_by=ORDER_MANUAL), self.list(content_type_id))
        by_id = {e["id"]: e for e in entries}
        unknown = [eid for eid in entry_ids or [] if eid not in by_id]
        if unknown:
            return {
                "ok": False,
                "errors": [_issue("ENTRY_NOT_FOUND", "Entry not found", "entry_ids", {"entry_ids": unknown})],
                "warnings": [],
            }
        listed = list(dict.fromkeys(entry_ids or []))
        listed_ids = set(listed)
        final = [by_id[eid] for eid in listed] + [e for e in entries if e["id"] not in listed_ids]
        for position, entry in enumerate(final):
            if entry.get("position") != position:
                self._store.update(ENTRIES, entry["id"], {"position": position})
        return {"ok": True, "errors": [], "warnings": [], "entry_ids": [e["id"] for e in final]}

    def purge_orphan_values(self, content_type_id: str) -> dict:
        """Drop values stored under ids of fields that no longer exist.

        Never runs implicitly; orphaned values are kept until an operator
        asks for this.
        """
        content_type = self._content_type(content_type_id)
        if content_type is None:
            return _fail("CONTENT_TYPE_NOT_FOUND", "Content type not found", "content_type_id")
        purged = 0
        for entry in self.list(content_type_id):
            stale_ids = orphan_value_ids(content_type, entry)
            if not stale_ids:
                continue
            values = {k: v for k, v in (entry.get("values") or {}).items() if k not in stale_ids}
            self._store.update(ENTRIES, entry["id"], {"values": copy.deepcopy(values)})
            purged += 1
        logger.info("orphan_values_purged content_type_id=%s entries=%s", content_type_id, purged)
        return {"ok": True, "errors": [], "warnings": [], "entries_updated": purged}

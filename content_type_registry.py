"""Content type persistence: create, update with field patches, delete."""

from __future__ import annotations

import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from content_type import (
    apply_field_patches,
    belongs_to_fields,
    errors_by_path,
    new_content_type,
    order_by_issues,
    reorder_fields,
    validate_content_type,
)
from contype.schema_hash import fields_hash


Issue = Dict[str, Any]

CONTENT_TYPES = "content_types"
ENTRIES = "entries"

_UPDATABLE_KEYS = ("name", "slug", "description", "order_by", "order_direction", "group_by_field_id", "label_field_id")

logger = logging.getLogger("contype.registry")


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def _result(ok: bool, errors: List[Issue], warnings: List[Issue] | None = None, content_type: dict | None = None) -> dict:
    return {
        "ok": ok,
        "errors": errors,
        "warnings": warnings or [],
        "messages": errors_by_path(errors),
        "content_type": content_type,
    }


class ContentTypeRegistry:
    """Content types of every site, stored as one document each.

    Callers serialize writes per content type; ``expected_hash`` lets them
    detect a field list changed underneath them.
    """

    def __init__(self, store) -> None:
        self._store = store

    @property
    def store(self):
        return self._store

    def get(self, content_type_id: str) -> dict | None:
        if not content_type_id:
            return None
        return self._store.find(CONTENT_TYPES, content_type_id)

    def get_by_slug(self, site_id: str, slug: str) -> dict | None:
        return self._store.find_by(CONTENT_TYPES, {"site_id": site_id, "slug": slug})

    def list(self, site_id: str) -> list[dict]:
        return self._store.list(CONTENT_TYPES, {"site_id": site_id})

    def resolve_class_name(self, site_id: str | None, class_name: str | None) -> dict | None:
        """Find the target of a belongs_to field by id, then by slug, within the site."""
        if not class_name:
            return None
        target = self.get(class_name)
        if target and target.get("site_id") == site_id:
            return target
        return self.get_by_slug(site_id, class_name)

    def _validate(self, content_type: dict, stored: dict | None = None) -> Tuple[List[Issue], dict]:
        errors, normalized = validate_content_type(content_type)
        # an unchanged order_by may point at a since-destroyed field
        if stored is None or normalized.get("order_by") != stored.get("order_by"):
            errors.extend(order_by_issues(normalized))
        site_id = normalized.get("site_id")
        slug = normalized.get("slug")
        if site_id and slug:
            clash = self.get_by_slug(site_id, slug)
            if clash and clash.get("id") != normalized.get("id"):
                errors.append(_issue("DUPLICATE_SLUG", "is already taken", "slug"))
        for idx, field in enumerate(normalized.get("fields") or []):
            if field.get("type") != "belongs_to" or not field.get("class_name"):
                continue
            class_name = field["class_name"]
            if class_name in (normalized.get("id"), slug):
                continue
            if self.resolve_class_name(site_id, class_name) is None:
                errors.append(
                    _issue(
                        "UNKNOWN_CLASS_NAME",
                        "does not match a content type of this site",
                        f"fields[{idx}].class_name",
                        {"field_id": field.get("id")},
                    )
                )
        return errors, normalized

    def validate(self, content_type: dict) -> dict:
        errors, normalized = self._validate(content_type, self.get(content_type.get("id")))
        return _result(not errors, errors, content_type=normalized)

    def save(self, content_type: dict, expected_hash: str | None = None) -> dict:
        """Validate and persist a whole content type document.

        Nothing is written when any issue is found.
        """
        content_type_id = content_type.get("id")
        existing = self.get(content_type_id) if content_type_id else None
        if content_type_id and existing is None:
            return _result(False, [_issue("CONTENT_TYPE_NOT_FOUND", "Content type not found", "id")])
        if expected_hash and existing and existing.get("fields_hash") != expected_hash:
            return _result(
                False,
                [_issue("SCHEMA_CONFLICT", "fields changed since they were read", "fields", {"fields_hash": existing.get("fields_hash")})],
            )

        errors, normalized = self._validate(content_type, existing)
        if errors:
            logger.info(
                "content_type_invalid id=%s codes=%s",
                content_type_id,
                sorted({e["code"] for e in errors}),
            )
            return _result(False, errors, content_type=normalized)

        now = _now()
        normalized["fields_hash"] = fields_hash(normalized["fields"])
        normalized["updated_at"] = now
        if existing is None:
            normalized["id"] = str(uuid.uuid4())
            normalized["created_at"] = now
            self._store.create(CONTENT_TYPES, normalized)
        else:
            normalized["created_at"] = existing.get("created_at") or now
            self._store.update(CONTENT_TYPES, normalized["id"], normalized)
        logger.info(
            "content_type_saved id=%s slug=%s fields=%s",
            normalized["id"],
            normalized["slug"],
            len(normalized["fields"]),
        )
        return _result(True, [], content_type=copy.deepcopy(normalized))

    def create(self, site_id: str | None, attrs: dict | None = None, fields_attributes: Any = None) -> dict:
        content_type = new_content_type(site_id, attrs)
        if fields_attributes:
            content_type = apply_field_patches(content_type, fields_attributes)
        return self.save(content_type)

    def update(
        self,
        content_type_id: str,
        attrs: dict | None = None,
        fields_attributes: Any = None,
        expected_hash: str | None = None,
        field_order: List[str] | None = None,
    ) -> dict:
        """Update attributes, apply field patches and an optional field order, then save as one unit.

        ``field_order`` lists field ids to move to the front in that order;
        unlisted fields keep their relative order after them.
        """
        existing = self.get(content_type_id)
        if existing is None:
            return _result(False, [_issue("CONTENT_TYPE_NOT_FOUND", "Content type not found", "id")])
        content_type = copy.deepcopy(existing)
        for key in _UPDATABLE_KEYS:
            if attrs and key in attrs:
                content_type[key] = attrs[key]
        if fields_attributes:
            content_type = apply_field_patches(content_type, fields_attributes)
        if field_order:
            content_type = reorder_fields(content_type, field_order)
        return self.save(content_type, expected_hash=expected_hash)

    def referencing_types(self, content_type: dict) -> list[dict]:
        """Other content types with a belongs_to field targeting this one."""
        out = []
        for other in self.list(content_type.get("site_id")):
            if other.get("id") == content_type.get("id"):
                continue
            for field in belongs_to_fields(other):
                target = self.resolve_class_name(other.get("site_id"), field.get("class_name"))
                if target and target.get("id") == content_type.get("id"):
                    out.append(other)
                    break
        return out

    def delete(self, content_type_id: str, force: bool = False) -> dict:
        """Delete a content type.

        Refused while other content types reference it, and while it still
        has entries unless ``force`` deletes them first.
        """
        existing = self.get(content_type_id)
        if existing is None:
            return _result(False, [_issue("CONTENT_TYPE_NOT_FOUND", "Content type not found", "id")])
        referencing = self.referencing_types(existing)
        if referencing:
            return _result(
                False,
                [
                    _issue(
                        "CONTENT_TYPE_IN_USE",
                        "referenced by belongs_to fields of other content types",
                        "id",
                        {"content_type_ids": [ct.get("id") for ct in referencing]},
                    )
                ],
            )
        entry_count = self._store.count(ENTRIES, {"content_type_id": content_type_id})
        if entry_count and not force:
            return _result(
                False,
                [_issue("CONTENT_TYPE_HAS_ENTRIES", "delete its entries first", "id", {"entries": entry_count})],
            )
        removed = self._store.delete_all(ENTRIES, {"content_type_id": content_type_id})
        self._store.delete_all(CONTENT_TYPES, {"id": content_type_id})
        logger.info("content_type_deleted id=%s entries_removed=%s", content_type_id, removed)
        return _result(True, [], content_type=existing)

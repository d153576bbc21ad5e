"""Content type documents: validation, bulk field patches and field lookups."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Tuple

from contype.slugify import derive_slug
from field_registry import new_field_id, validate_fields


Issue = Dict[str, Any]

ORDER_MANUAL = "manual"
BUILTIN_ORDER_FIELDS = ("created_at", "updated_at")
DEFAULT_ORDER_BY = "created_at"
ORDER_DIRECTIONS = ("asc", "desc")

_PATCHABLE_KEYS = ("label", "name", "type", "class_name", "required", "hint", "select_options")
_TRUTHY = (True, 1, "1", "true", "yes", "on")


@dataclass
class ContentReferenceError(Exception):
    message: str
    content_type_id: str | None = None
    reference: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.message} (content_type={self.content_type_id!r}, reference={self.reference!r})"


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def _clean_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def errors_by_path(issues: Iterable[Issue]) -> Dict[str, List[str]]:
    """Fold issues into a ``{path: [message, ...]}`` map for form display."""
    out: Dict[str, List[str]] = {}
    for issue in issues:
        out.setdefault(issue.get("path") or "base", []).append(issue.get("message"))
    return out


def new_content_type(site_id: str | None, attrs: dict | None = None) -> dict:
    """Build a transient content type; it stays invalid until it has a field."""
    attrs = attrs or {}
    return {
        "id": None,
        "site_id": site_id,
        "name": attrs.get("name"),
        "slug": attrs.get("slug"),
        "description": attrs.get("description"),
        "order_by": attrs.get("order_by") or DEFAULT_ORDER_BY,
        "order_direction": attrs.get("order_direction") or "asc",
        "group_by_field_id": attrs.get("group_by_field_id"),
        "label_field_id": attrs.get("label_field_id"),
        "fields": copy.deepcopy(attrs.get("fields") or []),
    }


def find_field(content_type: dict, field_id: Any) -> dict | None:
    if not field_id:
        return None
    for field in content_type.get("fields") or []:
        if field.get("id") == field_id:
            return field
    return None


def field_by_name(content_type: dict, name: str) -> dict | None:
    for field in content_type.get("fields") or []:
        if field.get("name") == name:
            return field
    return None


def label_field(content_type: dict) -> dict | None:
    field = find_field(content_type, content_type.get("label_field_id"))
    if field:
        return field
    fields = content_type.get("fields") or []
    return fields[0] if fields else None


def belongs_to_fields(content_type: dict) -> List[dict]:
    return [f for f in content_type.get("fields") or [] if f.get("type") == "belongs_to"]


def order_by_issues(content_type: dict) -> List[Issue]:
    """Check that ``order_by`` names manual order, a timestamp or a current field id.

    Not part of validate_content_type: a field destroyed after being chosen
    for ordering leaves a stale reference that reads fall back from.
    """
    order_by = content_type.get("order_by")
    if order_by == ORDER_MANUAL or order_by in BUILTIN_ORDER_FIELDS or find_field(content_type, order_by):
        return []
    return [
        _issue(
            "INVALID_ORDER_BY",
            f"must be {ORDER_MANUAL!r}, one of {list(BUILTIN_ORDER_FIELDS)} or a field id",
            "order_by",
        )
    ]


def validate_content_type(content_type: dict) -> Tuple[List[Issue], dict]:
    """Validate a content type and its fields as a unit.

    Returns the issues and a normalized copy (slug derived, field names
    derived, positions renumbered). Slug uniqueness needs the store and is
    checked by the registry.
    """
    errors: List[Issue] = []
    ct = copy.deepcopy(content_type) if isinstance(content_type, dict) else {}

    ct["site_id"] = _clean_str(ct.get("site_id"))
    ct["name"] = _clean_str(ct.get("name"))
    ct["slug"] = _clean_str(ct.get("slug"))
    ct["description"] = _clean_str(ct.get("description"))
    if not ct["site_id"]:
        errors.append(_issue("MISSING_FIELD", "can't be blank", "site_id"))
    if not ct["name"]:
        errors.append(_issue("MISSING_FIELD", "can't be blank", "name"))
    if ct["slug"]:
        ct["slug"] = derive_slug(ct["slug"]) or ct["slug"]
    elif ct["name"]:
        ct["slug"] = derive_slug(ct["name"]) or None
    if not ct["slug"]:
        errors.append(_issue("MISSING_FIELD", "can't be blank", "slug"))

    ct["order_by"] = _clean_str(ct.get("order_by")) or DEFAULT_ORDER_BY
    direction = _clean_str(ct.get("order_direction")) or "asc"
    ct["order_direction"] = direction.lower()
    if ct["order_direction"] not in ORDER_DIRECTIONS:
        errors.append(_issue("INVALID_ORDER_DIRECTION", f"must be one of {list(ORDER_DIRECTIONS)}", "order_direction"))

    fields = ct.get("fields") or []
    if not fields:
        errors.append(_issue("NO_FIELDS", "At least, one field is required", "fields"))
    field_errors, ct["fields"] = validate_fields(fields)
    errors.extend(field_errors)

    ct["group_by_field_id"] = _clean_str(ct.get("group_by_field_id"))
    if ct["group_by_field_id"]:
        group_field = find_field(ct, ct["group_by_field_id"])
        if not group_field or group_field.get("type") != "belongs_to":
            errors.append(_issue("INVALID_GROUP_FIELD", "must reference a belongs_to field", "group_by_field_id"))

    ct["label_field_id"] = _clean_str(ct.get("label_field_id"))
    if ct["label_field_id"] and not find_field(ct, ct["label_field_id"]):
        errors.append(_issue("INVALID_LABEL_FIELD", "must reference a field of this content type", "label_field_id"))

    return errors, ct


def _patch_sort_key(key: Any) -> tuple:
    try:
        return (0, int(key), "")
    except (TypeError, ValueError):
        return (1, 0, str(key))


def _ordered_patches(patches: Any) -> List[dict]:
    if isinstance(patches, list):
        items = list(enumerate(patches))
    elif isinstance(patches, dict):
        items = list(patches.items())
    else:
        return []
    items.sort(key=lambda item: _patch_sort_key(item[0]))
    return [patch for _, patch in items if isinstance(patch, dict)]


def _assign(field: dict, patch: dict) -> None:
    for key in _PATCHABLE_KEYS:
        if key in patch:
            field[key] = copy.deepcopy(patch[key])


def apply_field_patches(content_type: dict, patches: Any) -> dict:
    """Apply keyed field patches and return the patched copy.

    Patches are processed in numeric key order. A patch whose ``id`` (or
    ``_id``) names an existing field updates or destroys it; any other
    patch appends a new field. The result keeps surviving fields in their
    existing order followed by new fields in patch order. Nothing is
    validated here; the caller validates the final set as one unit.
    """
    updated = copy.deepcopy(content_type)
    fields = updated.get("fields") or []
    for field in fields:
        if not field.get("id"):
            field["id"] = new_field_id()
    by_id = {field["id"]: field for field in fields}
    destroyed: set[str] = set()
    appended: List[dict] = []

    for patch in _ordered_patches(patches):
        field_id = _clean_str(patch.get("id") or patch.get("_id"))
        destroy = patch.get("destroy", patch.get("_destroy")) in _TRUTHY
        target = by_id.get(field_id) if field_id else None
        if target is not None:
            if target["id"] in destroyed:
                continue
            if destroy:
                destroyed.add(target["id"])
            else:
                _assign(target, patch)
            continue
        if destroy:
            continue
        new_field = {"id": new_field_id()}
        _assign(new_field, patch)
        appended.append(new_field)

    final = [field for field in fields if field["id"] not in destroyed] + appended
    for idx, field in enumerate(final):
        field["position"] = idx
    updated["fields"] = final
    if updated.get("group_by_field_id") in destroyed:
        updated["group_by_field_id"] = None
    if updated.get("label_field_id") in destroyed:
        updated["label_field_id"] = None
    return updated


def reorder_fields(content_type: dict, field_ids: List[str]) -> dict:
    """Move the listed fields to the front in the given order; others keep their order after them."""
    updated = copy.deepcopy(content_type)
    fields = updated.get("fields") or []
    by_id = {field.get("id"): field for field in fields}
    front = [by_id[fid] for fid in dict.fromkeys(field_ids or []) if fid in by_id]
    front_ids = {field.get("id") for field in front}
    rest = [field for field in fields if field.get("id") not in front_ids]
    final = front + rest
    for idx, field in enumerate(final):
        field["position"] = idx
    updated["fields"] = final
    return updated

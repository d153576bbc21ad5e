"""Name-based attribute access over entries whose values are keyed by field id.

Every call resolves names against the content type it is given, so the
accessible attributes always follow the current field set. Values stored
under the id of a removed field stay in ``entry["values"]`` but can no
longer be reached by name.
"""

from __future__ import annotations

from typing import Any, Dict, List

from content_type import ContentReferenceError, label_field
from field_types import TypeMismatch, coerce_value, is_blank


Issue = Dict[str, Any]


class UnknownAttribute(ContentReferenceError):
    pass


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def resolution_table(content_type: dict) -> Dict[str, dict]:
    """Map each current field name to its field definition."""
    return {f["name"]: f for f in content_type.get("fields") or [] if f.get("name")}


def _resolve(content_type: dict, name: str) -> dict:
    field = resolution_table(content_type).get(name)
    if field is None:
        raise UnknownAttribute(f"unknown attribute {name!r}", content_type.get("id"), name)
    return field


def get_attribute(content_type: dict, entry: dict, name: str) -> Any:
    field = _resolve(content_type, name)
    return (entry.get("values") or {}).get(field["id"])


def set_attribute(content_type: dict, entry: dict, name: str, value: Any) -> None:
    """Coerce and store a value by attribute name.

    Raises:
        UnknownAttribute: no current field has this name.
        TypeMismatch: the value does not fit the field type.
    """
    field = _resolve(content_type, name)
    entry.setdefault("values", {})[field["id"]] = coerce_value(field, value)


def entry_attributes(content_type: dict, entry: dict) -> Dict[str, Any]:
    values = entry.get("values") or {}
    return {f["name"]: values.get(f["id"]) for f in content_type.get("fields") or [] if f.get("name")}


def assign_attributes(content_type: dict, entry: dict, attrs: dict) -> List[Issue]:
    """Set several attributes, collecting issues instead of raising."""
    errors: List[Issue] = []
    if not isinstance(attrs, dict):
        return [_issue("INVALID_PAYLOAD", "Entry attributes must be an object")]
    for name, value in attrs.items():
        try:
            set_attribute(content_type, entry, name, value)
        except UnknownAttribute:
            errors.append(_issue("UNKNOWN_ATTRIBUTE", f"Unknown attribute: {name}", path=name))
        except TypeMismatch as exc:
            errors.append(exc.issue)
    return errors


def validate_entry(content_type: dict, entry: dict) -> List[Issue]:
    errors: List[Issue] = []
    values = entry.get("values") or {}
    for field in content_type.get("fields") or []:
        if field.get("required") and is_blank(values.get(field["id"])):
            errors.append(_issue("REQUIRED_FIELD", "can't be blank", field.get("name"), {"field_id": field["id"]}))
    return errors


def entry_label(content_type: dict, entry: dict) -> Any:
    field = label_field(content_type)
    if not field:
        return None
    return (entry.get("values") or {}).get(field["id"])


def orphan_value_ids(content_type: dict, entry: dict) -> List[str]:
    current = {f.get("id") for f in content_type.get("fields") or []}
    return [fid for fid in (entry.get("values") or {}) if fid not in current]

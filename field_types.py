"""Field types and value coercion for entry values."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict


Issue = Dict[str, Any]

FIELD_TYPES = ("string", "text", "boolean", "date", "integer", "float", "select", "belongs_to")

_TRUE_STRINGS = ("true", "yes", "1", "on")
_FALSE_STRINGS = ("false", "no", "0", "off")


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


class TypeMismatch(ValueError):
    """Raised when a value cannot be coerced to its field's type."""

    def __init__(self, field: dict, value: Any, expected: str) -> None:
        name = field.get("name")
        self.issue = _issue(
            "TYPE_MISMATCH",
            f"{name} must be {expected}",
            path=name,
            detail={"field_id": field.get("id"), "type": field.get("type"), "value": repr(value)},
        )
        super().__init__(self.issue["message"])


def is_known_type(value: Any) -> bool:
    return isinstance(value, str) and value in FIELD_TYPES


def is_blank(value: Any) -> bool:
    return value is None or value == ""


def _coerce_date(field: dict, value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()).isoformat()
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00")).date().isoformat()
        except ValueError as exc:
            raise TypeMismatch(field, value, "a date (YYYY-MM-DD)") from exc
    raise TypeMismatch(field, value, "a date (YYYY-MM-DD)")


def _coerce_boolean(field: dict, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lower = value.strip().lower()
        if lower in _TRUE_STRINGS:
            return True
        if lower in _FALSE_STRINGS:
            return False
    raise TypeMismatch(field, value, "a boolean")


def _coerce_integer(field: dict, value: Any) -> int:
    if isinstance(value, bool):
        raise TypeMismatch(field, value, "an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as exc:
            raise TypeMismatch(field, value, "an integer") from exc
    raise TypeMismatch(field, value, "an integer")


def _coerce_float(field: dict, value: Any) -> float:
    if isinstance(value, bool):
        raise TypeMismatch(field, value, "a number")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError as exc:
            raise TypeMismatch(field, value, "a number") from exc
    raise TypeMismatch(field, value, "a number")


def _coerce_reference(field: dict, value: Any) -> str:
    # an entry document may be passed instead of its id
    if isinstance(value, dict):
        value = value.get("id")
    if isinstance(value, str) and value.strip():
        return value.strip()
    raise TypeMismatch(field, value, "an entry id")


def coerce_value(field: dict, value: Any) -> Any:
    """Coerce a value to the storage form of the field's type.

    Blank values are stored as None. Dates are stored as ISO strings so
    that they order correctly and survive JSON persistence.

    Raises:
        TypeMismatch: if the value cannot be coerced.
    """
    if is_blank(value):
        return None
    ftype = field.get("type")
    if ftype in ("string", "text"):
        if isinstance(value, str):
            return value
        raise TypeMismatch(field, value, "a string")
    if ftype == "boolean":
        return _coerce_boolean(field, value)
    if ftype == "date":
        return _coerce_date(field, value)
    if ftype == "integer":
        return _coerce_integer(field, value)
    if ftype == "float":
        return _coerce_float(field, value)
    if ftype == "select":
        options = field.get("select_options") or []
        if value not in options:
            raise TypeMismatch(field, value, f"one of {options}")
        return value
    if ftype == "belongs_to":
        return _coerce_reference(field, value)
    raise TypeMismatch(field, value, f"a known type (got {ftype!r})")

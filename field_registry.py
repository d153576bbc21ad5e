"""Field definition validation: labels, derived names, types and reserved names."""

from __future__ import annotations

import copy
import re
import uuid
from typing import Any, Dict, List, Tuple

from contype.slugify import derive_field_name, unique_name
from field_types import FIELD_TYPES, is_known_type


Issue = Dict[str, Any]

# entry document keys; a field named like one of them would shadow it
RESERVED_NAMES = frozenset({"id", "created_at", "updated_at", "position", "values", "content_type_id", "manual"})

_NAME_RE = re.compile(r"^[a-z_][a-z0-9_]*$")


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def _join(prefix: str | None, attr: str) -> str:
    return f"{prefix}.{attr}" if prefix else attr


def _clean_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def new_field_id() -> str:
    return str(uuid.uuid4())


def normalize_field(candidate: dict) -> dict:
    """Return a copy of a field candidate with stripped strings and defaults.

    A blank name is kept blank here; derivation needs the sibling fields.
    """
    field = copy.deepcopy(candidate) if isinstance(candidate, dict) else {}
    field.pop("_id", None)
    field.pop("_destroy", None)
    field.pop("destroy", None)
    field["id"] = _clean_str(candidate.get("id") or candidate.get("_id")) if isinstance(candidate, dict) else None
    if not field["id"]:
        field["id"] = new_field_id()
    field["label"] = _clean_str(field.get("label"))
    field["name"] = _clean_str(field.get("name"))
    field["type"] = _clean_str(field.get("type"))
    field["hint"] = _clean_str(field.get("hint"))
    field["required"] = bool(field.get("required"))
    if field["type"] == "belongs_to":
        field["class_name"] = _clean_str(field.get("class_name"))
    else:
        field["class_name"] = None
    if field["type"] == "select":
        options = field.get("select_options")
        field["select_options"] = [str(opt).strip() for opt in options if _clean_str(opt)] if isinstance(options, list) else []
    else:
        field["select_options"] = None
    return field


def _names(fields: List[dict]) -> List[str]:
    return [f.get("name") for f in fields if isinstance(f, dict) and f.get("name")]


def validate_field(candidate: dict, existing_fields: List[dict], path: str | None = None) -> Tuple[List[Issue], dict]:
    """Validate one field against the fields already in its content type.

    Labels are compared case-sensitively after stripping surrounding
    whitespace. Returns the issues found and the normalized field, whose
    name is derived from its label when it was blank.
    """
    errors: List[Issue] = []
    field = normalize_field(candidate)
    others = [f for f in existing_fields or [] if isinstance(f, dict) and f.get("id") != field["id"]]
    detail = {"field_id": field["id"]}

    def _add(code: str, message: str, attr: str) -> None:
        errors.append(_issue(code, message, _join(path, attr), dict(detail)))

    label = field["label"]
    if not label:
        _add("MISSING_LABEL", "can't be blank", "label")
    elif label in {f.get("label") for f in others}:
        _add("DUPLICATE_LABEL", "is already taken", "label")

    ftype = field["type"]
    if not ftype:
        _add("MISSING_TYPE", "can't be blank", "type")
    elif not is_known_type(ftype):
        _add("UNKNOWN_TYPE", f"must be one of {list(FIELD_TYPES)}", "type")

    explicit = field["name"] is not None
    if not explicit and label:
        field["name"] = unique_name(derive_field_name(label), _names(others))
    name = field["name"]
    if name:
        if explicit and not _NAME_RE.match(name):
            _add("INVALID_NAME", "must start with a letter or underscore and contain only a-z, 0-9 and _", "name")
        if name in RESERVED_NAMES:
            _add("RESERVED_NAME", "is reserved", "name")
        elif name in _names(others):
            _add("DUPLICATE_NAME", "is already taken", "name")

    if ftype == "belongs_to" and not field["class_name"]:
        _add("MISSING_CLASS_NAME", "can't be blank for a belongs_to field", "class_name")
    if ftype == "select" and not field["select_options"]:
        _add("MISSING_SELECT_OPTIONS", "at least one option is required", "select_options")

    return errors, field


def validate_fields(fields: List[dict], path: str = "fields") -> Tuple[List[Issue], List[dict]]:
    """Validate a whole field list as one unit.

    Explicit names are claimed first, then blank names are derived in list
    order, so a derived name never steals an explicit one. Duplicates are
    reported on the later field only.
    """
    normalized = [normalize_field(f) for f in fields or []]
    claimed = _names(normalized)
    for field in normalized:
        if field["name"] is None and field["label"]:
            field["name"] = unique_name(derive_field_name(field["label"]), claimed)
            claimed.append(field["name"])

    errors: List[Issue] = []
    validated: List[dict] = []
    for idx, field in enumerate(normalized):
        field_errors, clean = validate_field(field, normalized[:idx], path=f"{path}[{idx}]")
        clean["position"] = idx
        errors.extend(field_errors)
        validated.append(clean)
    return errors, validated

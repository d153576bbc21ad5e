"""Field list hashing for optimistic content type saves."""

from __future__ import annotations

import hashlib
from typing import Any

from .canonical_json import canonical_dumps


_HASHED_KEYS = ("id", "name", "label", "type", "class_name", "position", "required", "hint", "select_options")


def fields_hash(fields: Any) -> str:
    """Return the canonical SHA-256 hash of a content type's field list.

    Only the persisted field attributes take part, so transient keys added
    by callers never change the hash.
    """
    shaped = []
    for field in fields or []:
        if isinstance(field, dict):
            shaped.append({key: field.get(key) for key in _HASHED_KEYS})
    data = canonical_dumps(shaped).encode("utf-8")
    digest = hashlib.sha256(data).hexdigest()
    return f"sha256:{digest}"

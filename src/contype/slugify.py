"""Deterministic name and slug derivation."""

from __future__ import annotations

import re
import unicodedata
from typing import Iterable


_FALLBACK_NAME = "field"


def _ascii(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value)
    return normalized.encode("ascii", "ignore").decode("ascii")


def derive_field_name(label: str | None) -> str:
    """Turn a label into an identifier token.

    "Active at" -> "active_at", "My Title !" -> "my_title", "2nd" -> "_2nd".
    """
    name = _ascii(str(label or "")).lower().strip()
    name = re.sub(r"[\s\-]+", "_", name)
    name = re.sub(r"[^a-z0-9_]", "", name)
    name = re.sub(r"_+", "_", name).strip("_")
    if not name:
        return _FALLBACK_NAME
    if name[0].isdigit():
        name = f"_{name}"
    return name


def derive_slug(value: str | None) -> str:
    """Turn a content type name into a URL slug ("Blog Posts" -> "blog-posts")."""
    slug = _ascii(str(value or "")).lower()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def unique_name(base: str, taken: Iterable[str]) -> str:
    taken_set = set(taken)
    if base not in taken_set:
        return base
    suffix = 2
    while f"{base}_{suffix}" in taken_set:
        suffix += 1
    return f"{base}_{suffix}"

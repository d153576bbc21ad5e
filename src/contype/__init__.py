"""contype kernel utilities."""

from .canonical_json import CanonicalJsonTypeError, canonical_dumps
from .schema_hash import fields_hash
from .slugify import derive_field_name, derive_slug, unique_name

__all__ = [
    "CanonicalJsonTypeError",
    "canonical_dumps",
    "derive_field_name",
    "derive_slug",
    "fields_hash",
    "unique_name",
]

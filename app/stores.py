"""In-memory document store."""

from __future__ import annotations

import copy
import uuid
from typing import Any, Dict, List


def _matches(doc: dict, filters: dict | None) -> bool:
    if not filters:
        return True
    for key, value in filters.items():
        if doc.get(key) != value:
            return False
    return True


class MemoryDocumentStore:
    """Collections of JSON documents keyed by id, listed in insertion order.

    Documents go in and come out as deep copies so callers always work on
    a snapshot.
    """

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, dict]] = {}

    def _bucket(self, collection: str) -> Dict[str, dict]:
        return self._collections.setdefault(collection, {})

    def create(self, collection: str, doc: dict) -> str:
        doc_id = str(doc.get("id") or uuid.uuid4())
        record = copy.deepcopy(doc)
        record["id"] = doc_id
        self._bucket(collection)[doc_id] = record
        return doc_id

    def find(self, collection: str, doc_id: str) -> dict | None:
        doc = self._bucket(collection).get(doc_id)
        return copy.deepcopy(doc) if doc else None

    def find_by(self, collection: str, filters: dict | None = None) -> dict | None:
        for doc in self._bucket(collection).values():
            if _matches(doc, filters):
                return copy.deepcopy(doc)
        return None

    def update(self, collection: str, doc_id: str, patch: dict) -> bool:
        bucket = self._bucket(collection)
        if doc_id not in bucket:
            raise KeyError("document not found")
        record = copy.deepcopy(bucket[doc_id])
        record.update(copy.deepcopy(patch))
        record["id"] = doc_id
        bucket[doc_id] = record
        return True

    def delete_all(self, collection: str, filters: dict | None = None) -> int:
        bucket = self._bucket(collection)
        doomed = [doc_id for doc_id, doc in bucket.items() if _matches(doc, filters)]
        for doc_id in doomed:
            del bucket[doc_id]
        return len(doomed)

    def list(self, collection: str, filters: dict | None = None) -> List[dict]:
        return [copy.deepcopy(doc) for doc in self._bucket(collection).values() if _matches(doc, filters)]

    def count(self, collection: str, filters: dict | None = None) -> int:
        return sum(1 for doc in self._bucket(collection).values() if _matches(doc, filters))


def make_store(use_db: bool) -> Any:
    if use_db:
        from app.stores_db import DbDocumentStore

        return DbDocumentStore()
    return MemoryDocumentStore()

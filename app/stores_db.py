"""Postgres-backed document store (one JSONB table for every collection)."""

from __future__ import annotations

import copy
import logging
import uuid
from typing import List

from psycopg2.extras import Json

from app.db import execute, fetch_all, fetch_one, get_conn

logger = logging.getLogger("contype.db")

_TABLE = "contype_documents"
_SCHEMA_SQL = f"""
create table if not exists {_TABLE} (
    seq bigserial,
    collection text not null,
    id text not null,
    data jsonb not null,
    created_at timestamptz not null default now(),
    primary key (collection, id)
);
create index if not exists {_TABLE}_data_gin on {_TABLE} using gin (data jsonb_path_ops);
"""


def _filter_clause(filters: dict | None) -> tuple[str, list]:
    if not filters:
        return "", []
    # equality on top-level keys maps onto jsonb containment
    return " and data @> %s::jsonb", [Json(filters)]


class DbDocumentStore:
    def __init__(self) -> None:
        self._schema_ready = False

    def _ensure_schema(self, conn) -> None:
        if self._schema_ready:
            return
        execute(conn, _SCHEMA_SQL, query_name="documents.ensure_schema")
        self._schema_ready = True
        logger.info("documents_table_ready table=%s", _TABLE)

    def create(self, collection: str, doc: dict) -> str:
        doc_id = str(doc.get("id") or uuid.uuid4())
        record = copy.deepcopy(doc)
        record["id"] = doc_id
        with get_conn() as conn:
            self._ensure_schema(conn)
            execute(
                conn,
                f"insert into {_TABLE} (collection, id, data) values (%s, %s, %s::jsonb)",
                [collection, doc_id, Json(record)],
                query_name="documents.create",
            )
        return doc_id

    def find(self, collection: str, doc_id: str) -> dict | None:
        with get_conn() as conn:
            self._ensure_schema(conn)
            row = fetch_one(
                conn,
                f"select data from {_TABLE} where collection=%s and id=%s",
                [collection, doc_id],
                query_name="documents.find",
            )
        return row.get("data") if row else None

    def find_by(self, collection: str, filters: dict | None = None) -> dict | None:
        clause, params = _filter_clause(filters)
        with get_conn() as conn:
            self._ensure_schema(conn)
            row = fetch_one(
                conn,
                f"select data from {_TABLE} where collection=%s{clause} order by seq limit 1",
                [collection, *params],
                query_name="documents.find_by",
            )
        return row.get("data") if row else None

    def update(self, collection: str, doc_id: str, patch: dict) -> bool:
        record = copy.deepcopy(patch)
        record["id"] = doc_id
        with get_conn() as conn:
            self._ensure_schema(conn)
            count = execute(
                conn,
                f"update {_TABLE} set data = data || %s::jsonb where collection=%s and id=%s",
                [Json(record), collection, doc_id],
                query_name="documents.update",
            )
        if not count:
            raise KeyError("document not found")
        return True

    def delete_all(self, collection: str, filters: dict | None = None) -> int:
        clause, params = _filter_clause(filters)
        with get_conn() as conn:
            self._ensure_schema(conn)
            return execute(
                conn,
                f"delete from {_TABLE} where collection=%s{clause}",
                [collection, *params],
                query_name="documents.delete_all",
            )

    def list(self, collection: str, filters: dict | None = None) -> List[dict]:
        clause, params = _filter_clause(filters)
        with get_conn() as conn:
            self._ensure_schema(conn)
            rows = fetch_all(
                conn,
                f"select data from {_TABLE} where collection=%s{clause} order by seq",
                [collection, *params],
                query_name="documents.list",
            )
        return [row.get("data") for row in rows]

    def count(self, collection: str, filters: dict | None = None) -> int:
        clause, params = _filter_clause(filters)
        with get_conn() as conn:
            self._ensure_schema(conn)
            row = fetch_one(
                conn,
                f"select count(*) as n from {_TABLE} where collection=%s{clause}",
                [collection, *params],
                query_name="documents.count",
            )
        return int(row.get("n") or 0) if row else 0

"""Postgres connection pool and query helpers."""

from __future__ import annotations

import contextvars
import logging
import os
import threading
import time
from contextlib import contextmanager
from typing import Any, Iterable

import psycopg2.extras
from psycopg2.pool import SimpleConnectionPool


_logger = logging.getLogger("contype.db")
_query_logger = logging.getLogger("contype.db.query")

_SLOW_MS = float(os.getenv("CONTYPE_QUERY_SLOW_MS", "200"))
_LOG_ALL = os.getenv("CONTYPE_QUERY_LOG", "").strip() == "1"
_PARAM_PREVIEW = 80

_pool: SimpleConnectionPool | None = None
_pool_lock = threading.Lock()
_queries_run: contextvars.ContextVar[int] = contextvars.ContextVar("contype_queries_run", default=0)


def get_db_url() -> str:
    dsn = os.getenv("DATABASE_URL", "").strip()
    if not dsn:
        raise RuntimeError("DATABASE_URL must be set when USE_DB=1")
    return dsn


def _describe_param(value: Any) -> Any:
    # document payloads are never logged
    if isinstance(value, psycopg2.extras.Json):
        return "<json>"
    if isinstance(value, str) and len(value) > _PARAM_PREVIEW:
        return value[:40] + "..." + value[-10:]
    return value


def _log_query(query_name: str | None, params: Iterable[Any] | None, elapsed_ms: float, rowcount: int | None) -> None:
    _queries_run.set(_queries_run.get() + 1)
    slow = elapsed_ms >= _SLOW_MS
    if not (slow or _LOG_ALL):
        return
    described = None if params is None else [_describe_param(p) for p in params]
    level = logging.WARNING if slow else logging.INFO
    _query_logger.log(
        level,
        "db_query name=%s ms=%.2f rows=%s slow=%s params=%s",
        query_name or "unnamed",
        elapsed_ms,
        rowcount,
        slow,
        described,
    )


def reset_query_count() -> None:
    _queries_run.set(0)


def get_query_count() -> int:
    return _queries_run.get()


def init_pool(minconn: int | None = None, maxconn: int | None = None) -> SimpleConnectionPool:
    """Create the shared pool once; later calls return the existing one."""
    global _pool
    with _pool_lock:
        if _pool is None:
            low = minconn if minconn is not None else int(os.getenv("CONTYPE_DB_POOL_MIN", "1"))
            high = maxconn if maxconn is not None else int(os.getenv("CONTYPE_DB_POOL_MAX", "10"))
            _pool = SimpleConnectionPool(low, high, dsn=get_db_url())
            _logger.info("db_pool_ready min=%s max=%s", low, high)
        return _pool


@contextmanager
def get_conn():
    """Borrow a pooled connection; commit on success, roll back on error."""
    pool = _pool or init_pool()
    conn = pool.getconn()
    try:
        yield conn
    except Exception:
        conn.rollback()
        raise
    else:
        conn.commit()
    finally:
        pool.putconn(conn)


def _run(conn, sql: str, params: Iterable[Any] | None, query_name: str | None, fetch: str | None):
    started = time.perf_counter()
    cursor_factory = psycopg2.extras.RealDictCursor if fetch else None
    with conn.cursor(cursor_factory=cursor_factory) as cur:
        cur.execute(sql, params or [])
        if fetch == "one":
            row = cur.fetchone()
            out = dict(row) if row else None
        elif fetch == "all":
            out = [dict(r) for r in cur.fetchall()]
        else:
            out = cur.rowcount
        affected = cur.rowcount
    _log_query(query_name, params, (time.perf_counter() - started) * 1000, affected)
    return out


def fetch_one(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> dict | None:
    return _run(conn, sql, params, query_name, "one")


def fetch_all(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> list[dict]:
    return _run(conn, sql, params, query_name, "all")


def execute(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> int:
    """Run a statement and return the affected row count."""
    return _run(conn, sql, params, query_name, None)

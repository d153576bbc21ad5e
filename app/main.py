"""FastAPI app exposing content types and their entries."""

from __future__ import annotations

import logging
import os
import re
import sys
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

ROOT = Path(__file__).resolve().parents[1]
for _path in (ROOT / "src", ROOT):
    if str(_path) not in sys.path:
        sys.path.insert(0, str(_path))


def _load_env_file(path: Path) -> None:
    """Fill os.environ from KEY=VALUE lines; variables already set win."""
    if not path.is_file():
        return
    for raw in path.read_text(encoding="utf-8").splitlines():
        key, sep, value = raw.strip().partition("=")
        key = key.strip()
        if not sep or not key or key.startswith("#"):
            continue
        os.environ.setdefault(key, value.strip().strip("'\""))


_load_env_file(ROOT / "app" / ".env")

from app.stores import make_store
from content_type import errors_by_path
from content_type_registry import ContentTypeRegistry
from entry_projection import UnknownAttribute
from entry_service import EntryService, serialize_entry


app = FastAPI(title="contype")
logger = logging.getLogger("contype")
logging.basicConfig(level=logging.INFO)

USE_DB = os.getenv("USE_DB", "").strip() == "1"
APP_ENV = (os.getenv("APP_ENV") or os.getenv("ENV") or "dev").strip().lower()
_DEV_ORIGIN = re.compile(r"^http://(localhost|127\.0\.0\.1):\d+$")
_CORS_ORIGINS = frozenset(
    origin.strip().rstrip("/") for origin in os.getenv("CONTYPE_CORS_ORIGINS", "").split(",") if origin.strip()
)

store = make_store(USE_DB)
registry = ContentTypeRegistry(store)
entries = EntryService(registry)
logger.info("contype_started env=%s use_db=%s", APP_ENV, USE_DB)


def _cors_allowed(origin: str | None) -> bool:
    if not origin:
        return False
    origin = origin.rstrip("/")
    return origin in _CORS_ORIGINS or bool(_DEV_ORIGIN.match(origin))


@app.middleware("http")
async def cors_middleware(request: Request, call_next):
    origin = request.headers.get("origin")
    response = JSONResponse({}) if request.method == "OPTIONS" else await call_next(request)
    if _cors_allowed(origin):
        for header, value in (
            ("Access-Control-Allow-Origin", origin),
            ("Access-Control-Allow-Headers", "*"),
            ("Access-Control-Allow-Methods", "*"),
            ("Vary", "Origin"),
        ):
            response.headers.setdefault(header, value)
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=sorted(_CORS_ORIGINS),
    allow_origin_regex=r"http://localhost:\d+|http://127\.0\.0\.1:\d+",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _json(body: dict, status: int) -> JSONResponse:
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _error_response(code: str, message: str, path: str | None = None, detail: dict | None = None, status: int = 400) -> JSONResponse:
    issue = {"code": code, "message": message, "path": path, "detail": detail}
    return _json({"ok": False, "errors": [issue], "warnings": [], "messages": errors_by_path([issue])}, status)


def _ok_response(payload: dict, warnings: list | None = None, status: int = 200) -> JSONResponse:
    return _json({"ok": True, **payload, "errors": [], "warnings": warnings or []}, status)


def _result_response(result: dict, payload: dict | None = None, status: int = 200) -> JSONResponse:
    if result.get("ok"):
        return _ok_response(payload or {}, warnings=result.get("warnings"), status=status)
    errors = result.get("errors") or []
    codes = {str(e.get("code") or "") for e in errors}
    if "SCHEMA_CONFLICT" in codes:
        status = 409
    elif any(code.endswith("_NOT_FOUND") for code in codes):
        status = 404
    else:
        status = 400
    body = {"ok": False, "errors": errors, "warnings": result.get("warnings") or [], "messages": errors_by_path(errors)}
    return _json(body, status)


async def _body(request: Request) -> dict:
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    return payload if isinstance(payload, dict) else {}


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.get("/sites/{site_id}/content_types")
async def list_content_types(site_id: str):
    return _ok_response({"content_types": registry.list(site_id)})


@app.post("/sites/{site_id}/content_types")
async def create_content_type(request: Request, site_id: str):
    body = await _body(request)
    attrs = body.get("content_type") if isinstance(body.get("content_type"), dict) else {}
    result = registry.create(site_id, attrs, body.get("fields_attributes"))
    return _result_response(result, {"content_type": result.get("content_type")}, status=201)


@app.get("/content_types/{content_type_id}")
async def get_content_type(content_type_id: str):
    content_type = registry.get(content_type_id)
    if not content_type:
        return _error_response("CONTENT_TYPE_NOT_FOUND", "Content type not found", "content_type_id", status=404)
    return _ok_response({"content_type": content_type})


@app.put("/content_types/{content_type_id}")
async def update_content_type(request: Request, content_type_id: str):
    body = await _body(request)
    attrs = body.get("content_type") if isinstance(body.get("content_type"), dict) else {}
    result = registry.update(
        content_type_id,
        attrs,
        body.get("fields_attributes"),
        expected_hash=body.get("expected_hash"),
        field_order=body.get("field_order") if isinstance(body.get("field_order"), list) else None,
    )
    return _result_response(result, {"content_type": result.get("content_type")})


@app.delete("/content_types/{content_type_id}")
async def delete_content_type(content_type_id: str, force: bool = False):
    result = registry.delete(content_type_id, force=force)
    return _result_response(result, {"content_type_id": content_type_id})


@app.get("/content_types/{content_type_id}/entries")
async def list_entries(content_type_id: str):
    result = entries.ordered_entries(content_type_id)
    if not result["ok"]:
        return _result_response(result)
    content_type = result["content_type"]
    return _ok_response(
        {"entries": [serialize_entry(content_type, e) for e in result["entries"]]},
        warnings=result["warnings"],
    )


@app.get("/content_types/{content_type_id}/entries/grouped")
async def grouped_entries(content_type_id: str, field_id: str | None = None):
    result = entries.grouped_entries(content_type_id, field_id)
    if not result["ok"]:
        return _result_response(result)
    content_type = result["content_type"]
    target_type = result["target_type"]
    groups = []
    for group in result["groups"]:
        key = group["key"]
        groups.append(
            {
                "key": serialize_entry(target_type, key) if key is not None and target_type else None,
                "name": group["name"],
                "entries": [serialize_entry(content_type, e) for e in group["entries"]],
            }
        )
    return _ok_response({"groups": groups}, warnings=result["warnings"])


@app.post("/content_types/{content_type_id}/entries/sort")
async def sort_entries(request: Request, content_type_id: str):
    body = await _body(request)
    entry_ids = body.get("entry_ids") if isinstance(body.get("entry_ids"), list) else []
    result = entries.sort_entries(content_type_id, entry_ids)
    return _result_response(result, {"entry_ids": result.get("entry_ids")})


@app.post("/content_types/{content_type_id}/entries")
async def create_entry(request: Request, content_type_id: str):
    body = await _body(request)
    attrs = body.get("entry") if "entry" in body else body
    result = entries.create(content_type_id, attrs)
    if not result["ok"]:
        return _result_response(result)
    content_type = registry.get(content_type_id)
    return _ok_response({"entry": serialize_entry(content_type, result["entry"])}, status=201)


@app.get("/content_types/{content_type_id}/entries/{entry_id}")
async def get_entry(content_type_id: str, entry_id: str):
    content_type = registry.get(content_type_id)
    entry = entries.get(content_type_id, entry_id) if content_type else None
    if not entry:
        return _error_response("ENTRY_NOT_FOUND", "Entry not found", "entry_id", status=404)
    return _ok_response({"entry": serialize_entry(content_type, entry)})


@app.get("/content_types/{content_type_id}/entries/{entry_id}/attributes/{name}")
async def get_entry_attribute(content_type_id: str, entry_id: str, name: str):
    try:
        value = entries.read_attribute(content_type_id, entry_id, name)
    except UnknownAttribute:
        return _error_response("UNKNOWN_ATTRIBUTE", f"Unknown attribute: {name}", name, status=404)
    except KeyError:
        return _error_response("ENTRY_NOT_FOUND", "Entry not found", "entry_id", status=404)
    return _ok_response({"name": name, "value": value})


@app.put("/content_types/{content_type_id}/entries/{entry_id}")
async def update_entry(request: Request, content_type_id: str, entry_id: str):
    body = await _body(request)
    attrs = body.get("entry") if "entry" in body else body
    result = entries.update(content_type_id, entry_id, attrs)
    if not result["ok"]:
        return _result_response(result)
    content_type = registry.get(content_type_id)
    return _ok_response({"entry": serialize_entry(content_type, result["entry"])})


@app.delete("/content_types/{content_type_id}/entries/{entry_id}")
async def delete_entry(content_type_id: str, entry_id: str):
    result = entries.delete(content_type_id, entry_id)
    return _result_response(result, {"entry_id": entry_id})


@app.post("/content_types/{content_type_id}/purge_orphan_values")
async def purge_orphan_values(content_type_id: str):
    result = entries.purge_orphan_values(content_type_id)
    return _result_response(result, {"entries_updated": result.get("entries_updated")})

"""In-memory REST backend speaking the entity envelope, for local development and tests."""

from __future__ import annotations

import copy
import itertools
from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


_RESERVED_PARAMS = frozenset({"page", "limit", "search", "sortBy", "sortOrder"})


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class MemoryEntityStore:
    """Records per resource path, with integer ids assigned on create."""

    def __init__(self) -> None:
        self._records: Dict[str, Dict[int, dict]] = {}
        self._ids = itertools.count(1)

    def _bucket(self, resource: str) -> Dict[int, dict]:
        return self._records.setdefault(resource, {})

    def seed(self, resource: str, records: List[dict]) -> List[dict]:
        return [self.create(resource, record) for record in records]

    def list(self, resource: str) -> List[dict]:
        return [copy.deepcopy(r) for r in self._bucket(resource).values()]

    def get(self, resource: str, record_id: int) -> dict | None:
        record = self._bucket(resource).get(record_id)
        return copy.deepcopy(record) if record else None

    def create(self, resource: str, data: dict) -> dict:
        record_id = next(self._ids)
        record = copy.deepcopy(data)
        record["id"] = record_id
        record.setdefault("is_active", True)
        record["created_at"] = record.get("created_at") or _now()
        record["updated_at"] = record["created_at"]
        self._bucket(resource)[record_id] = record
        return copy.deepcopy(record)

    def update(self, resource: str, record_id: int, data: dict) -> dict | None:
        bucket = self._bucket(resource)
        if record_id not in bucket:
            return None
        record = copy.deepcopy(bucket[record_id])
        record.update(copy.deepcopy({k: v for k, v in data.items() if k not in ("id", "created_at")}))
        record["updated_at"] = _now()
        bucket[record_id] = record
        return copy.deepcopy(record)

    def delete(self, resource: str, record_id: int) -> bool:
        return self._bucket(resource).pop(record_id, None) is not None


def _matches(record: dict, key: str, value: str) -> bool:
    actual = record.get(key)
    if isinstance(actual, bool):
        return str(actual).lower() == value.lower()
    return str(actual) == value


def _sort_value(value: Any) -> tuple:
    if value is None:
        return (1, 0, "")
    if isinstance(value, (bool, int, float)):
        return (0, 0, float(value))
    return (0, 1, str(value).lower())


def _ok(payload: dict, status: int = 200) -> JSONResponse:
    return JSONResponse(jsonable_encoder({"success": True, **payload, "timestamp": _now()}), status_code=status)


def _fail(message: str, status: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": message, "message": message, "timestamp": _now()}, status_code=status)


def create_dev_backend(store: MemoryEntityStore | None = None, search_fields: Dict[str, List[str]] | None = None) -> FastAPI:
    """Build the dev backend; ``search_fields`` maps resource path to searchable fields."""
    store = store if store is not None else MemoryEntityStore()
    search_fields = search_fields or {}
    backend = FastAPI(title="Tross dev backend")
    backend.state.store = store

    @backend.get("/{resource}")
    async def list_records(resource: str, request: Request):
        params = dict(request.query_params)
        try:
            page = max(int(params.get("page", 1)), 1)
            limit = max(int(params.get("limit", 50)), 1)
        except ValueError:
            return _fail("page and limit must be integers", 400)
        records = store.list(resource)
        filters = {k: v for k, v in params.items() if k not in _RESERVED_PARAMS}
        records = [r for r in records if all(_matches(r, k, v) for k, v in filters.items())]
        search = (params.get("search") or "").strip().lower()
        if search:
            fields = search_fields.get(resource)
            records = [
                r
                for r in records
                if any(
                    search in str(v).lower()
                    for k, v in r.items()
                    if isinstance(v, str) and (fields is None or k in fields)
                )
            ]
        sort_by = params.get("sortBy")
        if sort_by:
            records.sort(key=lambda r: _sort_value(r.get(sort_by)), reverse=(params.get("sortOrder") or "DESC").upper() == "DESC")
        total = len(records)
        start = (page - 1) * limit
        data = records[start : start + limit]
        return _ok(
            {
                "data": data,
                "count": len(data),
                "pagination": {"page": page, "limit": limit, "total": total, "totalPages": (total + limit - 1) // limit},
                "appliedFilters": {"search": search or None, "sortBy": sort_by, "filters": filters},
            }
        )

    @backend.get("/{resource}/{record_id}")
    async def get_record(resource: str, record_id: int):
        record = store.get(resource, record_id)
        if record is None:
            return _fail(f"{resource} {record_id} not found", 404)
        return _ok({"data": record})

    @backend.post("/{resource}")
    async def create_record(resource: str, request: Request):
        body = await request.json()
        if not isinstance(body, dict):
            return _fail("request body must be an object", 400)
        return _ok({"data": store.create(resource, body)}, status=201)

    @backend.patch("/{resource}/{record_id}")
    async def update_record(resource: str, record_id: int, request: Request):
        body = await request.json()
        if not isinstance(body, dict):
            return _fail("request body must be an object", 400)
        record = store.update(resource, record_id, body)
        if record is None:
            return _fail(f"{resource} {record_id} not found", 404)
        return _ok({"data": record})

    @backend.delete("/{resource}/{record_id}")
    async def delete_record(resource: str, record_id: int):
        if not store.delete(resource, record_id):
            return _fail(f"{resource} {record_id} not found", 404)
        return _ok({"data": None, "message": "deleted"})

    return backend

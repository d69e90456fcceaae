"""Generic REST client: CRUD for any entity by name."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping

import httpx

from config_errors import EntityRequestError
from entity_schema import SortOrder
from schema_registry import SchemaRegistry


logger = logging.getLogger("tross.client")

DEFAULT_PAGE_SIZE = 50
LOOKUP_PAGE_SIZE = 200

DEFAULT_RESOURCE_PATHS: Mapping[str, str] = {
    "user": "/users",
    "role": "/roles",
    "customer": "/customers",
    "technician": "/technicians",
    "work_order": "/work_orders",
    "invoice": "/invoices",
    "contract": "/contracts",
    "inventory": "/inventory",
    "preferences": "/preferences",
}

TokenProvider = Callable[[], Awaitable["str | None"]]


def pluralize_path(entity: str) -> str:
    if entity.endswith("y") and len(entity) > 1 and entity[-2] not in "aeiou":
        return f"/{entity[:-1]}ies"
    if entity.endswith("s"):
        return f"/{entity}"
    return f"/{entity}s"


@dataclass
class EntityPage:
    data: List[Dict[str, Any]]
    pagination: Dict[str, Any] = field(default_factory=dict)
    count: int | None = None
    applied_filters: Dict[str, Any] = field(default_factory=dict)

    @property
    def total(self) -> int:
        total = self.pagination.get("total")
        if isinstance(total, int):
            return total
        return self.count if self.count is not None else len(self.data)


def _server_message(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    for key in ("message", "error"):
        value = body.get(key)
        if isinstance(value, str) and value:
            return value
    return None


class EntityClient:
    """CRUD against the REST backend, keyed by entity name only."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        registry: SchemaRegistry | None = None,
        resource_paths: Mapping[str, str] = DEFAULT_RESOURCE_PATHS,
        token_provider: TokenProvider | None = None,
    ) -> None:
        self.http = http
        self.registry = registry
        self.resource_paths = dict(resource_paths)
        self.token_provider = token_provider

    def resource_path(self, entity: str) -> str:
        path = self.resource_paths.get(entity)
        if path is not None:
            return path
        return pluralize_path(entity)

    async def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token_provider is not None:
            token = await self.token_provider()
            if token:
                headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(
        self,
        entity: str,
        operation: str,
        method: str,
        path: str,
        params: Dict[str, Any] | None = None,
        payload: Dict[str, Any] | None = None,
        require_data: bool = True,
    ) -> Dict[str, Any]:
        try:
            response = await self.http.request(method, path, params=params, json=payload, headers=await self._headers())
        except httpx.HTTPError as exc:
            logger.warning("entity_request_failed entity=%s op=%s method=%s path=%s error=%s", entity, operation, method, path, exc)
            raise EntityRequestError(f"{operation} failed for entity {entity}: {exc}", entity=entity, operation=operation) from exc
        try:
            body = response.json()
        except ValueError:
            body = None
        if not response.is_success:
            message = _server_message(body) or f"Request failed: {response.status_code}"
            logger.warning(
                "entity_request_rejected entity=%s op=%s status=%s message=%s",
                entity,
                operation,
                response.status_code,
                message,
            )
            raise EntityRequestError(message, entity=entity, operation=operation, status=response.status_code)
        if not isinstance(body, dict) or body.get("success") is not True or (require_data and body.get("data") is None):
            message = _server_message(body) or f"{operation} failed for entity {entity}"
            raise EntityRequestError(message, entity=entity, operation=operation, status=response.status_code)
        return body

    def _list_params(
        self,
        entity: str,
        page: int,
        limit: int,
        search: str | None,
        filters: Dict[str, Any] | None,
        sort_by: str | None,
        sort_order: str | None,
    ) -> Dict[str, Any]:
        metadata = self.registry.try_get(entity) if self.registry is not None else None
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if search:
            if metadata is not None and not metadata.searchable_fields:
                logger.warning("entity_search_ignored entity=%s reason=no_searchable_fields", entity)
            else:
                params["search"] = search
        if sort_by is None and metadata is not None:
            sort_by = metadata.default_sort.field
            sort_order = sort_order or metadata.default_sort.order.value
        if sort_by:
            params["sortBy"] = sort_by
            params["sortOrder"] = SortOrder.parse(sort_order).value
        for key, value in (filters or {}).items():
            if value is None:
                continue
            if metadata is not None and key not in metadata.filterable_fields:
                logger.warning("entity_filter_dropped entity=%s field=%s", entity, key)
                continue
            if isinstance(value, bool):
                value = "true" if value else "false"
            params[key] = value
        return params

    async def list(
        self,
        entity: str,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        search: str | None = None,
        filters: Dict[str, Any] | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
    ) -> EntityPage:
        params = self._list_params(entity, page, limit, search, filters, sort_by, sort_order)
        body = await self._request(entity, "list", "GET", self.resource_path(entity), params=params)
        data = body.get("data")
        if not isinstance(data, list):
            raise EntityRequestError(f"list failed for entity {entity}", entity=entity, operation="list")
        pagination = body.get("pagination") if isinstance(body.get("pagination"), dict) else {}
        count = body.get("count") if isinstance(body.get("count"), int) else None
        applied = body.get("appliedFilters") if isinstance(body.get("appliedFilters"), dict) else {}
        return EntityPage(data=data, pagination=pagination, count=count, applied_filters=applied)

    async def list_records(self, entity: str) -> List[Dict[str, Any]]:
        page = await self.list(entity, limit=LOOKUP_PAGE_SIZE)
        return page.data

    async def get(self, entity: str, record_id: Any) -> Dict[str, Any]:
        body = await self._request(entity, "get", "GET", f"{self.resource_path(entity)}/{record_id}")
        return body["data"]

    async def create(self, entity: str, data: Dict[str, Any]) -> Dict[str, Any]:
        body = await self._request(entity, "create", "POST", self.resource_path(entity), payload=copy.deepcopy(dict(data)))
        created = body["data"]
        logger.info("entity_created entity=%s id=%s", entity, created.get("id") if isinstance(created, dict) else None)
        return created

    async def update(self, entity: str, record_id: Any, changes: Dict[str, Any]) -> Dict[str, Any]:
        """PATCH exactly the caller's change set; nothing else is sent."""
        payload = copy.deepcopy(dict(changes))
        body = await self._request(entity, "update", "PATCH", f"{self.resource_path(entity)}/{record_id}", payload=payload)
        logger.info("entity_updated entity=%s id=%s fields=%s", entity, record_id, sorted(payload.keys()))
        return body["data"]

    async def delete(self, entity: str, record_id: Any) -> bool:
        await self._request(entity, "delete", "DELETE", f"{self.resource_path(entity)}/{record_id}", require_data=False)
        logger.info("entity_deleted entity=%s id=%s", entity, record_id)
        return True

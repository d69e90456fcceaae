"""FastAPI service exposing entity descriptors, permission decisions and menus."""

from __future__ import annotations

import contextlib
import logging
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import httpx
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.dev_backend import create_dev_backend
from app.diagnostics import build_diagnostics
from app.settings import Settings
from config_errors import (
    ConfigurationError,
    DocumentLoadError,
    EntityRequestError,
    NotInitializedError,
    UnknownEntityError,
    UnknownResourceError,
    issue_from_error,
)
from config_sources import DocumentSource, FileDocumentSource
from entity_client import EntityClient
from field_config_factory import FieldConfigFactory, FormMode
from nav_composer import NavComposer
from nav_config import MenuSurface, NavConfigService
from permission_model import OPERATIONS, PermissionModel
from schema_registry import SchemaRegistry
from table_column_factory import TableColumnFactory


logger = logging.getLogger("tross.app")

DEV_BACKEND_URL = "http://dev-backend"


@dataclass
class Services:
    """Explicitly wired components; one instance per running app."""

    settings: Settings
    http: httpx.AsyncClient
    permissions: PermissionModel
    registry: SchemaRegistry
    nav: NavConfigService
    client: EntityClient
    fields: FieldConfigFactory
    columns: TableColumnFactory
    composer: NavComposer
    owns_http: bool = True

    async def startup(self) -> None:
        start = time.perf_counter()
        await self.permissions.initialize()
        await self.registry.initialize()
        try:
            await self.nav.initialize()
        except Exception as exc:
            # menus fall back to the built-in entries until a reload succeeds
            logger.warning("nav_init_failed error=%s using=fallback_menu", exc)
        logger.info(
            "services_started entities=%s degraded=%s ms=%.1f",
            len(self.registry.entity_names),
            self.registry.degraded,
            (time.perf_counter() - start) * 1000,
        )

    async def reload(self) -> None:
        await self.permissions.reload()
        await self.registry.reload()
        await self.nav.reload()

    async def refresh(self) -> None:
        """Re-read any loaded document whose snapshot is older than the TTL."""
        for name, component in (("permissions", self.permissions), ("schema", self.registry), ("nav", self.nav)):
            if not component.ready:
                continue
            try:
                await component.refresh()
            except (ConfigurationError, DocumentLoadError) as exc:
                # previous snapshot stays in service; the next request retries
                logger.warning("config_refresh_failed component=%s error=%s using=previous", name, exc.message)

    async def aclose(self) -> None:
        if self.owns_http:
            await self.http.aclose()


def build_services(
    settings: Settings | None = None,
    http: httpx.AsyncClient | None = None,
    sources: Dict[str, DocumentSource] | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> Services:
    settings = settings or Settings.from_env()
    sources = sources or {}
    owns_http = http is None
    if http is None and settings.dev_backend:
        logger.warning("dev_backend_enabled base_url=%s", DEV_BACKEND_URL)
        http = httpx.AsyncClient(transport=httpx.ASGITransport(app=create_dev_backend()), base_url=DEV_BACKEND_URL)
    elif http is None:
        http = httpx.AsyncClient(base_url=settings.api_base_url, timeout=settings.http_timeout_s)
    permissions = PermissionModel(
        sources.get("permissions") or FileDocumentSource(settings.permissions_path),
        expected_version=settings.expected_permission_version,
        ttl_s=settings.config_ttl_s,
        clock=clock,
    )
    registry = SchemaRegistry(
        sources.get("schema") or FileDocumentSource(settings.entity_metadata_path),
        known_resources=permissions.resource_names,
        ttl_s=settings.config_ttl_s,
        clock=clock,
    )
    nav = NavConfigService(
        sources.get("nav") or FileDocumentSource(settings.nav_config_path),
        ttl_s=settings.config_ttl_s,
        clock=clock,
    )
    client = EntityClient(http, registry=registry)
    return Services(
        settings=settings,
        http=http,
        permissions=permissions,
        registry=registry,
        nav=nav,
        client=client,
        fields=FieldConfigFactory(registry, entity_lookup=client),
        columns=TableColumnFactory(registry, entity_lookup=client),
        composer=NavComposer(nav, registry, permissions, route_prefix=settings.nav_route_prefix),
        owns_http=owns_http,
    )


def _error_response(code: str, message: str, path: str | None = None, detail: dict | None = None, status: int = 400) -> JSONResponse:
    body = {
        "ok": False,
        "errors": [{"code": code, "message": message, "path": path, "detail": detail}],
        "warnings": [],
    }
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _ok_response(payload: dict, warnings: list | None = None, status: int = 200) -> JSONResponse:
    body = {"ok": True, **payload, "errors": [], "warnings": warnings or []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _parse_mode(value: Any) -> FormMode | None:
    try:
        return FormMode(str(value or "create").strip().lower())
    except ValueError:
        return None


def create_app(services: Services | None = None) -> FastAPI:
    services = services or build_services()

    @contextlib.asynccontextmanager
    async def lifespan(_app: FastAPI):
        await services.startup()
        try:
            yield
        finally:
            await services.aclose()

    app = FastAPI(title="Tross entity descriptors", lifespan=lifespan)
    app.state.services = services
    if services.settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(services.settings.cors_origins),
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(UnknownEntityError)
    async def unknown_entity_handler(request: Request, exc: UnknownEntityError):
        return _error_response("ENTITY_NOT_FOUND", exc.message, "entity", status=404)

    @app.exception_handler(UnknownResourceError)
    async def unknown_resource_handler(request: Request, exc: UnknownResourceError):
        return _error_response("RESOURCE_NOT_FOUND", exc.message, "resource", status=404)

    @app.exception_handler(NotInitializedError)
    async def not_initialized_handler(request: Request, exc: NotInitializedError):
        return _error_response("NOT_READY", exc.message, detail={"component": exc.component}, status=503)

    @app.exception_handler(ConfigurationError)
    async def configuration_handler(request: Request, exc: ConfigurationError):
        logger.error("config_error code=%s path=%s message=%s", exc.code, exc.path, exc.message)
        found = issue_from_error(exc)
        return _error_response(found["code"], found["message"], found["path"], status=500)

    @app.exception_handler(EntityRequestError)
    async def entity_request_handler(request: Request, exc: EntityRequestError):
        detail = {"entity": exc.entity, "operation": exc.operation, "status": exc.status}
        return _error_response("UPSTREAM_FAILED", exc.message, detail=detail, status=502)

    @app.get("/health")
    async def health() -> JSONResponse:
        return _ok_response(
            {
                "schema_ready": services.registry.ready,
                "permissions_ready": services.permissions.ready,
                "nav_ready": services.nav.ready,
                "degraded": services.registry.degraded,
            }
        )

    @app.get("/entities")
    async def list_entities() -> JSONResponse:
        await services.refresh()
        entities = [
            {"name": m.name, "displayName": m.display_name, "displayNamePlural": m.display_name_plural, "resource": m.resource}
            for m in services.registry.entities()
        ]
        return _ok_response({"entities": entities})

    @app.get("/entities/{name}/schema")
    async def entity_schema(name: str) -> JSONResponse:
        await services.refresh()
        metadata = services.registry.get(name)
        return _ok_response({"entity": name, "schema": metadata.to_json()})

    @app.get("/entities/{name}/fields")
    async def entity_fields(name: str, mode: str = "create") -> JSONResponse:
        await services.refresh()
        form_mode = _parse_mode(mode)
        if form_mode is None:
            return _error_response("MODE_INVALID", "mode must be create, edit or display", "mode")
        descriptors = services.fields.for_entity(name, mode=form_mode)
        return _ok_response({"entity": name, "mode": form_mode.value, "fields": [d.to_json() for d in descriptors]})

    @app.post("/entities/{name}/validate")
    async def entity_validate(name: str, request: Request) -> JSONResponse:
        await services.refresh()
        try:
            body = await request.json()
        except ValueError:
            return _error_response("BODY_INVALID", "request body must be JSON")
        if not isinstance(body, dict) or not isinstance(body.get("record"), dict):
            return _error_response("BODY_INVALID", "record must be an object", "record")
        form_mode = _parse_mode(body.get("mode"))
        if form_mode is None or form_mode == FormMode.DISPLAY:
            return _error_response("MODE_INVALID", "mode must be create or edit", "mode")
        errors = services.fields.validate_record(name, body["record"], mode=form_mode)
        return _ok_response({"entity": name, "valid": not errors, "field_errors": errors})

    @app.get("/entities/{name}/columns")
    async def entity_columns(name: str) -> JSONResponse:
        await services.refresh()
        columns = services.columns.for_entity(name)
        return _ok_response({"entity": name, "columns": [c.to_json() for c in columns]})

    @app.get("/permissions/check")
    async def permission_check(role: str = "", resource: str = "", operation: str = "read") -> JSONResponse:
        await services.refresh()
        allowed = services.permissions.has_permission(role, resource, operation)
        return _ok_response(
            {
                "role": role,
                "resource": resource,
                "operation": operation,
                "allowed": allowed,
                "minimum_priority": services.permissions.get_minimum_priority(resource, operation),
                "row_level_security": services.permissions.get_row_level_security(role, resource),
            }
        )

    @app.get("/permissions/roles")
    async def permission_roles() -> JSONResponse:
        await services.refresh()
        return _ok_response({"roles": services.permissions.role_summaries()})

    @app.get("/permissions/roles/{role}")
    async def permission_role(role: str) -> JSONResponse:
        await services.refresh()
        if services.permissions.get_role_priority(role) is None:
            return _error_response("ROLE_NOT_FOUND", f"unknown role '{role}'", "role", status=404)
        return _ok_response({"role": role.lower(), "permissions": services.permissions.role_permissions(role)})

    @app.get("/permissions/{resource}/matrix")
    async def permission_matrix(resource: str) -> JSONResponse:
        await services.refresh()
        matrix = services.permissions.permission_matrix(resource)
        if matrix is None:
            raise UnknownResourceError(f"unknown resource '{resource}'", resource=resource)
        return _ok_response({"matrix": matrix.to_json(), "operations": list(OPERATIONS)})

    @app.get("/nav")
    async def nav_menu(role: str = "", surface: str = "sidebar") -> JSONResponse:
        await services.refresh()
        entries = services.composer.build(MenuSurface.parse(surface), role)
        return _ok_response({"surface": MenuSurface.parse(surface).value, "items": [e.to_json() for e in entries]})

    @app.get("/diagnostics")
    async def diagnostics() -> JSONResponse:
        await services.refresh()
        report = build_diagnostics(services.registry, services.permissions, services.nav.try_config())
        return JSONResponse(jsonable_encoder(report))

    @app.post("/config/reload")
    async def config_reload() -> JSONResponse:
        await services.reload()
        logger.info("config_reloaded entities=%s", len(services.registry.entity_names))
        return _ok_response({"entities": len(services.registry.entity_names)})

    return app


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))


def main() -> FastAPI:
    settings = Settings.from_env(ROOT / ".env")
    configure_logging(settings)
    return create_app(build_services(settings))

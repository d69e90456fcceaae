"""Navigation document model: public routes, groups, static items, entity placements."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Tuple

from config_cache import DEFAULT_TTL_S, MemoizedLoader
from config_errors import ConfigurationError, NotInitializedError
from config_sources import DocumentSource
from tross.config_fingerprint import document_fingerprint


logger = logging.getLogger("tross.nav")


class MenuSurface(str, Enum):
    SIDEBAR = "sidebar"
    USER_MENU = "userMenu"

    @classmethod
    def parse(cls, value: Any) -> "MenuSurface":
        text = str(value or "").strip()
        if text.lower() in ("usermenu", "user_menu", "account"):
            return cls.USER_MENU
        return cls.SIDEBAR


@dataclass(frozen=True)
class PublicRoute:
    id: str
    path: str


@dataclass(frozen=True)
class NavGroup:
    id: str
    label: str
    order: int = 0


@dataclass(frozen=True)
class StaticNavItem:
    id: str
    label: str
    route: str
    group: str | None = None
    order: int = 0
    icon: str | None = None
    permission_resource: str | None = None
    surface: MenuSurface = MenuSurface.SIDEBAR


@dataclass(frozen=True)
class EntityPlacement:
    entity: str
    group: str
    order: int = 0


@dataclass(frozen=True)
class NavConfig:
    version: str = ""
    public_routes: Tuple[PublicRoute, ...] = ()
    groups: Tuple[NavGroup, ...] = ()
    static_items: Tuple[StaticNavItem, ...] = ()
    entity_placements: Mapping[str, EntityPlacement] = field(default_factory=lambda: MappingProxyType({}))
    fingerprint: str = ""

    @property
    def sorted_groups(self) -> List[NavGroup]:
        return sorted(self.groups, key=lambda g: (g.order, g.id))

    def group(self, group_id: str | None) -> NavGroup | None:
        for group in self.groups:
            if group.id == group_id:
                return group
        return None

    def static_items_for(self, surface: MenuSurface, group_id: str | None = None) -> List[StaticNavItem]:
        items = [i for i in self.static_items if i.surface == surface]
        if group_id is not None:
            items = [i for i in items if i.group == group_id]
        return sorted(items, key=lambda i: (i.order, i.id))

    def placements_for_group(self, group_id: str) -> List[EntityPlacement]:
        found = [p for p in self.entity_placements.values() if p.group == group_id]
        return sorted(found, key=lambda p: (p.order, p.entity))

    def get_public_route(self, route_id: str) -> PublicRoute | None:
        for route in self.public_routes:
            if route.id == route_id:
                return route
        return None

    def is_public_route(self, path: str) -> bool:
        clean = (path or "").split("?", 1)[0].rstrip("/") or "/"
        return any((route.path.rstrip("/") or "/") == clean for route in self.public_routes)


def _int(value: Any, default: int = 0) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return default


def _require_str(raw: Dict[str, Any], key: str, path: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value:
        raise ConfigurationError(f"{key} must be a non-empty string", code="NAV_ITEM_INVALID", path=f"{path}.{key}")
    return value


def parse_nav_document(document: Dict[str, Any]) -> NavConfig:
    if not isinstance(document, dict):
        raise ConfigurationError("navigation document must be an object", code="NAV_INVALID")
    routes: List[PublicRoute] = []
    for idx, raw in enumerate(document.get("publicRoutes") or []):
        path = f"publicRoutes[{idx}]"
        if not isinstance(raw, dict):
            raise ConfigurationError("public route must be an object", code="NAV_ROUTE_INVALID", path=path)
        routes.append(PublicRoute(id=_require_str(raw, "id", path), path=_require_str(raw, "path", path)))
    groups: List[NavGroup] = []
    for idx, raw in enumerate(document.get("groups") or []):
        path = f"groups[{idx}]"
        if not isinstance(raw, dict):
            raise ConfigurationError("group must be an object", code="NAV_GROUP_INVALID", path=path)
        group_id = _require_str(raw, "id", path)
        groups.append(NavGroup(id=group_id, label=str(raw.get("label") or group_id), order=_int(raw.get("order"))))
    items: List[StaticNavItem] = []
    for idx, raw in enumerate(document.get("staticItems") or []):
        path = f"staticItems[{idx}]"
        if not isinstance(raw, dict):
            raise ConfigurationError("static item must be an object", code="NAV_ITEM_INVALID", path=path)
        resource = raw.get("permissionResource")
        items.append(
            StaticNavItem(
                id=_require_str(raw, "id", path),
                label=_require_str(raw, "label", path),
                route=_require_str(raw, "route", path),
                group=raw.get("group") if isinstance(raw.get("group"), str) else None,
                order=_int(raw.get("order")),
                icon=raw.get("icon") if isinstance(raw.get("icon"), str) else None,
                permission_resource=resource if isinstance(resource, str) and resource else None,
                surface=MenuSurface.parse(raw.get("menuType")),
            )
        )
    placements: Dict[str, EntityPlacement] = {}
    raw_placements = document.get("entityPlacements") or {}
    if not isinstance(raw_placements, dict):
        raise ConfigurationError("entityPlacements must be an object", code="NAV_PLACEMENTS_INVALID", path="entityPlacements")
    for entity, raw in raw_placements.items():
        if not isinstance(raw, dict):
            continue
        placements[entity] = EntityPlacement(entity=entity, group=str(raw.get("group") or ""), order=_int(raw.get("order")))
    return NavConfig(
        version=str(document.get("version") or ""),
        public_routes=tuple(routes),
        groups=tuple(groups),
        static_items=tuple(items),
        entity_placements=MappingProxyType(placements),
        fingerprint=document_fingerprint(document),
    )


class NavConfigService:
    """Loads and caches the navigation document."""

    def __init__(
        self,
        source: DocumentSource,
        ttl_s: float = DEFAULT_TTL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self._loader: MemoizedLoader[NavConfig] = MemoizedLoader("nav", self._load, ttl_s=ttl_s, clock=clock)

    async def _load(self) -> NavConfig:
        config = parse_nav_document(await self.source.load())
        logger.info(
            "nav_loaded version=%s groups=%s items=%s placements=%s fingerprint=%s",
            config.version,
            len(config.groups),
            len(config.static_items),
            len(config.entity_placements),
            config.fingerprint,
        )
        return config

    async def initialize(self) -> NavConfig:
        if self._loader.is_loaded:
            return self._loader.peek()  # type: ignore[return-value]
        return await self._loader.get()

    async def reload(self) -> NavConfig:
        return await self._loader.get(force_reload=True)

    async def refresh(self) -> NavConfig:
        return await self._loader.get()

    @property
    def ready(self) -> bool:
        return self._loader.peek() is not None

    @property
    def config(self) -> NavConfig:
        config = self._loader.peek()
        if config is None:
            raise NotInitializedError("navigation config queried before load", component="nav")
        return config

    def try_config(self) -> NavConfig | None:
        return self._loader.peek()

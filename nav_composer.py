"""Permission-filtered menus for the sidebar and the account menu."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from nav_config import MenuSurface, NavConfig, NavConfigService, StaticNavItem
from permission_model import PermissionModel
from schema_registry import SchemaRegistry


logger = logging.getLogger("tross.nav")


@dataclass(frozen=True)
class MenuEntry:
    id: str
    label: str
    route: str
    icon: str | None = None
    group: str | None = None
    group_label: str | None = None
    order: int = 0
    resource: str | None = None
    entity: str | None = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "route": self.route,
            "icon": self.icon,
            "group": self.group,
            "groupLabel": self.group_label,
            "order": self.order,
            "resource": self.resource,
            "entity": self.entity,
        }


FALLBACK_SIDEBAR = (
    MenuEntry(id="dashboard", label="Dashboard", route="/home", icon="dashboard", order=0),
)

FALLBACK_USER_MENU = (
    MenuEntry(id="admin", label="Admin", route="/admin", icon="admin_panel_settings", order=0, resource="admin_panel"),
    MenuEntry(id="settings", label="Settings", route="/settings", icon="settings", order=1),
)


class NavComposer:
    """Merges static items and entity placements, then filters by read permission.

    Per-entry decisions fail closed through :meth:`PermissionModel.has_permission`.
    If the filtering step itself raises, the unfiltered list is returned.
    """

    def __init__(
        self,
        nav: NavConfigService,
        registry: SchemaRegistry,
        permissions: PermissionModel,
        route_prefix: str = "",
    ) -> None:
        self.nav = nav
        self.registry = registry
        self.permissions = permissions
        self.route_prefix = route_prefix.rstrip("/")

    def build_sidebar(self, role: Any) -> List[MenuEntry]:
        return self.build(MenuSurface.SIDEBAR, role)

    def build_user_menu(self, role: Any) -> List[MenuEntry]:
        return self.build(MenuSurface.USER_MENU, role)

    def build(self, surface: MenuSurface, role: Any) -> List[MenuEntry]:
        if not isinstance(surface, MenuSurface):
            surface = MenuSurface.parse(surface)
        entries = self.compose(surface)
        return self.filter_for_role(entries, role)

    def compose(self, surface: MenuSurface) -> List[MenuEntry]:
        """Unfiltered entries for a surface, in group order then item order."""
        config = self.nav.try_config()
        if config is None:
            fallback = FALLBACK_SIDEBAR if surface == MenuSurface.SIDEBAR else FALLBACK_USER_MENU
            return list(fallback)
        if surface == MenuSurface.USER_MENU:
            return [self._static_entry(config, item) for item in config.static_items_for(surface)]
        return self._sidebar_entries(config)

    def _sidebar_entries(self, config: NavConfig) -> List[MenuEntry]:
        entries: List[MenuEntry] = []
        grouped = set()
        for group in config.sorted_groups:
            grouped.add(group.id)
            merged: List[MenuEntry] = [
                self._static_entry(config, item) for item in config.static_items_for(MenuSurface.SIDEBAR, group.id)
            ]
            for placement in config.placements_for_group(group.id):
                metadata = self.registry.try_get(placement.entity)
                if metadata is None:
                    logger.info("nav_placement_skipped entity=%s reason=unknown_entity", placement.entity)
                    continue
                merged.append(
                    MenuEntry(
                        id=f"entity_{metadata.name}",
                        label=metadata.display_name_plural,
                        route=f"{self.route_prefix}/{metadata.name}",
                        icon=metadata.icon,
                        group=group.id,
                        group_label=group.label,
                        order=placement.order,
                        resource=metadata.resource,
                        entity=metadata.name,
                    )
                )
            entries.extend(sorted(merged, key=lambda e: e.order))
        # items without a known group come last
        for item in config.static_items_for(MenuSurface.SIDEBAR):
            if item.group not in grouped:
                entries.append(self._static_entry(config, item))
        return entries

    def _static_entry(self, config: NavConfig, item: StaticNavItem) -> MenuEntry:
        group = config.group(item.group)
        return MenuEntry(
            id=item.id,
            label=item.label,
            route=item.route,
            icon=item.icon,
            group=item.group,
            group_label=group.label if group else None,
            order=item.order,
            resource=item.permission_resource,
        )

    def is_visible(self, entry: MenuEntry, role: Any) -> bool:
        if not isinstance(role, str) or not role.strip():
            return False
        if entry.resource is None:
            return True
        return self.permissions.has_permission(role, entry.resource, "read")

    def filter_for_role(self, entries: List[MenuEntry], role: Any) -> List[MenuEntry]:
        try:
            visible = [entry for entry in entries if self.is_visible(entry, role)]
        except Exception as exc:
            logger.error(
                "nav_filter_failed role=%s entries=%s error=%s returning=unfiltered",
                role,
                len(entries),
                exc,
            )
            return list(entries)
        logger.debug("nav_filtered role=%s input=%s output=%s", role, len(entries), len(visible))
        return visible

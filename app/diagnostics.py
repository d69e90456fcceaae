"""Integrity report across the schema, permission and navigation documents."""

from __future__ import annotations

from typing import Any, Dict, List

from config_errors import Issue, issue
from entity_schema import FieldType
from nav_config import NavConfig
from permission_model import PermissionModel
from schema_registry import SchemaRegistry


def _entity_issues(registry: SchemaRegistry, resources: frozenset) -> List[Issue]:
    issues: List[Issue] = []
    for metadata in registry.entities():
        base = metadata.name
        if metadata.resource not in resources:
            issues.append(
                issue("ENTITY_RESOURCE_UNKNOWN", f"resource '{metadata.resource}' has no permission rules", f"{base}.rlsResource")
            )
        names = set(metadata.fields)
        for attr in ("required_fields", "searchable_fields", "filterable_fields", "sortable_fields", "immutable_fields"):
            for name in getattr(metadata, attr):
                if name not in names:
                    issues.append(issue("ENTITY_FIELD_UNKNOWN", f"{attr} names undeclared field '{name}'", f"{base}.{attr}"))
        if metadata.default_sort.field not in names:
            issues.append(
                issue("ENTITY_SORT_UNKNOWN", f"default sort field '{metadata.default_sort.field}' is not declared", f"{base}.defaultSort")
            )
        for fdef in metadata.fields.values():
            if fdef.type != FieldType.FOREIGN_KEY:
                continue
            if not fdef.related_entity:
                issues.append(issue("FIELD_RELATED_ENTITY_MISSING", "foreign key names no related entity", f"{base}.fields.{fdef.name}"))
            elif not registry.has(fdef.related_entity):
                issues.append(
                    issue(
                        "FIELD_RELATED_ENTITY_UNKNOWN",
                        f"foreign key references unknown entity '{fdef.related_entity}'",
                        f"{base}.fields.{fdef.name}",
                    )
                )
    return issues


def _nav_issues(nav: NavConfig, registry: SchemaRegistry, resources: frozenset) -> List[Issue]:
    issues: List[Issue] = []
    group_ids = {g.id for g in nav.groups}
    for entity, placement in nav.entity_placements.items():
        if not registry.has(entity):
            issues.append(issue("NAV_ENTITY_UNKNOWN", f"placement for unknown entity '{entity}'", f"entityPlacements.{entity}"))
        if placement.group not in group_ids:
            issues.append(issue("NAV_GROUP_UNKNOWN", f"placement uses unknown group '{placement.group}'", f"entityPlacements.{entity}.group"))
    for item in nav.static_items:
        if item.permission_resource and item.permission_resource not in resources:
            issues.append(
                issue(
                    "NAV_RESOURCE_UNKNOWN",
                    f"static item '{item.id}' names unknown resource '{item.permission_resource}'",
                    f"staticItems.{item.id}.permissionResource",
                )
            )
    return issues


def build_diagnostics(registry: SchemaRegistry, permissions: PermissionModel, nav: NavConfig | None) -> Dict[str, Any]:
    config = permissions.config
    resources = frozenset(config.resources.keys())
    errors = _entity_issues(registry, resources)
    if nav is not None:
        errors.extend(_nav_issues(nav, registry, resources))
    snapshot = registry.snapshot
    warnings: List[Issue] = list(config.warnings) + list(snapshot.warnings)
    return {
        "ok": not errors,
        "schema": {
            "source": snapshot.source,
            "version": snapshot.version,
            "fingerprint": snapshot.fingerprint,
            "degraded": snapshot.degraded,
            "resources_checked": snapshot.resources_checked,
            "entities": len(snapshot.entities),
        },
        "permissions": {
            "version": config.version,
            "fingerprint": config.fingerprint,
            "roles": permissions.role_summaries(),
            "resources": sorted(resources),
        },
        "nav": {"version": nav.version, "fingerprint": nav.fingerprint} if nav is not None else None,
        "errors": errors,
        "warnings": warnings,
    }

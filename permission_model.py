"""Role priorities and per-resource CRUD rules loaded from the permissions document."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Tuple

from config_cache import DEFAULT_TTL_S, MemoizedLoader
from config_errors import (
    ConfigurationError,
    DuplicatePriorityError,
    Issue,
    NotInitializedError,
    issue,
)
from config_sources import DocumentSource
from tross.config_fingerprint import document_fingerprint


logger = logging.getLogger("tross.permissions")

OPERATIONS = ("create", "read", "update", "delete")

EXPECTED_PERMISSION_VERSION = "3.0.1"

REQUIRED_RESOURCES = (
    "users",
    "roles",
    "work_orders",
    "preferences",
    "dashboard",
    "admin_panel",
)

_VERSION_RE = re.compile(r"^\s*(\d+)\.(\d+)(?:\.(\d+))?")


def normalize_role(role: Any) -> str | None:
    if not isinstance(role, str):
        return None
    text = role.strip().lower()
    return text or None


def parse_version(value: Any) -> Tuple[int, int] | None:
    if not isinstance(value, str):
        return None
    match = _VERSION_RE.match(value)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


@dataclass(frozen=True)
class RoleConfig:
    name: str
    priority: int
    description: str = ""


@dataclass(frozen=True)
class PermissionDetail:
    minimum_role: str | None
    minimum_priority: int | None
    description: str = ""
    disabled: bool = False

    @property
    def is_disabled(self) -> bool:
        return self.disabled or self.minimum_priority is None

    def to_json(self) -> Dict[str, Any]:
        return {
            "minimumRole": self.minimum_role,
            "minimumPriority": self.minimum_priority,
            "description": self.description,
            "disabled": self.is_disabled,
        }


@dataclass(frozen=True)
class NavVisibility:
    minimum_role: str | None
    minimum_priority: int
    description: str = ""


@dataclass(frozen=True)
class ResourceConfig:
    name: str
    description: str = ""
    permissions: Mapping[str, PermissionDetail] = field(default_factory=lambda: MappingProxyType({}))
    row_level_security: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    nav_visibility: NavVisibility | None = None


@dataclass(frozen=True)
class PermissionMatrix:
    """Role x operation grid for one resource."""

    resource: str
    roles: Tuple[str, ...]
    grid: Mapping[str, Mapping[str, bool]]

    def allows(self, role: str, operation: str) -> bool:
        row = self.grid.get(normalize_role(role) or "")
        return bool(row and row.get(operation))

    def to_json(self) -> Dict[str, Any]:
        return {
            "resource": self.resource,
            "roles": list(self.roles),
            "operations": list(OPERATIONS),
            "grid": {role: dict(ops) for role, ops in self.grid.items()},
        }


@dataclass(frozen=True)
class PermissionConfig:
    version: str
    last_modified: str | None
    roles: Mapping[str, RoleConfig]
    resources: Mapping[str, ResourceConfig]
    warnings: Tuple[Issue, ...] = ()
    fingerprint: str = ""


def _parse_roles(raw: Any) -> Dict[str, RoleConfig]:
    if not isinstance(raw, dict) or not raw:
        raise ConfigurationError("roles must be a non-empty object", code="ROLES_INVALID", path="roles")
    roles: Dict[str, RoleConfig] = {}
    seen: Dict[int, str] = {}
    for key, value in raw.items():
        name = normalize_role(key)
        path = f"roles.{key}"
        if name is None or not isinstance(value, dict):
            raise ConfigurationError("role must be an object", code="ROLE_INVALID", path=path)
        priority = value.get("priority")
        if isinstance(priority, bool) or not isinstance(priority, int) or priority < 1:
            raise ConfigurationError("role priority must be an integer >= 1", code="ROLE_PRIORITY_INVALID", path=f"{path}.priority")
        if priority in seen:
            raise DuplicatePriorityError(
                f"roles '{seen[priority]}' and '{name}' share priority {priority}",
                path=f"{path}.priority",
            )
        if name in roles:
            raise ConfigurationError(f"role '{name}' declared twice", code="ROLE_DUPLICATE", path=path)
        seen[priority] = name
        roles[name] = RoleConfig(name=name, priority=priority, description=str(value.get("description") or ""))
    return roles


def _parse_detail(raw: Any, roles: Dict[str, RoleConfig], path: str) -> PermissionDetail:
    if not isinstance(raw, dict):
        raise ConfigurationError("permission must be an object", code="PERMISSION_INVALID", path=path)
    minimum_role = normalize_role(raw.get("minimumRole"))
    priority = raw.get("minimumPriority")
    # an explicit null minimumRole disables the operation; an absent one defers to minimumPriority
    disabled = raw.get("disabled") is True or ("minimumRole" in raw and minimum_role is None)
    if isinstance(priority, bool) or (priority is not None and not isinstance(priority, int)):
        raise ConfigurationError("minimumPriority must be an integer", code="PERMISSION_PRIORITY_INVALID", path=f"{path}.minimumPriority")
    if priority is None and minimum_role is not None:
        role = roles.get(minimum_role)
        if role is None:
            raise ConfigurationError(
                f"minimumRole '{minimum_role}' is not a declared role",
                code="PERMISSION_ROLE_UNKNOWN",
                path=f"{path}.minimumRole",
            )
        priority = role.priority
    return PermissionDetail(
        minimum_role=minimum_role,
        minimum_priority=priority,
        description=str(raw.get("description") or ""),
        disabled=disabled,
    )


def _parse_resource(name: str, raw: Any, roles: Dict[str, RoleConfig]) -> ResourceConfig:
    path = f"resources.{name}"
    if not isinstance(raw, dict):
        raise ConfigurationError("resource must be an object", code="RESOURCE_INVALID", path=path)
    perms_raw = raw.get("permissions")
    if not isinstance(perms_raw, dict):
        raise ConfigurationError("resource is missing its permissions block", code="RESOURCE_PERMISSIONS_MISSING", path=f"{path}.permissions")
    permissions: Dict[str, PermissionDetail] = {}
    for op in OPERATIONS:
        if op not in perms_raw:
            raise ConfigurationError(
                f"resource '{name}' is missing the '{op}' permission",
                code="RESOURCE_OPERATION_MISSING",
                path=f"{path}.permissions.{op}",
            )
        permissions[op] = _parse_detail(perms_raw[op], roles, f"{path}.permissions.{op}")
    rls_raw = raw.get("rowLevelSecurity")
    rls: Dict[str, str] = {}
    if isinstance(rls_raw, dict):
        rls = {normalize_role(k) or k: str(v) for k, v in rls_raw.items() if isinstance(v, str)}
    nav = None
    nav_raw = raw.get("navVisibility")
    if isinstance(nav_raw, dict):
        nav_priority = nav_raw.get("minimumPriority")
        nav_role = normalize_role(nav_raw.get("minimumRole"))
        if not isinstance(nav_priority, int) and nav_role in roles:
            nav_priority = roles[nav_role].priority
        if isinstance(nav_priority, int) and not isinstance(nav_priority, bool):
            nav = NavVisibility(minimum_role=nav_role, minimum_priority=nav_priority, description=str(nav_raw.get("description") or ""))
        else:
            raise ConfigurationError("navVisibility needs minimumPriority or a known minimumRole", code="NAV_VISIBILITY_INVALID", path=f"{path}.navVisibility")
    return ResourceConfig(
        name=name,
        description=str(raw.get("description") or ""),
        permissions=MappingProxyType(permissions),
        row_level_security=MappingProxyType(rls),
        nav_visibility=nav,
    )


def parse_permission_document(
    document: Dict[str, Any],
    expected_version: str = EXPECTED_PERMISSION_VERSION,
    required_resources: Tuple[str, ...] = REQUIRED_RESOURCES,
) -> PermissionConfig:
    """Validate and freeze a permissions document.

    Structural problems raise :class:`ConfigurationError`. An older version
    or a missing required resource only produces warnings on the result.
    """
    if not isinstance(document, dict):
        raise ConfigurationError("permissions document must be an object", code="PERMISSIONS_INVALID")
    warnings: List[Issue] = []
    roles = _parse_roles(document.get("roles"))
    resources_raw = document.get("resources")
    if not isinstance(resources_raw, dict):
        raise ConfigurationError("resources must be an object", code="RESOURCES_INVALID", path="resources")
    resources = {name: _parse_resource(name, raw, roles) for name, raw in resources_raw.items()}

    version = str(document.get("version") or "")
    found = parse_version(version)
    expected = parse_version(expected_version)
    if found is None:
        warnings.append(issue("PERMISSIONS_VERSION_UNPARSEABLE", f"cannot parse permissions version '{version}'", "version"))
    elif expected is not None and found < expected:
        warnings.append(
            issue(
                "PERMISSIONS_VERSION_STALE",
                f"permissions version {version} is older than expected {expected_version}",
                "version",
                {"found": version, "expected": expected_version},
            )
        )
    missing = [r for r in required_resources if r not in resources]
    if missing:
        warnings.append(
            issue("PERMISSIONS_RESOURCES_MISSING", "required resources are missing", "resources", {"missing": missing})
        )
    last_modified = document.get("lastModified")
    return PermissionConfig(
        version=version,
        last_modified=last_modified if isinstance(last_modified, str) else None,
        roles=MappingProxyType(roles),
        resources=MappingProxyType(resources),
        warnings=tuple(warnings),
        fingerprint=document_fingerprint(document),
    )


class PermissionModel:
    """Answers "may role R perform operation O on resource X".

    Decisions fail closed: a missing role, unknown resource or operation,
    disabled operation, or unloaded config all deny.
    """

    def __init__(
        self,
        source: DocumentSource,
        expected_version: str = EXPECTED_PERMISSION_VERSION,
        required_resources: Tuple[str, ...] = REQUIRED_RESOURCES,
        ttl_s: float = DEFAULT_TTL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.expected_version = expected_version
        self.required_resources = tuple(required_resources)
        self._loader: MemoizedLoader[PermissionConfig] = MemoizedLoader("permissions", self._load, ttl_s=ttl_s, clock=clock)
        self._matrix_cache: Dict[str, PermissionMatrix] = {}
        self._matrix_owner: PermissionConfig | None = None

    async def _load(self) -> PermissionConfig:
        document = await self.source.load()
        config = parse_permission_document(document, self.expected_version, self.required_resources)
        for warning in config.warnings:
            logger.warning(
                "permissions_stale code=%s message=%s detail=%s source=%s",
                warning["code"],
                warning["message"],
                warning.get("detail"),
                self.source.describe(),
            )
        logger.info(
            "permissions_loaded version=%s roles=%s resources=%s fingerprint=%s",
            config.version,
            len(config.roles),
            len(config.resources),
            config.fingerprint,
        )
        return config

    async def load(self, force_reload: bool = False) -> PermissionConfig:
        return await self._loader.get(force_reload=force_reload)

    async def initialize(self) -> PermissionConfig:
        if self._loader.is_loaded:
            return self._loader.peek()  # type: ignore[return-value]
        return await self.load()

    async def reload(self) -> PermissionConfig:
        return await self.load(force_reload=True)

    async def refresh(self) -> PermissionConfig:
        return await self.load()

    @property
    def ready(self) -> bool:
        return self._loader.peek() is not None

    @property
    def config(self) -> PermissionConfig:
        config = self._loader.peek()
        if config is None:
            raise NotInitializedError("permission model queried before load", component="permissions")
        return config

    async def resource_names(self) -> frozenset:
        config = await self.initialize()
        return frozenset(config.resources.keys())

    @property
    def role_names(self) -> List[str]:
        return list(self.config.roles.keys())

    def roles_by_priority(self) -> List[RoleConfig]:
        return sorted(self.config.roles.values(), key=lambda r: r.priority, reverse=True)

    def get_role_priority(self, role: Any) -> int | None:
        name = normalize_role(role)
        if name is None:
            return None
        found = self.config.roles.get(name)
        return found.priority if found else None

    def get_resource(self, resource: str) -> ResourceConfig | None:
        return self.config.resources.get(resource)

    def get_permission(self, resource: str, operation: str) -> PermissionDetail | None:
        found = self.get_resource(resource)
        if found is None:
            return None
        return found.permissions.get(operation)

    def get_minimum_priority(self, resource: str, operation: str) -> int | None:
        detail = self.get_permission(resource, operation)
        if detail is None or detail.is_disabled:
            return None
        return detail.minimum_priority

    def get_minimum_role(self, resource: str, operation: str) -> str | None:
        detail = self.get_permission(resource, operation)
        if detail is None or detail.is_disabled:
            return None
        return detail.minimum_role

    def has_permission(self, role: Any, resource: str, operation: str) -> bool:
        try:
            role_priority = self.get_role_priority(role)
            minimum = self.get_minimum_priority(resource, operation)
        except NotInitializedError:
            logger.warning("permission_denied_unloaded role=%s resource=%s op=%s", role, resource, operation)
            return False
        if role_priority is None or minimum is None:
            return False
        return role_priority >= minimum

    def has_minimum_role(self, user_role: Any, required_role: Any) -> bool:
        try:
            user_priority = self.get_role_priority(user_role)
            required_priority = self.get_role_priority(required_role)
        except NotInitializedError:
            return False
        if user_priority is None or required_priority is None:
            return False
        return user_priority >= required_priority

    def get_row_level_security(self, role: Any, resource: str) -> str | None:
        name = normalize_role(role)
        found = self.get_resource(resource)
        if name is None or found is None:
            return None
        return found.row_level_security.get(name)

    def get_nav_visibility_priority(self, resource: str) -> int | None:
        found = self.get_resource(resource)
        if found is None:
            return None
        if found.nav_visibility is not None:
            return found.nav_visibility.minimum_priority
        return self.get_minimum_priority(resource, "read")

    def is_nav_visible(self, role: Any, resource: str) -> bool:
        try:
            role_priority = self.get_role_priority(role)
            minimum = self.get_nav_visibility_priority(resource)
        except NotInitializedError:
            return False
        if role_priority is None or minimum is None:
            return False
        return role_priority >= minimum

    def permission_matrix(self, resource: str) -> PermissionMatrix | None:
        config = self.config
        if self._matrix_owner is not config:
            self._matrix_cache = {}
            self._matrix_owner = config
        cached = self._matrix_cache.get(resource)
        if cached is not None:
            return cached
        if resource not in config.resources:
            return None
        roles = [r.name for r in self.roles_by_priority()]
        grid = {
            role: MappingProxyType({op: self.has_permission(role, resource, op) for op in OPERATIONS})
            for role in roles
        }
        matrix = PermissionMatrix(resource=resource, roles=tuple(roles), grid=MappingProxyType(grid))
        self._matrix_cache[resource] = matrix
        return matrix

    def role_permissions(self, role: Any) -> Dict[str, List[str]]:
        out: Dict[str, List[str]] = {}
        for resource in self.config.resources:
            ops = [op for op in OPERATIONS if self.has_permission(role, resource, op)]
            if ops:
                out[resource] = ops
        return out

    def role_summaries(self) -> List[Dict[str, Any]]:
        return [
            {"name": r.name, "priority": r.priority, "description": r.description}
            for r in self.roles_by_priority()
        ]

"""Error taxonomy shared by the schema, permission and client layers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


Issue = Dict[str, Any]


@dataclass
class FrameworkError(Exception):
    message: str

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return self.message


@dataclass
class ConfigurationError(FrameworkError):
    code: str = "CONFIG_INVALID"
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


@dataclass
class UnresolvedResourceError(ConfigurationError):
    code: str = "ENTITY_RESOURCE_UNKNOWN"


@dataclass
class UnresolvedReferenceError(ConfigurationError):
    code: str = "FIELD_RELATED_ENTITY_UNKNOWN"


@dataclass
class DuplicatePriorityError(ConfigurationError):
    code: str = "ROLE_PRIORITY_DUPLICATE"


@dataclass
class DocumentLoadError(FrameworkError):
    source: str = ""

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.message} (source={self.source})" if self.source else self.message


@dataclass
class NotInitializedError(FrameworkError):
    component: str = ""


@dataclass
class UnknownEntityError(FrameworkError):
    entity: str = ""


@dataclass
class UnknownResourceError(FrameworkError):
    resource: str = ""


@dataclass
class EntityRequestError(FrameworkError):
    entity: str = ""
    operation: str = ""
    status: int | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        if self.status is not None:
            return f"{self.message} (status={self.status})"
        return self.message


def issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def issue_from_error(exc: FrameworkError) -> Issue:
    return issue(getattr(exc, "code", type(exc).__name__), exc.message, getattr(exc, "path", None))

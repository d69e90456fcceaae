"""Entity schema registry backed by the entity-metadata document."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping

from config_cache import DEFAULT_TTL_S, MemoizedLoader
from config_errors import (
    DocumentLoadError,
    Issue,
    NotInitializedError,
    UnknownEntityError,
    UnresolvedReferenceError,
    UnresolvedResourceError,
    issue,
)
from config_sources import DocumentSource
from default_schema import default_schema_document
from entity_schema import EntityMetadata, FieldDefinition
from tross.config_fingerprint import document_fingerprint


logger = logging.getLogger("tross.schema")

META_KEYS = frozenset({"$schema", "$id", "title", "description", "version", "lastModified"})

ResourceProvider = Callable[[], Awaitable[Iterable[str]]]


@dataclass(frozen=True)
class SchemaSnapshot:
    entities: Mapping[str, EntityMetadata]
    version: str | None = None
    fingerprint: str = ""
    degraded: bool = False
    source: str = ""
    warnings: tuple = field(default_factory=tuple)
    resources_checked: bool = True


def parse_schema_document(document: Dict[str, Any], known_resources: Iterable[str] | None = None) -> Dict[str, EntityMetadata]:
    """Parse every entity in a metadata document.

    Meta keys and non-object values are skipped. When ``known_resources`` is
    given, an entity whose resource tag is not among them raises
    :class:`UnresolvedResourceError`.
    """
    resources = frozenset(known_resources) if known_resources is not None else None
    entities: Dict[str, EntityMetadata] = {}
    for name, value in document.items():
        if name in META_KEYS or not isinstance(value, dict):
            continue
        metadata = EntityMetadata.from_json(name, value)
        if resources is not None and metadata.resource not in resources:
            raise UnresolvedResourceError(
                f"entity '{name}' declares resource '{metadata.resource}' which has no permission rules",
                path=f"{name}.rlsResource",
            )
        entities[name] = metadata
    return entities


class SchemaRegistry:
    """Holds the parsed entity schema and resolves entity names to metadata."""

    def __init__(
        self,
        source: DocumentSource,
        known_resources: ResourceProvider | None = None,
        ttl_s: float = DEFAULT_TTL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.known_resources = known_resources
        self._loader: MemoizedLoader[SchemaSnapshot] = MemoizedLoader("schema", self._load, ttl_s=ttl_s, clock=clock)

    async def _resources(self) -> Iterable[str] | None:
        if self.known_resources is None:
            return None
        return await self.known_resources()

    def _unchecked_warning(self) -> List[Issue]:
        if self.known_resources is not None:
            return []
        logger.warning("schema_resources_unchecked source=%s", self.source.describe())
        return [issue("SCHEMA_RESOURCES_UNCHECKED", "entity resource tags were not checked against permission rules")]

    async def _load(self) -> SchemaSnapshot:
        resources = await self._resources()
        try:
            document = await self.source.load()
        except DocumentLoadError as exc:
            logger.warning(
                "schema_fallback source=%s error=%s using=builtin",
                self.source.describe(),
                exc.message,
            )
            document = default_schema_document()
            entities = parse_schema_document(document, resources)
            fallback = issue("SCHEMA_FALLBACK", exc.message, detail={"source": self.source.describe()})
            return SchemaSnapshot(
                entities=MappingProxyType(entities),
                version=str(document.get("version")),
                fingerprint=document_fingerprint(document),
                degraded=True,
                source="builtin",
                warnings=tuple([fallback] + self._unchecked_warning()),
                resources_checked=resources is not None,
            )
        entities = parse_schema_document(document, resources)
        fingerprint = document_fingerprint(document)
        logger.info(
            "schema_loaded source=%s entities=%s fingerprint=%s",
            self.source.describe(),
            len(entities),
            fingerprint,
        )
        version = document.get("version")
        return SchemaSnapshot(
            entities=MappingProxyType(entities),
            version=str(version) if version is not None else None,
            fingerprint=fingerprint,
            degraded=False,
            source=self.source.describe(),
            warnings=tuple(self._unchecked_warning()),
            resources_checked=resources is not None,
        )

    async def initialize(self) -> None:
        if self._loader.is_loaded:
            return
        await self._loader.get()

    async def reload(self) -> None:
        await self._loader.get(force_reload=True)

    async def refresh(self) -> None:
        await self._loader.get()

    @property
    def ready(self) -> bool:
        return self._loader.peek() is not None

    @property
    def snapshot(self) -> SchemaSnapshot:
        snap = self._loader.peek()
        if snap is None:
            raise NotInitializedError("schema registry queried before initialize()", component="schema")
        return snap

    @property
    def degraded(self) -> bool:
        snap = self._loader.peek()
        return bool(snap and snap.degraded)

    @property
    def entity_names(self) -> List[str]:
        return list(self.snapshot.entities.keys())

    def entities(self) -> List[EntityMetadata]:
        return list(self.snapshot.entities.values())

    def has(self, name: str) -> bool:
        return name in self.snapshot.entities

    def get(self, name: str) -> EntityMetadata:
        found = self.snapshot.entities.get(name)
        if found is None:
            raise UnknownEntityError(f"unknown entity '{name}'", entity=name)
        return found

    def try_get(self, name: str) -> EntityMetadata | None:
        snap = self._loader.peek()
        if snap is None:
            return None
        return snap.entities.get(name)

    def resolve_related(self, fdef: FieldDefinition) -> EntityMetadata:
        if not fdef.related_entity:
            raise UnresolvedReferenceError(f"foreign key '{fdef.name}' names no related entity", path=fdef.name)
        related = self.try_get(fdef.related_entity)
        if related is None:
            raise UnresolvedReferenceError(
                f"foreign key '{fdef.name}' references unknown entity '{fdef.related_entity}'",
                path=fdef.name,
            )
        return related

    def display_field_for(self, fdef: FieldDefinition) -> str:
        if fdef.display_field:
            return fdef.display_field
        related = self.try_get(fdef.related_entity or "")
        if related is not None and related.display_field:
            return related.display_field
        return "name"


"""Table column descriptors derived from entity metadata."""

from __future__ import annotations

import functools
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Tuple

from entity_schema import SYSTEM_TIMESTAMP_FIELDS, EntityMetadata, FieldDefinition, FieldType, render_display
from field_config_factory import EntityLookup
from field_values import (
    BoolValue,
    EnumValue,
    FieldValue,
    NullValue,
    NumberValue,
    ReferenceValue,
    TextValue,
    TimestampValue,
    coerce_value,
)
from schema_registry import SchemaRegistry
from tross.labels import title_case


logger = logging.getLogger("tross.columns")

Record = Dict[str, Any]
CellRenderer = Callable[[Record], "str | Awaitable[str]"]
Comparator = Callable[[Record, Record], int]

EMPTY_CELL = "—"

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

_TYPE_WIDTHS: Dict[FieldType, float] = {
    FieldType.BOOLEAN: 1.0,
    FieldType.INTEGER: 1.0,
    FieldType.DECIMAL: 1.2,
    FieldType.EMAIL: 2.5,
    FieldType.PHONE: 1.5,
    FieldType.TIMESTAMP: 1.8,
    FieldType.DATE: 1.5,
    FieldType.ENUM: 1.5,
    FieldType.TEXT: 3.0,
    FieldType.FOREIGN_KEY: 2.0,
    FieldType.STRING: 2.0,
    FieldType.UUID: 2.0,
}

_missing = set(FieldType) - set(_TYPE_WIDTHS)
if _missing:  # pragma: no cover - guards new FieldType members
    raise RuntimeError(f"column width missing for: {sorted(t.value for t in _missing)}")

STATUS_STYLES = {
    "active": "success",
    "completed": "success",
    "paid": "success",
    "approved": "success",
    "pending": "warning",
    "assigned": "info",
    "in_progress": "info",
    "sent": "info",
    "draft": "neutral",
    "suspended": "error",
    "cancelled": "error",
    "void": "error",
    "overdue": "error",
}


def width_hint(fdef: FieldDefinition) -> float:
    name = fdef.name
    if name == "id":
        return 0.8
    if name == "email":
        return 2.5
    if name.endswith("_id"):
        return 2.0
    if name == "is_active":
        return 1.3
    if name == "status":
        return 1.5
    return _TYPE_WIDTHS[fdef.type]


def status_style(value: Any) -> str:
    return STATUS_STYLES.get(str(value or "").strip().lower(), "neutral")


def _sort_key(value: FieldValue) -> Any:
    if isinstance(value, NumberValue):
        return value.value
    if isinstance(value, BoolValue):
        # True sorts first ascending
        return 0 if value.value else 1
    if isinstance(value, TimestampValue):
        return value.value
    if isinstance(value, (TextValue, EnumValue)):
        return value.value
    if isinstance(value, ReferenceValue):
        return str(value.id)
    return None


def _cmp(a: Any, b: Any) -> int:
    if a == b:
        return 0
    try:
        return -1 if a < b else 1
    except TypeError:
        sa, sb = str(a), str(b)
        return (sa > sb) - (sa < sb)


def _render_value(value: FieldValue) -> str:
    if isinstance(value, NullValue):
        return EMPTY_CELL
    if isinstance(value, TimestampValue):
        moment = value.value
        day = f"{_MONTHS[moment.month - 1]} {moment.day}, {moment.year}"
        if value.date_only:
            return day
        hour = moment.hour % 12 or 12
        return f"{day} {hour}:{moment.minute:02d} {'AM' if moment.hour < 12 else 'PM'}"
    if isinstance(value, NumberValue):
        if value.integer:
            return str(value.value)
        return f"{value.value:.2f}"
    if isinstance(value, BoolValue):
        return "Yes" if value.value else "No"
    if isinstance(value, EnumValue):
        return title_case(value.value)
    if isinstance(value, TextValue):
        return value.value if value.value else EMPTY_CELL
    if isinstance(value, ReferenceValue):
        return f"ID: {value.id}"
    raise TypeError(f"unsupported field value: {type(value).__name__}")


class ForeignKeyDisplayCache:
    """Append-only memo of related-record display strings keyed by (entity, id)."""

    # TODO: bound this (LRU or TTL) once a client session can outlive a login.

    def __init__(self) -> None:
        self._values: Dict[Tuple[str, str], str] = {}
        self.lookups = 0

    def __len__(self) -> int:
        return len(self._values)

    @staticmethod
    def _key(entity: str, record_id: Any) -> Tuple[str, str]:
        return (entity, str(record_id))

    def peek(self, entity: str, record_id: Any) -> str | None:
        return self._values.get(self._key(entity, record_id))

    async def resolve(
        self,
        entity: str,
        record_id: Any,
        lookup: EntityLookup,
        display_field: str = "name",
        display_fields: Iterable[str] = (),
        template: str | None = None,
    ) -> str:
        key = self._key(entity, record_id)
        cached = self._values.get(key)
        if cached is not None:
            return cached
        self.lookups += 1
        try:
            related = await lookup.get(entity, record_id)
        except Exception as exc:
            logger.warning("fk_display_lookup_failed entity=%s id=%s error=%s", entity, record_id, exc)
            return f"ID: {record_id}"
        label = render_display(related, display_field, tuple(display_fields), template)
        if label is None:
            return f"ID: {record_id}"
        self._values[key] = label
        return label


default_display_cache = ForeignKeyDisplayCache()


@dataclass
class ColumnDescriptor:
    id: str
    label: str
    field_type: FieldType
    width: float
    sortable: bool
    comparator: Comparator | None = field(default=None, repr=False, compare=False)
    sort_key: Callable[[Record], Any] | None = field(default=None, repr=False, compare=False)
    renderer: Callable[[Record], Awaitable[str]] | None = field(default=None, repr=False, compare=False)
    badge: bool = False

    async def render(self, record: Record) -> str:
        return await self.renderer(record)

    def cell_style(self, record: Record) -> str | None:
        if not self.badge:
            return None
        return status_style((record or {}).get(self.id))

    def sort_rows(self, rows: Iterable[Record], descending: bool = False) -> List[Record]:
        """Sort rows by this column; null and unparseable cells stay last."""
        if self.comparator is None or self.sort_key is None:
            raise ValueError(f"column '{self.id}' is not sortable")
        present: List[Record] = []
        missing: List[Record] = []
        for row in rows:
            (missing if self.sort_key(row) is None else present).append(row)
        present.sort(key=functools.cmp_to_key(self.comparator), reverse=descending)
        return present + missing

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "type": self.field_type.value,
            "width": self.width,
            "sortable": self.sortable,
            "badge": self.badge,
        }


def make_comparator(fdef: FieldDefinition) -> Tuple[Callable[[Record], Any], Comparator]:
    """Sort key and ascending comparator over raw records; nulls compare last."""

    def key(row: Record) -> Any:
        return _sort_key(coerce_value(fdef, (row or {}).get(fdef.name)))

    def compare(a: Record, b: Record) -> int:
        ka, kb = key(a), key(b)
        if ka is None and kb is None:
            return 0
        if ka is None:
            return 1
        if kb is None:
            return -1
        return _cmp(ka, kb)

    return key, compare


class TableColumnFactory:
    """Builds column descriptors for any registered entity."""

    def __init__(
        self,
        registry: SchemaRegistry,
        entity_lookup: EntityLookup | None = None,
        display_cache: ForeignKeyDisplayCache | None = None,
    ) -> None:
        self.registry = registry
        self.entity_lookup = entity_lookup
        self.display_cache = display_cache if display_cache is not None else default_display_cache

    def default_visible_fields(self, metadata: EntityMetadata) -> List[str]:
        return [name for name in metadata.fields if name not in SYSTEM_TIMESTAMP_FIELDS]

    def for_entity(
        self,
        entity: str,
        visible_fields: Iterable[str] | None = None,
        custom_renderers: Dict[str, CellRenderer] | None = None,
    ) -> List[ColumnDescriptor]:
        metadata = self.registry.get(entity)
        names = list(visible_fields) if visible_fields is not None else self.default_visible_fields(metadata)
        renderers = custom_renderers or {}
        columns: List[ColumnDescriptor] = []
        for name in names:
            fdef = metadata.fields.get(name)
            if fdef is None:
                logger.debug("column_unknown_field entity=%s field=%s", entity, name)
                continue
            sortable = name in metadata.sortable_fields
            key, comparator = make_comparator(fdef) if sortable else (None, None)
            columns.append(
                ColumnDescriptor(
                    id=name,
                    label=title_case(name),
                    field_type=fdef.type,
                    width=width_hint(fdef),
                    sortable=sortable,
                    comparator=comparator,
                    sort_key=key,
                    renderer=self._renderer(fdef, renderers.get(name)),
                    badge=name == "status" or fdef.type == FieldType.ENUM,
                )
            )
        return columns

    def _renderer(self, fdef: FieldDefinition, custom: CellRenderer | None) -> Callable[[Record], Awaitable[str]]:
        if custom is not None:

            async def render_custom(record: Record) -> str:
                result = custom(record)
                if inspect.isawaitable(result):
                    result = await result
                return str(result)

            return render_custom

        if fdef.is_foreign_key:
            related = self.registry.resolve_related(fdef)
            display_field = self.registry.display_field_for(fdef)
            cache = self.display_cache
            lookup = self.entity_lookup

            async def render_reference(record: Record) -> str:
                value = coerce_value(fdef, (record or {}).get(fdef.name))
                if not isinstance(value, ReferenceValue):
                    return _render_value(value)
                if lookup is None:
                    return cache.peek(related.name, value.id) or _render_value(value)
                return await cache.resolve(
                    related.name,
                    value.id,
                    lookup,
                    display_field=display_field,
                    display_fields=fdef.display_fields,
                    template=fdef.display_template,
                )

            return render_reference

        async def render_plain(record: Record) -> str:
            return _render_value(coerce_value(fdef, (record or {}).get(fdef.name)))

        return render_plain

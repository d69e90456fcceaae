"""Entity schema data model: field types, field definitions, entity metadata."""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Tuple

from tross.labels import pluralize_label, title_case


class FieldType(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    EMAIL = "email"
    PHONE = "phone"
    TIMESTAMP = "timestamp"
    DATE = "date"
    DECIMAL = "decimal"
    ENUM = "enum"
    TEXT = "text"
    UUID = "uuid"
    FOREIGN_KEY = "foreign_key"

    @classmethod
    def parse(cls, value: Any) -> "FieldType":
        if isinstance(value, FieldType):
            return value
        key = str(value or "").strip().lower()
        return _TYPE_ALIASES.get(key, cls.STRING)


_TYPE_ALIASES: Dict[str, FieldType] = {t.value: t for t in FieldType}
_TYPE_ALIASES.update(
    {
        "int": FieldType.INTEGER,
        "bool": FieldType.BOOLEAN,
        "datetime": FieldType.TIMESTAMP,
        "float": FieldType.DECIMAL,
        "double": FieldType.DECIMAL,
        "number": FieldType.DECIMAL,
        "currency": FieldType.DECIMAL,
        "fk": FieldType.FOREIGN_KEY,
        "foreignkey": FieldType.FOREIGN_KEY,
        "json": FieldType.TEXT,
        "jsonb": FieldType.TEXT,
    }
)

NUMERIC_TYPES = frozenset({FieldType.INTEGER, FieldType.DECIMAL})

SYSTEM_TIMESTAMP_FIELDS = ("created_at", "updated_at")


class SortOrder(str, Enum):
    ASC = "ASC"
    DESC = "DESC"

    @classmethod
    def parse(cls, value: Any, default: "SortOrder" = None) -> "SortOrder":
        text = str(value or "").strip().upper()
        if text in ("ASC", "DESC"):
            return cls(text)
        return default or cls.DESC


@dataclass(frozen=True)
class SortSpec:
    field: str = "created_at"
    order: SortOrder = SortOrder.DESC

    @classmethod
    def from_json(cls, data: Any) -> "SortSpec":
        if not isinstance(data, dict):
            return cls()
        return cls(field=str(data.get("field") or "id"), order=SortOrder.parse(data.get("order")))

    def to_json(self) -> Dict[str, str]:
        return {"field": self.field, "order": self.order.value}


def _opt_int(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _opt_num(value: Any) -> int | float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return value
    return None


def _str_list(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(v) for v in value if v is not None)


@dataclass(frozen=True)
class FieldDefinition:
    name: str
    type: FieldType = FieldType.STRING
    required: bool = False
    readonly: bool = False
    max_length: int | None = None
    min_length: int | None = None
    min: int | float | None = None
    max: int | float | None = None
    default: Any = None
    enum_values: Tuple[str, ...] = ()
    pattern: str | None = None
    description: str | None = None
    related_entity: str | None = None
    display_field: str | None = None
    display_fields: Tuple[str, ...] = ()
    display_template: str | None = None

    @classmethod
    def from_json(cls, name: str, data: Dict[str, Any]) -> "FieldDefinition":
        data = data if isinstance(data, dict) else {}
        return cls(
            name=name,
            type=FieldType.parse(data.get("type")),
            required=data.get("required") is True,
            readonly=data.get("readonly") is True,
            max_length=_opt_int(data.get("maxLength")),
            min_length=_opt_int(data.get("minLength")),
            min=_opt_num(data.get("min")),
            max=_opt_num(data.get("max")),
            default=copy.deepcopy(data.get("default")),
            enum_values=_str_list(data.get("values")),
            pattern=data.get("pattern") if isinstance(data.get("pattern"), str) else None,
            description=data.get("description") if isinstance(data.get("description"), str) else None,
            related_entity=data.get("relatedEntity") if isinstance(data.get("relatedEntity"), str) else None,
            display_field=data.get("displayField") if isinstance(data.get("displayField"), str) else None,
            display_fields=_str_list(data.get("displayFields")),
            display_template=data.get("displayTemplate") if isinstance(data.get("displayTemplate"), str) else None,
        )

    def to_json(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.type.value}
        if self.required:
            out["required"] = True
        if self.readonly:
            out["readonly"] = True
        optional = (
            ("maxLength", self.max_length),
            ("minLength", self.min_length),
            ("min", self.min),
            ("max", self.max),
            ("default", copy.deepcopy(self.default)),
            ("pattern", self.pattern),
            ("description", self.description),
            ("relatedEntity", self.related_entity),
            ("displayField", self.display_field),
            ("displayTemplate", self.display_template),
        )
        for key, value in optional:
            if value is not None:
                out[key] = value
        if self.enum_values:
            out["values"] = list(self.enum_values)
        if self.display_fields:
            out["displayFields"] = list(self.display_fields)
        return out

    @property
    def is_foreign_key(self) -> bool:
        return self.type == FieldType.FOREIGN_KEY

    @property
    def is_numeric(self) -> bool:
        return self.type in NUMERIC_TYPES


@dataclass(frozen=True)
class EntityMetadata:
    name: str
    table_name: str
    primary_key: str = "id"
    identity_field: str = "id"
    display_field: str = "id"
    resource: str = ""
    icon: str | None = None
    display_name: str = ""
    display_name_plural: str = ""
    required_fields: Tuple[str, ...] = ()
    immutable_fields: Tuple[str, ...] = ()
    searchable_fields: Tuple[str, ...] = ()
    filterable_fields: Tuple[str, ...] = ()
    sortable_fields: Tuple[str, ...] = ()
    default_sort: SortSpec = field(default_factory=SortSpec)
    fields: Mapping[str, FieldDefinition] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_json(cls, name: str, data: Dict[str, Any]) -> "EntityMetadata":
        data = data if isinstance(data, dict) else {}
        raw_fields = data.get("fields") if isinstance(data.get("fields"), dict) else {}
        fields = {
            key: FieldDefinition.from_json(key, value)
            for key, value in raw_fields.items()
            if isinstance(value, dict)
        }
        identity = str(data.get("identityField") or "id")
        display_name = str(data.get("displayName") or title_case(name))
        return cls(
            name=name,
            table_name=str(data.get("tableName") or f"{name}s"),
            primary_key=str(data.get("primaryKey") or "id"),
            identity_field=identity,
            display_field=str(data.get("displayField") or identity),
            resource=str(data.get("rlsResource") or f"{name}s"),
            icon=data.get("icon") if isinstance(data.get("icon"), str) else None,
            display_name=display_name,
            display_name_plural=str(data.get("displayNamePlural") or pluralize_label(display_name)),
            required_fields=_str_list(data.get("requiredFields")),
            immutable_fields=_str_list(data.get("immutableFields")),
            searchable_fields=_str_list(data.get("searchableFields")),
            filterable_fields=_str_list(data.get("filterableFields")),
            sortable_fields=_str_list(data.get("sortableFields")),
            default_sort=SortSpec.from_json(data.get("defaultSort")) if "defaultSort" in data else SortSpec(),
            fields=MappingProxyType(fields),
        )

    def to_json(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "tableName": self.table_name,
            "primaryKey": self.primary_key,
            "identityField": self.identity_field,
            "displayField": self.display_field,
            "rlsResource": self.resource,
            "displayName": self.display_name,
            "displayNamePlural": self.display_name_plural,
            "requiredFields": list(self.required_fields),
            "immutableFields": list(self.immutable_fields),
            "searchableFields": list(self.searchable_fields),
            "filterableFields": list(self.filterable_fields),
            "sortableFields": list(self.sortable_fields),
            "defaultSort": self.default_sort.to_json(),
            "fields": {name: f.to_json() for name, f in self.fields.items()},
        }
        if self.icon:
            out["icon"] = self.icon
        return out

    @property
    def field_names(self) -> List[str]:
        return list(self.fields.keys())

    def get_field(self, name: str) -> FieldDefinition | None:
        return self.fields.get(name)

    def is_required(self, name: str) -> bool:
        fdef = self.fields.get(name)
        return name in self.required_fields or bool(fdef and fdef.required)

    def is_immutable(self, name: str) -> bool:
        return name in self.immutable_fields or name == self.primary_key or name == "created_at"

    def is_readonly(self, name: str) -> bool:
        fdef = self.fields.get(name)
        return bool(fdef and fdef.readonly)

    def is_system_field(self, name: str) -> bool:
        return name == self.primary_key or name in SYSTEM_TIMESTAMP_FIELDS


_TEMPLATE_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


def render_display(
    record: Dict[str, Any],
    display_field: str = "name",
    display_fields: Tuple[str, ...] | List[str] = (),
    template: str | None = None,
) -> str | None:
    """Human-readable label for a related record.

    A template such as ``"{first_name} {last_name}"`` wins over a list of
    display fields, which wins over the single display field.
    """
    if not isinstance(record, dict):
        return None
    if template:
        text = _TEMPLATE_RE.sub(lambda m: "" if record.get(m.group(1)) is None else str(record.get(m.group(1))), template)
        text = " ".join(text.split())
        if text:
            return text
    if display_fields:
        parts = [str(record[f]) for f in display_fields if record.get(f) not in (None, "")]
        if parts:
            return " ".join(parts)
    value = record.get(display_field)
    if value in (None, ""):
        return None
    return str(value)

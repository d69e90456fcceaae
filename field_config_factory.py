"""Form-field descriptors derived from entity metadata."""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Protocol, Tuple

from entity_schema import EntityMetadata, FieldDefinition, FieldType, render_display
from field_values import parse_number
from schema_registry import SchemaRegistry
from tross.labels import title_case


logger = logging.getLogger("tross.fields")

Validator = Callable[[Any], "str | None"]

EMAIL_RE = re.compile(r"^[\w.-]+@([\w-]+\.)+[\w-]{2,4}$")


class EntityLookup(Protocol):
    async def list_records(self, entity: str) -> List[Dict[str, Any]]: ...

    async def get(self, entity: str, record_id: Any) -> Dict[str, Any]: ...


class FormMode(str, Enum):
    CREATE = "create"
    EDIT = "edit"
    DISPLAY = "display"


class InputKind(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    EMAIL = "email"
    PHONE = "phone"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    SELECT = "select"
    ASYNC_SELECT = "async_select"


_INPUT_KINDS: Dict[FieldType, InputKind] = {
    FieldType.STRING: InputKind.TEXT,
    FieldType.UUID: InputKind.TEXT,
    FieldType.TEXT: InputKind.TEXTAREA,
    FieldType.EMAIL: InputKind.EMAIL,
    FieldType.PHONE: InputKind.PHONE,
    FieldType.INTEGER: InputKind.NUMBER,
    FieldType.DECIMAL: InputKind.NUMBER,
    FieldType.BOOLEAN: InputKind.BOOLEAN,
    FieldType.DATE: InputKind.DATE,
    FieldType.TIMESTAMP: InputKind.DATETIME,
    FieldType.ENUM: InputKind.SELECT,
    FieldType.FOREIGN_KEY: InputKind.ASYNC_SELECT,
}

_PLACEHOLDERS: Dict[FieldType, str | None] = {
    FieldType.STRING: None,
    FieldType.UUID: None,
    FieldType.TEXT: None,
    FieldType.EMAIL: "email@example.com",
    FieldType.PHONE: "(555) 123-4567",
    FieldType.INTEGER: None,
    FieldType.DECIMAL: "0.00",
    FieldType.BOOLEAN: None,
    FieldType.DATE: "YYYY-MM-DD",
    FieldType.TIMESTAMP: None,
    FieldType.ENUM: None,
    FieldType.FOREIGN_KEY: None,
}

for _table in (_INPUT_KINDS, _PLACEHOLDERS):
    _missing = set(FieldType) - set(_table)
    if _missing:  # pragma: no cover - guards new FieldType members
        raise RuntimeError(f"form dispatch missing for: {sorted(t.value for t in _missing)}")


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _fmt_number(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def required_check(label: str) -> Validator:
    def check(value: Any) -> str | None:
        return f"{label} is required" if _is_blank(value) else None

    return check


def max_length_check(limit: int) -> Validator:
    def check(value: Any) -> str | None:
        if isinstance(value, str) and len(value) > limit:
            return f"Maximum {limit} characters"
        return None

    return check


def min_length_check(limit: int) -> Validator:
    def check(value: Any) -> str | None:
        if isinstance(value, str) and value and len(value) < limit:
            return f"Minimum {limit} characters"
        return None

    return check


def max_value_check(limit: int | float) -> Validator:
    def check(value: Any) -> str | None:
        number = parse_number(value)
        if number is not None and number > limit:
            return f"Maximum value is {_fmt_number(limit)}"
        return None

    return check


def min_value_check(limit: int | float) -> Validator:
    def check(value: Any) -> str | None:
        number = parse_number(value)
        if number is not None and number < limit:
            return f"Minimum value is {_fmt_number(limit)}"
        return None

    return check


def pattern_check(pattern: re.Pattern, message: str) -> Validator:
    def check(value: Any) -> str | None:
        if _is_blank(value):
            return None
        return None if pattern.match(str(value).strip()) else message

    return check


def number_format_check(integer: bool) -> Validator:
    def check(value: Any) -> str | None:
        if _is_blank(value):
            return None
        number = parse_number(value)
        if number is None:
            return "Must be a number"
        if integer and isinstance(number, float) and not number.is_integer():
            return "Must be a whole number"
        return None

    return check


def enum_check(values: Iterable[str]) -> Validator:
    allowed = frozenset(values)

    def check(value: Any) -> str | None:
        if _is_blank(value):
            return None
        return None if str(value) in allowed else "Invalid selection"

    return check


def compose_validators(validators: Iterable[Validator]) -> Validator:
    """Run validators in order; the first error message wins."""
    chain = tuple(validators)

    def validate(value: Any) -> str | None:
        for check in chain:
            message = check(value)
            if message:
                return message
        return None

    return validate


def build_validator(metadata: EntityMetadata, fdef: FieldDefinition, label: str) -> Validator:
    checks: List[Validator] = []
    if metadata.is_required(fdef.name):
        checks.append(required_check(label))
    if fdef.max_length is not None:
        checks.append(max_length_check(fdef.max_length))
    if fdef.min_length is not None:
        checks.append(min_length_check(fdef.min_length))
    if fdef.max is not None:
        checks.append(max_value_check(fdef.max))
    if fdef.min is not None:
        checks.append(min_value_check(fdef.min))
    if fdef.type == FieldType.EMAIL:
        checks.append(pattern_check(EMAIL_RE, "Invalid email format"))
    if fdef.is_numeric:
        checks.append(number_format_check(fdef.type == FieldType.INTEGER))
    if fdef.pattern:
        try:
            checks.append(pattern_check(re.compile(fdef.pattern), "Invalid format"))
        except re.error as exc:
            logger.warning("field_pattern_invalid entity=%s field=%s error=%s", metadata.name, fdef.name, exc)
    if fdef.type == FieldType.ENUM and fdef.enum_values:
        checks.append(enum_check(fdef.enum_values))
    return compose_validators(checks)


@dataclass
class FieldDescriptor:
    name: str
    label: str
    input_kind: InputKind
    field_type: FieldType
    required: bool = False
    read_only: bool = False
    validator: Validator = field(default=lambda value: None, repr=False, compare=False)
    placeholder: str | None = None
    help_text: str | None = None
    max_length: int | None = None
    min_lines: int | None = None
    max_lines: int | None = None
    min_value: int | float | None = None
    max_value: int | float | None = None
    is_integer: bool = False
    select_items: Tuple[str, ...] = ()
    allow_empty: bool = True
    default: Any = None
    related_entity: str | None = None
    display_field: str | None = None
    display_fields: Tuple[str, ...] = ()
    display_template: str | None = None
    value_field: str = "id"
    options_loader: Callable[[], Awaitable[List[Dict[str, Any]]]] | None = field(default=None, repr=False, compare=False)

    def validate(self, value: Any) -> str | None:
        return self.validator(value)

    def get_value(self, record: Dict[str, Any]) -> Any:
        return (record or {}).get(self.name)

    def set_value(self, record: Dict[str, Any], value: Any) -> Dict[str, Any]:
        updated = dict(record or {})
        updated[self.name] = value
        return updated

    async def load_options(self) -> List[Dict[str, Any]]:
        if self.options_loader is None:
            return []
        return await self.options_loader()

    def option_label(self, option: Dict[str, Any]) -> str:
        label = render_display(option, self.display_field or "name", self.display_fields, self.display_template)
        return label if label is not None else f"ID: {option.get(self.value_field)}"

    def to_json(self) -> Dict[str, Any]:
        out = {
            "name": self.name,
            "label": self.label,
            "input": self.input_kind.value,
            "type": self.field_type.value,
            "required": self.required,
            "readOnly": self.read_only,
            "placeholder": self.placeholder,
            "helpText": self.help_text,
            "maxLength": self.max_length,
            "minValue": self.min_value,
            "maxValue": self.max_value,
            "isInteger": self.is_integer,
            "allowEmpty": self.allow_empty,
            "default": copy.deepcopy(self.default),
        }
        if self.input_kind == InputKind.TEXTAREA:
            out["minLines"] = self.min_lines
            out["maxLines"] = self.max_lines
        if self.select_items:
            out["items"] = list(self.select_items)
        if self.input_kind == InputKind.ASYNC_SELECT:
            out.update(
                {
                    "relatedEntity": self.related_entity,
                    "displayField": self.display_field,
                    "displayFields": list(self.display_fields),
                    "displayTemplate": self.display_template,
                    "valueField": self.value_field,
                }
            )
        return out


def _fk_label(name: str) -> str:
    label = title_case(name)
    return label[:-3] if label.endswith(" Id") else label


class FieldConfigFactory:
    """Builds form-field descriptors for any registered entity."""

    def __init__(self, registry: SchemaRegistry, entity_lookup: EntityLookup | None = None) -> None:
        self.registry = registry
        self.entity_lookup = entity_lookup

    def for_create(self, entity: str, **kwargs: Any) -> List[FieldDescriptor]:
        return self.for_entity(entity, mode=FormMode.CREATE, **kwargs)

    def for_edit(self, entity: str, **kwargs: Any) -> List[FieldDescriptor]:
        return self.for_entity(entity, mode=FormMode.EDIT, **kwargs)

    def for_display(self, entity: str, **kwargs: Any) -> List[FieldDescriptor]:
        return self.for_entity(entity, mode=FormMode.DISPLAY, **kwargs)

    def for_entity(
        self,
        entity: str,
        include_fields: Iterable[str] | None = None,
        exclude_fields: Iterable[str] | None = None,
        mode: FormMode = FormMode.CREATE,
        include_system_fields: bool = False,
    ) -> List[FieldDescriptor]:
        metadata = self.registry.get(entity)
        mode = FormMode(mode)
        include = set(include_fields) if include_fields is not None else None
        exclude = set(exclude_fields or ())
        descriptors: List[FieldDescriptor] = []
        for name, fdef in metadata.fields.items():
            if include is not None and name not in include:
                continue
            if name in exclude:
                continue
            if metadata.is_system_field(name) and not (mode == FormMode.DISPLAY and include_system_fields):
                continue
            if fdef.readonly and mode != FormMode.DISPLAY:
                continue
            if fdef.is_foreign_key and self.entity_lookup is None:
                logger.info("field_skipped_no_lookup entity=%s field=%s", entity, name)
                continue
            read_only = mode == FormMode.DISPLAY or (mode == FormMode.EDIT and metadata.is_immutable(name))
            descriptors.append(self._descriptor(metadata, fdef, read_only))
        return descriptors

    def _descriptor(self, metadata: EntityMetadata, fdef: FieldDefinition, read_only: bool) -> FieldDescriptor:
        required = metadata.is_required(fdef.name)
        label = _fk_label(fdef.name) if fdef.is_foreign_key else title_case(fdef.name)
        descriptor = FieldDescriptor(
            name=fdef.name,
            label=label,
            input_kind=_INPUT_KINDS[fdef.type],
            field_type=fdef.type,
            required=required,
            read_only=read_only,
            validator=build_validator(metadata, fdef, label),
            placeholder=_PLACEHOLDERS[fdef.type],
            help_text=fdef.description,
            max_length=fdef.max_length,
            min_value=fdef.min,
            max_value=fdef.max,
            is_integer=fdef.type == FieldType.INTEGER,
            default=copy.deepcopy(fdef.default),
        )
        if fdef.type == FieldType.TEXT:
            descriptor.min_lines = 3
            descriptor.max_lines = 5
        elif fdef.type == FieldType.BOOLEAN and descriptor.default is None:
            descriptor.default = False
        elif fdef.type == FieldType.ENUM:
            descriptor.select_items = fdef.enum_values
            descriptor.allow_empty = not required
        elif fdef.is_foreign_key:
            related = self.registry.resolve_related(fdef)
            descriptor.related_entity = related.name
            descriptor.display_field = self.registry.display_field_for(fdef)
            descriptor.display_fields = fdef.display_fields
            descriptor.display_template = fdef.display_template
            descriptor.allow_empty = not required
            descriptor.options_loader = self._options_loader(related.name)
        return descriptor

    def _options_loader(self, related_entity: str) -> Callable[[], Awaitable[List[Dict[str, Any]]]]:
        lookup = self.entity_lookup

        async def load() -> List[Dict[str, Any]]:
            return await lookup.list_records(related_entity)

        return load

    def validate_record(
        self,
        entity: str,
        record: Dict[str, Any],
        mode: FormMode = FormMode.CREATE,
    ) -> Dict[str, str]:
        """Run every editable descriptor's validator against a record."""
        errors: Dict[str, str] = {}
        for descriptor in self.for_entity(entity, mode=mode):
            if descriptor.read_only:
                continue
            if mode == FormMode.EDIT and descriptor.name not in record:
                continue
            message = descriptor.validate(descriptor.get_value(record))
            if message:
                errors[descriptor.name] = message
        return errors

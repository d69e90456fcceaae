"""Typed field values: raw record values coerced against their field definitions."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Tuple, Union

from entity_schema import EntityMetadata, FieldDefinition, FieldType


@dataclass(frozen=True)
class NullValue:
    invalid: bool = False
    raw: Any = None


@dataclass(frozen=True)
class TextValue:
    value: str


@dataclass(frozen=True)
class NumberValue:
    value: int | float
    integer: bool = False


@dataclass(frozen=True)
class BoolValue:
    value: bool


@dataclass(frozen=True)
class TimestampValue:
    """A point in time, stored as naive UTC so all values compare."""

    value: datetime
    date_only: bool = False


@dataclass(frozen=True)
class EnumValue:
    value: str
    allowed: Tuple[str, ...] = ()

    @property
    def is_known(self) -> bool:
        return not self.allowed or self.value in self.allowed


@dataclass(frozen=True)
class ReferenceValue:
    entity: str
    id: Any


FieldValue = Union[NullValue, TextValue, NumberValue, BoolValue, TimestampValue, EnumValue, ReferenceValue]

VARIANTS = (NullValue, TextValue, NumberValue, BoolValue, TimestampValue, EnumValue, ReferenceValue)


def parse_number(raw: Any) -> int | float | None:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return raw if math.isfinite(raw) else None
    if isinstance(raw, Decimal):
        return float(raw) if raw.is_finite() else None
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = Decimal(text)
        except InvalidOperation:
            return None
        return float(number) if number.is_finite() else None
    return None


def parse_instant(raw: Any) -> datetime | None:
    """Parse a timestamp or date into naive UTC; None when unparseable."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, date):
        parsed = datetime(raw.year, raw.month, raw.day)
    elif isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


_TRUE = frozenset({"true", "1", "yes", "y", "on"})
_FALSE = frozenset({"false", "0", "no", "n", "off"})


def parse_bool(raw: Any) -> bool | None:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, int) and raw in (0, 1):
        return bool(raw)
    if isinstance(raw, str):
        text = raw.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
    return None


def _text(fdef: FieldDefinition, raw: Any) -> FieldValue:
    if isinstance(raw, (dict, list)):
        return NullValue(invalid=True, raw=raw)
    return TextValue(str(raw))


def _number(fdef: FieldDefinition, raw: Any) -> FieldValue:
    number = parse_number(raw)
    if number is None:
        return NullValue(invalid=True, raw=raw)
    integer = fdef.type == FieldType.INTEGER
    if integer and isinstance(number, float):
        if not number.is_integer():
            return NullValue(invalid=True, raw=raw)
        number = int(number)
    return NumberValue(number, integer=integer)


def _boolean(fdef: FieldDefinition, raw: Any) -> FieldValue:
    parsed = parse_bool(raw)
    if parsed is None:
        return NullValue(invalid=True, raw=raw)
    return BoolValue(parsed)


def _timestamp(fdef: FieldDefinition, raw: Any) -> FieldValue:
    parsed = parse_instant(raw)
    if parsed is None:
        return NullValue(invalid=True, raw=raw)
    return TimestampValue(parsed, date_only=fdef.type == FieldType.DATE)


def _enum(fdef: FieldDefinition, raw: Any) -> FieldValue:
    if isinstance(raw, (dict, list, bool)):
        return NullValue(invalid=True, raw=raw)
    return EnumValue(str(raw), allowed=fdef.enum_values)


def _reference(fdef: FieldDefinition, raw: Any) -> FieldValue:
    if isinstance(raw, (dict, list, bool)):
        return NullValue(invalid=True, raw=raw)
    ident = parse_number(raw) if isinstance(raw, str) and raw.strip().isdigit() else raw
    return ReferenceValue(entity=fdef.related_entity or "", id=ident)


_COERCERS: Dict[FieldType, Callable[[FieldDefinition, Any], FieldValue]] = {
    FieldType.STRING: _text,
    FieldType.EMAIL: _text,
    FieldType.PHONE: _text,
    FieldType.TEXT: _text,
    FieldType.UUID: _text,
    FieldType.INTEGER: _number,
    FieldType.DECIMAL: _number,
    FieldType.BOOLEAN: _boolean,
    FieldType.TIMESTAMP: _timestamp,
    FieldType.DATE: _timestamp,
    FieldType.ENUM: _enum,
    FieldType.FOREIGN_KEY: _reference,
}

_missing = set(FieldType) - set(_COERCERS)
if _missing:  # pragma: no cover - guards new FieldType members
    raise RuntimeError(f"field value coercion missing for: {sorted(t.value for t in _missing)}")


def coerce_value(fdef: FieldDefinition, raw: Any) -> FieldValue:
    """Coerce a raw record value; never raises."""
    if raw is None:
        return NullValue()
    if isinstance(raw, str) and not raw.strip() and fdef.type != FieldType.STRING and fdef.type != FieldType.TEXT:
        return NullValue()
    return _COERCERS[fdef.type](fdef, raw)


def to_raw(value: FieldValue) -> Any:
    """JSON-compatible payload for a typed value."""
    if isinstance(value, NullValue):
        return None
    if isinstance(value, (TextValue, NumberValue, BoolValue, EnumValue)):
        return value.value
    if isinstance(value, TimestampValue):
        if value.date_only:
            return value.value.date().isoformat()
        return value.value.isoformat() + "Z"
    if isinstance(value, ReferenceValue):
        return value.id
    raise TypeError(f"unsupported field value: {type(value).__name__}")


@dataclass(frozen=True)
class TypedRecord:
    entity: str
    values: Mapping[str, FieldValue] = field(default_factory=lambda: MappingProxyType({}))
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_raw(cls, metadata: EntityMetadata, raw: Dict[str, Any]) -> "TypedRecord":
        raw = raw if isinstance(raw, dict) else {}
        values = {name: coerce_value(fdef, raw.get(name)) for name, fdef in metadata.fields.items()}
        extra = {k: v for k, v in raw.items() if k not in metadata.fields}
        return cls(entity=metadata.name, values=MappingProxyType(values), extra=MappingProxyType(extra))

    def __getitem__(self, name: str) -> FieldValue:
        return self.values.get(name, NullValue())

    def invalid_fields(self) -> list:
        return [name for name, v in self.values.items() if isinstance(v, NullValue) and v.invalid]

    def to_json(self) -> Dict[str, Any]:
        out = {name: to_raw(v) for name, v in self.values.items()}
        out.update(self.extra)
        return out

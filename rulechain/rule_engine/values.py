"""Variant value type for dynamically typed record fields.

Event records carry whatever sensors send. Every lookup is wrapped in a
``FieldValue`` tagged with a ``ValueKind`` so that comparison semantics
are decided by explicit rules here instead of Python's own coercions.

The coercions follow the JavaScript conversions stored rule chains are
written against (``Number()``, ``String()`` and ``==``).
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ValueKind(Enum):
    NULL = "null"
    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    ARRAY = "array"
    TIMESTAMP = "timestamp"
    OBJECT = "object"


def kind_of(value: Any) -> ValueKind:
    if value is None:
        return ValueKind.NULL
    # bool first: bool is a subclass of int
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, (list, tuple)):
        return ValueKind.ARRAY
    if isinstance(value, datetime):
        return ValueKind.TIMESTAMP
    return ValueKind.OBJECT


@dataclass(frozen=True)
class FieldValue:
    kind: ValueKind
    raw: Any = None

    @classmethod
    def of(cls, value: Any) -> "FieldValue":
        return cls(kind_of(value), value)

    @property
    def is_null(self) -> bool:
        return self.kind is ValueKind.NULL

    @property
    def is_empty(self) -> bool:
        if self.kind is ValueKind.NULL:
            return True
        if self.kind in (ValueKind.STRING, ValueKind.ARRAY, ValueKind.OBJECT):
            try:
                return len(self.raw) == 0
            except TypeError:
                return False
        return False


NULL = FieldValue(ValueKind.NULL)


def to_number(value: Any) -> float | int | None:
    """Coerce like JavaScript ``Number()``; ``None`` stands for NaN."""
    kind = kind_of(value)
    if kind is ValueKind.BOOLEAN:
        return 1 if value else 0
    if kind is ValueKind.NUMBER:
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None
        return value
    if kind is ValueKind.STRING:
        text = value.strip()
        if text == "":
            return 0
        if "_" in text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
        if math.isnan(number) or math.isinf(number):
            return None
        return number
    if kind is ValueKind.ARRAY:
        return to_number(to_js_string(value))
    if kind is ValueKind.TIMESTAMP:
        return _as_utc(value).timestamp() * 1000
    return None


def to_js_string(value: Any) -> str:
    """Stringify like JavaScript ``String()``."""
    kind = kind_of(value)
    if kind is ValueKind.NULL:
        return "null"
    if kind is ValueKind.BOOLEAN:
        return "true" if value else "false"
    if kind is ValueKind.NUMBER:
        if isinstance(value, float):
            if math.isnan(value):
                return "NaN"
            if math.isinf(value):
                return "Infinity" if value > 0 else "-Infinity"
            if value.is_integer():
                return str(int(value))
        return str(value)
    if kind is ValueKind.STRING:
        return value
    if kind is ValueKind.ARRAY:
        return ",".join("" if item is None else to_js_string(item) for item in value)
    if kind is ValueKind.TIMESTAMP:
        return value.isoformat()
    if isinstance(value, dict):
        return "[object Object]"
    return str(value)


def to_timestamp(value: Any) -> datetime | None:
    """Interpret a field as an aware timestamp.

    Accepts datetimes (naive ones are taken as UTC), ISO-8601 strings and
    numbers as epoch milliseconds. Returns None when no reading applies.
    """
    kind = kind_of(value)
    if kind is ValueKind.TIMESTAMP:
        return _as_utc(value)
    if kind is ValueKind.NUMBER:
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if kind is ValueKind.STRING:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return _as_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def loose_equals(left: Any, right: Any) -> bool:
    """Equality with JavaScript ``==`` coercion rules."""
    left_kind, right_kind = kind_of(left), kind_of(right)

    if left_kind is ValueKind.NULL or right_kind is ValueKind.NULL:
        return left_kind is right_kind

    if left_kind is ValueKind.BOOLEAN:
        return loose_equals(to_number(left), right)
    if right_kind is ValueKind.BOOLEAN:
        return loose_equals(left, to_number(right))

    if left_kind is ValueKind.TIMESTAMP and right_kind is not ValueKind.TIMESTAMP:
        return loose_equals(to_number(left), right)
    if right_kind is ValueKind.TIMESTAMP and left_kind is not ValueKind.TIMESTAMP:
        return loose_equals(left, to_number(right))

    if left_kind is right_kind:
        if left_kind in (ValueKind.ARRAY, ValueKind.OBJECT):
            return left is right
        return left == right

    primitives = (ValueKind.NUMBER, ValueKind.STRING)
    if left_kind is ValueKind.ARRAY and right_kind in primitives:
        return loose_equals(to_js_string(left), right)
    if right_kind is ValueKind.ARRAY and left_kind in primitives:
        return loose_equals(left, to_js_string(right))

    if {left_kind, right_kind} == set(primitives):
        left_number, right_number = to_number(left), to_number(right)
        if left_number is None or right_number is None:
            return False
        return left_number == right_number

    return False


def strict_equals(left: Any, right: Any) -> bool:
    """Kind-aware equality: ``True`` never equals ``1``."""
    if kind_of(left) is not kind_of(right):
        return False
    return left == right


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

"""
Value coercion helpers for imported records.

Records are ordered mappings of field name to a small closed set of scalar
kinds (number, string, boolean, absent). The rule engine uses the numeric
reading helpers to decide whether a value is valid; the fix paths use
``coerce_field_value`` to narrow a user or rule supplied correction to the
field's declared kind. Coercion is total: it never raises and falls back to a
safe default instead.
"""

from __future__ import annotations

import enum
import json
import math
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Mapping

from recovery_app.importer.contracts import FieldKind, get_field_kind

Scalar = str | int | float | bool | None
Record = dict[str, Scalar]


class ValueKind(str, enum.Enum):
    """Kind tag for a scalar stored in a record."""

    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    ABSENT = "absent"


def value_kind(value: object | None) -> ValueKind:
    if value is None:
        return ValueKind.ABSENT
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    return ValueKind.STRING


def to_scalar(value: Any) -> Scalar:
    """
    Narrow an arbitrary decoded value to a record scalar.

    Dates become ISO strings, decimals become floats, and nested structures are
    kept as their JSON text so no information is silently dropped.
    """

    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, Decimal):
        return normalize_number(float(value))
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, default=str, sort_keys=True)
    return str(value)


def to_record(payload: Mapping[Any, Any]) -> Record:
    """Return a new record with string keys and scalar values, preserving order."""

    return {str(key): to_scalar(value) for key, value in payload.items()}


def to_number(value: object | None) -> float:
    """
    Read ``value`` as a number, returning NaN when it is not numeric.

    Blank strings read as zero and booleans as 1/0. Absent and non-finite
    values are NaN.
    """

    if value is None:
        return math.nan
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return math.nan
        return number if math.isfinite(number) else math.nan
    if not isinstance(value, str):
        return math.nan
    text = value.strip()
    if not text:
        return 0.0
    if "_" in text:
        return math.nan
    try:
        number = float(text)
    except ValueError:
        return math.nan
    # "inf", "nan" and overflowing literals are not usable quantities.
    return number if math.isfinite(number) else math.nan


def normalize_number(number: float) -> int | float:
    """Return integral finite floats as ``int`` so ``12.00`` round-trips as ``12``."""

    if isinstance(number, float) and math.isfinite(number) and number.is_integer():
        return int(number)
    return number


def is_truthy(value: object | None) -> bool:
    if value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def stringify(value: object | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return str(normalize_number(value))
    return str(value)


def coerce_number(value: object | None) -> int | float:
    number = to_number(value)
    if math.isnan(number):
        return 0
    return normalize_number(number)


def coerce_stock(value: object | None) -> int | float:
    return max(0, coerce_number(value))


def coerce_field_value(field: str, value: object | None) -> Scalar:
    """
    Coerce a correction to the declared kind of ``field``.

    Numeric fields fall back to 0, stock-like fields are floored at 0, boolean
    flags use truthiness, and everything else becomes a string.
    """

    kind = get_field_kind(field)
    if kind is FieldKind.NUMBER:
        return coerce_number(value)
    if kind is FieldKind.STOCK:
        return coerce_stock(value)
    if kind is FieldKind.BOOLEAN:
        return is_truthy(value)
    return stringify(value)

"""Recovery pipeline helpers."""

from __future__ import annotations

from .coercion import Record, Scalar, ValueKind, coerce_field_value, value_kind
from .dq import (
    PRODUCT_RULES,
    AutoFix,
    DQRule,
    FindingSeverity,
    ValidationFinding,
    summarize_findings,
    validate_record,
    validate_records,
)

__all__ = [
    "AutoFix",
    "DQRule",
    "FindingSeverity",
    "PRODUCT_RULES",
    "Record",
    "Scalar",
    "ValidationFinding",
    "ValueKind",
    "coerce_field_value",
    "summarize_findings",
    "validate_record",
    "validate_records",
    "value_kind",
]

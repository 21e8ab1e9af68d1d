"""Canonical contract helpers shared by the loader, rule engine and fix paths."""

from __future__ import annotations

from .product import (
    PRODUCT_CANONICAL_FIELDS,
    FieldKind,
    FieldSpec,
    get_field_kind,
    get_product_field_specs,
)
from .session import SessionMeta

__all__ = [
    "FieldKind",
    "FieldSpec",
    "PRODUCT_CANONICAL_FIELDS",
    "SessionMeta",
    "get_field_kind",
    "get_product_field_specs",
]

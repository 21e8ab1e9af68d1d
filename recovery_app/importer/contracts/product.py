"""Canonical product record contract used by error recovery.

Each known field declares the scalar kind corrections are coerced to. Fields
that are not declared here are treated as free text.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Mapping, Tuple


class FieldKind(str, enum.Enum):
    """Declared scalar kind of a product field."""

    NUMBER = "number"
    STOCK = "stock"
    BOOLEAN = "boolean"
    STRING = "string"


@dataclass(frozen=True)
class FieldSpec:
    """Metadata describing a canonical product field."""

    name: str
    description: str
    kind: FieldKind = FieldKind.STRING
    aliases: Tuple[str, ...] = ()

    def headers(self) -> Tuple[str, ...]:
        """Return the canonical name plus aliases."""

        return (self.name, *self.aliases)


PRODUCT_CANONICAL_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec(name="name", description="Product display name."),
    FieldSpec(name="sku", description="Stock keeping unit identifier."),
    FieldSpec(name="description", description="Long-form product description."),
    FieldSpec(name="email", description="Supplier or contact email address."),
    FieldSpec(name="price", description="Selling price.", kind=FieldKind.NUMBER),
    FieldSpec(name="cost", description="Unit cost.", kind=FieldKind.NUMBER, aliases=("cost_price", "costPrice")),
    FieldSpec(
        name="compareAtPrice",
        description="Reference price shown as struck through.",
        kind=FieldKind.NUMBER,
        aliases=("compare_at_price",),
    ),
    FieldSpec(name="weight", description="Shipping weight.", kind=FieldKind.NUMBER),
    FieldSpec(name="length", description="Package length.", kind=FieldKind.NUMBER),
    FieldSpec(name="width", description="Package width.", kind=FieldKind.NUMBER),
    FieldSpec(name="height", description="Package height.", kind=FieldKind.NUMBER),
    FieldSpec(name="stock", description="Units on hand.", kind=FieldKind.STOCK),
    FieldSpec(
        name="lowStockThreshold",
        description="Units on hand that trigger a low-stock alert.",
        kind=FieldKind.STOCK,
        aliases=("low_stock_threshold",),
    ),
    FieldSpec(name="taxable", description="Whether sales tax applies.", kind=FieldKind.BOOLEAN),
    FieldSpec(
        name="shippingRequired",
        description="Whether the product ships physically.",
        kind=FieldKind.BOOLEAN,
        aliases=("shipping_required",),
    ),
)


def _build_kind_map() -> Mapping[str, FieldKind]:
    kinds: dict[str, FieldKind] = {}
    for spec in PRODUCT_CANONICAL_FIELDS:
        for header in spec.headers():
            kinds[header] = spec.kind
    return kinds


_FIELD_KINDS = _build_kind_map()


def get_product_field_specs() -> Tuple[FieldSpec, ...]:
    return PRODUCT_CANONICAL_FIELDS


def get_field_kind(field: str) -> FieldKind:
    """Return the declared kind for ``field``; undeclared fields are strings."""

    return _FIELD_KINDS.get(field, FieldKind.STRING)

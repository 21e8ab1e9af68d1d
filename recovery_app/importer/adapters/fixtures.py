"""Fixed demonstration records used when an import source cannot be read."""

from __future__ import annotations

from recovery_app.importer.pipeline.coercion import Record

# Five records: one clean, then invalid price, blank name, missing SKU, invalid stock.
_FIXTURE_RECORDS: tuple[Record, ...] = (
    {"name": "Test Product 1", "price": 29.99, "sku": "TEST-001", "stock": 100},
    {"name": "Test Product 2", "price": "invalid_price", "sku": "TEST-002", "stock": "10"},
    {"name": "", "price": 19.99, "sku": "TEST-003", "stock": 50},
    {"name": "Test Product 4", "price": 39.99, "sku": "", "stock": 25},
    {"name": "Test Product 5", "price": 49.99, "sku": "TEST-005", "stock": "bad_stock"},
)


def get_fixture_records() -> list[Record]:
    """Return a fresh copy of the fixture dataset."""

    return [dict(record) for record in _FIXTURE_RECORDS]

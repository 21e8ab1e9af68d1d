"""Source adapters that turn uploaded import files into records."""

from __future__ import annotations

from .fixtures import get_fixture_records
from .records import (
    SOURCE_FILE,
    SOURCE_FIXTURE,
    LoadResult,
    RecordLoader,
    RecordLoadError,
    decode_records,
    read_csv_records,
    read_json_records,
    read_records,
    read_xlsx_records,
)

__all__ = [
    "LoadResult",
    "RecordLoadError",
    "RecordLoader",
    "SOURCE_FILE",
    "SOURCE_FIXTURE",
    "decode_records",
    "get_fixture_records",
    "read_csv_records",
    "read_json_records",
    "read_records",
    "read_xlsx_records",
]

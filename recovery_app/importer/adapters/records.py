"""Record loader for recovery sessions.

Decodes the uploaded source behind an import session into ordered records.
CSV, JSON and XLSX sources are supported; the file extension picks the decoder
and unknown extensions are read as JSON. Any failure to read or decode the
source falls back to the fixed demonstration dataset unless fallback is
disabled, in which case ``RecordLoadError`` is raised.
"""

from __future__ import annotations

import csv
import json
import logging
from concurrent.futures import CancelledError, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

import openpyxl

from recovery_app.importer.contracts import SessionMeta
from recovery_app.importer.pipeline.coercion import Record, to_record

from .fixtures import get_fixture_records

logger = logging.getLogger(__name__)

SOURCE_FILE = "file"
SOURCE_FIXTURE = "fixture"


class RecordLoadError(Exception):
    """Raised when an import source cannot be read or decoded."""


@dataclass(frozen=True)
class LoadResult:
    """Records produced for a session plus where they came from."""

    records: Sequence[Record]
    source: str
    error: str | None = None

    @property
    def used_fixture(self) -> bool:
        return self.source == SOURCE_FIXTURE


def _sanitize_header(header: str | None) -> str:
    token = (header or "").strip()
    return token.lstrip("\ufeff")


def _strip_cell(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    return value


def read_csv_records(path: Path) -> list[Record]:
    with path.open("r", encoding="utf-8-sig", newline="") as handle:
        reader = csv.DictReader(handle)
        if reader.fieldnames is None:
            return []
        reader.fieldnames = [_sanitize_header(header) for header in reader.fieldnames]
        records: list[Record] = []
        for row in reader:
            # Cells beyond the header row land under the ``None`` key.
            row.pop(None, None)
            records.append(to_record({key: _strip_cell(value) for key, value in row.items()}))
        return records


def read_json_records(path: Path) -> list[Record]:
    with path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list):
        raise RecordLoadError("JSON source must contain an object or a list of objects.")
    records: list[Record] = []
    for position, item in enumerate(payload):
        if not isinstance(item, dict):
            raise RecordLoadError(f"JSON item {position} is not an object.")
        records.append(to_record(item))
    return records


def read_xlsx_records(path: Path) -> list[Record]:
    workbook = openpyxl.load_workbook(path, read_only=True, data_only=True)
    try:
        sheet = workbook.worksheets[0] if workbook.worksheets else None
        if sheet is None:
            return []
        rows = sheet.iter_rows(values_only=True)
        header_row = next(rows, None)
        if header_row is None:
            return []
        headers = [
            _sanitize_header(str(value)) if value is not None else f"Column_{position + 1}"
            for position, value in enumerate(header_row)
        ]
        records: list[Record] = []
        for row in rows:
            values = [_strip_cell(value) for value in row]
            if not any(value not in (None, "") for value in values):
                continue
            records.append(to_record(dict(zip(headers, values))))
        return records
    finally:
        workbook.close()


_READERS = {
    ".csv": read_csv_records,
    ".json": read_json_records,
    ".xlsx": read_xlsx_records,
}


def read_records(path: Path, file_name: str | None = None) -> list[Record]:
    """Decode ``path`` using the decoder selected by the file extension."""

    suffix = Path(file_name or path.name).suffix.lower()
    reader = _READERS.get(suffix, read_json_records)
    return reader(path)


def decode_records(path: Path, file_name: str | None = None) -> list[Record]:
    """
    Decode ``path`` like ``read_records``, reporting any failure as ``RecordLoadError``.
    """

    try:
        return read_records(path, file_name)
    except RecordLoadError:
        raise
    except Exception as exc:
        raise RecordLoadError(f"Could not decode {path.name}: {exc}") from exc


class RecordLoader:
    """
    Load records for an import session with a bounded wait.

    The loader owns a small worker pool so a slow filesystem read cannot hold
    the caller past ``timeout_seconds``.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 10.0,
        fallback_enabled: bool = True,
        max_workers: int = 2,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.fallback_enabled = fallback_enabled
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="recovery-loader")
        self._closed = False

    def load(self, meta: SessionMeta) -> LoadResult:
        try:
            records = self._load_from_source(meta)
        except RecordLoadError as exc:
            if not self.fallback_enabled:
                raise
            logger.warning(
                "Recovery source for session %s unavailable; using fixture dataset.",
                meta.session_id,
                extra={"recovery_session_id": meta.session_id, "recovery_load_error": str(exc)},
            )
            return LoadResult(records=get_fixture_records(), source=SOURCE_FIXTURE, error=str(exc))
        return LoadResult(records=records, source=SOURCE_FILE)

    def _load_from_source(self, meta: SessionMeta) -> list[Record]:
        if not meta.file_path:
            raise RecordLoadError("Import session has no source file.")
        path = Path(meta.file_path)
        if not path.is_file():
            raise RecordLoadError(f"Source file not found: {path}")
        if self._closed:
            raise RecordLoadError("Record loader is shut down.")

        try:
            future = self._executor.submit(decode_records, path, meta.file_name)
        except RuntimeError as exc:
            raise RecordLoadError("Record loader is shut down.") from exc
        try:
            return future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError as exc:
            future.cancel()
            raise RecordLoadError(f"Timed out after {self.timeout_seconds}s reading {path.name}.") from exc
        except CancelledError as exc:
            raise RecordLoadError("Record loader is shut down.") from exc

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=False, cancel_futures=True)

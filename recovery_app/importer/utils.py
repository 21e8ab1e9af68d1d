"""
Recovery utilities for JSON-safe payloads and record diffs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any


def ensure_json_serializable(value: Any) -> Any:
    """
    Best-effort conversion of values to JSON-serializable representations.
    """

    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Mapping):
        return {str(key): ensure_json_serializable(inner) for key, inner in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [ensure_json_serializable(item) for item in value]
    if isinstance(value, Path):
        return str(value)
    return str(value)


def normalize_payload(payload: Mapping[str, Any] | None) -> dict[str, Any]:
    """
    Return a shallow copy of ``payload`` with JSON-serializable values.
    """

    if not payload:
        return {}
    return {str(key): ensure_json_serializable(value) for key, value in payload.items()}


def _same_value(before: Any, after: Any) -> bool:
    return before == after and isinstance(before, bool) == isinstance(after, bool)


def diff_payload(
    original: Mapping[str, Any] | None,
    updated: Mapping[str, Any] | None,
) -> dict[str, dict[str, Any]]:
    """
    Field-level diff between two records, keyed by field name.

    Values that compare equal are omitted; ``12`` and ``12.0`` count as equal.
    """

    before_record = normalize_payload(original)
    after_record = normalize_payload(updated)

    diff: dict[str, dict[str, Any]] = {}
    for key in sorted(set(before_record) | set(after_record)):
        before = before_record.get(key)
        after = after_record.get(key)
        if _same_value(before, after):
            continue
        diff[key] = {"before": before, "after": after}
    return diff

"""Prometheus metrics helpers for error recovery."""

from __future__ import annotations

from typing import Literal

from prometheus_client import Counter, Gauge

_sessions_initialized = Counter(
    "recovery_sessions_initialized_total",
    "Recovery sessions initialized, by where their records came from.",
    ["source"],
)
_fixes_applied = Counter(
    "recovery_fixes_applied_total",
    "Corrections applied to recovery sessions, by fix path.",
    ["mode"],
)
_loader_fallbacks = Counter(
    "recovery_loader_fallbacks_total",
    "Times the record loader substituted the fixture dataset.",
)
_active_sessions = Gauge(
    "recovery_sessions_active",
    "Recovery sessions currently held in memory.",
)


def record_session_initialized(source: str) -> None:
    """Count a new recovery session and, for fixture data, a loader fallback."""

    _sessions_initialized.labels(source=source).inc()
    if source == "fixture":
        _loader_fallbacks.inc()


def record_fixes_applied(mode: Literal["single", "bulk"], count: int = 1) -> None:
    if count > 0:
        _fixes_applied.labels(mode=mode).inc(count)


def set_active_sessions(count: int) -> None:
    _active_sessions.set(count)

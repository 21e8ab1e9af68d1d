"""
In-memory store of recovery sessions.

A recovery session is the working state for correcting one import session's
validation findings. Sessions are created on first access by loading the
import's records and running the rule engine once, and live until they are
explicitly discarded, cleared, or the store is shut down.

Every session id has its own re-entrant lock. Callers that read and then
mutate a session hold ``store.lock_for(session_id)`` for the whole operation;
``get_or_init`` takes the same lock so a session is initialized at most once.
A lock entry lives while its session exists or while any thread holds or
waits on it, so every writer for an id serializes on the same lock.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Iterator, Mapping, Sequence

from recovery_app.importer.adapters import SOURCE_FILE, RecordLoader
from recovery_app.importer.contracts import SessionMeta
from recovery_app.importer.metrics import record_session_initialized, set_active_sessions

from .coercion import Record, Scalar
from .dq import DQRule, ValidationFinding, validate_record

logger = logging.getLogger(__name__)


@dataclass
class RecoverySession:
    """
    Working state for one import session.

    Attributes:
        session_id: Identifier of the import session this state belongs to.
        original_data: Records as loaded; read-only and never replaced.
        errors: Outstanding findings, at most one per ``(record_index, field)``.
        resolved_errors: Append-only history of findings removed by fixes.
        modified_records: Complete corrected records keyed by position.
        data_source: ``file`` or ``fixture``.
    """

    session_id: str
    original_data: tuple[Mapping[str, Scalar], ...]
    errors: list[ValidationFinding]
    resolved_errors: list[ValidationFinding] = field(default_factory=list)
    modified_records: dict[int, Record] = field(default_factory=dict)
    data_source: str = SOURCE_FILE
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def build(
        cls,
        session_id: str,
        records: Sequence[Mapping[str, Scalar]],
        *,
        data_source: str = SOURCE_FILE,
        rules: Sequence[DQRule] | None = None,
    ) -> "RecoverySession":
        original = tuple(MappingProxyType(dict(record)) for record in records)
        errors: list[ValidationFinding] = []
        for index, record in enumerate(original):
            errors.extend(validate_record(record, index, rules))
        return cls(session_id=session_id, original_data=original, errors=errors, data_source=data_source)

    @property
    def record_count(self) -> int:
        return len(self.original_data)

    def has_index(self, record_index: int) -> bool:
        return 0 <= record_index < len(self.original_data)

    def current_record(self, record_index: int) -> Record:
        """Return a mutable copy of the latest version of a record."""

        modified = self.modified_records.get(record_index)
        if modified is not None:
            return dict(modified)
        return dict(self.original_data[record_index])

    def find_error(self, record_index: int, field_name: str) -> ValidationFinding | None:
        for finding in self.errors:
            if finding.record_index == record_index and finding.field == field_name:
                return finding
        return None

    def find_resolved(self, record_index: int, field_name: str) -> ValidationFinding | None:
        for finding in reversed(self.resolved_errors):
            if finding.record_index == record_index and finding.field == field_name:
                return finding
        return None

    def remove_error(self, record_index: int, field_name: str) -> ValidationFinding | None:
        for position, finding in enumerate(self.errors):
            if finding.record_index == record_index and finding.field == field_name:
                return self.errors.pop(position)
        return None

    def finalized_records(self) -> list[Record]:
        return [
            dict(self.modified_records[index]) if index in self.modified_records else dict(record)
            for index, record in enumerate(self.original_data)
        ]


@dataclass
class _SessionLock:
    lock: threading.RLock = field(default_factory=threading.RLock)
    users: int = 0


class RecoverySessionStore:
    """Process-wide recovery sessions keyed by import session id."""

    def __init__(self, loader: RecordLoader, *, rules: Sequence[DQRule] | None = None) -> None:
        self._loader = loader
        self._rules = rules
        self._sessions: dict[str, RecoverySession] = {}
        self._locks: dict[str, _SessionLock] = {}
        self._guard = threading.Lock()
        self._closed = False

    @property
    def loader(self) -> RecordLoader:
        return self._loader

    @property
    def rules(self) -> Sequence[DQRule] | None:
        return self._rules

    @property
    def closed(self) -> bool:
        return self._closed

    @contextmanager
    def lock_for(self, session_id: str) -> Iterator[None]:
        """Hold the re-entrant lock for ``session_id`` for the duration of the block."""

        with self._guard:
            entry = self._locks.get(session_id)
            if entry is None:
                entry = _SessionLock()
                self._locks[session_id] = entry
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                self._release_lock_entry(session_id, entry)

    def _release_lock_entry(self, session_id: str, entry: _SessionLock) -> None:
        # Caller holds ``_guard``.
        if entry.users == 0 and session_id not in self._sessions and self._locks.get(session_id) is entry:
            del self._locks[session_id]

    def lock_ids(self) -> list[str]:
        """Session ids that currently have a lock entry."""

        with self._guard:
            return sorted(self._locks)

    def get(self, session_id: str) -> RecoverySession | None:
        with self._guard:
            return self._sessions.get(session_id)

    def get_or_init(self, session_id: str, meta: SessionMeta) -> RecoverySession:
        """
        Return the session for ``session_id``, loading and validating on a miss.

        Raises:
            RuntimeError: if the store has been shut down.
            RecordLoadError: when the source cannot be read and fixture fallback
                is disabled on the loader.
        """

        if self._closed:
            raise RuntimeError("Recovery session store is shut down.")
        with self.lock_for(session_id):
            existing = self.get(session_id)
            if existing is not None:
                return existing

            result = self._loader.load(meta)
            session = RecoverySession.build(
                session_id,
                result.records,
                data_source=result.source,
                rules=self._rules,
            )
            with self._guard:
                self._sessions[session_id] = session
                active = len(self._sessions)
            record_session_initialized(result.source)
            set_active_sessions(active)
            logger.info(
                "Initialized recovery session %s with %s records and %s findings.",
                session_id,
                session.record_count,
                len(session.errors),
                extra={
                    "recovery_session_id": session_id,
                    "recovery_data_source": result.source,
                    "recovery_record_count": session.record_count,
                    "recovery_error_count": len(session.errors),
                },
            )
            return session

    def discard(self, session_id: str) -> bool:
        """Remove a session; returns ``False`` when none was held."""

        with self._guard:
            removed = self._sessions.pop(session_id, None)
            entry = self._locks.get(session_id)
            if entry is not None:
                self._release_lock_entry(session_id, entry)
            active = len(self._sessions)
        set_active_sessions(active)
        if removed is not None:
            logger.info("Discarded recovery session %s.", session_id, extra={"recovery_session_id": session_id})
        return removed is not None

    def session_ids(self) -> list[str]:
        with self._guard:
            return sorted(self._sessions)

    def clear(self) -> None:
        with self._guard:
            self._sessions.clear()
            for session_id, entry in list(self._locks.items()):
                self._release_lock_entry(session_id, entry)
        set_active_sessions(0)

    def shutdown(self) -> None:
        """Drop every session and stop the loader; later initialization fails."""

        self.clear()
        self._closed = True
        self._loader.close()

    def __contains__(self, session_id: object) -> bool:
        with self._guard:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._guard:
            return len(self._sessions)

    def __iter__(self) -> Iterator[RecoverySession]:
        with self._guard:
            sessions = list(self._sessions.values())
        return iter(sessions)

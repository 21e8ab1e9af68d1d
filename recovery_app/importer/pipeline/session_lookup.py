"""
Import session lookup backed by the ``import_sessions`` table.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from recovery_app.importer.contracts import SessionMeta
from recovery_app.models.base import db
from recovery_app.models.importer.schema import ImportSession


class ImportSessionLocator:
    """Resolve import session ids to the read-only view the recovery engine uses."""

    def __init__(self, session: Session | None = None) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session or db.session

    def _get(self, session_id: str) -> ImportSession | None:
        return self.session.query(ImportSession).filter(ImportSession.session_id == session_id).one_or_none()

    def locate(self, session_id: str) -> SessionMeta | None:
        """Return the session's metadata, or ``None`` when no such import exists."""

        record = self._get(session_id)
        if record is None:
            return None
        return SessionMeta(
            session_id=record.session_id,
            user_id=record.user_id,
            file_path=record.file_path,
            file_name=record.file_name,
            status=record.status.value if record.status else "unknown",
            metadata=dict(record.metadata_json or {}),
        )

    def record_recovered_data(self, session_id: str, record_count: int) -> bool:
        """
        Flag the import session as carrying recovered data.

        Returns ``False`` when the import session no longer exists.
        """

        record = self._get(session_id)
        if record is None:
            return False
        metadata = dict(record.metadata_json or {})
        metadata["has_recovered_data"] = True
        metadata["recovered_record_count"] = record_count
        record.metadata_json = metadata
        self.session.commit()
        return True

"""
SQLAlchemy model for the import session record.

An import session describes one bulk-upload attempt: who owns it, where the
uploaded file lives, and a coarse status label. The error recovery engine
reads this record through the session locator and never writes recovery
state back to it, apart from the optional hand-off flags set on finalize.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..base import BaseModel, db


class ImportSessionStatus(str, enum.Enum):
    """Lifecycle states for an import session."""

    UPLOADED = "uploaded"
    ANALYZED = "analyzed"
    PREVIEWED = "previewed"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ImportSession(BaseModel):
    """Metadata describing a single bulk-upload attempt."""

    __tablename__ = "import_sessions"

    id: Mapped[int] = mapped_column(primary_key=True)
    session_id: Mapped[str] = mapped_column(db.String(100), nullable=False, unique=True, index=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    file_name: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    file_path: Mapped[str | None] = mapped_column(
        db.String(1024),
        nullable=True,
        comment="Location of the uploaded source file on disk.",
    )
    status: Mapped[ImportSessionStatus] = mapped_column(
        Enum(ImportSessionStatus, name="import_session_status_enum"),
        nullable=False,
        default=ImportSessionStatus.UPLOADED,
        index=True,
    )
    total_records: Mapped[int | None] = mapped_column(db.Integer, nullable=True)
    metadata_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))

    user = relationship("User", back_populates="import_sessions")

    __table_args__ = (Index("idx_import_sessions_user_status", "user_id", "status"),)

    def __repr__(self):
        return f"<ImportSession {self.session_id} ({self.status.value if self.status else 'unknown'})>"

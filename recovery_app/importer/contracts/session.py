"""Boundary contract between the recovery engine and the import session record."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class SessionMeta:
    """
    Read-only view of an import session handed to the recovery engine.

    Attributes:
        session_id: Public identifier of the import session.
        user_id: Identity of the owning user.
        file_path: Location of the uploaded source file, if still known.
        file_name: Display name of the uploaded file; its extension selects
            the decoder.
        status: Coarse lifecycle label of the import session.
        metadata: Free-form metadata carried on the import session record.
    """

    session_id: str
    user_id: int | None
    file_path: str | None
    file_name: str | None
    status: str
    metadata: Mapping[str, Any] = field(default_factory=dict)

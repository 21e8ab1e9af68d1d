"""
Importer-specific SQLAlchemy models.

Only the import session record lives here; recovery state is held in memory
by the recovery session store and is never persisted.
"""

from .schema import ImportSession, ImportSessionStatus

__all__ = [
    "ImportSession",
    "ImportSessionStatus",
]

# recovery_app/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .importer import ImportSession, ImportSessionStatus
from .user import User

__all__ = [
    "db",
    "BaseModel",
    "User",
    "ImportSession",
    "ImportSessionStatus",
]

"""File record store - SQLAlchemy models and the SQLite-backed Database."""

from docsync.store.base import FileRecordStore, QueueStatus
from docsync.store.database import Database
from docsync.store.models import Base, FileRecord

__all__ = [
    "Base",
    "Database",
    "FileRecord",
    "FileRecordStore",
    "QueueStatus",
]

"""SQLAlchemy models for the file record store.

This module defines the database schema using SQLAlchemy ORM.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Enum, Index, Integer, String, Text, TypeDecorator
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from docsync.core.types import Priority, StorageProvider, SyncStatus


def utcnow() -> datetime:
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator[datetime]):
    """DateTime stored as naive UTC and returned timezone-aware.

    SQLite has no timezone support; values are normalized on the way in so
    that string comparisons in SQL stay correct.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: object) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect: object) -> datetime | None:
        if value is None:
            return None
        return value.replace(tzinfo=UTC)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


class FileRecord(Base):
    """One logical file and its replication state."""

    __tablename__ = "file_records"

    id: Mapped[str] = mapped_column(
        String(32), primary_key=True, default=lambda: uuid.uuid4().hex
    )
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Descriptive
    original_name: Mapped[str] = mapped_column(Text, nullable=False)
    system_name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    context_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    mime_type: Mapped[str | None] = mapped_column(String(127), nullable=True)
    uploaded_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Content
    checksum: Mapped[str] = mapped_column(String(64), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)

    # Storage
    local_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    remote_path: Mapped[str] = mapped_column(Text, nullable=False)
    storage_provider: Mapped[StorageProvider] = mapped_column(
        Enum(StorageProvider, native_enum=False, length=20),
        default=StorageProvider.LOCAL,
        nullable=False,
    )
    keep_local: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    public_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Replication; sync_status is NULL when replication is disabled
    sync_status: Mapped[SyncStatus | None] = mapped_column(
        Enum(SyncStatus, native_enum=False, length=20), nullable=True
    )
    priority: Mapped[int] = mapped_column(Integer, default=int(Priority.NORMAL), nullable=False)
    sync_retries: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_sync_attempt: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    next_attempt_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    synced_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    remote_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    claimed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Lifecycle
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index("idx_file_records_queue", "sync_status", "priority", "created_at"),
        Index("idx_file_records_context", "context_id"),
    )

    @property
    def is_available_locally(self) -> bool:
        return self.local_path is not None and (
            self.storage_provider == StorageProvider.LOCAL or self.keep_local
        )

    def __repr__(self) -> str:
        return (
            f"FileRecord(id={self.id!r}, version={self.version}, "
            f"sync_status={self.sync_status}, retries={self.sync_retries})"
        )

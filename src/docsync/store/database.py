"""File record store using SQLAlchemy with SQLite.

This module provides:
- Record creation, lookup and listing
- The atomic PENDING -> SYNCING claim used by replication workers
- Sync outcome recording (synced, retry, failed)
- Manual re-sync, content replacement and logical removal
- The aggregate queue status projection
"""

from __future__ import annotations

import threading
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, func, or_, select, update
from sqlalchemy.orm import Session

from docsync.core.errors import NotFoundError, RecordBusyError
from docsync.core.types import StorageProvider, SyncStatus
from docsync.store.base import QueueStatus
from docsync.store.models import Base, FileRecord

if TYPE_CHECKING:
    from sqlalchemy import Engine


class Database:
    """SQLAlchemy store for file records.

    Uses SQLite with WAL mode for better concurrency with multiple readers.
    Writes from this process are serialized by a lock; the claim step is
    additionally guarded by a conditional UPDATE so that separate processes
    sharing the file never claim the same record twice.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the database.

        Args:
            db_path: Path to the SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

        # check_same_thread=False: sessions are opened from worker threads
        self._engine: Engine = create_engine(
            f"sqlite:///{self._db_path}",
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=False,
        )

        with self._engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")

        Base.metadata.create_all(self._engine)

    @property
    def path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        """Close the database connection."""
        self._engine.dispose()

    def _session(self) -> Session:
        """Create a new database session."""
        return Session(self._engine, expire_on_commit=False)

    @staticmethod
    def _load(session: Session, record_id: str) -> FileRecord:
        record = session.get(FileRecord, record_id)
        if record is None:
            raise NotFoundError(f"File record not found: {record_id}")
        return record

    @staticmethod
    def _detach(session: Session, record: FileRecord) -> FileRecord:
        session.refresh(record)
        session.expunge(record)
        return record

    # === Record operations ===

    def create_record(self, **fields: Any) -> FileRecord:
        """Insert a new file record.

        Args:
            **fields: Column values (see FileRecord).

        Returns:
            Created FileRecord, detached from the session.
        """
        with self._lock, self._session() as session:
            record = FileRecord(**fields)
            session.add(record)
            session.commit()
            return self._detach(session, record)

    def get_record(self, record_id: str) -> FileRecord | None:
        """Get a record by id, or None."""
        with self._session() as session:
            record = session.get(FileRecord, record_id)
            if record is not None:
                session.expunge(record)
            return record

    def list_records(
        self,
        status: SyncStatus | None = None,
        active_only: bool = True,
        context_id: str | None = None,
    ) -> list[FileRecord]:
        """List records, oldest first.

        Args:
            status: Only records with this sync status.
            active_only: Skip logically removed records.
            context_id: Only records of this context.
        """
        with self._session() as session:
            stmt = select(FileRecord)
            if status is not None:
                stmt = stmt.where(FileRecord.sync_status == status)
            if active_only:
                stmt = stmt.where(FileRecord.is_active.is_(True))
            if context_id is not None:
                stmt = stmt.where(FileRecord.context_id == context_id)
            stmt = stmt.order_by(FileRecord.created_at, FileRecord.id)
            records = list(session.scalars(stmt).all())
            for record in records:
                session.expunge(record)
            return records

    # === Replication ===

    def claim_pending(
        self,
        limit: int,
        max_retries: int,
        worker_id: str,
        now: datetime,
        priority_first: bool = True,
    ) -> list[FileRecord]:
        """Claim up to ``limit`` eligible records for ``worker_id``.

        Eligible: active, PENDING, fewer than ``max_retries`` attempts and
        past any backoff deadline. Each candidate is moved to SYNCING with a
        conditional UPDATE; only candidates whose update matched are returned.

        Returns:
            Claimed records in claim order.
        """
        with self._lock, self._session() as session:
            stmt = select(FileRecord.id).where(
                FileRecord.sync_status == SyncStatus.PENDING,
                FileRecord.sync_retries < max_retries,
                FileRecord.is_active.is_(True),
                or_(FileRecord.next_attempt_at.is_(None), FileRecord.next_attempt_at <= now),
            )
            if priority_first:
                stmt = stmt.order_by(
                    FileRecord.priority.desc(), FileRecord.created_at.asc(), FileRecord.id
                )
            else:
                stmt = stmt.order_by(FileRecord.created_at.asc(), FileRecord.id)
            candidates = list(session.scalars(stmt.limit(limit)).all())

            claimed: list[str] = []
            for record_id in candidates:
                result = session.execute(
                    update(FileRecord)
                    .where(
                        FileRecord.id == record_id,
                        FileRecord.sync_status == SyncStatus.PENDING,
                    )
                    .values(
                        sync_status=SyncStatus.SYNCING,
                        claimed_by=worker_id,
                        last_sync_attempt=now,
                        updated_at=now,
                    )
                )
                if result.rowcount == 1:
                    claimed.append(record_id)
            session.commit()

            if not claimed:
                return []
            by_id = {
                r.id: r
                for r in session.scalars(select(FileRecord).where(FileRecord.id.in_(claimed)))
            }
            records = [by_id[record_id] for record_id in claimed]
            for record in records:
                session.expunge(record)
            return records

    def _load_claimed(self, session: Session, record_id: str, worker_id: str) -> FileRecord:
        record = self._load(session, record_id)
        if record.sync_status != SyncStatus.SYNCING or record.claimed_by != worker_id:
            raise RecordBusyError(
                f"Record {record_id} is not claimed by {worker_id} "
                f"(status={record.sync_status}, claimed_by={record.claimed_by})"
            )
        return record

    def mark_synced(
        self,
        record_id: str,
        worker_id: str,
        now: datetime,
        remote_size: int | None = None,
        public_url: str | None = None,
        drop_local: bool = False,
    ) -> FileRecord:
        """Record a successful upload by the claiming worker.

        Raises:
            NotFoundError: If the record does not exist.
            RecordBusyError: If ``worker_id`` no longer holds the claim.
        """
        with self._lock, self._session() as session:
            record = self._load_claimed(session, record_id, worker_id)
            record.sync_status = SyncStatus.SYNCED
            record.sync_error = None
            record.synced_at = now
            record.next_attempt_at = None
            record.claimed_by = None
            record.remote_size = remote_size
            record.public_url = public_url
            record.storage_provider = StorageProvider.REMOTE_SYNCED
            if drop_local:
                record.local_path = None
            record.updated_at = now
            session.commit()
            return self._detach(session, record)

    def mark_attempt_failed(
        self,
        record_id: str,
        worker_id: str,
        error: str,
        max_retries: int,
        next_attempt_at: datetime | None,
        now: datetime,
    ) -> FileRecord:
        """Record a failed attempt by the claiming worker.

        Increments sync_retries. Below ``max_retries`` the record goes back
        to PENDING, eligible again from ``next_attempt_at``; otherwise it
        becomes FAILED.

        Raises:
            NotFoundError: If the record does not exist.
            RecordBusyError: If ``worker_id`` no longer holds the claim.
        """
        with self._lock, self._session() as session:
            record = self._load_claimed(session, record_id, worker_id)
            record.sync_retries += 1
            record.sync_error = error
            record.claimed_by = None
            if record.sync_retries < max_retries:
                record.sync_status = SyncStatus.PENDING
                record.next_attempt_at = next_attempt_at
            else:
                record.sync_status = SyncStatus.FAILED
                record.next_attempt_at = None
            record.updated_at = now
            session.commit()
            return self._detach(session, record)

    def request_resync(
        self,
        record_id: str,
        now: datetime,
        reset_retries: bool = False,
        priority: int | None = None,
    ) -> FileRecord:
        """Put a record back into the normal queue.

        Raises:
            NotFoundError: If the record does not exist or was removed.
            RecordBusyError: If the record is currently SYNCING.
        """
        with self._lock, self._session() as session:
            record = self._load(session, record_id)
            if not record.is_active:
                raise NotFoundError(f"File record was removed: {record_id}")
            if record.sync_status == SyncStatus.SYNCING:
                raise RecordBusyError(f"Record {record_id} is being replicated")
            if reset_retries:
                record.sync_retries = 0
                record.sync_error = None
            if priority is not None:
                record.priority = int(priority)
            record.sync_status = SyncStatus.PENDING
            record.next_attempt_at = None
            record.updated_at = now
            session.commit()
            return self._detach(session, record)

    def release_stale_claims(self, older_than: datetime, now: datetime) -> int:
        """Return records stuck in SYNCING since before ``older_than`` to PENDING.

        Returns:
            Number of records released.
        """
        with self._lock, self._session() as session:
            result = session.execute(
                update(FileRecord)
                .where(
                    FileRecord.sync_status == SyncStatus.SYNCING,
                    FileRecord.last_sync_attempt < older_than,
                )
                .values(sync_status=SyncStatus.PENDING, claimed_by=None, updated_at=now)
            )
            session.commit()
            return int(result.rowcount or 0)

    def mark_verified(self, record_id: str, now: datetime) -> FileRecord:
        """Stamp a successful remote verification."""
        with self._lock, self._session() as session:
            record = self._load(session, record_id)
            record.verified_at = now
            record.updated_at = now
            session.commit()
            return self._detach(session, record)

    # === Content and lifecycle ===

    def replace_content(
        self,
        record_id: str,
        local_path: str,
        checksum: str,
        size: int,
        now: datetime,
    ) -> FileRecord:
        """Swap in new content, bump the version and re-queue replication.

        Raises:
            NotFoundError: If the record does not exist or was removed.
            RecordBusyError: If the record is currently SYNCING.
        """
        with self._lock, self._session() as session:
            record = self._load(session, record_id)
            if not record.is_active:
                raise NotFoundError(f"File record was removed: {record_id}")
            if record.sync_status == SyncStatus.SYNCING:
                raise RecordBusyError(f"Record {record_id} is being replicated")
            record.version += 1
            record.local_path = local_path
            record.checksum = checksum
            record.size = size
            record.storage_provider = StorageProvider.LOCAL
            record.remote_size = None
            record.synced_at = None
            record.verified_at = None
            if record.sync_status is not None:
                record.sync_status = SyncStatus.PENDING
                record.sync_retries = 0
                record.sync_error = None
                record.next_attempt_at = None
            record.updated_at = now
            session.commit()
            return self._detach(session, record)

    def deactivate(self, record_id: str, now: datetime) -> FileRecord:
        """Logically remove a record. Never while it is SYNCING.

        Raises:
            NotFoundError: If the record does not exist.
            RecordBusyError: If the record is currently SYNCING.
        """
        with self._lock, self._session() as session:
            record = self._load(session, record_id)
            if record.sync_status == SyncStatus.SYNCING:
                raise RecordBusyError(f"Record {record_id} is being replicated")
            record.is_active = False
            record.deleted_at = now
            record.updated_at = now
            session.commit()
            return self._detach(session, record)

    # === Status ===

    def queue_status(self) -> QueueStatus:
        """Aggregate counts, bytes and retries of active replicated records."""
        with self._session() as session:
            rows = session.execute(
                select(
                    FileRecord.sync_status,
                    func.count(FileRecord.id),
                    func.coalesce(func.sum(FileRecord.size), 0),
                    func.coalesce(func.avg(FileRecord.sync_retries), 0.0),
                    func.coalesce(func.sum(FileRecord.sync_retries), 0),
                )
                .where(FileRecord.is_active.is_(True), FileRecord.sync_status.is_not(None))
                .group_by(FileRecord.sync_status)
            ).all()

        status = QueueStatus()
        total_retries = 0
        for sync_status, count, size_sum, avg_retries, retries_sum in rows:
            key = SyncStatus(sync_status).value
            status.counts[key] = int(count)
            status.total_bytes += int(size_sum)
            status.average_retries_by_status[key] = round(float(avg_retries), 2)
            total_retries += int(retries_sum)
        if status.total:
            status.average_retries = round(total_retries / status.total, 2)
        return status

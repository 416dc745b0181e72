"""Replication queue backed by the file record store.

The queue holds no state of its own: every PENDING record in the store is
a work item, and the claim step in the store is what hands a record to
exactly one worker.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from docsync.core.errors import NotFoundError, ValidationError
from docsync.core.types import Priority, SyncStatus
from docsync.replication.retry import compute_backoff

if TYPE_CHECKING:
    from docsync.core.config import WorkerConfig
    from docsync.store.base import FileRecordStore, QueueStatus
    from docsync.store.models import FileRecord

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_clock() -> datetime:
    return datetime.now(UTC)


class ReplicationQueue:
    """Priority-ordered backlog of records waiting to be replicated."""

    def __init__(
        self,
        store: FileRecordStore,
        config: WorkerConfig,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the queue.

        Args:
            store: Record store holding the backlog.
            config: Retry, batch and ordering settings.
            clock: Returns the current UTC time (replaced in tests).
        """
        self._store = store
        self._config = config
        self._clock = clock or utc_clock

    @property
    def config(self) -> WorkerConfig:
        return self._config

    def now(self) -> datetime:
        return self._clock()

    def claim_batch(self, worker_id: str, limit: int | None = None) -> list[FileRecord]:
        """Claim the next batch for ``worker_id``."""
        return self._store.claim_pending(
            limit=limit or self._config.batch_size,
            max_retries=self._config.max_retries,
            worker_id=worker_id,
            now=self.now(),
            priority_first=self._config.priority_first,
        )

    def complete(
        self,
        record: FileRecord,
        worker_id: str,
        remote_size: int | None = None,
        public_url: str | None = None,
        drop_local: bool = False,
    ) -> FileRecord:
        """Mark a claimed record SYNCED."""
        return self._store.mark_synced(
            record.id,
            worker_id,
            now=self.now(),
            remote_size=remote_size,
            public_url=public_url,
            drop_local=drop_local,
        )

    def fail(self, record: FileRecord, worker_id: str, error: str) -> FileRecord:
        """Record a failed attempt on a claimed record.

        The record returns to PENDING with a backoff deadline, or becomes
        FAILED once it has used ``max_retries`` attempts.
        """
        attempt = record.sync_retries + 1
        now = self.now()
        delay = compute_backoff(attempt, self._config.retry_delay, self._config.max_retry_delay)
        updated = self._store.mark_attempt_failed(
            record.id,
            worker_id,
            error=error,
            max_retries=self._config.max_retries,
            next_attempt_at=now + timedelta(seconds=delay),
            now=now,
        )
        if updated.sync_status == SyncStatus.FAILED:
            logger.error(
                "Replication of %s failed permanently after %d attempts: %s",
                record.id,
                updated.sync_retries,
                error,
            )
        else:
            logger.warning(
                "Replication of %s failed (attempt %d/%d), retry in %.0fs: %s",
                record.id,
                updated.sync_retries,
                self._config.max_retries,
                delay,
                error,
            )
        return updated

    def resync(
        self,
        record_id: str,
        reset_retries: bool = False,
        priority: Priority | int | None = None,
    ) -> FileRecord:
        """Operator-requested re-sync through the normal queue.

        Raises:
            NotFoundError: If the record does not exist.
            RecordBusyError: If the record is currently SYNCING.
            ValidationError: If the record has exhausted its retries and
                ``reset_retries`` is not set, since it would never be claimed.
        """
        record = self._store.get_record(record_id)
        if record is None:
            raise NotFoundError(f"File record not found: {record_id}")
        if not reset_retries and record.sync_retries >= self._config.max_retries:
            raise ValidationError(
                f"Record {record_id} has used all {self._config.max_retries} attempts; "
                "re-sync it with reset_retries"
            )
        updated = self._store.request_resync(
            record_id,
            now=self.now(),
            reset_retries=reset_retries,
            priority=None if priority is None else int(priority),
        )
        logger.info(
            "Re-sync requested for %s (reset_retries=%s, priority=%d)",
            record_id,
            reset_retries,
            updated.priority,
        )
        return updated

    def recover_stale(self) -> int:
        """Release SYNCING claims older than ``stale_claim_after``."""
        now = self.now()
        released = self._store.release_stale_claims(
            older_than=now - timedelta(seconds=self._config.stale_claim_after), now=now
        )
        if released:
            logger.warning("Released %d stale replication claim(s)", released)
        return released

    def status(self) -> QueueStatus:
        """Aggregate queue status."""
        return self._store.queue_status()

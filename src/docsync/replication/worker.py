"""Replication worker.

Drains the replication queue in batches: each claimed record is checked
against its checksum, uploaded through the transfer client and marked
SYNCED, or sent back to the queue with a backoff.
"""

from __future__ import annotations

import contextlib
import logging
import os
import socket
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from docsync.core.errors import DocSyncError, IntegrityError, NotFoundError, RecordBusyError
from docsync.core.hashing import compute_file_hash
from docsync.core.types import SyncStatus
from docsync.scheduler import Ticker

if TYPE_CHECKING:
    from docsync.replication.queue import ReplicationQueue
    from docsync.store.base import QueueStatus
    from docsync.store.models import FileRecord
    from docsync.transfer.client import TransferClient

logger = logging.getLogger(__name__)


@dataclass
class RecordOutcome:
    """Result of processing one claimed record."""

    record_id: str
    success: bool
    status: SyncStatus | None
    retries: int
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "success": self.success,
            "status": self.status.value if self.status else None,
            "retries": self.retries,
            "error": self.error,
        }


@dataclass
class BatchSummary:
    """What one batch did, plus the resulting queue status."""

    worker_id: str
    processed: int = 0
    successful: int = 0
    failed: int = 0
    requeued: int = 0
    duration: float = 0.0
    results: list[RecordOutcome] = field(default_factory=list)
    queue_status: QueueStatus | None = None

    @property
    def success_rate(self) -> float:
        if not self.processed:
            return 0.0
        return round(self.successful / self.processed * 100, 2)

    def add(self, outcome: RecordOutcome) -> None:
        self.results.append(outcome)
        self.processed += 1
        if outcome.success:
            self.successful += 1
        else:
            self.failed += 1
            if outcome.status == SyncStatus.PENDING:
                self.requeued += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "requeued": self.requeued,
            "success_rate": self.success_rate,
            "duration": round(self.duration, 3),
            "results": [r.to_dict() for r in self.results],
            "queue_status": self.queue_status.to_dict() if self.queue_status else None,
        }


def default_worker_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:6]}"


class ReplicationWorker:
    """Moves claimed records from PENDING to SYNCED."""

    def __init__(
        self,
        queue: ReplicationQueue,
        client: TransferClient,
        worker_id: str | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            queue: Queue to claim records from.
            client: Transfer client used for uploads.
            worker_id: Identifier stamped on claims (generated by default).
        """
        self._queue = queue
        self._client = client
        self.worker_id = worker_id or default_worker_id()
        self._ticker = Ticker(
            f"replication {self.worker_id}", queue.config.poll_interval, self._tick
        )

    @property
    def running(self) -> bool:
        return self._ticker.running

    def start(self) -> None:
        """Process a batch every ``poll_interval`` seconds in the background."""
        self._ticker.start()

    def stop(self) -> None:
        self._ticker.stop()

    def _tick(self) -> None:
        self._queue.recover_stale()
        self.process_batch()

    def _verify_local(self, record: FileRecord) -> Path:
        if not record.local_path:
            raise NotFoundError(f"Record {record.id} has no local copy to replicate")
        local_path = Path(record.local_path)
        if not local_path.is_file():
            raise NotFoundError(f"Local file missing for {record.id}: {local_path}")
        if local_path.stat().st_size == 0:
            raise IntegrityError(f"Local file for {record.id} is empty")
        checksum = compute_file_hash(local_path)
        if checksum != record.checksum:
            raise IntegrityError(
                f"Checksum mismatch for {record.id}: expected {record.checksum[:12]}, "
                f"found {checksum[:12]}"
            )
        return local_path

    def process_record(self, record: FileRecord) -> RecordOutcome:
        """Upload one claimed record and record the outcome."""
        try:
            local_path = self._verify_local(record)
            result = self._client.upload(local_path, record.remote_path)
        except (DocSyncError, OSError) as e:
            try:
                updated = self._queue.fail(record, self.worker_id, str(e))
            except RecordBusyError as busy:
                logger.warning(
                    "Claim on %s was lost before the failure was recorded: %s", record.id, busy
                )
                return RecordOutcome(
                    record_id=record.id,
                    success=False,
                    status=None,
                    retries=record.sync_retries,
                    error=str(e),
                )
            return RecordOutcome(
                record_id=record.id,
                success=False,
                status=updated.sync_status,
                retries=updated.sync_retries,
                error=str(e),
            )

        drop_local = not record.keep_local
        try:
            updated = self._queue.complete(
                record,
                self.worker_id,
                remote_size=result.bytes,
                public_url=self._client.public_url(record.remote_path),
                drop_local=drop_local,
            )
        except RecordBusyError as e:
            logger.warning("Claim on %s was lost before completion: %s", record.id, e)
            return RecordOutcome(
                record_id=record.id,
                success=False,
                status=None,
                retries=record.sync_retries,
                error=str(e),
            )

        if drop_local:
            with contextlib.suppress(OSError):
                local_path.unlink()
        logger.info(
            "Replicated %s v%d to %s (%d bytes)",
            record.id,
            record.version,
            result.remote_path,
            result.bytes,
        )
        return RecordOutcome(
            record_id=record.id,
            success=True,
            status=updated.sync_status,
            retries=updated.sync_retries,
        )

    def process_batch(self, limit: int | None = None) -> BatchSummary:
        """Claim and process one batch.

        Returns:
            Summary of the batch with the aggregate queue status.
        """
        started = time.monotonic()
        summary = BatchSummary(worker_id=self.worker_id)
        records = self._queue.claim_batch(self.worker_id, limit)
        for record in records:
            summary.add(self.process_record(record))
        summary.duration = time.monotonic() - started
        summary.queue_status = self._queue.status()

        if summary.processed:
            logger.info(
                "Replication batch: %d processed, %d successful, %d failed (%d requeued) "
                "in %.1fs; queue %s",
                summary.processed,
                summary.successful,
                summary.failed,
                summary.requeued,
                summary.duration,
                summary.queue_status.counts,
            )
        else:
            logger.debug("Replication batch: nothing to process")
        return summary

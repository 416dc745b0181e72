"""The narrow store interface the replication core depends on."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from docsync.core.types import SyncStatus

if TYPE_CHECKING:
    from docsync.store.models import FileRecord


@dataclass
class QueueStatus:
    """Read-only projection of replication state.

    Attributes:
        counts: Number of active records per sync status.
        total_bytes: Sum of sizes of active records under replication.
        average_retries: Mean sync_retries over those records.
        average_retries_by_status: Mean sync_retries per sync status.
    """

    counts: dict[str, int] = field(
        default_factory=lambda: {status.value: 0 for status in SyncStatus}
    )
    total_bytes: int = 0
    average_retries: float = 0.0
    average_retries_by_status: dict[str, float] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "counts": dict(self.counts),
            "total": self.total,
            "total_bytes": self.total_bytes,
            "average_retries": self.average_retries,
            "average_retries_by_status": dict(self.average_retries_by_status),
        }


class FileRecordStore(Protocol):
    """Persistence operations used by the queue, the worker and the service."""

    def create_record(self, **fields: Any) -> FileRecord: ...

    def get_record(self, record_id: str) -> FileRecord | None: ...

    def list_records(
        self, status: SyncStatus | None = None, active_only: bool = True
    ) -> list[FileRecord]: ...

    def claim_pending(
        self,
        limit: int,
        max_retries: int,
        worker_id: str,
        now: datetime,
        priority_first: bool = True,
    ) -> list[FileRecord]: ...

    def mark_synced(
        self,
        record_id: str,
        worker_id: str,
        now: datetime,
        remote_size: int | None = None,
        public_url: str | None = None,
        drop_local: bool = False,
    ) -> FileRecord: ...

    def mark_attempt_failed(
        self,
        record_id: str,
        worker_id: str,
        error: str,
        max_retries: int,
        next_attempt_at: datetime | None,
        now: datetime,
    ) -> FileRecord: ...

    def request_resync(
        self,
        record_id: str,
        now: datetime,
        reset_retries: bool = False,
        priority: int | None = None,
    ) -> FileRecord: ...

    def release_stale_claims(self, older_than: datetime, now: datetime) -> int: ...

    def queue_status(self) -> QueueStatus: ...

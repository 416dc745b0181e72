"""Fixtures for replication tests."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import pytest

from docsync.core.config import WorkerConfig
from docsync.core.hashing import compute_bytes_hash
from docsync.core.types import SyncStatus
from docsync.replication.queue import ReplicationQueue
from docsync.replication.worker import ReplicationWorker

if TYPE_CHECKING:
    from docsync.store.database import Database
    from docsync.store.models import FileRecord
    from docsync.transfer.client import TransferClient
    from tests.conftest import FakeClock


class RecordFactory(Protocol):
    def __call__(self, data: bytes = ..., **overrides: Any) -> FileRecord: ...


@pytest.fixture
def worker_config() -> WorkerConfig:
    return WorkerConfig(max_retries=3, retry_delay=5.0, max_retry_delay=300.0, batch_size=10)


@pytest.fixture
def queue(db: Database, worker_config: WorkerConfig, clock: FakeClock) -> ReplicationQueue:
    return ReplicationQueue(db, worker_config, clock=clock)


@pytest.fixture
def worker(queue: ReplicationQueue, transfer_client: TransferClient) -> ReplicationWorker:
    return ReplicationWorker(queue, transfer_client, worker_id="worker-1")


@pytest.fixture
def make_pending(db: Database, tmp_path: Path) -> RecordFactory:
    """Create a PENDING record backed by a real local file."""
    uploads = tmp_path / "uploads"
    uploads.mkdir(exist_ok=True)
    counter = iter(range(1_000_000))

    def factory(data: bytes = b"%PDF-1.4 document body", **overrides: Any) -> FileRecord:
        name = f"doc-{next(counter)}.pdf"
        path = uploads / name
        path.write_bytes(data)
        fields: dict[str, Any] = {
            "original_name": name,
            "system_name": name,
            "checksum": compute_bytes_hash(data),
            "size": len(data),
            "local_path": str(path),
            "remote_path": name,
            "sync_status": SyncStatus.PENDING,
        }
        fields.update(overrides)
        return db.create_record(**fields)

    return factory

"""Replication - queue, worker and retry policy."""

from docsync.replication.queue import ReplicationQueue
from docsync.replication.retry import compute_backoff, retry_with_backoff
from docsync.replication.worker import BatchSummary, RecordOutcome, ReplicationWorker

__all__ = [
    "BatchSummary",
    "RecordOutcome",
    "ReplicationQueue",
    "ReplicationWorker",
    "compute_backoff",
    "retry_with_backoff",
]

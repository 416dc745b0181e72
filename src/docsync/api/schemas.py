"""Pydantic schemas for API responses."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from docsync.store.models import FileRecord


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# === File schemas ===


class FileResponse(BaseModel):
    """File record in responses."""

    id: str
    version: int
    original_name: str
    system_name: str
    context_id: str | None
    mime_type: str | None
    checksum: str
    size: int
    storage_provider: str
    keep_local: bool
    remote_path: str
    public_url: str | None
    sync_status: str | None
    priority: int
    sync_retries: int
    sync_error: str | None
    last_sync_attempt: str | None
    synced_at: str | None
    verified_at: str | None
    created_at: str
    updated_at: str


def file_to_response(record: FileRecord) -> FileResponse:
    """Convert a FileRecord to its response model."""
    return FileResponse(
        id=record.id,
        version=record.version,
        original_name=record.original_name,
        system_name=record.system_name,
        context_id=record.context_id,
        mime_type=record.mime_type,
        checksum=record.checksum,
        size=record.size,
        storage_provider=record.storage_provider.value,
        keep_local=record.keep_local,
        remote_path=record.remote_path,
        public_url=record.public_url,
        sync_status=record.sync_status.value if record.sync_status else None,
        priority=record.priority,
        sync_retries=record.sync_retries,
        sync_error=record.sync_error,
        last_sync_attempt=_iso(record.last_sync_attempt),
        synced_at=_iso(record.synced_at),
        verified_at=_iso(record.verified_at),
        created_at=_iso(record.created_at) or "",
        updated_at=_iso(record.updated_at) or "",
    )


class ResyncRequest(BaseModel):
    """Request body for a manual re-sync."""

    reset_retries: bool = False
    priority: str | int | None = None


class DeletionResponse(BaseModel):
    """Result of a file deletion."""

    record_id: str
    original_name: str
    database: bool
    local: bool
    remote: bool
    remote_warning: str | None


class VerificationResponse(BaseModel):
    """Result of a remote verification."""

    record_id: str
    exists: bool
    expected_size: int
    remote_size: int | None
    matches: bool


# === Replication schemas ===


class QueueStatusResponse(BaseModel):
    """Aggregate replication status."""

    counts: dict[str, int]
    total: int
    total_bytes: int
    average_retries: float
    average_retries_by_status: dict[str, float]


class RecordOutcomeResponse(BaseModel):
    """Outcome for one record in a batch."""

    record_id: str
    success: bool
    status: str | None
    retries: int
    error: str | None


class BatchSummaryResponse(BaseModel):
    """Summary of one replication batch."""

    worker_id: str
    processed: int
    successful: int
    failed: int
    requeued: int
    success_rate: float
    duration: float
    results: list[RecordOutcomeResponse]
    queue_status: QueueStatusResponse | None


# === Cache schemas ===


class CacheStatsResponse(BaseModel):
    """Download cache statistics."""

    total_files: int
    total_size: int
    active_locks: int
    ttl: float
    directory: str
    entries: list[dict[str, Any]]

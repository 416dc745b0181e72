"""Replication and cache status API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from docsync.api.deps import get_service, http_error
from docsync.api.schemas import BatchSummaryResponse, CacheStatsResponse, QueueStatusResponse
from docsync.core.errors import DocSyncError
from docsync.service import FileService

router = APIRouter(prefix="/api", tags=["replication"])


@router.get("/replication/status", response_model=QueueStatusResponse)
def replication_status(service: FileService = Depends(get_service)) -> QueueStatusResponse:
    """Counts per sync status, total bytes and average retries."""
    return QueueStatusResponse(**service.queue_status().to_dict())


@router.post("/replication/process", response_model=BatchSummaryResponse)
def process_queue(
    limit: int | None = None,
    service: FileService = Depends(get_service),
) -> BatchSummaryResponse:
    """Run one replication batch now."""
    try:
        summary = service.process_queue(limit)
    except DocSyncError as e:
        raise http_error(e) from e
    return BatchSummaryResponse(**summary.to_dict())


@router.get("/cache/stats", response_model=CacheStatsResponse)
def cache_stats(service: FileService = Depends(get_service)) -> CacheStatsResponse:
    """Download cache statistics."""
    return CacheStatsResponse(**service.cache_stats())

"""File API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import FileResponse as FileContentResponse
from starlette.concurrency import run_in_threadpool

from docsync.api.deps import get_service, http_error
from docsync.api.schemas import (
    DeletionResponse,
    FileResponse,
    ResyncRequest,
    VerificationResponse,
    file_to_response,
)
from docsync.core.errors import DocSyncError
from docsync.core.types import Priority, ReadSource, SyncStatus
from docsync.service import FileService

router = APIRouter(prefix="/api/files", tags=["files"])


@router.get("", response_model=list[FileResponse])
def list_files(
    service: FileService = Depends(get_service),
    sync_status: SyncStatus | None = None,
) -> list[FileResponse]:
    """List active files, optionally filtered by sync status."""
    return [file_to_response(r) for r in service.list_files(status=sync_status)]


@router.post("", response_model=FileResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    request: Request,
    name: str = Query(..., min_length=1),
    context_id: str | None = None,
    priority: str = "NORMAL",
    keep_local: bool | None = None,
    service: FileService = Depends(get_service),
) -> FileResponse:
    """Upload a file (raw request body) and queue it for replication."""
    data = await request.body()
    try:
        parsed_priority = Priority.parse(priority)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    try:
        record = await run_in_threadpool(
            service.upload,
            data,
            name,
            context_id=context_id,
            priority=parsed_priority,
            keep_local=keep_local,
            mime_type=request.headers.get("content-type"),
        )
    except DocSyncError as e:
        raise http_error(e) from e
    return file_to_response(record)


@router.get("/{file_id}", response_model=FileResponse)
def get_file(file_id: str, service: FileService = Depends(get_service)) -> FileResponse:
    """Get file metadata."""
    try:
        return file_to_response(service.get(file_id))
    except DocSyncError as e:
        raise http_error(e) from e


@router.get("/{file_id}/content")
def download_file(
    file_id: str,
    source: ReadSource = ReadSource.AUTO,
    service: FileService = Depends(get_service),
) -> FileContentResponse:
    """Serve file content through the download cache."""
    try:
        result = service.read(file_id, source)
    except DocSyncError as e:
        raise http_error(e) from e
    return FileContentResponse(
        result.path,
        filename=result.record.original_name,
        media_type=result.record.mime_type or "application/octet-stream",
        headers={
            "X-DocSync-Source": result.source or "",
            "X-DocSync-Cache": "hit" if result.cache_hit else "miss",
            "X-DocSync-Checksum": result.record.checksum,
        },
    )


@router.put("/{file_id}/content", response_model=FileResponse)
async def replace_file(
    file_id: str,
    request: Request,
    service: FileService = Depends(get_service),
) -> FileResponse:
    """Replace file content; the version is bumped and replication re-queued."""
    data = await request.body()
    try:
        record = await run_in_threadpool(service.replace, file_id, data)
    except DocSyncError as e:
        raise http_error(e) from e
    return file_to_response(record)


@router.post("/{file_id}/sync", response_model=FileResponse)
def resync_file(
    file_id: str,
    body: ResyncRequest | None = None,
    service: FileService = Depends(get_service),
) -> FileResponse:
    """Queue a file for replication again."""
    body = body or ResyncRequest()
    try:
        record = service.resync(
            file_id, reset_retries=body.reset_retries, priority=body.priority
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except DocSyncError as e:
        raise http_error(e) from e
    return file_to_response(record)


@router.post("/{file_id}/verify", response_model=VerificationResponse)
def verify_file(file_id: str, service: FileService = Depends(get_service)) -> VerificationResponse:
    """Compare the remote copy with the record."""
    try:
        result = service.verify_remote(file_id)
    except DocSyncError as e:
        raise http_error(e) from e
    return VerificationResponse(**result.to_dict())


@router.delete("/{file_id}", response_model=DeletionResponse)
def delete_file(
    file_id: str,
    delete_local: bool = False,
    delete_remote: bool = False,
    service: FileService = Depends(get_service),
) -> DeletionResponse:
    """Logically remove a file, optionally deleting its copies."""
    try:
        result = service.delete(file_id, delete_local=delete_local, delete_remote=delete_remote)
    except DocSyncError as e:
        raise http_error(e) from e
    return DeletionResponse(**result.to_dict())

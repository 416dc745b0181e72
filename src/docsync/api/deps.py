"""FastAPI dependencies for API routes."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from docsync.core.errors import (
    DocSyncError,
    IntegrityError,
    LockTimeoutError,
    NotFoundError,
    RecordBusyError,
    ServiceUnavailableError,
    TransferError,
    ValidationError,
)
from docsync.service import FileService


def get_service(request: Request) -> FileService:
    """Get the file service from app state."""
    service: FileService = request.app.state.service
    return service


_STATUS_BY_ERROR: list[tuple[type[DocSyncError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (RecordBusyError, status.HTTP_409_CONFLICT),
    (ServiceUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (LockTimeoutError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (TransferError, status.HTTP_502_BAD_GATEWAY),
    (IntegrityError, status.HTTP_502_BAD_GATEWAY),
]


def http_error(error: DocSyncError) -> HTTPException:
    """Translate a domain error into an HTTP error."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))

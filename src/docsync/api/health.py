"""Health check API route."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from docsync.api.deps import get_service
from docsync.service import FileService

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    replication_enabled: bool


@router.get("/health", response_model=HealthResponse)
def health_check(service: FileService = Depends(get_service)) -> HealthResponse:
    """Check server health."""
    return HealthResponse(status="ok", replication_enabled=service.replication_enabled)

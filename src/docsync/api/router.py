"""Main API router that includes all sub-routers."""

from __future__ import annotations

from fastapi import APIRouter

from docsync.api import files, health, replication

router = APIRouter()

router.include_router(health.router)
router.include_router(files.router)
router.include_router(replication.router)

"""FastAPI application for docsync.

This module creates and configures the FastAPI application with the REST
API for files, replication status and the download cache.

Usage:
    uvicorn docsync.api.app:app_factory --factory --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from docsync import __version__
from docsync.api.router import router as api_router
from docsync.core.config import Settings
from docsync.core.log import setup_logging
from docsync.service import FileService
from docsync.transfer.credentials import get_registry

logger = logging.getLogger(__name__)


def create_app(service: FileService, run_background: bool = True) -> FastAPI:
    """Create FastAPI application around a file service.

    Args:
        service: File service instance.
        run_background: Start the cache sweep and replication worker for the
            lifetime of the application.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        settings = service.settings
        logger.info("=" * 60)
        logger.info("docsync %s starting", __version__)
        logger.info("=" * 60)
        logger.info("  Database:    %s", service.store.path)
        logger.info("  Uploads:     %s", settings.storage.upload_root.absolute())
        logger.info("  Cache:       %s (ttl %.0fs)", service.cache.directory, settings.cache.ttl)
        if service.replication_enabled:
            logger.info("  Remote:      %s", settings.remote.url)
        else:
            logger.info("  Remote:      None (replication disabled)")
        logger.info("=" * 60)

        if run_background:
            service.start()

        yield

        logger.info("docsync shutting down")
        if run_background:
            service.close()

    application = FastAPI(
        title="docsync",
        description="Document replication to a remote rsync node",
        version=__version__,
        lifespan=lifespan,
    )

    application.state.service = service
    application.include_router(api_router)

    return application


def app_factory() -> FastAPI:
    """Factory function for uvicorn --factory mode."""
    settings = Settings.from_env()
    setup_logging(settings.log_path, settings.log_level, capture_uvicorn=True)
    get_registry().install_signal_handlers()
    return create_app(FileService.from_settings(settings))

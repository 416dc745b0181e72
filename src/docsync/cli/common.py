"""Shared helpers for CLI commands."""

from __future__ import annotations

import json
import sys
from typing import Any, NoReturn

import click

from docsync.core.config import Settings
from docsync.core.errors import ConfigError, DocSyncError
from docsync.core.log import setup_logging
from docsync.service import FileService
from docsync.transfer.credentials import get_registry


def load_settings() -> Settings:
    """Read and validate settings, exiting with status 1 on a ConfigError."""
    try:
        settings = Settings.from_env()
        settings.validate()
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    return settings


def get_service(ctx: click.Context) -> FileService:
    """Service for this invocation, built from the environment on first use.

    Tests pass a ready-made service as ``obj``.
    """
    if isinstance(ctx.obj, FileService):
        return ctx.obj
    settings = load_settings()
    setup_logging(settings.log_path, settings.log_level)
    get_registry().install_signal_handlers()
    try:
        service = FileService.from_settings(settings)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    ctx.obj = service
    ctx.call_on_close(service.close)
    return service


def fail(error: DocSyncError) -> NoReturn:
    """Print a domain error and exit with status 1."""
    click.echo(f"Error: {error}", err=True)
    sys.exit(1)


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))

"""Command-line interface for docsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- serve: Run the HTTP API
- worker: Run the replication worker
- status: Show replication status
- upload / fetch / resync / verify / delete: File operations
- test-connection: Check the remote node
- cache stats|sweep|clear: Download cache maintenance
"""

from __future__ import annotations

import click

from docsync.cli.cache import cache
from docsync.cli.files import delete, fetch, resync, upload, verify
from docsync.cli.replication import status, test_connection, worker
from docsync.cli.server import serve


@click.group()
@click.version_option(package_name="docsync")
def cli() -> None:
    """docsync - document replication to a remote rsync node."""


# Service commands
cli.add_command(serve)
cli.add_command(worker)
cli.add_command(status)
cli.add_command(test_connection)

# File commands
cli.add_command(upload)
cli.add_command(fetch)
cli.add_command(resync)
cli.add_command(verify)
cli.add_command(delete)

# Cache commands
cli.add_command(cache)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = ["cli", "main"]

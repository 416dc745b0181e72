"""File commands for the docsync CLI.

Commands:
- upload: Store a local file and queue it for replication
- fetch: Read a file through the download cache into a destination
- resync: Queue a file for replication again
- verify: Compare a file's remote copy with its record
- delete: Logically remove a file
"""

from __future__ import annotations

import shutil
from pathlib import Path

import click

from docsync.cli.common import fail, get_service
from docsync.core.errors import DocSyncError
from docsync.core.types import Priority, ReadSource

PRIORITY_CHOICE = click.Choice([p.name for p in Priority], case_sensitive=False)


@click.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--context-id", default=None, help="Context the file belongs to.")
@click.option("--priority", type=PRIORITY_CHOICE, default="NORMAL", show_default=True)
@click.option("--keep-local/--no-keep-local", default=None, help="Keep the local copy after sync.")
@click.pass_context
def upload(
    ctx: click.Context,
    path: Path,
    context_id: str | None,
    priority: str,
    keep_local: bool | None,
) -> None:
    """Store a local file and queue it for replication."""
    service = get_service(ctx)
    try:
        record = service.upload(
            path.read_bytes(),
            path.name,
            context_id=context_id,
            priority=Priority.parse(priority),
            keep_local=keep_local,
        )
    except DocSyncError as e:
        fail(e)
    status = record.sync_status.value if record.sync_status else "replication disabled"
    click.echo(f"Stored {record.original_name} as {record.id} ({record.size} bytes, {status})")


@click.command()
@click.argument("file_id")
@click.argument("destination", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "--source",
    type=click.Choice([s.value for s in ReadSource]),
    default=ReadSource.AUTO.value,
    show_default=True,
)
@click.pass_context
def fetch(ctx: click.Context, file_id: str, destination: Path, source: str) -> None:
    """Read FILE_ID through the download cache into DESTINATION."""
    service = get_service(ctx)
    try:
        result = service.read(file_id, ReadSource(source))
    except DocSyncError as e:
        fail(e)
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(result.path, destination)
    cache = "cache hit" if result.cache_hit else "cache miss"
    click.echo(f"Wrote {destination} from {result.source} ({cache})")


@click.command()
@click.argument("file_id")
@click.option("--reset-retries", is_flag=True, help="Reset the retry counter to 0.")
@click.option("--priority", type=PRIORITY_CHOICE, default=None, help="New priority.")
@click.pass_context
def resync(ctx: click.Context, file_id: str, reset_retries: bool, priority: str | None) -> None:
    """Queue FILE_ID for replication again."""
    service = get_service(ctx)
    try:
        record = service.resync(file_id, reset_retries=reset_retries, priority=priority)
    except DocSyncError as e:
        fail(e)
    click.echo(
        f"Queued {record.id} (priority {Priority(record.priority).name}, "
        f"retries {record.sync_retries})"
    )


@click.command()
@click.argument("file_id")
@click.pass_context
def verify(ctx: click.Context, file_id: str) -> None:
    """Compare the remote copy of FILE_ID with its record."""
    service = get_service(ctx)
    try:
        result = service.verify_remote(file_id)
    except DocSyncError as e:
        fail(e)
    if result.matches:
        click.echo(f"OK: remote copy of {file_id} matches ({result.remote_size} bytes)")
        return
    if not result.exists:
        click.echo(f"MISSING: no remote copy of {file_id}", err=True)
    else:
        click.echo(
            f"MISMATCH: remote {result.remote_size} bytes, expected {result.expected_size}",
            err=True,
        )
    ctx.exit(2)


@click.command()
@click.argument("file_id")
@click.option("--local", "delete_local", is_flag=True, help="Also delete the local copy.")
@click.option("--remote", "delete_remote", is_flag=True, help="Also delete the remote copy.")
@click.pass_context
def delete(ctx: click.Context, file_id: str, delete_local: bool, delete_remote: bool) -> None:
    """Logically remove FILE_ID."""
    service = get_service(ctx)
    try:
        result = service.delete(file_id, delete_local=delete_local, delete_remote=delete_remote)
    except DocSyncError as e:
        fail(e)
    click.echo(f"Removed {file_id} (local={result.local}, remote={result.remote})")
    if result.remote_warning:
        click.echo(f"Warning: {result.remote_warning}", err=True)

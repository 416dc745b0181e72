"""Replication commands for the docsync CLI.

Commands:
- status: Show aggregate replication status
- worker: Run the replication worker (or a single batch with --once)
- test-connection: Check that the remote node accepts uploads
"""

from __future__ import annotations

import sys
import threading

import click

from docsync.cli.common import echo_json, fail, get_service
from docsync.core.errors import DocSyncError


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable output.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show counts per sync status, total bytes and average retries."""
    service = get_service(ctx)
    queue_status = service.queue_status()
    if as_json:
        echo_json(queue_status.to_dict())
        return
    click.echo("Replication status:")
    for name, count in queue_status.counts.items():
        avg = queue_status.average_retries_by_status.get(name, 0.0)
        click.echo(f"  {name:<8} {count:>6}  (avg retries {avg:.2f})")
    click.echo(f"  Total:   {queue_status.total:>6}  ({queue_status.total_bytes} bytes)")
    click.echo(f"  Average retries: {queue_status.average_retries:.2f}")


@click.command()
@click.option("--once", is_flag=True, help="Process a single batch and exit.")
@click.option("--limit", type=int, default=None, help="Batch size override.")
@click.pass_context
def worker(ctx: click.Context, once: bool, limit: int | None) -> None:
    """Run the replication worker."""
    service = get_service(ctx)
    if service.worker is None:
        click.echo("Error: replication is not enabled (set DOCSYNC_REPLICATION_ENABLED=1)", err=True)
        sys.exit(1)

    if once:
        service.queue.recover_stale()
        try:
            summary = service.process_queue(limit)
        except DocSyncError as e:
            fail(e)
        click.echo(
            f"Processed {summary.processed}: {summary.successful} successful, "
            f"{summary.failed} failed ({summary.requeued} requeued)"
        )
        sys.exit(1 if summary.failed else 0)

    click.echo(
        f"Replication worker {service.worker.worker_id} running "
        f"every {service.settings.worker.poll_interval:.0f}s (Ctrl+C to stop)"
    )
    service.start()
    stop = threading.Event()
    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        click.echo("Stopping worker...")
    finally:
        service.close()


@click.command("test-connection")
@click.option(
    "--attempts",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Uploads to try before giving up.",
)
@click.pass_context
def test_connection(ctx: click.Context, attempts: int) -> None:
    """Check that the remote node accepts uploads."""
    service = get_service(ctx)
    if service.client is None:
        click.echo("Error: replication is not enabled", err=True)
        sys.exit(1)
    click.echo(f"Testing {service.settings.remote.url} ...")
    if service.client.test_connection(
        attempts=attempts, retry_delay=service.settings.worker.retry_delay
    ):
        click.echo("Connection OK")
    else:
        click.echo("Connection failed (see log for details)", err=True)
        sys.exit(1)

"""Download cache commands for the docsync CLI."""

from __future__ import annotations

import click

from docsync.cli.common import echo_json, get_service


@click.group()
def cache() -> None:
    """Download cache maintenance."""


@cache.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show cache statistics (after reconciling with the cache directory)."""
    service = get_service(ctx)
    service.cache.reconcile()
    echo_json(service.cache_stats())


@cache.command()
@click.pass_context
def sweep(ctx: click.Context) -> None:
    """Evict expired cache entries."""
    service = get_service(ctx)
    service.cache.reconcile()
    evicted = service.cache.sweep()
    click.echo(f"Evicted {evicted} expired entr{'y' if evicted == 1 else 'ies'}")


@cache.command()
@click.pass_context
def clear(ctx: click.Context) -> None:
    """Remove every cached file."""
    service = get_service(ctx)
    removed = service.cache.clear()
    click.echo(f"Removed {removed} cached file(s)")

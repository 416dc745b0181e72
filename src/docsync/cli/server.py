"""HTTP server command for the docsync CLI."""

from __future__ import annotations

import click


@click.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", type=int, default=8000, show_default=True)
@click.option("--no-worker", is_flag=True, help="Serve without the background replication worker.")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int, no_worker: bool) -> None:
    """Run the HTTP API."""
    import uvicorn

    from docsync.api.app import create_app
    from docsync.cli.common import get_service

    service = get_service(ctx)
    app = create_app(service, run_background=False)

    service.start(run_worker=not no_worker)
    try:
        uvicorn.run(app, host=host, port=port, log_config=None)
    finally:
        service.close()

"""Serve command - Run the HTTP API."""

from typing import Optional

import typer
import uvicorn

from fleetpilot.api.cli.runtime import console, settings_from
from fleetpilot.api.server import create_app


def serve(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, "--host", help="Bind host (default: FLEETPILOT_HOST)"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port (default: FLEETPILOT_PORT)"),
):
    """Run the decision engine API."""
    settings = settings_from(ctx)
    host = host or settings.host
    port = port or settings.port

    console.print(
        f"[bold blue]fleetpilot[/bold blue] serving on [cyan]http://{host}:{port}[/cyan] "
        f"([dim]{settings.storage_backend} store[/dim])"
    )
    uvicorn.run(create_app(settings=settings), host=host, port=port)

"""fleetpilot CLI entry point."""

from typing import Optional

import typer
from rich.console import Console

from fleetpilot.api.cli.commands import models, serve, sessions, verify
from fleetpilot.api.cli.runtime import configure_logging

app = typer.Typer(
    name="fleetpilot",
    help="fleetpilot - decision engine for autonomous browser automation",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

# Register command groups
app.add_typer(models.app, name="models", help="Model catalog and routing")
app.add_typer(sessions.app, name="sessions", help="Session management")
app.command("serve")(serve.serve)
app.command("verify")(verify.verify)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Engine YAML file (default: FLEETPILOT_CONFIG_PATH)"
    ),
    db: Optional[str] = typer.Option(
        None, "--db", help="Use the SQLite store at this path"
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """fleetpilot decision engine CLI."""
    configure_logging(debug)
    ctx.obj = {"config": config, "db": db, "debug": debug}


@app.command()
def version():
    """Show fleetpilot version."""
    from fleetpilot import __version__

    console.print(f"[bold blue]fleetpilot[/bold blue] version [cyan]{__version__}[/cyan]")


if __name__ == "__main__":
    app()

"""Sessions command - Inspect and control automation sessions."""

import asyncio
from typing import Any, Awaitable, Optional

import typer
from rich.table import Table

from fleetpilot.api.cli.runtime import build_components, console
from fleetpilot.core.domain.errors import EngineError

app = typer.Typer(help="Session management (requires a durable store, see --db)")

LEVEL_STYLES = {"info": "white", "success": "green", "warning": "yellow", "error": "red"}


def _run(call: Awaitable[Any]) -> Any:
    try:
        return asyncio.run(call)
    except EngineError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


@app.command("show")
def show_session(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session ID"),
):
    """Show session details."""
    engine = build_components(ctx).engine
    session = _run(engine.get_session(session_id))

    console.print(f"\n[bold]Session:[/bold] {session.id}")
    console.print(f"[bold]Goal:[/bold] {session.goal or session.metadata.get('goal', 'N/A')}")
    console.print(f"[bold]Status:[/bold] {session.status.value} ({session.progress}%)")
    console.print_json(data=session.to_dict())


@app.command("logs")
def session_logs(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session ID"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Show at most N entries"),
):
    """Show the session log."""
    engine = build_components(ctx).engine
    logs = _run(engine.get_logs(session_id, limit=limit))

    table = Table(title=f"Session {session_id}")
    table.add_column("Time", style="dim")
    table.add_column("Level")
    table.add_column("Action", style="cyan")
    table.add_column("Message", style="white")
    for entry in logs:
        style = LEVEL_STYLES.get(entry.level.value, "white")
        table.add_row(
            entry.timestamp.strftime("%H:%M:%S"),
            f"[{style}]{entry.level.value}[/{style}]",
            entry.action or "",
            entry.message,
        )
    console.print(table)


@app.command("pause")
def pause_session(ctx: typer.Context, session_id: str = typer.Argument(..., help="Session ID")):
    """Pause a running session."""
    session = _run(build_components(ctx).engine.pause(session_id))
    console.print(f"[yellow]Paused[/yellow] {session.id}")


@app.command("resume")
def resume_session(ctx: typer.Context, session_id: str = typer.Argument(..., help="Session ID")):
    """Resume a paused session."""
    session = _run(build_components(ctx).engine.resume(session_id))
    console.print(f"[green]Resumed[/green] {session.id}")


@app.command("cancel")
def cancel_session(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session ID"),
    reason: Optional[str] = typer.Option(None, "--reason", help="Cancellation reason"),
):
    """Cancel a session."""
    session = _run(build_components(ctx).engine.cancel(session_id, reason))
    console.print(f"[red]Cancelled[/red] {session.id}")

"""Models command - Catalog refresh and routing optimization."""

import asyncio
from typing import Any

import typer
from rich.table import Table

from fleetpilot.api.cli.runtime import build_components, console
from fleetpilot.infrastructure.catalog.openrouter_catalog import CatalogFetchError

app = typer.Typer(help="Model catalog and routing")


def _print_report(report: dict[str, Any]) -> None:
    table = Table(title=f"Task class routing (catalog v{report['catalog_version']})")
    table.add_column("Task class", style="cyan")
    table.add_column("Current", style="white")
    table.add_column("Recommended", style="green")
    table.add_column("Fallback", style="white")
    table.add_column("Savings", style="yellow")
    table.add_column("Updated", style="magenta")

    for rec in report["recommendations"]:
        table.add_row(
            rec["task_type"],
            rec["current_primary"] or "-",
            rec["recommended_primary"] or "[red]none[/red]",
            rec["recommended_fallback"] or "-",
            rec["price_savings"],
            "yes" if rec["updated"] else "",
        )
    console.print(table)

    if report["top_vision_models"]:
        vision = Table(title="Cheapest vision models")
        vision.add_column("Model", style="cyan")
        vision.add_column("Input", style="green")
        vision.add_column("Output", style="green")
        vision.add_column("Context", justify="right")
        for model in report["top_vision_models"]:
            vision.add_row(
                model["id"], model["price_input"], model["price_output"], str(model["context_length"])
            )
        console.print(vision)

    console.print(f"[bold]{report['message']}[/bold] ({report['models_cached']} models cached)")


@app.command("check")
def check(ctx: typer.Context):
    """Show routing recommendations without applying them."""
    components = build_components(ctx)
    _print_report(asyncio.run(components.optimizer.check()))


@app.command("optimize")
def optimize(
    ctx: typer.Context,
    refresh: bool = typer.Option(
        False, "--refresh", "-r", help="Refresh the catalog from OpenRouter first"
    ),
):
    """Apply the cheapest reliable models to auto-update task classes."""
    components = build_components(ctx)

    async def _run() -> dict[str, Any]:
        if refresh:
            await components.optimizer.refresh()
        return await components.optimizer.optimize()

    try:
        report = asyncio.run(_run())
    except CatalogFetchError as e:
        console.print(f"[red]Catalog refresh failed:[/red] {e}")
        raise typer.Exit(1)
    _print_report(report)


@app.command("refresh")
def refresh(ctx: typer.Context):
    """Fetch the OpenRouter catalog and store a new snapshot."""
    components = build_components(ctx)
    try:
        result = asyncio.run(components.optimizer.refresh())
    except CatalogFetchError as e:
        console.print(f"[red]Catalog refresh failed:[/red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] {result['message']}")

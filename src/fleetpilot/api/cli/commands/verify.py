"""Verify command - Evaluate verification criteria offline."""

import json
from pathlib import Path

import typer
from rich.table import Table

from fleetpilot.api.cli.runtime import console
from fleetpilot.core.domain.verification import VerificationCriterion, evaluate_criteria


def verify(
    payload_file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, help="JSON file with criteria and observed states"
    ),
):
    """Score verification criteria against observed states.

    The file holds the same body the runner posts to /agent/verify:
    verification_criteria, before_state, after_state, dom_changes and
    network_requests.
    """
    payload = json.loads(payload_file.read_text())
    try:
        criteria = [VerificationCriterion.from_dict(c) for c in payload.get("verification_criteria", [])]
    except ValueError as e:
        console.print(f"[red]Invalid criterion:[/red] {e}")
        raise typer.Exit(1)

    result = evaluate_criteria(
        criteria,
        payload.get("before_state"),
        payload.get("after_state"),
        payload.get("dom_changes"),
        payload.get("network_requests"),
    )

    table = Table(title="Verification")
    table.add_column("Type", style="cyan")
    table.add_column("Value", style="white")
    table.add_column("Passed")
    table.add_column("Confidence", justify="right")
    for item in result.results:
        table.add_row(
            item.type,
            item.value,
            "[green]yes[/green]" if item.passed else "[red]no[/red]",
            f"{item.confidence:.2f}",
        )
    console.print(table)

    verdict = "[green]PASSED[/green]" if result.verified else "[red]FAILED[/red]"
    console.print(f"{verdict} ({result.confidence * 100:.0f}%)")
    if not result.verified:
        raise typer.Exit(2)

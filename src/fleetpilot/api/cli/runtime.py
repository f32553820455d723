"""Shared CLI helpers: logging setup and engine construction."""

import asyncio
import logging

import structlog
import typer
from rich.console import Console

from fleetpilot.application.config import EngineSettings
from fleetpilot.application.factory import EngineComponents, EngineFactory
from fleetpilot.core.domain.errors import ConfigurationError

console = Console()


def configure_logging(debug: bool) -> None:
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )


def settings_from(ctx: typer.Context) -> EngineSettings:
    opts = ctx.obj or {}
    overrides = {}
    if opts.get("config"):
        overrides["config_path"] = opts["config"]
    if opts.get("db"):
        overrides["storage_backend"] = "sqlite"
        overrides["sqlite_db_path"] = opts["db"]
    return EngineSettings(**overrides)


def build_components(ctx: typer.Context) -> EngineComponents:
    """Create the engine or exit with a readable error."""
    try:
        return asyncio.run(EngineFactory(settings_from(ctx)).create())
    except (FileNotFoundError, ConfigurationError) as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1)

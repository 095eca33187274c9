"""
Main CLI application using Typer.

This module provides the command-line interface for tickstream: running the
HTTP server, listing the recipe table, and previewing one endpoint's stream
on stdout without a server.
"""

from __future__ import annotations

import json
import sys

import typer

from ..infra.exceptions import RecipeError, SessionClosedError
from ..infra.settings import settings
from ..runtime.recipes import RecipeRegistry, load_recipes
from ..runtime.session_manager import SessionManager
from ..runtime.sink import StreamFrameSink

app = typer.Typer(help="tickstream event stream server")


def _load_registry(recipes_file: str | None) -> RecipeRegistry:
    try:
        return load_recipes(recipes_file)
    except RecipeError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command("serve")
def serve(
    host: str = typer.Option(None, help="Interface to bind (default from TICKSTREAM_HOST)"),
    port: int = typer.Option(None, help="Port to listen on (default from TICKSTREAM_PORT)"),
    pace_hz: float = typer.Option(None, "--pace-hz", help="Timer resolution in hertz"),
    recipes_file: str = typer.Option(None, "--recipes", "-r", help="Path to a recipe table JSON file"),
    log_level: str = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
):
    """Run the HTTP server until interrupted."""
    from ..infra.logging import configure_logging
    from ..web.server import run_server

    overrides = {
        key: value
        for key, value in {
            "host": host,
            "port": port,
            "pace_hz": pace_hz,
            "recipes_file": recipes_file,
            "log_level": log_level,
        }.items()
        if value is not None
    }
    if "pace_hz" in overrides and overrides["pace_hz"] <= 0:
        typer.echo("Error: --pace-hz must be greater than zero", err=True)
        raise typer.Exit(1)
    cfg = settings.model_copy(update=overrides)

    configure_logging(cfg.log_level)
    registry = _load_registry(cfg.recipes_file)
    manager = SessionManager(registry, pace_hz=cfg.pace_hz, sink_max_bytes=cfg.sink_max_bytes)
    run_server(app_settings=cfg, manager=manager)


@app.command("recipes")
def list_recipes(
    recipes_file: str = typer.Option(None, "--recipes", "-r", help="Path to a recipe table JSON file"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """List the endpoint recipe table."""
    registry = _load_registry(recipes_file or settings.recipes_file)
    if json_output:
        typer.echo(json.dumps(registry.to_dict(), indent=2))
        return
    for recipe in registry:
        typer.echo(f"{recipe.name}: " + ", ".join(entry.describe() for entry in recipe))


@app.command("preview")
def preview(
    endpoint: str = typer.Argument(..., help="Endpoint name, e.g. timestamp or combined"),
    duration: float = typer.Option(3.0, "--duration", "-d", help="Seconds to stream before closing"),
    recipes_file: str = typer.Option(None, "--recipes", "-r", help="Path to a recipe table JSON file"),
):
    """Stream one endpoint's frames to stdout for a bounded time."""
    if duration < 0:
        typer.echo("Error: --duration must not be negative", err=True)
        raise typer.Exit(1)
    registry = _load_registry(recipes_file or settings.recipes_file)
    if endpoint not in registry:
        typer.echo(f"Error: unknown endpoint '{endpoint}'", err=True)
        typer.echo(f"Available endpoints: {registry.names()}", err=True)
        raise typer.Exit(1)

    manager = SessionManager(registry, pace_hz=settings.pace_hz)
    try:
        manager.start()
        session = manager.open_session(endpoint, StreamFrameSink(sys.stdout))
        # Returns early if stdout goes away (write failure closes the session).
        session.wait_closed(duration)
    except SessionClosedError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except KeyboardInterrupt:
        pass
    finally:
        manager.shutdown()


def cli():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    cli()

"""Webmail command-line interface.

What:
  Provide the Typer entry point used to run the HTTP service and its
  operational chores: ``serve``, ``init-db`` and ``reap``.

Why:
  Deployments start the API with a process manager and run schema creation or
  an out-of-band sweep from cron; one entry point keeps configuration handling
  identical across all three.

How:
  Each command loads the runtime configuration (an explicit ``--config`` path
  wins over ``WEBMAIL_CONFIG_PATH`` and the default locations), then builds the
  pieces it needs. ``serve`` hands a fully built app to ``uvicorn``.

Interfaces:
  ``app`` (Typer application), ``serve``, ``init_db``, ``reap``, ``main``.

Invariants & Safety:
  - Exit codes follow shell expectations (``0`` success, ``1`` configuration
    failure).
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from .api import build_services, create_app, run_maintenance
from .config.loader import RuntimeConfigError, load_runtime_config
from .config.schema import RuntimeConfig
from .storage import Database
from .utils.logging import get_logger

app = typer.Typer(help="Multi-tenant webmail service")

LOGGER = get_logger("webmail.cli")

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to config.yaml")


def _load(config_path: Optional[Path]) -> RuntimeConfig:
    try:
        return load_runtime_config(config_path, reload=True)
    except RuntimeConfigError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (defaults to server.host)"),
    port: Optional[int] = typer.Option(None, help="Bind port (defaults to server.port)"),
    config_path: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Run the REST and RPC API with uvicorn."""

    runtime = _load(config_path)
    bind_host = host or runtime.server.host
    bind_port = port or runtime.server.port
    LOGGER.info("serve", host=bind_host, port=bind_port)
    uvicorn.run(create_app(runtime), host=bind_host, port=bind_port)


@app.command("init-db")
def init_db(config_path: Optional[Path] = CONFIG_OPTION) -> None:
    """Create the database tables if they do not exist."""

    runtime = _load(config_path)
    database = Database(runtime.database.url, echo=runtime.database.echo)
    try:
        database.create_all()
    finally:
        database.dispose()
    typer.echo("Database initialised")


@app.command("reap")
def reap(config_path: Optional[Path] = CONFIG_OPTION) -> None:
    """Purge expired sessions once and print the sweep summary as JSON."""

    runtime = _load(config_path)
    services = build_services(runtime)
    try:
        summary = run_maintenance(services)
    finally:
        services.close()
    typer.echo(json.dumps(summary, sort_keys=True))


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()

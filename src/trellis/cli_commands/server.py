"""CLI commands that run long-lived servers: mcp, api."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click

from trellis.core import DB_ENV_VAR, TRELLIS_DIR_NAME


@click.command()
@click.option("--project", "project_path", type=click.Path(path_type=Path), default=None, help="Project root")
@click.option("--db", "db_path", type=click.Path(path_type=Path), default=None, help=f"Database file (or ${DB_ENV_VAR})")
def mcp(project_path: Path | None, db_path: Path | None) -> None:
    """Run the MCP server on stdio."""
    from trellis.mcp_server import _run

    asyncio.run(_run(project_path, db_path))


@click.command()
@click.option("--port", default=8377, type=int, help="Port to listen on")
@click.option("--host", default="127.0.0.1", help="Interface to bind")
@click.option("--db", "db_path", type=click.Path(path_type=Path), default=None, help=f"Database file (or ${DB_ENV_VAR})")
def api(port: int, host: str, db_path: Path | None) -> None:
    """Serve the JSON HTTP API."""
    from trellis.http_api import main as api_main

    try:
        api_main(port=port, db_path=db_path, host=host)
    except FileNotFoundError:
        click.echo(f"No {TRELLIS_DIR_NAME}/ found and ${DB_ENV_VAR} is not set. Run 'trellis init' first.", err=True)
        sys.exit(1)


COMMANDS = [mcp, api]

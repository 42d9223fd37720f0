"""CLI for the trellis task tracker.

Convention-based: discovers .trellis/ by walking up from cwd, unless
$TRELLIS_DB names a database file directly.

Usage:
    trellis init                                  # Initialize .trellis/ in cwd
    trellis create "Add login" --project <id>     # Create task
    trellis show <id>                             # Show task details
    trellis list --status=in_progress             # List tasks
    trellis status <id> completed                 # Change status
    trellis progress <id> 60                      # Set completion percentage
    trellis dep add <a> <b>                       # a waits on b
    trellis ready                                 # Tasks whose dependencies are done
    trellis context set <id> "original request"   # Record the original request
    trellis iteration add <id> "approach" failed  # Record an attempt
    trellis replay <id>                           # Everything recorded about a task
    trellis mcp                                   # Run the MCP server on stdio
    trellis api --port 8377                       # Run the HTTP API
"""

from __future__ import annotations

from pathlib import Path

import click

from trellis import __version__
from trellis.cli_commands import graph, ledger, projects, server, tasks
from trellis.core import (
    DB_FILENAME,
    SUMMARY_FILENAME,
    TRELLIS_DIR_NAME,
    TrellisDB,
    read_config,
    write_config,
)
from trellis.summary import write_summary

# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="trellis")
@click.option("--actor", default="cli", help="Actor identity for audit trail (default: cli)")
@click.pass_context
def cli(ctx: click.Context, actor: str) -> None:
    """Trellis - dependency-aware task tracker with an iteration ledger."""
    ctx.ensure_object(dict)
    ctx.obj["actor"] = actor


@cli.command()
@click.option("--prefix", default=None, help="ID prefix for tasks (default: directory name)")
def init(prefix: str | None) -> None:
    """Initialize .trellis/ in the current directory."""
    cwd = Path.cwd()
    trellis_dir = cwd / TRELLIS_DIR_NAME

    if trellis_dir.exists():
        click.echo(f"{TRELLIS_DIR_NAME}/ already exists in {cwd}")
        # Still ensure DB is initialized
        config = read_config(trellis_dir)
        db = TrellisDB(trellis_dir / DB_FILENAME, prefix=config.get("prefix", "trellis"))
        db.initialize()
        db.close()
        return

    prefix = prefix or cwd.name
    trellis_dir.mkdir()

    config = {"prefix": prefix, "version": 1, "attachments_dir": "attachments"}
    write_config(trellis_dir, config)

    db = TrellisDB(trellis_dir / DB_FILENAME, prefix=prefix)
    db.initialize()
    write_summary(db, trellis_dir / SUMMARY_FILENAME)
    db.close()

    click.echo(f"Initialized {TRELLIS_DIR_NAME}/ in {cwd}")
    click.echo(f"  Prefix: {prefix}")
    click.echo(f"  Database: {trellis_dir / DB_FILENAME}")
    click.echo("\nNext: trellis create \"First task\"")


for _module in (projects, tasks, graph, ledger, server):
    for _command in _module.COMMANDS:
        cli.add_command(_command)


if __name__ == "__main__":
    cli()

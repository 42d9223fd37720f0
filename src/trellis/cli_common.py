"""Shared CLI helpers.

Provides ``get_db()`` and ``refresh_summary()`` so that ``cli.py`` and the
``cli_commands/*.py`` modules can reach the database without circular
imports.
"""

from __future__ import annotations

import json as json_mod
import sys
from typing import Any, NoReturn

import click

from trellis.core import (
    DB_ENV_VAR,
    SUMMARY_FILENAME,
    TRELLIS_DIR_NAME,
    TrellisDB,
    resolve_db_path,
)
from trellis.summary import write_summary


def get_db() -> TrellisDB:
    """Resolve the database ($TRELLIS_DB or discovered .trellis/) and return an initialized TrellisDB."""
    try:
        db_path = resolve_db_path()
    except FileNotFoundError:
        click.echo(f"No {TRELLIS_DIR_NAME}/ found and ${DB_ENV_VAR} is not set. Run 'trellis init' first.", err=True)
        sys.exit(1)
    try:
        return TrellisDB.open(db_path)
    except OSError as e:
        click.echo(f"Cannot open database {db_path}: {e}", err=True)
        sys.exit(1)


def refresh_summary(db: TrellisDB) -> None:
    """Regenerate summary.md after mutations (only when the DB lives in a .trellis/ dir)."""
    trellis_dir = db.db_path.parent
    if trellis_dir.name != TRELLIS_DIR_NAME:
        return
    write_summary(db, trellis_dir / SUMMARY_FILENAME)


def emit_json(data: Any) -> None:
    click.echo(json_mod.dumps(data, indent=2, default=str))


def fail(message: str, *, as_json: bool = False, code: str = "error") -> NoReturn:
    """Report an error (stderr, or a JSON envelope on stdout) and exit 1."""
    if as_json:
        click.echo(json_mod.dumps({"error": message, "code": code}))
    else:
        click.echo(f"Error: {message}", err=True)
    sys.exit(1)

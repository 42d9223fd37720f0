"""Shared pytest fixtures for trellis tests."""

from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass
from pathlib import Path

import pytest
from click.testing import CliRunner

from trellis.core import (
    DB_FILENAME,
    SUMMARY_FILENAME,
    TRELLIS_DIR_NAME,
    TrellisDB,
    write_config,
)


@pytest.fixture
def db(tmp_path: Path) -> Generator[TrellisDB, None, None]:
    """Fresh TrellisDB for each test."""
    d = TrellisDB(tmp_path / "trellis.db", prefix="test")
    d.initialize()
    yield d
    d.close()


@dataclass
class PopulatedDB:
    """A TrellisDB plus the IDs of the tasks seeded into it."""

    db: TrellisDB
    ids: dict[str, str]


@pytest.fixture
def populated_db(db: TrellisDB) -> PopulatedDB:
    """TrellisDB pre-populated with a small project.

    Creates:
    - Project P with tasks A, B, C
    - A depends on B (B not started), C is completed
    - Subtask S under A
    - Context and one iteration on A
    """
    project = db.create_project("Website", description="Marketing site")
    a = db.create_task("Build login page", project_id=project.id)
    b = db.create_task("Design auth API", project_id=project.id)
    c = db.create_task("Pick a framework", project_id=project.id, status="completed")
    s = db.create_subtask(a.id, "Write form validation")
    db.add_dependency(a.id, b.id)
    db.set_context(a.id, "Users need to sign in with email")
    db.add_iteration(a.id, "Server-rendered form", "partial", lessons="Needs CSRF token")
    return PopulatedDB(db=db, ids={"project": project.id, "a": a.id, "b": b.id, "c": c.id, "s": s.id})


@pytest.fixture
def trellis_project(tmp_path: Path) -> Path:
    """A tmp directory set up as a trellis project (.trellis/ with config + db).

    Returns the project root (parent of .trellis/).
    """
    trellis_dir = tmp_path / TRELLIS_DIR_NAME
    trellis_dir.mkdir()
    write_config(trellis_dir, {"prefix": "proj", "version": 1})

    d = TrellisDB(trellis_dir / DB_FILENAME, prefix="proj")
    d.initialize()
    d.close()

    (trellis_dir / SUMMARY_FILENAME).write_text("# summary\n")

    return tmp_path


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()

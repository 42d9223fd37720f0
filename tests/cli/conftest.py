"""Fixtures for CLI interface tests."""

from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from trellis.cli import cli
from trellis.core import DB_ENV_VAR


@pytest.fixture
def cli_in_project(
    tmp_path: Path, cli_runner: CliRunner, monkeypatch: pytest.MonkeyPatch
) -> Generator[tuple[CliRunner, Path], None, None]:
    """Initialize a trellis project in tmp_path and return (runner, project_root)."""
    monkeypatch.delenv(DB_ENV_VAR, raising=False)
    original_cwd = os.getcwd()
    os.chdir(str(tmp_path))
    result = cli_runner.invoke(cli, ["init", "--prefix", "test"])
    assert result.exit_code == 0
    yield cli_runner, tmp_path
    os.chdir(original_cwd)


def _extract_id(create_output: str) -> str:
    """Extract task ID from 'Created test-abc123: Title' output."""
    return create_output.split(":")[0].replace("Created ", "").strip()

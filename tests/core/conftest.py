"""Fixtures for core DB tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest

from trellis.core import TrellisDB


@pytest.fixture
def file_db_path(tmp_path: Path) -> Path:
    """Path for tests that open several connections to the same file."""
    path = tmp_path / "shared.db"
    d = TrellisDB(path, prefix="shared")
    d.initialize()
    d.close()
    return path


@pytest.fixture
def second_db(file_db_path: Path) -> Generator[TrellisDB, None, None]:
    d = TrellisDB(file_db_path, prefix="shared", check_same_thread=False)
    d.initialize()
    yield d
    d.close()

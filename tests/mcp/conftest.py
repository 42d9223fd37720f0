"""Fixtures for MCP server tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest

from trellis.core import DB_FILENAME, SUMMARY_FILENAME, TRELLIS_DIR_NAME, TrellisDB, write_config


@pytest.fixture
def mcp_db(tmp_path: Path) -> Generator[TrellisDB, None, None]:
    """Set up a TrellisDB and patch the MCP module globals."""
    trellis_dir = tmp_path / TRELLIS_DIR_NAME
    trellis_dir.mkdir()
    write_config(trellis_dir, {"prefix": "mcp", "version": 1})
    (trellis_dir / SUMMARY_FILENAME).write_text("# test\n")

    d = TrellisDB(trellis_dir / DB_FILENAME, prefix="mcp")
    d.initialize()

    import trellis.mcp_server as mcp_mod

    original_db = mcp_mod.db
    original_dir = mcp_mod._trellis_dir
    mcp_mod.db = d
    mcp_mod._trellis_dir = trellis_dir

    yield d

    mcp_mod.db = original_db
    mcp_mod._trellis_dir = original_dir
    d.close()

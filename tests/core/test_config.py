"""Tests for .trellis/ discovery, config files, and database path resolution."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from trellis.core import (
    CURRENT_SCHEMA_VERSION,
    DB_ENV_VAR,
    DB_FILENAME,
    TRELLIS_DIR_NAME,
    TrellisDB,
    attachments_root,
    find_trellis_root,
    read_config,
    resolve_db_path,
    write_config,
)


class TestFindTrellisRoot:
    def test_finds_in_start_dir(self, tmp_path: Path) -> None:
        (tmp_path / TRELLIS_DIR_NAME).mkdir()
        assert find_trellis_root(tmp_path) == (tmp_path / TRELLIS_DIR_NAME).resolve()

    def test_walks_up_from_subdirectory(self, tmp_path: Path) -> None:
        (tmp_path / TRELLIS_DIR_NAME).mkdir()
        nested = tmp_path / "src" / "pkg"
        nested.mkdir(parents=True)
        assert find_trellis_root(nested) == (tmp_path / TRELLIS_DIR_NAME).resolve()

    def test_raises_when_absent(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            find_trellis_root(tmp_path)


class TestConfig:
    def test_roundtrip(self, tmp_path: Path) -> None:
        write_config(tmp_path, {"prefix": "web", "version": 1, "attachments_dir": "assets"})
        config = read_config(tmp_path)
        assert config["prefix"] == "web"
        assert config["attachments_dir"] == "assets"

    def test_missing_file_gets_defaults(self, tmp_path: Path) -> None:
        config = read_config(tmp_path)
        assert config["prefix"] == "trellis"
        assert config["attachments_dir"] == "attachments"

    def test_partial_config_is_filled_in(self, tmp_path: Path) -> None:
        write_config(tmp_path, {"prefix": "web"})
        config = read_config(tmp_path)
        assert config["prefix"] == "web"
        assert config["version"] == 1

    def test_corrupt_config_falls_back(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        (tmp_path / "config.json").write_text("{not json")
        config = read_config(tmp_path)
        assert config["prefix"] == "trellis"
        assert "using defaults" in caplog.text

    def test_non_object_config_falls_back(self, tmp_path: Path) -> None:
        (tmp_path / "config.json").write_text(json.dumps(["web"]))
        assert read_config(tmp_path)["prefix"] == "trellis"

    def test_attachments_root_follows_config(self, tmp_path: Path) -> None:
        write_config(tmp_path, {"prefix": "web", "attachments_dir": "shots"})
        assert attachments_root(tmp_path) == tmp_path / "shots"


class TestResolveDbPath:
    def test_explicit_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(DB_ENV_VAR, str(tmp_path / "env.db"))
        assert resolve_db_path(tmp_path / "explicit.db") == tmp_path / "explicit.db"

    def test_env_var(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(DB_ENV_VAR, str(tmp_path / "env.db"))
        assert resolve_db_path() == tmp_path / "env.db"

    def test_discovery(self, trellis_project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(DB_ENV_VAR, raising=False)
        monkeypatch.chdir(trellis_project)
        assert resolve_db_path() == (trellis_project / TRELLIS_DIR_NAME).resolve() / DB_FILENAME

    def test_nothing_found(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(DB_ENV_VAR, raising=False)
        monkeypatch.chdir(tmp_path)
        with pytest.raises(FileNotFoundError):
            resolve_db_path()


class TestOpen:
    def test_open_reads_prefix_from_config(self, trellis_project: Path) -> None:
        db = TrellisDB.open(trellis_project / TRELLIS_DIR_NAME / DB_FILENAME)
        try:
            assert db.prefix == "proj"
            assert db.create_task("T").id.startswith("proj-")
        finally:
            db.close()

    def test_from_project(self, trellis_project: Path) -> None:
        db = TrellisDB.from_project(trellis_project)
        try:
            assert db.prefix == "proj"
        finally:
            db.close()

    def test_schema_version_stamped(self, db: TrellisDB) -> None:
        assert db.get_schema_version() == CURRENT_SCHEMA_VERSION

    def test_initialize_is_idempotent(self, db: TrellisDB) -> None:
        task = db.create_task("Survives")
        db.initialize()
        assert db.get_task(task.id).title == "Survives"

    def test_context_manager_closes(self, tmp_path: Path) -> None:
        with TrellisDB(tmp_path / "cm.db") as db:
            db.initialize()
            db.create_task("T")
        assert db._conn is None

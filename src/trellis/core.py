"""Core database operations for the task tracker.

Single source of truth for all SQLite operations. The CLI, the MCP server,
and the HTTP API all import from this module. No daemon, just direct
SQLite with WAL mode.

Convention-based discovery: each project has a `.trellis/` directory
containing `trellis.db` (SQLite) and `config.json` (task-id prefix,
schema version, attachment directory).
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import sqlite3
import threading
import uuid
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from trellis.db_base import (
    ACTIONABLE_STATUSES,
    COMPLETED,
    VALID_ISSUE_STATUSES,
    VALID_OUTCOMES,
    VALID_REFERENCE_KINDS,
    VALID_TASK_STATUSES,
    _iter_chunks,
)
from trellis.db_events import EventsMixin
from trellis.db_graph import GraphMixin
from trellis.db_ledger import LedgerMixin
from trellis.db_lifecycle import LifecycleMixin
from trellis.db_projects import ProjectsMixin
from trellis.errors import ParentNotFoundError, TaskNotFoundError
from trellis.models import (
    ConversationEntry,
    Dependency,
    DependencyView,
    FullContext,
    Iteration,
    Project,
    Reference,
    Task,
    TaskContext,
    TaskFile,
    TaskIssue,
)
from trellis.types.api import StatsResult
from trellis.types.core import ProjectConfig

logger = logging.getLogger(__name__)

__all__ = [
    "ConversationEntry",
    "Dependency",
    "DependencyView",
    "FullContext",
    "Iteration",
    "Project",
    "Reference",
    "Task",
    "TaskContext",
    "TaskFile",
    "TaskIssue",
    "TrellisDB",
]

# ---------------------------------------------------------------------------
# Convention-based discovery
# ---------------------------------------------------------------------------

TRELLIS_DIR_NAME = ".trellis"
DB_FILENAME = "trellis.db"
CONFIG_FILENAME = "config.json"
SUMMARY_FILENAME = "summary.md"
DEFAULT_ATTACHMENTS_DIR = "attachments"
DB_ENV_VAR = "TRELLIS_DB"


def find_trellis_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .trellis/ directory.

    Returns the .trellis/ directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / TRELLIS_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {TRELLIS_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def read_config(trellis_dir: Path) -> ProjectConfig:
    """Read .trellis/config.json. Returns defaults if missing or corrupt."""
    defaults = ProjectConfig(prefix="trellis", version=1, attachments_dir=DEFAULT_ATTACHMENTS_DIR)
    config_path = trellis_dir / CONFIG_FILENAME
    if not config_path.exists():
        return defaults
    try:
        loaded = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return defaults
    if not isinstance(loaded, dict):
        logger.warning("Ignoring non-object config in %s", config_path)
        return defaults
    result: ProjectConfig = {**defaults, **loaded}  # type: ignore[typeddict-item]
    return result


def write_config(trellis_dir: Path, config: dict[str, Any] | ProjectConfig) -> None:
    """Write .trellis/config.json."""
    config_path = trellis_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")


def resolve_db_path(explicit: str | Path | None = None) -> Path:
    """Pick the database file: explicit path, then $TRELLIS_DB, then discovery."""
    if explicit:
        return Path(explicit).expanduser()
    env = os.environ.get(DB_ENV_VAR)
    if env:
        return Path(env).expanduser()
    return find_trellis_root() / DB_FILENAME


def attachments_root(trellis_dir: Path) -> Path:
    """Directory where image/file attachments are stored for this project."""
    config = read_config(trellis_dir)
    return trellis_dir / config.get("attachments_dir", DEFAULT_ATTACHMENTS_DIR)


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


def _in_list(values: frozenset[str]) -> str:
    return ", ".join(f"'{v}'" for v in sorted(values))


SCHEMA_SQL = f"""\
CREATE TABLE IF NOT EXISTS projects (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    description TEXT DEFAULT '',
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tasks (
    id           TEXT PRIMARY KEY,
    project_id   TEXT REFERENCES projects(id) ON DELETE CASCADE,
    title        TEXT NOT NULL,
    description  TEXT DEFAULT '',
    status       TEXT NOT NULL DEFAULT 'not_started',
    completion   INTEGER NOT NULL DEFAULT 0,
    parent_id    TEXT REFERENCES tasks(id) ON DELETE SET NULL,
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL,
    completed_at TEXT,

    CHECK (completion BETWEEN 0 AND 100),
    CHECK (status IN ({_in_list(VALID_TASK_STATUSES)}))
);

CREATE INDEX IF NOT EXISTS idx_tasks_project ON tasks(project_id);
CREATE INDEX IF NOT EXISTS idx_tasks_parent ON tasks(parent_id);
CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status, created_at);

CREATE TABLE IF NOT EXISTS dependencies (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    dependent_id   TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    depends_on_id  TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    created_at     TEXT NOT NULL,

    UNIQUE (dependent_id, depends_on_id),
    CHECK (dependent_id <> depends_on_id)
);

CREATE INDEX IF NOT EXISTS idx_deps_depends_on ON dependencies(depends_on_id);

CREATE TABLE IF NOT EXISTS task_files (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id     TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    path        TEXT NOT NULL,
    change_note TEXT,
    modified_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_task_files_task ON task_files(task_id);

CREATE TABLE IF NOT EXISTS task_issues (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id     TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    title       TEXT NOT NULL,
    description TEXT,
    status      TEXT NOT NULL DEFAULT 'open',
    created_at  TEXT NOT NULL,
    resolved_at TEXT,

    CHECK (status IN ({_in_list(VALID_ISSUE_STATUSES)}))
);

CREATE INDEX IF NOT EXISTS idx_task_issues_task ON task_issues(task_id);

CREATE TABLE IF NOT EXISTS task_contexts (
    task_id          TEXT PRIMARY KEY REFERENCES tasks(id) ON DELETE CASCADE,
    original_request TEXT NOT NULL,
    notes            TEXT,
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS conversation_entries (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id    TEXT NOT NULL REFERENCES task_contexts(task_id) ON DELETE CASCADE,
    position   INTEGER NOT NULL,
    question   TEXT NOT NULL,
    answer     TEXT NOT NULL,
    created_at TEXT NOT NULL,

    UNIQUE (task_id, position)
);

CREATE TABLE IF NOT EXISTS iterations (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id       TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    sequence      INTEGER NOT NULL,
    approach      TEXT NOT NULL,
    outcome       TEXT NOT NULL,
    lessons       TEXT,
    files_touched TEXT,
    created_at    TEXT NOT NULL,

    UNIQUE (task_id, sequence),
    CHECK (sequence >= 1),
    CHECK (outcome IN ({_in_list(VALID_OUTCOMES)}))
);

CREATE TABLE IF NOT EXISTS task_references (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id           TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    kind              TEXT NOT NULL,
    content           TEXT NOT NULL,
    description       TEXT NOT NULL DEFAULT '',
    original_filename TEXT,
    mime_type         TEXT,
    created_at        TEXT NOT NULL,

    CHECK (kind IN ({_in_list(VALID_REFERENCE_KINDS)}))
);

CREATE INDEX IF NOT EXISTS idx_task_references_task ON task_references(task_id);

CREATE TABLE IF NOT EXISTS events (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id    TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    event_type TEXT NOT NULL,
    actor      TEXT DEFAULT '',
    old_value  TEXT,
    new_value  TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_task ON events(task_id);
CREATE INDEX IF NOT EXISTS idx_events_created ON events(created_at);
"""

CURRENT_SCHEMA_VERSION = 1


# ---------------------------------------------------------------------------
# TrellisDB
# ---------------------------------------------------------------------------


class TrellisDB(EventsMixin, ProjectsMixin, LifecycleMixin, GraphMixin, LedgerMixin):
    """Direct SQLite operations. No daemon. Importable by CLI, MCP, and HTTP."""

    def __init__(
        self,
        db_path: str | Path,
        *,
        prefix: str = "trellis",
        check_same_thread: bool = True,
    ) -> None:
        self.db_path = Path(db_path)
        self.prefix = prefix
        self._conn: sqlite3.Connection | None = None
        self._check_same_thread = check_same_thread
        self._write_lock = threading.RLock()
        self._txn_depth = 0

    @classmethod
    def from_project(cls, project_path: Path | None = None) -> TrellisDB:
        """Create a TrellisDB by discovering .trellis/ from project_path (or cwd)."""
        trellis_dir = find_trellis_root(project_path)
        config = read_config(trellis_dir)
        db = cls(trellis_dir / DB_FILENAME, prefix=config.get("prefix", "trellis"))
        db.initialize()
        return db

    @classmethod
    def open(cls, db_path: Path, *, check_same_thread: bool = True) -> TrellisDB:
        """Open (and initialize) a database file, reading the prefix from its sibling config."""
        db_path.parent.mkdir(parents=True, exist_ok=True)
        config = read_config(db_path.parent)
        db = cls(db_path, prefix=config.get("prefix", "trellis"), check_same_thread=check_same_thread)
        db.initialize()
        return db

    def __enter__(self) -> TrellisDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                isolation_level="DEFERRED",
                check_same_thread=self._check_same_thread,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.execute("PRAGMA busy_timeout=5000")
        return self._conn

    def reconnect(self, *, check_same_thread: bool = True) -> None:
        """Close and reopen the connection with a different threading policy."""
        self.close()
        self._check_same_thread = check_same_thread

    def initialize(self) -> None:
        """Create tables on a fresh database and stamp the schema version."""
        current_version = self.get_schema_version()
        if current_version == 0:
            self.conn.executescript(SCHEMA_SQL)
            self.conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION}")
        elif current_version > CURRENT_SCHEMA_VERSION:
            logger.warning(
                "Database %s has schema v%d, newer than this trellis (v%d)",
                self.db_path,
                current_version,
                CURRENT_SCHEMA_VERSION,
            )
        self.conn.commit()

    def get_schema_version(self) -> int:
        """Return the current schema version from PRAGMA user_version."""
        result: int = self.conn.execute("PRAGMA user_version").fetchone()[0]
        return result

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # -- Transactions --------------------------------------------------------

    @contextlib.contextmanager
    def _write_txn(self) -> Iterator[sqlite3.Connection]:
        """Run a read-modify-write sequence as one serialized unit.

        The outermost block issues ``BEGIN IMMEDIATE`` so the write lock is
        taken before the first read; other connections wait (busy_timeout)
        instead of computing from stale state. Nested blocks join the
        outer transaction.
        """
        with self._write_lock:
            conn = self.conn
            outermost = self._txn_depth == 0
            if outermost and not conn.in_transaction:
                conn.execute("BEGIN IMMEDIATE")
            self._txn_depth += 1
            try:
                yield conn
            except BaseException:
                self._txn_depth -= 1
                if outermost:
                    conn.rollback()
                raise
            self._txn_depth -= 1
            if outermost:
                conn.commit()

    def _generate_unique_id(self, table: str, infix: str = "") -> str:
        """Generate a unique ID using O(1) EXISTS checks against the PK index.

        *table* is always a hardcoded literal at the call site (never user input).
        """
        sep = f"-{infix}-" if infix else "-"
        for _ in range(10):
            candidate = f"{self.prefix}{sep}{uuid.uuid4().hex[:10]}"
            if self.conn.execute(f"SELECT 1 FROM {table} WHERE id = ?", (candidate,)).fetchone() is None:
                return candidate
        return f"{self.prefix}{sep}{uuid.uuid4().hex[:16]}"

    # -- Task reads ----------------------------------------------------------

    def _require_task(self, task_id: str, *, parent: bool = False) -> None:
        """Raise the not-found signal if *task_id* does not exist.

        ``parent=True`` is used by write-side helpers that attach a child
        record and raises ``ParentNotFoundError`` instead.
        """
        row = self.conn.execute("SELECT 1 FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            if parent:
                raise ParentNotFoundError(task_id)
            raise TaskNotFoundError(task_id)

    def get_task(self, task_id: str) -> Task:
        tasks = self._build_tasks_batch([task_id])
        if not tasks:
            raise TaskNotFoundError(task_id)
        return tasks[0]

    def _build_tasks_batch(self, task_ids: list[str]) -> list[Task]:
        """Build multiple Tasks with their computed fields in a fixed number of queries."""
        if not task_ids:
            return []

        rows_by_id: dict[str, sqlite3.Row] = {}
        subtasks_by_id: dict[str, list[str]] = {tid: [] for tid in task_ids}
        depends_on_by_id: dict[str, list[str]] = {tid: [] for tid in task_ids}
        dependents_by_id: dict[str, list[str]] = {tid: [] for tid in task_ids}
        unfinished_deps: dict[str, int] = dict.fromkeys(task_ids, 0)

        for chunk in _iter_chunks(task_ids):
            ph = ",".join("?" * len(chunk))
            for r in self.conn.execute(f"SELECT * FROM tasks WHERE id IN ({ph})", chunk).fetchall():
                rows_by_id[r["id"]] = r

            for r in self.conn.execute(
                f"SELECT id, parent_id FROM tasks WHERE parent_id IN ({ph}) ORDER BY created_at, id",
                chunk,
            ).fetchall():
                subtasks_by_id[r["parent_id"]].append(r["id"])

            for r in self.conn.execute(
                f"SELECT d.dependent_id, d.depends_on_id, t.status FROM dependencies d "
                f"JOIN tasks t ON d.depends_on_id = t.id "
                f"WHERE d.dependent_id IN ({ph}) ORDER BY d.id",
                chunk,
            ).fetchall():
                depends_on_by_id[r["dependent_id"]].append(r["depends_on_id"])
                if r["status"] != COMPLETED:
                    unfinished_deps[r["dependent_id"]] += 1

            for r in self.conn.execute(
                f"SELECT dependent_id, depends_on_id FROM dependencies WHERE depends_on_id IN ({ph}) ORDER BY id",
                chunk,
            ).fetchall():
                dependents_by_id[r["depends_on_id"]].append(r["dependent_id"])

        result: list[Task] = []
        for tid in task_ids:
            row = rows_by_id.get(tid)
            if row is None:
                continue
            result.append(
                Task(
                    id=row["id"],
                    project_id=row["project_id"],
                    title=row["title"],
                    description=row["description"] or "",
                    status=row["status"],
                    completion=row["completion"],
                    parent_id=row["parent_id"],
                    created_at=row["created_at"],
                    updated_at=row["updated_at"],
                    completed_at=row["completed_at"],
                    subtasks=subtasks_by_id[tid],
                    depends_on=depends_on_by_id[tid],
                    dependents=dependents_by_id[tid],
                    can_start=unfinished_deps[tid] == 0,
                )
            )
        return result

    def list_tasks(
        self,
        *,
        project_id: str | None = None,
        status: str | None = None,
        parent_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Task]:
        conditions: list[str] = []
        params: list[Any] = []
        if project_id is not None:
            conditions.append("project_id = ?")
            params.append(project_id)
        if status is not None:
            conditions.append("status = ?")
            params.append(status)
        if parent_id is not None:
            conditions.append("parent_id = ?")
            params.append(parent_id)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        rows = self.conn.execute(
            f"SELECT id FROM tasks {where} ORDER BY created_at, id LIMIT ? OFFSET ?",
            [*params, limit, offset],
        ).fetchall()
        return self._build_tasks_batch([r["id"] for r in rows])

    def get_stats(self) -> StatsResult:
        by_status = dict.fromkeys(sorted(VALID_TASK_STATUSES), 0)
        for r in self.conn.execute("SELECT status, COUNT(*) AS cnt FROM tasks GROUP BY status").fetchall():
            by_status[r["status"]] = r["cnt"]

        actionable_ph = ",".join("?" * len(ACTIONABLE_STATUSES))
        blocked_count = self.conn.execute(
            f"SELECT COUNT(DISTINCT t.id) FROM tasks t "
            f"JOIN dependencies d ON d.dependent_id = t.id "
            f"JOIN tasks dep ON d.depends_on_id = dep.id "
            f"WHERE t.status IN ({actionable_ph}) AND dep.status != ?",
            [*ACTIONABLE_STATUSES, COMPLETED],
        ).fetchone()[0]
        actionable = sum(by_status[s] for s in ACTIONABLE_STATUSES)
        open_issues = self.conn.execute("SELECT COUNT(*) FROM task_issues WHERE status = 'open'").fetchone()[0]

        return StatsResult(
            by_status=by_status,
            ready_count=actionable - blocked_count,
            blocked_count=blocked_count,
            open_issue_count=open_issues,
            total=sum(by_status.values()),
        )

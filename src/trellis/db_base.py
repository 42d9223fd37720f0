"""Shared utilities, vocabularies, and Protocol for DB mixins."""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import AbstractContextManager
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from trellis.core import Task

# ---------------------------------------------------------------------------
# Vocabularies (wire values)
# ---------------------------------------------------------------------------

NOT_STARTED = "not_started"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
BLOCKED = "blocked"

VALID_TASK_STATUSES = frozenset({NOT_STARTED, IN_PROGRESS, COMPLETED, BLOCKED})
OPEN = "open"
RESOLVED = "resolved"
DEFERRED = "deferred"

VALID_ISSUE_STATUSES = frozenset({OPEN, RESOLVED, DEFERRED})
VALID_OUTCOMES = frozenset({"success", "failed", "partial", "blocked"})
VALID_REFERENCE_KINDS = frozenset({"image", "file", "url", "code_snippet", "note"})

# Tasks in these states are candidates for get_ready / get_blocked
ACTIONABLE_STATUSES = (NOT_STARTED, IN_PROGRESS)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class DBMixinProtocol(Protocol):
    """Shared attributes and methods that DB mixins access via self.

    Mixins inherit this Protocol so mypy can type-check self.conn,
    self.get_task(), etc. without ``type: ignore`` on every call.
    Actual implementations are provided by TrellisDB at composition time.
    """

    db_path: Path
    prefix: str
    _conn: sqlite3.Connection | None
    _write_lock: threading.RLock

    @property
    def conn(self) -> sqlite3.Connection: ...

    def get_task(self, task_id: str) -> Task: ...

    def _build_tasks_batch(self, task_ids: list[str]) -> list[Task]: ...

    def _generate_unique_id(self, table: str, infix: str = "") -> str: ...

    def _write_txn(self) -> AbstractContextManager[sqlite3.Connection]: ...

    def _require_task(self, task_id: str, *, parent: bool = False) -> None: ...

    def _record_event(
        self,
        task_id: str,
        event_type: str,
        *,
        actor: str = "",
        old_value: str | None = None,
        new_value: str | None = None,
    ) -> None: ...


def _iter_chunks(items: list[str], size: int = 500) -> Iterator[list[str]]:
    """Yield slices small enough for SQLITE_MAX_VARIABLE_NUMBER."""
    for i in range(0, len(items), size):
        yield items[i : i + size]

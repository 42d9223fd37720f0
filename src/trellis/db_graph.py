"""GraphMixin: dependency edges and DAG queries.

All methods access ``self.conn``, ``self.get_task()``, etc. via
Python's MRO when composed into ``TrellisDB``.

The dependency graph is acyclic at all times. The cycle check and the
insert share one ``BEGIN IMMEDIATE`` transaction, so two writers cannot
each pass the check and jointly close a cycle.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING

from trellis.db_base import ACTIONABLE_STATUSES, COMPLETED, DBMixinProtocol, _now_iso
from trellis.errors import (
    CircularDependencyError,
    DuplicateDependencyError,
    SelfDependencyError,
)
from trellis.models import Dependency, DependencyView

if TYPE_CHECKING:
    from trellis.core import Task

logger = logging.getLogger(__name__)


class GraphMixin(DBMixinProtocol):
    """Dependency edges and ready/blocked queries.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``TrellisDB`` at composition time via MRO.
    """

    # -- Dependencies --------------------------------------------------------

    def add_dependency(self, dependent_id: str, depends_on_id: str, *, actor: str = "") -> Dependency:
        """Record that *dependent_id* cannot start until *depends_on_id* is completed.

        Checks run in a fixed order: both tasks exist, not a self-loop,
        no cycle, not a duplicate.
        """
        now = _now_iso()
        with self._write_txn() as conn:
            self._require_task(dependent_id)
            self._require_task(depends_on_id)

            if dependent_id == depends_on_id:
                raise SelfDependencyError(dependent_id)

            # Would depends_on_id transitively reach dependent_id?
            if self._would_create_cycle(dependent_id, depends_on_id):
                raise CircularDependencyError(dependent_id, depends_on_id)

            existing = conn.execute(
                "SELECT 1 FROM dependencies WHERE dependent_id = ? AND depends_on_id = ?",
                (dependent_id, depends_on_id),
            ).fetchone()
            if existing is not None:
                raise DuplicateDependencyError(dependent_id, depends_on_id)

            cursor = conn.execute(
                "INSERT INTO dependencies (dependent_id, depends_on_id, created_at) VALUES (?, ?, ?)",
                (dependent_id, depends_on_id, now),
            )
            self._record_event(dependent_id, "dependency_added", actor=actor, new_value=depends_on_id)
            dep_id = cursor.lastrowid

        logger.debug("Dependency %s -> %s added", dependent_id, depends_on_id)
        return Dependency(id=dep_id or 0, dependent_id=dependent_id, depends_on_id=depends_on_id, created_at=now)

    def _would_create_cycle(self, dependent_id: str, depends_on_id: str) -> bool:
        """Check if adding dependent_id -> depends_on_id would create a cycle.

        Uses BFS from depends_on_id following existing dependency edges.
        If dependent_id is reachable, adding the new edge would close a cycle.
        """
        visited: set[str] = set()
        queue = deque([depends_on_id])
        while queue:
            current = queue.popleft()
            if current == dependent_id:
                return True
            if current in visited:
                continue
            visited.add(current)
            # Follow existing edges: current depends_on X means current -> X
            for r in self.conn.execute(
                "SELECT depends_on_id FROM dependencies WHERE dependent_id = ?", (current,)
            ).fetchall():
                queue.append(r["depends_on_id"])
        return False

    def remove_dependency(self, dependency_id: int, *, actor: str = "") -> bool:
        """Delete an edge by id. Returns False if it did not exist."""
        with self._write_txn() as conn:
            row = conn.execute("SELECT * FROM dependencies WHERE id = ?", (dependency_id,)).fetchone()
            if row is None:
                return False  # Nothing to remove
            conn.execute("DELETE FROM dependencies WHERE id = ?", (dependency_id,))
            self._record_event(row["dependent_id"], "dependency_removed", actor=actor, old_value=row["depends_on_id"])
        return True

    def get_dependency(self, dependency_id: int) -> Dependency | None:
        row = self.conn.execute("SELECT * FROM dependencies WHERE id = ?", (dependency_id,)).fetchone()
        return Dependency.from_row(row) if row is not None else None

    def get_dependencies(self, task_id: str) -> list[DependencyView]:
        """Edges where *task_id* is the dependent side, with each target's current state."""
        self._require_task(task_id)
        rows = self.conn.execute(
            "SELECT d.*, t.title AS target_title, t.status AS target_status FROM dependencies d "
            "JOIN tasks t ON d.depends_on_id = t.id "
            "WHERE d.dependent_id = ? ORDER BY d.id",
            (task_id,),
        ).fetchall()
        return [
            DependencyView(
                id=r["id"],
                dependent_id=r["dependent_id"],
                depends_on_id=r["depends_on_id"],
                created_at=r["created_at"],
                depends_on_title=r["target_title"],
                depends_on_status=r["target_status"],
            )
            for r in rows
        ]

    def get_dependents(self, task_id: str) -> list[Dependency]:
        """Edges where *task_id* is the depended-on side."""
        self._require_task(task_id)
        rows = self.conn.execute(
            "SELECT * FROM dependencies WHERE depends_on_id = ? ORDER BY id",
            (task_id,),
        ).fetchall()
        return [Dependency.from_row(r) for r in rows]

    def get_all_dependencies(self) -> list[Dependency]:
        rows = self.conn.execute("SELECT * FROM dependencies ORDER BY id").fetchall()
        return [Dependency.from_row(r) for r in rows]

    def can_start(self, task_id: str) -> bool:
        """True iff every depended-on task is completed (vacuously true with no edges)."""
        self._require_task(task_id)
        row = self.conn.execute(
            "SELECT 1 FROM dependencies d JOIN tasks t ON d.depends_on_id = t.id "
            "WHERE d.dependent_id = ? AND t.status != ? LIMIT 1",
            (task_id, COMPLETED),
        ).fetchone()
        return row is None

    # -- Ready / Blocked -----------------------------------------------------

    def get_ready(self) -> list[Task]:
        """Not-started or in-progress tasks whose dependencies are all completed."""
        actionable_ph = ",".join("?" * len(ACTIONABLE_STATUSES))
        rows = self.conn.execute(
            f"SELECT t.id FROM tasks t "
            f"WHERE t.status IN ({actionable_ph}) "
            f"AND NOT EXISTS ("
            f"  SELECT 1 FROM dependencies d "
            f"  JOIN tasks blocker ON d.depends_on_id = blocker.id "
            f"  WHERE d.dependent_id = t.id AND blocker.status != ?"
            f") ORDER BY t.created_at, t.id",
            [*ACTIONABLE_STATUSES, COMPLETED],
        ).fetchall()
        return self._build_tasks_batch([r["id"] for r in rows])

    def get_blocked(self) -> list[Task]:
        """Not-started or in-progress tasks with at least one unfinished dependency."""
        actionable_ph = ",".join("?" * len(ACTIONABLE_STATUSES))
        rows = self.conn.execute(
            f"SELECT DISTINCT t.id, t.created_at FROM tasks t "
            f"JOIN dependencies d ON d.dependent_id = t.id "
            f"JOIN tasks blocker ON d.depends_on_id = blocker.id "
            f"WHERE t.status IN ({actionable_ph}) AND blocker.status != ? "
            f"ORDER BY t.created_at, t.id",
            [*ACTIONABLE_STATUSES, COMPLETED],
        ).fetchall()
        return self._build_tasks_batch([r["id"] for r in rows])

"""LifecycleMixin: task CRUD and the status/completion state machine.

Any status may move to any other status. The derived effects are fixed:

* completion is clamped to [0, 100] on every write;
* writing completion 100 moves the task to ``completed``;
* writing status ``completed`` sets completion to 100;
* ``completed_at`` is stamped on the transition into ``completed`` and
  cleared on the transition out of it;
* an ``open`` TaskIssue blocks its task unless the task is ``completed``;
* every mutation refreshes ``updated_at``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from trellis.db_base import (
    BLOCKED,
    COMPLETED,
    NOT_STARTED,
    OPEN,
    RESOLVED,
    VALID_ISSUE_STATUSES,
    VALID_TASK_STATUSES,
    DBMixinProtocol,
    _now_iso,
)
from trellis.errors import (
    ParentNotFoundError,
    ProjectNotFoundError,
    SubtaskCycleError,
    TaskIssueNotFoundError,
)
from trellis.models import TaskFile, TaskIssue
from trellis.validation import (
    MAX_PATH_LENGTH,
    MAX_TITLE_LENGTH,
    clamp_percentage,
    require_choice,
    require_text,
)

if TYPE_CHECKING:
    from trellis.core import Task

logger = logging.getLogger(__name__)


def resolve_transition(
    current_status: str,
    current_completion: int,
    *,
    status: str | None = None,
    completion: int | None = None,
) -> tuple[str, int]:
    """Return the ``(status, completion)`` pair a write should persist.

    Status is applied first, then the completion coupling, so an explicit
    completion of 100 always lands on ``completed``. Only supplied values
    trigger coupling: moving a finished task back to ``in_progress`` keeps
    its completion as-is.
    """
    new_status = current_status if status is None else status
    new_completion = current_completion if completion is None else clamp_percentage(completion)
    if status == COMPLETED:
        new_completion = 100
    if completion is not None and new_completion == 100:
        new_status = COMPLETED
    return new_status, new_completion


class LifecycleMixin(DBMixinProtocol):
    """Task CRUD, subtasks, files, and blocking issues.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``TrellisDB`` at composition time via MRO.
    """

    # -- Tasks ---------------------------------------------------------------

    def create_task(
        self,
        title: str,
        *,
        description: str = "",
        project_id: str | None = None,
        parent_id: str | None = None,
        status: str = NOT_STARTED,
        completion: int = 0,
        actor: str = "",
    ) -> Task:
        title = require_text(title, "Title", max_length=MAX_TITLE_LENGTH).strip()
        require_choice(status, "status", VALID_TASK_STATUSES)
        status, completion = resolve_transition(NOT_STARTED, 0, status=status, completion=completion)
        now = _now_iso()

        with self._write_txn() as conn:
            if parent_id is not None:
                self._require_task(parent_id, parent=True)
                if project_id is None:
                    project_id = conn.execute("SELECT project_id FROM tasks WHERE id = ?", (parent_id,)).fetchone()[0]
            if project_id is not None and conn.execute("SELECT 1 FROM projects WHERE id = ?", (project_id,)).fetchone() is None:
                raise ProjectNotFoundError(project_id)

            task_id = self._generate_unique_id("tasks")
            conn.execute(
                "INSERT INTO tasks (id, project_id, title, description, status, completion, parent_id, "
                "created_at, updated_at, completed_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    task_id,
                    project_id,
                    title,
                    description or "",
                    status,
                    completion,
                    parent_id,
                    now,
                    now,
                    now if status == COMPLETED else None,
                ),
            )
            self._record_event(task_id, "created", actor=actor, new_value=title)

        logger.debug("Created task %s", task_id)
        return self.get_task(task_id)

    def create_subtask(
        self,
        parent_id: str,
        title: str,
        *,
        description: str = "",
        actor: str = "",
    ) -> Task:
        """Create a task under *parent_id*, inheriting its project."""
        self._require_task(parent_id, parent=True)
        return self.create_task(title, description=description, parent_id=parent_id, actor=actor)

    def get_subtasks(self, task_id: str) -> list[Task]:
        self._require_task(task_id)
        rows = self.conn.execute(
            "SELECT id FROM tasks WHERE parent_id = ? ORDER BY created_at, id",
            (task_id,),
        ).fetchall()
        return self._build_tasks_batch([r["id"] for r in rows])

    def update_task(
        self,
        task_id: str,
        *,
        title: str | None = None,
        description: str | None = None,
        status: str | None = None,
        completion: int | None = None,
        parent_id: str | None = None,
        actor: str = "",
    ) -> Task:
        """Apply a partial update.

        ``None`` leaves a field untouched. ``parent_id=""`` detaches the task
        from its parent.
        """
        # --- Validate all inputs BEFORE any writes to prevent partial commits ---
        if title is not None:
            title = require_text(title, "Title", max_length=MAX_TITLE_LENGTH).strip()
        if status is not None:
            require_choice(status, "status", VALID_TASK_STATUSES)
        if completion is not None:
            clamp_percentage(completion)

        with self._write_txn() as conn:
            current = self.get_task(task_id)
            new_status, new_completion = resolve_transition(
                current.status, current.completion, status=status, completion=completion
            )
            if parent_id:
                self._validate_new_parent(task_id, parent_id)

            now = _now_iso()
            updates: list[str] = []
            params: list[Any] = []

            if title is not None and title != current.title:
                self._record_event(task_id, "title_changed", actor=actor, old_value=current.title, new_value=title)
                updates.append("title = ?")
                params.append(title)

            if description is not None and description != current.description:
                self._record_event(task_id, "description_changed", actor=actor)
                updates.append("description = ?")
                params.append(description)

            if new_status != current.status:
                self._record_event(task_id, "status_changed", actor=actor, old_value=current.status, new_value=new_status)
                updates.append("status = ?")
                params.append(new_status)
                if new_status == COMPLETED:
                    updates.append("completed_at = ?")
                    params.append(now)
                elif current.status == COMPLETED:
                    updates.append("completed_at = NULL")

            if new_completion != current.completion:
                self._record_event(
                    task_id,
                    "completion_changed",
                    actor=actor,
                    old_value=str(current.completion),
                    new_value=str(new_completion),
                )
                updates.append("completion = ?")
                params.append(new_completion)

            if parent_id is not None:
                new_parent = parent_id or None
                if new_parent != current.parent_id:
                    self._record_event(
                        task_id, "parent_changed", actor=actor, old_value=current.parent_id, new_value=new_parent
                    )
                    updates.append("parent_id = ?")
                    params.append(new_parent)

            # Every explicit update touches updated_at, even when nothing differs
            updates.append("updated_at = ?")
            params.append(now)
            conn.execute(f"UPDATE tasks SET {', '.join(updates)} WHERE id = ?", [*params, task_id])

        return self.get_task(task_id)

    def _validate_new_parent(self, task_id: str, parent_id: str) -> None:
        """Reject a parent that is missing, the task itself, or one of its descendants."""
        if parent_id == task_id:
            raise SubtaskCycleError(task_id, parent_id)
        self._require_task(parent_id, parent=True)
        ancestor: str | None = parent_id
        while ancestor is not None:
            row = self.conn.execute("SELECT parent_id FROM tasks WHERE id = ?", (ancestor,)).fetchone()
            if row is None:
                break
            ancestor = row["parent_id"]
            if ancestor == task_id:
                raise SubtaskCycleError(task_id, parent_id)

    def update_status(self, task_id: str, status: str, *, actor: str = "") -> Task:
        return self.update_task(task_id, status=status, actor=actor)

    def update_completion(self, task_id: str, completion: int, *, actor: str = "") -> Task:
        return self.update_task(task_id, completion=completion, actor=actor)

    def delete_task(self, task_id: str) -> bool:
        """Delete a task and everything it owns. Subtasks are detached, not deleted.

        Returns False if the task did not exist.
        """
        with self._write_txn() as conn:
            cursor = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted task %s", task_id)
        return deleted

    # -- Files ---------------------------------------------------------------

    def add_file(self, task_id: str, path: str, *, change_note: str | None = None, actor: str = "") -> TaskFile:
        path = require_text(path, "File path", max_length=MAX_PATH_LENGTH).strip()
        now = _now_iso()
        with self._write_txn() as conn:
            self._require_task(task_id, parent=True)
            cursor = conn.execute(
                "INSERT INTO task_files (task_id, path, change_note, modified_at) VALUES (?, ?, ?, ?)",
                (task_id, path, change_note, now),
            )
            conn.execute("UPDATE tasks SET updated_at = ? WHERE id = ?", (now, task_id))
            self._record_event(task_id, "file_added", actor=actor, new_value=path)
            file_id = cursor.lastrowid
        return TaskFile(id=file_id or 0, task_id=task_id, path=path, change_note=change_note, modified_at=now)

    def get_files(self, task_id: str) -> list[TaskFile]:
        self._require_task(task_id)
        rows = self.conn.execute(
            "SELECT * FROM task_files WHERE task_id = ? ORDER BY modified_at, id",
            (task_id,),
        ).fetchall()
        return [TaskFile.from_row(r) for r in rows]

    # -- Blocking issues -----------------------------------------------------

    def add_issue(
        self,
        task_id: str,
        title: str,
        *,
        description: str | None = None,
        status: str = OPEN,
        actor: str = "",
    ) -> TaskIssue:
        """Record a blocker against a task.

        An ``open`` issue moves the task to ``blocked`` unless it is already
        ``completed``.
        """
        title = require_text(title, "Issue title", max_length=MAX_TITLE_LENGTH).strip()
        require_choice(status, "issue status", VALID_ISSUE_STATUSES)
        now = _now_iso()
        with self._write_txn() as conn:
            row = conn.execute("SELECT status FROM tasks WHERE id = ?", (task_id,)).fetchone()
            if row is None:
                raise ParentNotFoundError(task_id)
            cursor = conn.execute(
                "INSERT INTO task_issues (task_id, title, description, status, created_at, resolved_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (task_id, title, description, status, now, now if status == RESOLVED else None),
            )
            self._record_event(task_id, "issue_added", actor=actor, new_value=title)

            task_status = row["status"]
            if status == OPEN and task_status not in (COMPLETED, BLOCKED):
                conn.execute("UPDATE tasks SET status = ?, updated_at = ? WHERE id = ?", (BLOCKED, now, task_id))
                self._record_event(task_id, "status_changed", actor=actor, old_value=task_status, new_value=BLOCKED)
            else:
                conn.execute("UPDATE tasks SET updated_at = ? WHERE id = ?", (now, task_id))
            issue_id = cursor.lastrowid
        return self.get_issue(issue_id or 0)

    def get_issue(self, issue_id: int) -> TaskIssue:
        row = self.conn.execute("SELECT * FROM task_issues WHERE id = ?", (issue_id,)).fetchone()
        if row is None:
            raise TaskIssueNotFoundError(issue_id)
        return TaskIssue.from_row(row)

    def get_issues(self, task_id: str, *, status: str | None = None) -> list[TaskIssue]:
        self._require_task(task_id)
        if status is not None:
            require_choice(status, "issue status", VALID_ISSUE_STATUSES)
            rows = self.conn.execute(
                "SELECT * FROM task_issues WHERE task_id = ? AND status = ? ORDER BY created_at, id",
                (task_id, status),
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM task_issues WHERE task_id = ? ORDER BY created_at, id",
                (task_id,),
            ).fetchall()
        return [TaskIssue.from_row(r) for r in rows]

    def update_issue_status(self, issue_id: int, status: str, *, actor: str = "") -> TaskIssue:
        """Change a blocker's status. Never changes the owning task's status."""
        require_choice(status, "issue status", VALID_ISSUE_STATUSES)
        now = _now_iso()
        with self._write_txn() as conn:
            current = self.get_issue(issue_id)
            if status == current.status:
                return current
            resolved_at = now if status == RESOLVED else None
            conn.execute(
                "UPDATE task_issues SET status = ?, resolved_at = ? WHERE id = ?",
                (status, resolved_at, issue_id),
            )
            conn.execute("UPDATE tasks SET updated_at = ? WHERE id = ?", (now, current.task_id))
            self._record_event(
                current.task_id,
                "issue_status_changed",
                actor=actor,
                old_value=current.status,
                new_value=f"{issue_id}:{status}",
            )
        return self.get_issue(issue_id)

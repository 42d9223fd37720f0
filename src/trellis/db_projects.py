"""ProjectsMixin: grouping tasks under named projects.

Deleting a project cascades to its tasks through the ``project_id``
foreign key, and from there to everything a task owns.
"""

from __future__ import annotations

import logging

from trellis.db_base import DBMixinProtocol, _now_iso
from trellis.errors import ProjectNotFoundError
from trellis.models import Project
from trellis.validation import MAX_PROJECT_NAME_LENGTH, require_text

logger = logging.getLogger(__name__)

_PROJECT_SELECT = (
    "SELECT p.*, (SELECT COUNT(*) FROM tasks t WHERE t.project_id = p.id) AS task_count FROM projects p"
)


class ProjectsMixin(DBMixinProtocol):
    """Project CRUD.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``TrellisDB`` at composition time via MRO.
    """

    def create_project(self, name: str, *, description: str = "") -> Project:
        name = require_text(name, "Project name", max_length=MAX_PROJECT_NAME_LENGTH).strip()
        now = _now_iso()
        with self._write_txn() as conn:
            project_id = self._generate_unique_id("projects", "p")
            conn.execute(
                "INSERT INTO projects (id, name, description, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                (project_id, name, description or "", now, now),
            )
        logger.debug("Created project %s", project_id)
        return self.get_project(project_id)

    def get_project(self, project_id: str) -> Project:
        row = self.conn.execute(f"{_PROJECT_SELECT} WHERE p.id = ?", (project_id,)).fetchone()
        if row is None:
            raise ProjectNotFoundError(project_id)
        return Project(
            id=row["id"],
            name=row["name"],
            description=row["description"] or "",
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            task_count=row["task_count"],
        )

    def list_projects(self) -> list[Project]:
        rows = self.conn.execute(f"{_PROJECT_SELECT} ORDER BY p.created_at, p.id").fetchall()
        return [
            Project(
                id=r["id"],
                name=r["name"],
                description=r["description"] or "",
                created_at=r["created_at"],
                updated_at=r["updated_at"],
                task_count=r["task_count"],
            )
            for r in rows
        ]

    def update_project(
        self,
        project_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
    ) -> Project:
        self.get_project(project_id)
        updates: list[str] = []
        params: list[str] = []
        if name is not None:
            updates.append("name = ?")
            params.append(require_text(name, "Project name", max_length=MAX_PROJECT_NAME_LENGTH).strip())
        if description is not None:
            updates.append("description = ?")
            params.append(description)
        if updates:
            updates.append("updated_at = ?")
            params.append(_now_iso())
            with self._write_txn() as conn:
                conn.execute(f"UPDATE projects SET {', '.join(updates)} WHERE id = ?", [*params, project_id])
        return self.get_project(project_id)

    def delete_project(self, project_id: str) -> bool:
        """Delete a project and all of its tasks. Returns False if it did not exist."""
        with self._write_txn() as conn:
            cursor = conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted project %s", project_id)
        return deleted

"""EventsMixin: append-only audit trail for task mutations.

All methods access ``self.conn``, ``self.get_task()``, etc. via
Python's MRO when composed into ``TrellisDB``.
"""

from __future__ import annotations

from typing import cast

from trellis.db_base import DBMixinProtocol, _now_iso
from trellis.types.events import EventRecord, EventRecordWithTitle


class EventsMixin(DBMixinProtocol):
    """Event recording and event queries.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes
    (``self.conn``, ``self.get_task()``, etc.). Actual implementations
    provided by ``TrellisDB`` at composition time via MRO.
    """

    # -- Events (private) ----------------------------------------------------

    def _record_event(
        self,
        task_id: str,
        event_type: str,
        *,
        actor: str = "",
        old_value: str | None = None,
        new_value: str | None = None,
    ) -> None:
        # Callers own the transaction; no commit here.
        self.conn.execute(
            "INSERT INTO events (task_id, event_type, actor, old_value, new_value, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (task_id, event_type, actor, old_value, new_value, _now_iso()),
        )

    def get_recent_events(self, limit: int = 20) -> list[EventRecordWithTitle]:
        rows = self.conn.execute(
            "SELECT e.*, t.title as task_title FROM events e JOIN tasks t ON e.task_id = t.id "
            "ORDER BY e.created_at DESC, e.id DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return cast(list[EventRecordWithTitle], [dict(r) for r in rows])

    def get_events_since(self, since: str, *, limit: int = 100) -> list[EventRecordWithTitle]:
        """Get events since a given ISO timestamp, ordered chronologically."""
        rows = self.conn.execute(
            "SELECT e.*, t.title as task_title FROM events e "
            "JOIN tasks t ON e.task_id = t.id "
            "WHERE e.created_at > ? "
            "ORDER BY e.created_at ASC, e.id ASC LIMIT ?",
            (since, limit),
        ).fetchall()
        return cast(list[EventRecordWithTitle], [dict(r) for r in rows])

    def get_task_events(self, task_id: str, *, limit: int = 50) -> list[EventRecord]:
        """Get events for a specific task, newest first."""
        self._require_task(task_id)
        rows = self.conn.execute(
            "SELECT * FROM events WHERE task_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
            (task_id, limit),
        ).fetchall()
        return cast(list[EventRecord], [dict(r) for r in rows])

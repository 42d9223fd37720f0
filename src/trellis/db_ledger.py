"""LedgerMixin: per-task context, Q&A log, iterations, and references.

The ledger is what an agent replays to pick a task back up: the original
request and its clarifying Q&A, every previous attempt with its outcome,
and any reference material (screenshots, snippets, links).

Numbered rows (conversation positions, iteration sequences) are assigned
as ``MAX + 1`` inside a ``BEGIN IMMEDIATE`` transaction; the UNIQUE
constraints on ``(task_id, position)`` and ``(task_id, sequence)`` are
the backstop.
"""

from __future__ import annotations

import logging
import sqlite3

from trellis.db_base import VALID_OUTCOMES, VALID_REFERENCE_KINDS, DBMixinProtocol, _now_iso
from trellis.errors import (
    ConflictError,
    ContextAlreadyExistsError,
    ContextNotFoundError,
)
from trellis.models import (
    ConversationEntry,
    FullContext,
    Iteration,
    Reference,
    TaskContext,
)
from trellis.validation import require_choice, require_text

logger = logging.getLogger(__name__)

# Attempts before a lost sequence race is reported as a ConflictError
_MAX_SEQUENCE_ATTEMPTS = 3


def _is_unique_violation(exc: sqlite3.IntegrityError) -> bool:
    return "UNIQUE constraint failed" in str(exc)


class LedgerMixin(DBMixinProtocol):
    """Context, conversation, iterations, and references.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``TrellisDB`` at composition time via MRO.
    """

    # -- Context -------------------------------------------------------------

    def set_context(
        self,
        task_id: str,
        original_request: str,
        *,
        notes: str | None = None,
        actor: str = "",
    ) -> TaskContext:
        """Create the task's context. A task has at most one."""
        require_text(original_request, "original_request")
        now = _now_iso()
        with self._write_txn() as conn:
            self._require_task(task_id)
            if conn.execute("SELECT 1 FROM task_contexts WHERE task_id = ?", (task_id,)).fetchone() is not None:
                raise ContextAlreadyExistsError(task_id)
            conn.execute(
                "INSERT INTO task_contexts (task_id, original_request, notes, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (task_id, original_request, notes, now, now),
            )
            self._record_event(task_id, "context_set", actor=actor)
        return self._load_context(task_id)  # type: ignore[return-value]

    def update_context(
        self,
        task_id: str,
        *,
        original_request: str | None = None,
        notes: str | None = None,
        actor: str = "",
    ) -> TaskContext:
        """Overwrite only the fields that were supplied.

        ``None`` leaves a field as it is; an empty string stores a blank value.
        """
        with self._write_txn() as conn:
            self._require_task(task_id)
            if conn.execute("SELECT 1 FROM task_contexts WHERE task_id = ?", (task_id,)).fetchone() is None:
                raise ContextNotFoundError(task_id)
            updates: list[str] = []
            params: list[str] = []
            if original_request is not None:
                updates.append("original_request = ?")
                params.append(original_request)
            if notes is not None:
                updates.append("notes = ?")
                params.append(notes)
            updates.append("updated_at = ?")
            params.append(_now_iso())
            conn.execute(f"UPDATE task_contexts SET {', '.join(updates)} WHERE task_id = ?", [*params, task_id])
            self._record_event(task_id, "context_updated", actor=actor)
        return self._load_context(task_id)  # type: ignore[return-value]

    def get_context(self, task_id: str) -> TaskContext | None:
        self._require_task(task_id)
        return self._load_context(task_id)

    def _load_context(self, task_id: str) -> TaskContext | None:
        row = self.conn.execute("SELECT * FROM task_contexts WHERE task_id = ?", (task_id,)).fetchone()
        if row is None:
            return None
        entries = self.conn.execute(
            "SELECT position, question, answer, created_at FROM conversation_entries "
            "WHERE task_id = ? ORDER BY position",
            (task_id,),
        ).fetchall()
        return TaskContext(
            task_id=row["task_id"],
            original_request=row["original_request"],
            notes=row["notes"],
            conversation=[
                ConversationEntry(
                    position=e["position"],
                    question=e["question"],
                    answer=e["answer"],
                    created_at=e["created_at"],
                )
                for e in entries
            ],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def add_conversation(self, task_id: str, question: str, answer: str, *, actor: str = "") -> ConversationEntry:
        """Append a question/answer pair to the task's context.

        Never creates the context; callers that want that must ``set_context`` first.
        """
        require_text(question, "question")
        require_text(answer, "answer")
        now = _now_iso()
        with self._write_txn() as conn:
            self._require_task(task_id)
            if conn.execute("SELECT 1 FROM task_contexts WHERE task_id = ?", (task_id,)).fetchone() is None:
                raise ContextNotFoundError(task_id)
            position = conn.execute(
                "SELECT COALESCE(MAX(position), 0) + 1 FROM conversation_entries WHERE task_id = ?",
                (task_id,),
            ).fetchone()[0]
            conn.execute(
                "INSERT INTO conversation_entries (task_id, position, question, answer, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (task_id, position, question, answer, now),
            )
            conn.execute("UPDATE task_contexts SET updated_at = ? WHERE task_id = ?", (now, task_id))
            self._record_event(task_id, "conversation_added", actor=actor, new_value=str(position))
        return ConversationEntry(position=position, question=question, answer=answer, created_at=now)

    # -- Iterations ----------------------------------------------------------

    def add_iteration(
        self,
        task_id: str,
        approach: str,
        outcome: str,
        *,
        lessons: str | None = None,
        files_touched: str | None = None,
        actor: str = "",
    ) -> Iteration:
        """Record one attempt at a task. Sequence numbers start at 1 per task."""
        require_text(approach, "approach")
        require_choice(outcome, "outcome", VALID_OUTCOMES)

        for attempt in range(1, _MAX_SEQUENCE_ATTEMPTS + 1):
            now = _now_iso()
            try:
                with self._write_txn() as conn:
                    self._require_task(task_id, parent=True)
                    sequence = conn.execute(
                        "SELECT COALESCE(MAX(sequence), 0) + 1 FROM iterations WHERE task_id = ?",
                        (task_id,),
                    ).fetchone()[0]
                    cursor = conn.execute(
                        "INSERT INTO iterations (task_id, sequence, approach, outcome, lessons, files_touched, created_at) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?)",
                        (task_id, sequence, approach, outcome, lessons, files_touched, now),
                    )
                    conn.execute("UPDATE tasks SET updated_at = ? WHERE id = ?", (now, task_id))
                    self._record_event(task_id, "iteration_added", actor=actor, new_value=f"{sequence}:{outcome}")
                    iteration_id = cursor.lastrowid
            except sqlite3.IntegrityError as exc:
                if not _is_unique_violation(exc):
                    raise
                logger.warning("Iteration sequence race on %s (attempt %d): %s", task_id, attempt, exc)
                continue
            return Iteration(
                id=iteration_id or 0,
                task_id=task_id,
                sequence=sequence,
                approach=approach,
                outcome=outcome,
                lessons=lessons,
                files_touched=files_touched,
                created_at=now,
            )

        msg = f"Could not assign an iteration number for {task_id} after {_MAX_SEQUENCE_ATTEMPTS} attempts"
        raise ConflictError(msg)

    def list_iterations(self, task_id: str) -> list[Iteration]:
        self._require_task(task_id)
        rows = self.conn.execute(
            "SELECT * FROM iterations WHERE task_id = ? ORDER BY sequence",
            (task_id,),
        ).fetchall()
        return [Iteration.from_row(r) for r in rows]

    # -- References ----------------------------------------------------------

    def add_reference(
        self,
        task_id: str,
        kind: str,
        content: str,
        *,
        description: str = "",
        original_filename: str | None = None,
        mime_type: str | None = None,
        actor: str = "",
    ) -> Reference:
        """Attach reference material. *content* is a path, URL, or inline text depending on *kind*."""
        require_choice(kind, "reference kind", VALID_REFERENCE_KINDS)
        require_text(content, "content")
        now = _now_iso()
        with self._write_txn() as conn:
            self._require_task(task_id, parent=True)
            cursor = conn.execute(
                "INSERT INTO task_references "
                "(task_id, kind, content, description, original_filename, mime_type, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (task_id, kind, content, description or "", original_filename, mime_type, now),
            )
            self._record_event(task_id, "reference_added", actor=actor, new_value=kind)
            reference_id = cursor.lastrowid
        return Reference(
            id=reference_id or 0,
            task_id=task_id,
            kind=kind,
            content=content,
            description=description or "",
            original_filename=original_filename,
            mime_type=mime_type,
            created_at=now,
        )

    def get_reference(self, reference_id: int) -> Reference | None:
        row = self.conn.execute("SELECT * FROM task_references WHERE id = ?", (reference_id,)).fetchone()
        return Reference.from_row(row) if row is not None else None

    def list_references(self, task_id: str, *, kind: str | None = None) -> list[Reference]:
        self._require_task(task_id)
        if kind is not None:
            require_choice(kind, "reference kind", VALID_REFERENCE_KINDS)
            rows = self.conn.execute(
                "SELECT * FROM task_references WHERE task_id = ? AND kind = ? ORDER BY created_at, id",
                (task_id, kind),
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM task_references WHERE task_id = ? ORDER BY created_at, id",
                (task_id,),
            ).fetchall()
        return [Reference.from_row(r) for r in rows]

    def delete_reference(self, reference_id: int, *, actor: str = "") -> bool:
        """Returns False if the reference did not exist."""
        with self._write_txn() as conn:
            row = conn.execute("SELECT task_id, kind FROM task_references WHERE id = ?", (reference_id,)).fetchone()
            if row is None:
                return False
            conn.execute("DELETE FROM task_references WHERE id = ?", (reference_id,))
            self._record_event(row["task_id"], "reference_removed", actor=actor, old_value=row["kind"])
        return True

    # -- Replay --------------------------------------------------------------

    def get_full_context(self, task_id: str) -> FullContext:
        """Everything recorded about a task, in one structured snapshot."""
        task = self.get_task(task_id)
        return FullContext(
            task=task,
            context=self._load_context(task_id),
            iterations=self.list_iterations(task_id),
            references=self.list_references(task_id),
        )

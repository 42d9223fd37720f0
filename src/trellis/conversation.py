"""Append planning Q&A to a task, creating its context on first use.

The ledger never creates a context implicitly; the MCP, CLI, and HTTP
front ends all route through ``record_answer`` so the bootstrap text is
the same everywhere.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from trellis.errors import ContextAlreadyExistsError, ContextNotFoundError

if TYPE_CHECKING:
    from trellis.core import TrellisDB
    from trellis.models import ConversationEntry

BOOTSTRAP_REQUEST = "Context created during Q&A"


def record_answer(db: TrellisDB, task_id: str, question: str, answer: str, *, actor: str = "") -> ConversationEntry:
    try:
        return db.add_conversation(task_id, question, answer, actor=actor)
    except ContextNotFoundError:
        pass
    try:
        db.set_context(task_id, BOOTSTRAP_REQUEST, actor=actor)
    except ContextAlreadyExistsError:
        # Another writer created it between the two calls
        pass
    return db.add_conversation(task_id, question, answer, actor=actor)

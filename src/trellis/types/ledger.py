"""TypedDicts for db_ledger.py return types."""

from __future__ import annotations

from typing import TypedDict

from trellis.types.core import ISOTimestamp, TaskDict


class ConversationEntryDict(TypedDict):
    position: int
    question: str
    answer: str
    created_at: ISOTimestamp


class ContextDict(TypedDict):
    task_id: str
    original_request: str
    notes: str | None
    conversation: list[ConversationEntryDict]
    created_at: ISOTimestamp
    updated_at: ISOTimestamp


class IterationDict(TypedDict):
    id: int
    task_id: str
    sequence: int
    approach: str
    outcome: str
    lessons: str | None
    files_touched: str | None
    created_at: ISOTimestamp


class ReferenceDict(TypedDict):
    id: int
    task_id: str
    kind: str
    content: str
    description: str
    original_filename: str | None
    mime_type: str | None
    created_at: ISOTimestamp


class FullContextDict(TypedDict):
    """Everything an agent needs before resuming a task."""

    task: TaskDict
    context: ContextDict | None
    iterations: list[IterationDict]
    references: list[ReferenceDict]

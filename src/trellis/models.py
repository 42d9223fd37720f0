"""Data classes returned by TrellisDB.

Rows are mapped here so the mixins can build results without importing
``trellis.core`` (which composes them).
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field

from trellis.types.core import (
    DependencyDict,
    DependencyViewDict,
    ISOTimestamp,
    ProjectDict,
    TaskDict,
    TaskFileDict,
    TaskIssueDict,
)
from trellis.types.ledger import (
    ContextDict,
    ConversationEntryDict,
    FullContextDict,
    IterationDict,
    ReferenceDict,
)


@dataclass
class Project:
    id: str
    name: str
    description: str = ""
    created_at: str = ""
    updated_at: str = ""
    task_count: int = 0

    def to_dict(self) -> ProjectDict:
        return ProjectDict(
            id=self.id,
            name=self.name,
            description=self.description,
            created_at=ISOTimestamp(self.created_at),
            updated_at=ISOTimestamp(self.updated_at),
            task_count=self.task_count,
        )


@dataclass
class Task:
    id: str
    title: str
    project_id: str | None = None
    description: str = ""
    status: str = "not_started"
    completion: int = 0
    parent_id: str | None = None
    created_at: str = ""
    updated_at: str = ""
    completed_at: str | None = None
    # Computed (not stored directly)
    subtasks: list[str] = field(default_factory=list)
    depends_on: list[str] = field(default_factory=list)
    dependents: list[str] = field(default_factory=list)
    can_start: bool = True

    def to_dict(self) -> TaskDict:
        return TaskDict(
            id=self.id,
            project_id=self.project_id,
            title=self.title,
            description=self.description,
            status=self.status,
            completion=self.completion,
            parent_id=self.parent_id,
            created_at=ISOTimestamp(self.created_at),
            updated_at=ISOTimestamp(self.updated_at),
            completed_at=ISOTimestamp(self.completed_at) if self.completed_at else None,
            subtasks=self.subtasks,
            depends_on=self.depends_on,
            dependents=self.dependents,
            can_start=self.can_start,
        )


@dataclass
class Dependency:
    id: int
    dependent_id: str
    depends_on_id: str
    created_at: str = ""

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Dependency:
        return cls(
            id=row["id"],
            dependent_id=row["dependent_id"],
            depends_on_id=row["depends_on_id"],
            created_at=row["created_at"],
        )

    def to_dict(self) -> DependencyDict:
        return DependencyDict(
            id=self.id,
            dependent_id=self.dependent_id,
            depends_on_id=self.depends_on_id,
            created_at=ISOTimestamp(self.created_at),
        )


@dataclass
class DependencyView(Dependency):
    """An edge resolved with its target's current state."""

    depends_on_title: str = ""
    depends_on_status: str = ""

    def to_dict(self) -> DependencyViewDict:  # type: ignore[override]
        return DependencyViewDict(
            id=self.id,
            dependent_id=self.dependent_id,
            depends_on_id=self.depends_on_id,
            created_at=ISOTimestamp(self.created_at),
            depends_on_title=self.depends_on_title,
            depends_on_status=self.depends_on_status,
        )


@dataclass
class TaskFile:
    id: int
    task_id: str
    path: str
    change_note: str | None = None
    modified_at: str = ""

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> TaskFile:
        return cls(
            id=row["id"],
            task_id=row["task_id"],
            path=row["path"],
            change_note=row["change_note"],
            modified_at=row["modified_at"],
        )

    def to_dict(self) -> TaskFileDict:
        return TaskFileDict(
            id=self.id,
            task_id=self.task_id,
            path=self.path,
            change_note=self.change_note,
            modified_at=ISOTimestamp(self.modified_at),
        )


@dataclass
class TaskIssue:
    id: int
    task_id: str
    title: str
    description: str | None = None
    status: str = "open"
    created_at: str = ""
    resolved_at: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> TaskIssue:
        return cls(
            id=row["id"],
            task_id=row["task_id"],
            title=row["title"],
            description=row["description"],
            status=row["status"],
            created_at=row["created_at"],
            resolved_at=row["resolved_at"],
        )

    def to_dict(self) -> TaskIssueDict:
        return TaskIssueDict(
            id=self.id,
            task_id=self.task_id,
            title=self.title,
            description=self.description,
            status=self.status,
            created_at=ISOTimestamp(self.created_at),
            resolved_at=ISOTimestamp(self.resolved_at) if self.resolved_at else None,
        )


@dataclass
class ConversationEntry:
    position: int
    question: str
    answer: str
    created_at: str = ""

    def to_dict(self) -> ConversationEntryDict:
        return ConversationEntryDict(
            position=self.position,
            question=self.question,
            answer=self.answer,
            created_at=ISOTimestamp(self.created_at),
        )


@dataclass
class TaskContext:
    task_id: str
    original_request: str
    notes: str | None = None
    conversation: list[ConversationEntry] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> ContextDict:
        return ContextDict(
            task_id=self.task_id,
            original_request=self.original_request,
            notes=self.notes,
            conversation=[c.to_dict() for c in self.conversation],
            created_at=ISOTimestamp(self.created_at),
            updated_at=ISOTimestamp(self.updated_at),
        )


@dataclass(frozen=True)
class Iteration:
    """One recorded attempt at a task. Immutable once written."""

    id: int
    task_id: str
    sequence: int
    approach: str
    outcome: str
    lessons: str | None = None
    files_touched: str | None = None
    created_at: str = ""

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Iteration:
        return cls(
            id=row["id"],
            task_id=row["task_id"],
            sequence=row["sequence"],
            approach=row["approach"],
            outcome=row["outcome"],
            lessons=row["lessons"],
            files_touched=row["files_touched"],
            created_at=row["created_at"],
        )

    def to_dict(self) -> IterationDict:
        return IterationDict(
            id=self.id,
            task_id=self.task_id,
            sequence=self.sequence,
            approach=self.approach,
            outcome=self.outcome,
            lessons=self.lessons,
            files_touched=self.files_touched,
            created_at=ISOTimestamp(self.created_at),
        )


@dataclass
class Reference:
    id: int
    task_id: str
    kind: str
    content: str
    description: str = ""
    original_filename: str | None = None
    mime_type: str | None = None
    created_at: str = ""

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Reference:
        return cls(
            id=row["id"],
            task_id=row["task_id"],
            kind=row["kind"],
            content=row["content"],
            description=row["description"],
            original_filename=row["original_filename"],
            mime_type=row["mime_type"],
            created_at=row["created_at"],
        )

    def to_dict(self) -> ReferenceDict:
        return ReferenceDict(
            id=self.id,
            task_id=self.task_id,
            kind=self.kind,
            content=self.content,
            description=self.description,
            original_filename=self.original_filename,
            mime_type=self.mime_type,
            created_at=ISOTimestamp(self.created_at),
        )


@dataclass
class FullContext:
    task: Task
    context: TaskContext | None
    iterations: list[Iteration]
    references: list[Reference]

    def to_dict(self) -> FullContextDict:
        return FullContextDict(
            task=self.task.to_dict(),
            context=self.context.to_dict() if self.context else None,
            iterations=[i.to_dict() for i in self.iterations],
            references=[r.to_dict() for r in self.references],
        )

# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py, db_base.py, or any mixin; they import from here.
"""Typed return-value contracts for the trellis core and API layers."""

from __future__ import annotations

from trellis.types.core import (
    DependencyDict,
    DependencyViewDict,
    ISOTimestamp,
    ProjectConfig,
    ProjectDict,
    TaskDict,
    TaskFileDict,
    TaskIssueDict,
)
from trellis.types.events import EventRecord, EventRecordWithTitle
from trellis.types.ledger import (
    ContextDict,
    ConversationEntryDict,
    FullContextDict,
    IterationDict,
    ReferenceDict,
)

__all__ = [
    "ContextDict",
    "ConversationEntryDict",
    "DependencyDict",
    "DependencyViewDict",
    "EventRecord",
    "EventRecordWithTitle",
    "FullContextDict",
    "ISOTimestamp",
    "IterationDict",
    "ProjectConfig",
    "ProjectDict",
    "ReferenceDict",
    "TaskDict",
    "TaskFileDict",
    "TaskIssueDict",
]

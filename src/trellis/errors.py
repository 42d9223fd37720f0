"""Typed failures raised by the trellis core.

The core never formats user-facing prose beyond the exception message;
front ends (MCP, CLI, HTTP) translate ``code`` into their own envelopes.

``NotFoundError`` subclasses ``KeyError`` and the rule violations subclass
``ValueError`` so callers that only care about the broad category can keep
catching the builtins.
"""

from __future__ import annotations


class TrellisError(Exception):
    """Base class for every domain failure."""

    code = "error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.message


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class NotFoundError(TrellisError, KeyError):
    code = "not_found"

    def __init__(self, kind: str, entity_id: object) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} not found: {entity_id}")


class TaskNotFoundError(NotFoundError):
    def __init__(self, task_id: str) -> None:
        super().__init__("Task", task_id)


class ParentNotFoundError(NotFoundError):
    """A write-side helper was pointed at a task that does not exist."""

    code = "parent_not_found"

    def __init__(self, task_id: str) -> None:
        super().__init__("Parent task", task_id)


class ProjectNotFoundError(NotFoundError):
    def __init__(self, project_id: str) -> None:
        super().__init__("Project", project_id)


class TaskIssueNotFoundError(NotFoundError):
    def __init__(self, issue_id: int) -> None:
        super().__init__("Issue", issue_id)


# ---------------------------------------------------------------------------
# Invalid operations
# ---------------------------------------------------------------------------


class InvalidOperationError(TrellisError, ValueError):
    code = "invalid_operation"


class SelfDependencyError(InvalidOperationError):
    code = "self_dependency"

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"A task cannot depend on itself: {task_id}")


class CircularDependencyError(InvalidOperationError):
    code = "circular_dependency"

    def __init__(self, dependent_id: str, depends_on_id: str) -> None:
        self.dependent_id = dependent_id
        self.depends_on_id = depends_on_id
        super().__init__(f"Dependency {dependent_id} -> {depends_on_id} would create a cycle")


class DuplicateDependencyError(InvalidOperationError):
    code = "duplicate_dependency"

    def __init__(self, dependent_id: str, depends_on_id: str) -> None:
        self.dependent_id = dependent_id
        self.depends_on_id = depends_on_id
        super().__init__(f"Dependency {dependent_id} -> {depends_on_id} already exists")


class SubtaskCycleError(InvalidOperationError):
    code = "subtask_cycle"

    def __init__(self, task_id: str, parent_id: str) -> None:
        self.task_id = task_id
        self.parent_id = parent_id
        super().__init__(f"Setting parent of {task_id} to {parent_id} would create a circular parent chain")


class ContextAlreadyExistsError(InvalidOperationError):
    code = "context_exists"

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task {task_id} already has context. Use update_context to modify it.")


class ContextNotFoundError(InvalidOperationError):
    code = "context_not_found"

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task {task_id} does not have context. Use set_context first.")


# ---------------------------------------------------------------------------
# Validation / conflicts
# ---------------------------------------------------------------------------


class ValidationError(TrellisError, ValueError):
    code = "validation_error"


class ConflictError(TrellisError):
    """A serialized write still lost a race (e.g. duplicate iteration sequence)."""

    code = "conflict"


class AttachmentError(ValidationError):
    """An attachment source could not be read, downloaded, or decoded."""

    code = "attachment_error"

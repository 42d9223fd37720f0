"""MCP tools for task CRUD, lifecycle updates, files, and blocking issues."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from mcp.types import TextContent, Tool

from trellis.db_base import VALID_ISSUE_STATUSES, VALID_TASK_STATUSES
from trellis.errors import TrellisError
from trellis.mcp_tools.common import (
    _MAX_LIST_RESULTS,
    ACTOR_PROPERTY,
    TASK_ID_PROPERTY,
    _apply_has_more,
    _error,
    _resolve_pagination,
    _slim_task,
    _text,
    _validate_actor,
    _validate_int,
    _validate_str,
)

_STATUS_PROPERTY = {
    "type": "string",
    "enum": sorted(VALID_TASK_STATUSES),
    "description": "Task status",
}
_COMPLETION_PROPERTY = {
    "type": "integer",
    "description": "Completion percentage; clamped to 0-100. 100 marks the task completed.",
}


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for task-domain tools."""
    tools = [
        Tool(
            name="create_task",
            description="Create a task, optionally inside a project or under a parent task",
            inputSchema={
                "type": "object",
                "properties": {
                    "title": {"type": "string", "description": "Task title"},
                    "description": {"type": "string", "description": "Task description"},
                    "project_id": {"type": "string", "description": "Project to add the task to"},
                    "parent_id": {"type": "string", "description": "Parent task ID (makes this a subtask)"},
                    "status": {**_STATUS_PROPERTY, "default": "not_started"},
                    "actor": ACTOR_PROPERTY,
                },
                "required": ["title"],
            },
        ),
        Tool(
            name="get_task",
            description="Get full details of a task: subtasks, dependencies, dependents, can_start, files, and issues",
            inputSchema={
                "type": "object",
                "properties": {"task_id": TASK_ID_PROPERTY},
                "required": ["task_id"],
            },
        ),
        Tool(
            name="list_tasks",
            description="List tasks with optional filters",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": {"type": "string", "description": "Filter by project"},
                    "status": _STATUS_PROPERTY,
                    "parent_id": {"type": "string", "description": "Filter by parent task"},
                    "limit": {
                        "type": "integer",
                        "default": 100,
                        "minimum": 1,
                        "description": f"Max results (capped at {_MAX_LIST_RESULTS} unless no_limit=true)",
                    },
                    "offset": {"type": "integer", "default": 0, "minimum": 0, "description": "Skip first N results"},
                    "no_limit": {"type": "boolean", "default": False, "description": "Bypass the default result cap"},
                },
            },
        ),
        Tool(
            name="update_task",
            description=(
                "Update task fields. Only supplied fields change. Setting status=completed sets completion to 100; "
                "setting completion=100 marks the task completed. parent_id='' detaches from the parent."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "task_id": TASK_ID_PROPERTY,
                    "title": {"type": "string", "description": "New title"},
                    "description": {"type": "string", "description": "New description"},
                    "status": _STATUS_PROPERTY,
                    "completion": _COMPLETION_PROPERTY,
                    "parent_id": {"type": "string", "description": "New parent task ID ('' to detach)"},
                    "actor": ACTOR_PROPERTY,
                },
                "required": ["task_id"],
            },
        ),
        Tool(
            name="update_task_status",
            description="Set a task's status. completed also sets completion to 100.",
            inputSchema={
                "type": "object",
                "properties": {"task_id": TASK_ID_PROPERTY, "status": _STATUS_PROPERTY, "actor": ACTOR_PROPERTY},
                "required": ["task_id", "status"],
            },
        ),
        Tool(
            name="update_completion",
            description="Set a task's completion percentage. 100 marks the task completed.",
            inputSchema={
                "type": "object",
                "properties": {
                    "task_id": TASK_ID_PROPERTY,
                    "completion": _COMPLETION_PROPERTY,
                    "actor": ACTOR_PROPERTY,
                },
                "required": ["task_id", "completion"],
            },
        ),
        Tool(
            name="delete_task",
            description="Delete a task with its files, issues, context, iterations, references, and dependency edges. Subtasks are detached.",
            inputSchema={
                "type": "object",
                "properties": {"task_id": TASK_ID_PROPERTY},
                "required": ["task_id"],
            },
        ),
        Tool(
            name="create_subtask",
            description="Create a subtask under an existing task (inherits the parent's project)",
            inputSchema={
                "type": "object",
                "properties": {
                    "parent_id": {"type": "string", "description": "Parent task ID"},
                    "title": {"type": "string", "description": "Subtask title"},
                    "description": {"type": "string", "description": "Subtask description"},
                    "actor": ACTOR_PROPERTY,
                },
                "required": ["parent_id", "title"],
            },
        ),
        Tool(
            name="add_file",
            description="Record a file modified while working on a task",
            inputSchema={
                "type": "object",
                "properties": {
                    "task_id": TASK_ID_PROPERTY,
                    "path": {"type": "string", "description": "File path"},
                    "change_note": {"type": "string", "description": "What changed"},
                    "actor": ACTOR_PROPERTY,
                },
                "required": ["task_id", "path"],
            },
        ),
        Tool(
            name="add_issue",
            description="Record a blocker on a task. An open issue moves the task to blocked unless it is completed.",
            inputSchema={
                "type": "object",
                "properties": {
                    "task_id": TASK_ID_PROPERTY,
                    "title": {"type": "string", "description": "Issue title"},
                    "description": {"type": "string", "description": "Issue details"},
                    "actor": ACTOR_PROPERTY,
                },
                "required": ["task_id", "title"],
            },
        ),
        Tool(
            name="update_issue_status",
            description="Resolve, defer, or reopen a blocker. Does not change the task's status.",
            inputSchema={
                "type": "object",
                "properties": {
                    "issue_id": {"type": "integer", "description": "Issue ID"},
                    "status": {"type": "string", "enum": sorted(VALID_ISSUE_STATUSES)},
                    "actor": ACTOR_PROPERTY,
                },
                "required": ["issue_id", "status"],
            },
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "create_task": _handle_create_task,
        "get_task": _handle_get_task,
        "list_tasks": _handle_list_tasks,
        "update_task": _handle_update_task,
        "update_task_status": _handle_update_task_status,
        "update_completion": _handle_update_completion,
        "delete_task": _handle_delete_task,
        "create_subtask": _handle_create_subtask,
        "add_file": _handle_add_file,
        "add_issue": _handle_add_issue,
        "update_issue_status": _handle_update_issue_status,
    }

    return tools, handlers


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_create_task(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db, _refresh_summary

    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    tracker = _get_db()
    try:
        task = tracker.create_task(
            arguments["title"],
            description=arguments.get("description", ""),
            project_id=arguments.get("project_id"),
            parent_id=arguments.get("parent_id"),
            status=arguments.get("status", "not_started"),
            actor=actor,
        )
    except TrellisError as e:
        return _error(e)
    _refresh_summary()
    return _text(task.to_dict())


async def _handle_get_task(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db

    tracker = _get_db()
    try:
        task = tracker.get_task(arguments["task_id"])
    except TrellisError as e:
        return _error(e)
    return _text(
        {
            **task.to_dict(),
            "files": [f.to_dict() for f in tracker.get_files(task.id)],
            "issues": [i.to_dict() for i in tracker.get_issues(task.id)],
        }
    )


async def _handle_list_tasks(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db

    tracker = _get_db()
    effective_limit, offset = _resolve_pagination(arguments)
    try:
        tasks = tracker.list_tasks(
            project_id=arguments.get("project_id"),
            status=arguments.get("status"),
            parent_id=arguments.get("parent_id"),
            limit=effective_limit + 1,
            offset=offset,
        )
    except TrellisError as e:
        return _error(e)
    tasks, has_more = _apply_has_more(tasks, effective_limit)
    return _text({"tasks": [_slim_task(t) for t in tasks], "limit": effective_limit, "offset": offset, "has_more": has_more})


async def _handle_update_task(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db, _refresh_summary

    for key in ("title", "description", "status", "parent_id"):
        if err := _validate_str(arguments.get(key), key):
            return err
    if err := _validate_int(arguments.get("completion"), "completion"):
        return err
    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    tracker = _get_db()
    try:
        before = tracker.get_task(arguments["task_id"])
        task = tracker.update_task(
            arguments["task_id"],
            title=arguments.get("title"),
            description=arguments.get("description"),
            status=arguments.get("status"),
            completion=arguments.get("completion"),
            parent_id=arguments.get("parent_id"),
            actor=actor,
        )
    except TrellisError as e:
        return _error(e)
    _refresh_summary()
    changed = [
        field
        for field in ("title", "description", "status", "completion", "parent_id", "completed_at")
        if getattr(before, field) != getattr(task, field)
    ]
    return _text({**task.to_dict(), "changed_fields": changed})


async def _handle_update_task_status(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db, _refresh_summary

    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    tracker = _get_db()
    try:
        task = tracker.update_status(arguments["task_id"], arguments["status"], actor=actor)
    except TrellisError as e:
        return _error(e)
    _refresh_summary()
    return _text(task.to_dict())


async def _handle_update_completion(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db, _refresh_summary

    if err := _validate_int(arguments.get("completion"), "completion"):
        return err
    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    tracker = _get_db()
    try:
        task = tracker.update_completion(arguments["task_id"], arguments["completion"], actor=actor)
    except TrellisError as e:
        return _error(e)
    _refresh_summary()
    return _text(task.to_dict())


async def _handle_delete_task(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db, _refresh_summary

    tracker = _get_db()
    task_id = arguments["task_id"]
    if not tracker.delete_task(task_id):
        return _text({"error": f"Task not found: {task_id}", "code": "not_found"})
    _refresh_summary()
    return _text({"status": "deleted", "task_id": task_id})


async def _handle_create_subtask(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db, _refresh_summary

    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    tracker = _get_db()
    try:
        task = tracker.create_subtask(
            arguments["parent_id"],
            arguments["title"],
            description=arguments.get("description", ""),
            actor=actor,
        )
    except TrellisError as e:
        return _error(e)
    _refresh_summary()
    return _text(task.to_dict())


async def _handle_add_file(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db, _refresh_summary

    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    tracker = _get_db()
    try:
        record = tracker.add_file(
            arguments["task_id"],
            arguments["path"],
            change_note=arguments.get("change_note"),
            actor=actor,
        )
    except TrellisError as e:
        return _error(e)
    _refresh_summary()
    return _text(record.to_dict())


async def _handle_add_issue(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db, _refresh_summary

    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    tracker = _get_db()
    try:
        issue = tracker.add_issue(
            arguments["task_id"],
            arguments["title"],
            description=arguments.get("description"),
            actor=actor,
        )
        task = tracker.get_task(arguments["task_id"])
    except TrellisError as e:
        return _error(e)
    _refresh_summary()
    return _text({**issue.to_dict(), "task_status": task.status})


async def _handle_update_issue_status(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db, _refresh_summary

    if err := _validate_int(arguments.get("issue_id"), "issue_id"):
        return err
    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    tracker = _get_db()
    try:
        issue = tracker.update_issue_status(arguments["issue_id"], arguments["status"], actor=actor)
    except TrellisError as e:
        return _error(e)
    _refresh_summary()
    return _text(issue.to_dict())

"""MCP tools for dependency edges and ready/blocked queries."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from mcp.types import TextContent, Tool

from trellis.errors import TrellisError
from trellis.mcp_tools.common import ACTOR_PROPERTY, TASK_ID_PROPERTY, _error, _slim_task, _text, _validate_actor, _validate_int


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for dependency-graph tools."""
    tools = [
        Tool(
            name="add_dependency",
            description="Add dependency: dependent_id cannot start until depends_on_id is completed",
            inputSchema={
                "type": "object",
                "properties": {
                    "dependent_id": {"type": "string", "description": "Task that waits"},
                    "depends_on_id": {"type": "string", "description": "Task that must be completed first"},
                    "actor": ACTOR_PROPERTY,
                },
                "required": ["dependent_id", "depends_on_id"],
            },
        ),
        Tool(
            name="remove_dependency",
            description="Remove a dependency edge by its ID",
            inputSchema={
                "type": "object",
                "properties": {
                    "dependency_id": {"type": "integer", "description": "Dependency ID"},
                    "actor": ACTOR_PROPERTY,
                },
                "required": ["dependency_id"],
            },
        ),
        Tool(
            name="list_dependencies",
            description="List what a task depends on (with each target's status) and what depends on it",
            inputSchema={
                "type": "object",
                "properties": {"task_id": TASK_ID_PROPERTY},
                "required": ["task_id"],
            },
        ),
        Tool(
            name="can_start_task",
            description="Check whether every dependency of a task is completed",
            inputSchema={
                "type": "object",
                "properties": {"task_id": TASK_ID_PROPERTY},
                "required": ["task_id"],
            },
        ),
        Tool(
            name="get_ready",
            description="Get not-started or in-progress tasks whose dependencies are all completed",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="get_blocked",
            description="Get not-started or in-progress tasks still waiting on at least one dependency",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "add_dependency": _handle_add_dependency,
        "remove_dependency": _handle_remove_dependency,
        "list_dependencies": _handle_list_dependencies,
        "can_start_task": _handle_can_start_task,
        "get_ready": _handle_get_ready,
        "get_blocked": _handle_get_blocked,
    }

    return tools, handlers


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_add_dependency(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db, _refresh_summary

    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    tracker = _get_db()
    try:
        dep = tracker.add_dependency(arguments["dependent_id"], arguments["depends_on_id"], actor=actor)
    except TrellisError as e:
        return _error(e)
    _refresh_summary()
    return _text({"status": "added", **dep.to_dict()})


async def _handle_remove_dependency(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db, _refresh_summary

    if err := _validate_int(arguments.get("dependency_id"), "dependency_id"):
        return err
    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    tracker = _get_db()
    removed = tracker.remove_dependency(arguments["dependency_id"], actor=actor)
    if removed:
        _refresh_summary()
    status = "removed" if removed else "not_found"
    return _text({"status": status, "dependency_id": arguments["dependency_id"]})


async def _handle_list_dependencies(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db

    tracker = _get_db()
    try:
        depends_on = tracker.get_dependencies(arguments["task_id"])
        dependents = tracker.get_dependents(arguments["task_id"])
    except TrellisError as e:
        return _error(e)
    return _text(
        {
            "task_id": arguments["task_id"],
            "depends_on": [d.to_dict() for d in depends_on],
            "dependents": [d.to_dict() for d in dependents],
        }
    )


async def _handle_can_start_task(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db

    tracker = _get_db()
    try:
        can_start = tracker.can_start(arguments["task_id"])
        waiting = [d.to_dict() for d in tracker.get_dependencies(arguments["task_id"]) if d.depends_on_status != "completed"]
    except TrellisError as e:
        return _error(e)
    return _text({"task_id": arguments["task_id"], "can_start": can_start, "waiting_on": waiting})


async def _handle_get_ready(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db

    tracker = _get_db()
    return _text([_slim_task(t) for t in tracker.get_ready()])


async def _handle_get_blocked(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db

    tracker = _get_db()
    return _text([{**_slim_task(t), "depends_on": t.depends_on} for t in tracker.get_blocked()])

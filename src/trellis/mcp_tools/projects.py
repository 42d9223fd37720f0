"""MCP tools for project CRUD."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from mcp.types import TextContent, Tool

from trellis.errors import TrellisError
from trellis.mcp_tools.common import _error, _text, _validate_str

_PROJECT_ID = {"type": "string", "description": "Project ID"}


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for project-domain tools."""
    tools = [
        Tool(
            name="create_project",
            description="Create a project to group related tasks",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Project name"},
                    "description": {"type": "string", "description": "Project description"},
                },
                "required": ["name"],
            },
        ),
        Tool(
            name="list_projects",
            description="List all projects with their task counts",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="get_project",
            description="Get a project and the tasks in it",
            inputSchema={
                "type": "object",
                "properties": {"project_id": _PROJECT_ID},
                "required": ["project_id"],
            },
        ),
        Tool(
            name="update_project",
            description="Rename a project or change its description",
            inputSchema={
                "type": "object",
                "properties": {
                    "project_id": _PROJECT_ID,
                    "name": {"type": "string", "description": "New name"},
                    "description": {"type": "string", "description": "New description"},
                },
                "required": ["project_id"],
            },
        ),
        Tool(
            name="delete_project",
            description="Delete a project and ALL of its tasks",
            inputSchema={
                "type": "object",
                "properties": {"project_id": _PROJECT_ID},
                "required": ["project_id"],
            },
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "create_project": _handle_create_project,
        "list_projects": _handle_list_projects,
        "get_project": _handle_get_project,
        "update_project": _handle_update_project,
        "delete_project": _handle_delete_project,
    }

    return tools, handlers


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_create_project(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db, _refresh_summary

    tracker = _get_db()
    try:
        project = tracker.create_project(arguments["name"], description=arguments.get("description", ""))
    except TrellisError as e:
        return _error(e)
    _refresh_summary()
    return _text(project.to_dict())


async def _handle_list_projects(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db

    tracker = _get_db()
    return _text([p.to_dict() for p in tracker.list_projects()])


async def _handle_get_project(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db

    tracker = _get_db()
    try:
        project = tracker.get_project(arguments["project_id"])
    except TrellisError as e:
        return _error(e)
    tasks = tracker.list_tasks(project_id=project.id, limit=10000)
    return _text(
        {
            **project.to_dict(),
            "tasks": [
                {"id": t.id, "title": t.title, "status": t.status, "completion": t.completion, "parent_id": t.parent_id}
                for t in tasks
            ],
        }
    )


async def _handle_update_project(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db, _refresh_summary

    for key in ("name", "description"):
        if err := _validate_str(arguments.get(key), key):
            return err
    tracker = _get_db()
    try:
        project = tracker.update_project(
            arguments["project_id"],
            name=arguments.get("name"),
            description=arguments.get("description"),
        )
    except TrellisError as e:
        return _error(e)
    _refresh_summary()
    return _text(project.to_dict())


async def _handle_delete_project(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db, _refresh_summary

    tracker = _get_db()
    project_id = arguments["project_id"]
    if not tracker.delete_project(project_id):
        return _text({"error": f"Project not found: {project_id}", "code": "not_found"})
    _refresh_summary()
    return _text({"status": "deleted", "project_id": project_id})

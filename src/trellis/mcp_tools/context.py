"""MCP tools for the task ledger: context, Q&A, iterations, and references."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from mcp.types import TextContent, Tool

from trellis.attachments import store_image
from trellis.conversation import record_answer
from trellis.db_base import VALID_OUTCOMES, VALID_REFERENCE_KINDS
from trellis.errors import ContextNotFoundError, TrellisError
from trellis.mcp_tools.common import (
    ACTOR_PROPERTY,
    TASK_ID_PROPERTY,
    _error,
    _text,
    _validate_actor,
    _validate_int,
    _validate_str,
)


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for ledger tools."""
    tools = [
        Tool(
            name="set_context",
            description="Store the original request behind a task. Fails if the task already has context; use update_context then.",
            inputSchema={
                "type": "object",
                "properties": {
                    "task_id": TASK_ID_PROPERTY,
                    "original_request": {"type": "string", "description": "The request as the user phrased it"},
                    "notes": {"type": "string", "description": "Extra notes"},
                    "actor": ACTOR_PROPERTY,
                },
                "required": ["task_id", "original_request"],
            },
        ),
        Tool(
            name="update_context",
            description="Update a task's context. Omitted fields are left alone; an empty string clears a field.",
            inputSchema={
                "type": "object",
                "properties": {
                    "task_id": TASK_ID_PROPERTY,
                    "original_request": {"type": "string", "description": "Replacement request text"},
                    "notes": {"type": "string", "description": "Replacement notes"},
                    "actor": ACTOR_PROPERTY,
                },
                "required": ["task_id"],
            },
        ),
        Tool(
            name="add_conversation",
            description="Append a clarifying question and its answer to a task's context (creates the context if missing)",
            inputSchema={
                "type": "object",
                "properties": {
                    "task_id": TASK_ID_PROPERTY,
                    "question": {"type": "string", "description": "Question asked"},
                    "answer": {"type": "string", "description": "Answer given"},
                    "actor": ACTOR_PROPERTY,
                },
                "required": ["task_id", "question", "answer"],
            },
        ),
        Tool(
            name="get_context",
            description="Get a task's original request, notes, and Q&A history",
            inputSchema={
                "type": "object",
                "properties": {"task_id": TASK_ID_PROPERTY},
                "required": ["task_id"],
            },
        ),
        Tool(
            name="get_full_context",
            description="Get EVERYTHING about a task: details, context with Q&A, iterations, and references. Use before working on a task.",
            inputSchema={
                "type": "object",
                "properties": {"task_id": TASK_ID_PROPERTY},
                "required": ["task_id"],
            },
        ),
        Tool(
            name="add_iteration",
            description="Record an attempt at a task: what was tried, how it went, and what was learned",
            inputSchema={
                "type": "object",
                "properties": {
                    "task_id": TASK_ID_PROPERTY,
                    "approach": {"type": "string", "description": "What was tried"},
                    "outcome": {"type": "string", "enum": sorted(VALID_OUTCOMES)},
                    "lessons": {"type": "string", "description": "What was learned"},
                    "files_touched": {"type": "string", "description": "Files changed in this attempt"},
                    "actor": ACTOR_PROPERTY,
                },
                "required": ["task_id", "approach", "outcome"],
            },
        ),
        Tool(
            name="list_iterations",
            description="List every recorded attempt at a task, oldest first",
            inputSchema={
                "type": "object",
                "properties": {"task_id": TASK_ID_PROPERTY},
                "required": ["task_id"],
            },
        ),
        Tool(
            name="add_reference",
            description="Attach reference material to a task: a file path, URL, code snippet, or note",
            inputSchema={
                "type": "object",
                "properties": {
                    "task_id": TASK_ID_PROPERTY,
                    "kind": {"type": "string", "enum": sorted(VALID_REFERENCE_KINDS)},
                    "content": {"type": "string", "description": "Path, URL, or inline text"},
                    "description": {"type": "string", "description": "What this reference is"},
                    "actor": ACTOR_PROPERTY,
                },
                "required": ["task_id", "kind", "content"],
            },
        ),
        Tool(
            name="add_image_reference",
            description="Copy an image into the task's attachments and reference it. Source may be a URL, a local path, or base64 data.",
            inputSchema={
                "type": "object",
                "properties": {
                    "task_id": TASK_ID_PROPERTY,
                    "source": {"type": "string", "description": "http(s) URL, local file path, or base64 data"},
                    "description": {"type": "string", "description": "What the image shows"},
                    "filename": {"type": "string", "description": "Original filename (auto-detected for paths/URLs)"},
                    "mime_type": {"type": "string", "description": "MIME type (auto-detected from the extension)"},
                    "actor": ACTOR_PROPERTY,
                },
                "required": ["task_id", "source"],
            },
        ),
        Tool(
            name="list_references",
            description="List a task's references, optionally filtered by kind",
            inputSchema={
                "type": "object",
                "properties": {
                    "task_id": TASK_ID_PROPERTY,
                    "kind": {"type": "string", "enum": sorted(VALID_REFERENCE_KINDS)},
                },
                "required": ["task_id"],
            },
        ),
        Tool(
            name="delete_reference",
            description="Delete a reference by ID",
            inputSchema={
                "type": "object",
                "properties": {"reference_id": {"type": "integer", "description": "Reference ID"}, "actor": ACTOR_PROPERTY},
                "required": ["reference_id"],
            },
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "set_context": _handle_set_context,
        "update_context": _handle_update_context,
        "add_conversation": _handle_add_conversation,
        "get_context": _handle_get_context,
        "get_full_context": _handle_get_full_context,
        "add_iteration": _handle_add_iteration,
        "list_iterations": _handle_list_iterations,
        "add_reference": _handle_add_reference,
        "add_image_reference": _handle_add_image_reference,
        "list_references": _handle_list_references,
        "delete_reference": _handle_delete_reference,
    }

    return tools, handlers


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_set_context(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db

    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    tracker = _get_db()
    try:
        ctx = tracker.set_context(
            arguments["task_id"],
            arguments["original_request"],
            notes=arguments.get("notes"),
            actor=actor,
        )
    except TrellisError as e:
        return _error(e)
    return _text(ctx.to_dict())


async def _handle_update_context(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db

    for key in ("original_request", "notes"):
        if err := _validate_str(arguments.get(key), key):
            return err
    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    tracker = _get_db()
    try:
        # Absent keys stay None ("leave as is"); "" is passed through as a blank value
        ctx = tracker.update_context(
            arguments["task_id"],
            original_request=arguments.get("original_request"),
            notes=arguments.get("notes"),
            actor=actor,
        )
    except TrellisError as e:
        return _error(e)
    return _text(ctx.to_dict())


async def _handle_add_conversation(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db

    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    tracker = _get_db()
    task_id = arguments["task_id"]
    try:
        entry = record_answer(tracker, task_id, arguments["question"], arguments["answer"], actor=actor)
    except TrellisError as e:
        return _error(e)
    return _text({"task_id": task_id, **entry.to_dict()})


async def _handle_get_context(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db

    tracker = _get_db()
    try:
        ctx = tracker.get_context(arguments["task_id"])
    except TrellisError as e:
        return _error(e)
    if ctx is None:
        return _text(
            {
                "error": f"Task {arguments['task_id']} does not have context. Use set_context first.",
                "code": ContextNotFoundError.code,
            }
        )
    return _text(ctx.to_dict())


async def _handle_get_full_context(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db

    tracker = _get_db()
    try:
        full = tracker.get_full_context(arguments["task_id"])
        files = tracker.get_files(arguments["task_id"])
        issues = tracker.get_issues(arguments["task_id"])
    except TrellisError as e:
        return _error(e)
    return _text({**full.to_dict(), "files": [f.to_dict() for f in files], "issues": [i.to_dict() for i in issues]})


async def _handle_add_iteration(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db, _refresh_summary

    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    tracker = _get_db()
    try:
        iteration = tracker.add_iteration(
            arguments["task_id"],
            arguments["approach"],
            arguments["outcome"],
            lessons=arguments.get("lessons"),
            files_touched=arguments.get("files_touched"),
            actor=actor,
        )
    except TrellisError as e:
        return _error(e)
    _refresh_summary()
    return _text(iteration.to_dict())


async def _handle_list_iterations(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db

    tracker = _get_db()
    try:
        iterations = tracker.list_iterations(arguments["task_id"])
    except TrellisError as e:
        return _error(e)
    return _text([i.to_dict() for i in iterations])


async def _handle_add_reference(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db

    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    tracker = _get_db()
    try:
        ref = tracker.add_reference(
            arguments["task_id"],
            arguments["kind"],
            arguments["content"],
            description=arguments.get("description", ""),
            actor=actor,
        )
    except TrellisError as e:
        return _error(e)
    return _text(ref.to_dict())


async def _handle_add_image_reference(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_attachments_root, _get_db

    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    tracker = _get_db()
    task_id = arguments["task_id"]
    try:
        # Check the task before touching the filesystem
        tracker.get_task(task_id)
        stored = await store_image(
            arguments["source"],
            _get_attachments_root(),
            task_id,
            filename=arguments.get("filename"),
            mime_type=arguments.get("mime_type"),
        )
        ref = tracker.add_reference(
            task_id,
            "image",
            stored.relative_path,
            description=arguments.get("description", ""),
            original_filename=stored.original_filename,
            mime_type=stored.mime_type,
            actor=actor,
        )
    except TrellisError as e:
        return _error(e)
    return _text({**ref.to_dict(), "size": stored.size})


async def _handle_list_references(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db

    tracker = _get_db()
    try:
        refs = tracker.list_references(arguments["task_id"], kind=arguments.get("kind"))
    except TrellisError as e:
        return _error(e)
    return _text([r.to_dict() for r in refs])


async def _handle_delete_reference(arguments: dict[str, Any]) -> list[TextContent]:
    from trellis.mcp_server import _get_db

    if err := _validate_int(arguments.get("reference_id"), "reference_id"):
        return err
    actor, actor_err = _validate_actor(arguments.get("actor", "mcp"))
    if actor_err:
        return actor_err
    tracker = _get_db()
    deleted = tracker.delete_reference(arguments["reference_id"], actor=actor)
    status = "deleted" if deleted else "not_found"
    return _text({"status": status, "reference_id": arguments["reference_id"]})

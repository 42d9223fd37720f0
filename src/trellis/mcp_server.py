"""MCP server for the trellis task tracker.

Exposes trellis operations as MCP tools so agents can create tasks, wire
dependencies, and read back a task's full context natively.

Usage:
    trellis-mcp                          # Auto-discover .trellis/ from cwd
    trellis-mcp --project /path/to/proj  # Explicit project root
    trellis-mcp --db /path/to/trellis.db # Explicit database file (or $TRELLIS_DB)
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    GetPromptResult,
    Prompt,
    PromptArgument,
    PromptMessage,
    Resource,
    TextContent,
    Tool,
)

from trellis.core import (
    DB_ENV_VAR,
    DB_FILENAME,
    SUMMARY_FILENAME,
    TRELLIS_DIR_NAME,
    TrellisDB,
    attachments_root,
    resolve_db_path,
)
from trellis.errors import TrellisError
from trellis.mcp_tools import context as context_tools
from trellis.mcp_tools import dependencies as dependency_tools
from trellis.mcp_tools import projects as project_tools
from trellis.mcp_tools import tasks as task_tools
from trellis.mcp_tools.common import _error, _text
from trellis.summary import generate_summary, write_summary

server = Server("trellis")
db: TrellisDB | None = None
_trellis_dir: Path | None = None
_logger: logging.Logger | None = None


def _get_db() -> TrellisDB:
    if db is None:
        msg = "Database not initialized"
        raise RuntimeError(msg)
    return db


def _get_trellis_dir() -> Path | None:
    return _trellis_dir


def _get_attachments_root() -> Path:
    """Attachment directory for the active project (beside the DB when no .trellis/ is known)."""
    trellis_dir = _get_trellis_dir()
    if trellis_dir is not None:
        return attachments_root(trellis_dir)
    return attachments_root(_get_db().db_path.parent)


def _refresh_summary() -> None:
    """Regenerate summary.md after mutations (best-effort, never fatal)."""
    trellis_dir = _get_trellis_dir()
    if trellis_dir is not None:
        try:
            write_summary(_get_db(), trellis_dir / SUMMARY_FILENAME)
        except OSError:
            (_logger or logging.getLogger(__name__)).warning("Failed to write summary.md", exc_info=True)


# ---------------------------------------------------------------------------
# Tool registry
# ---------------------------------------------------------------------------


def _collect_tools() -> tuple[list[Tool], dict[str, Any]]:
    tools: list[Tool] = []
    handlers: dict[str, Any] = {}
    for module in (project_tools, task_tools, dependency_tools, context_tools):
        module_tools, module_handlers = module.register()
        tools.extend(module_tools)
        handlers.update(module_handlers)
    return tools, handlers


_TOOLS, _HANDLERS = _collect_tools()


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------

SUMMARY_URI = "trellis://summary"


@server.list_resources()  # type: ignore[untyped-decorator,no-untyped-call]
async def list_resources() -> list[Resource]:
    return [
        Resource(
            uri=SUMMARY_URI,  # type: ignore[arg-type]
            name="Task Pulse",
            description="Auto-generated summary: vitals, ready work, blockers, recent activity",
            mimeType="text/markdown",
        ),
    ]


@server.read_resource()  # type: ignore[untyped-decorator,no-untyped-call]
async def read_summary(uri: Any) -> str:
    if str(uri) == SUMMARY_URI:
        return generate_summary(_get_db())
    msg = f"Unknown resource: {uri}"
    raise ValueError(msg)


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

_WORK_ON_TASK_GUIDE = """\
You are an experienced developer working on one task within a larger project.

Workflow:
1. Load context first: call get_full_context for the task. It returns the
   original request, the planning Q&A, every previous attempt, and any
   reference material.
2. Read the previous iterations so you do not repeat a failed approach.
3. Search the codebase for existing patterns and reuse them.
4. Keep it simple. Do not add features the task does not ask for.
5. Record each file you change with add_file.
6. When you stop, call add_iteration with the approach, the outcome
   (success / failed / partial / blocked) and the lessons learned.
7. Mark the task completed (update_task_status) only when it is done.
"""

_REPORT_ISSUE_GUIDE = """\
You are helping document an issue found during manual testing.

1. Add the issue to the task with add_issue. An open issue marks the task
   blocked unless it is already completed.
2. Give clear reproduction steps.
3. Suggest a fix direction if one is obvious.

Keep it factual and actionable.
"""


@server.list_prompts()  # type: ignore[untyped-decorator,no-untyped-call]
async def list_prompts() -> list[Prompt]:
    return [
        Prompt(
            name="work_on_task",
            description="Work on a task: load its full context first, record files and iterations as you go",
            arguments=[
                PromptArgument(name="task_id", description="Task to work on", required=True),
                PromptArgument(name="project_path", description="Project root directory", required=False),
            ],
        ),
        Prompt(
            name="report_issue",
            description="Report an issue found during manual testing back to its task",
            arguments=[
                PromptArgument(name="task_id", description="Task where the issue was found", required=True),
                PromptArgument(name="issue_description", description="What went wrong", required=True),
                PromptArgument(name="expected_vs_actual", description="Expected behaviour vs what happened", required=False),
            ],
        ),
    ]


def _user_message(text: str) -> PromptMessage:
    return PromptMessage(role="user", content=TextContent(type="text", text=text))


@server.get_prompt()  # type: ignore[untyped-decorator,no-untyped-call]
async def get_prompt(name: str, arguments: dict[str, str] | None = None) -> GetPromptResult:
    if name not in ("work_on_task", "report_issue"):
        msg = f"Unknown prompt: {name}"
        raise ValueError(msg)
    args = arguments or {}
    task_id = args.get("task_id", "")
    if not task_id:
        msg = f"Prompt {name} requires task_id"
        raise ValueError(msg)

    if name == "work_on_task":
        try:
            task = _get_db().get_task(task_id)
            details = f"Task: {task.title}\nStatus: {task.status} ({task.completion}%)\n\n{task.description or '(no description)'}"
        except KeyError:
            details = "(task not found; check the ID with list_tasks)"
        project_path = args.get("project_path") or "(current project)"
        body = (
            f"Task ID: {task_id}\nProject path: {project_path}\n\n{details}\n\n"
            f"First step: call get_full_context with task_id={task_id}."
        )
        return GetPromptResult(
            description="Work on a task with its full context",
            messages=[_user_message(_WORK_ON_TASK_GUIDE), _user_message(body)],
        )

    body = f"Task ID: {task_id}\n\nIssue found during manual testing:\n{args.get('issue_description', '')}\n"
    if args.get("expected_vs_actual"):
        body += f"\nExpected vs actual:\n{args['expected_vs_actual']}\n"
    body += "\nAdd this issue to the task."
    return GetPromptResult(
        description="Report a testing issue against a task",
        messages=[_user_message(_REPORT_ISSUE_GUIDE), _user_message(body)],
    )


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@server.list_tools()  # type: ignore[untyped-decorator,no-untyped-call]
async def list_tools() -> list[Tool]:
    return list(_TOOLS)


@server.call_tool()  # type: ignore[untyped-decorator]
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    tracker = _get_db()
    t0 = time.monotonic()

    handler = _HANDLERS.get(name)
    if handler is None:
        return _text({"error": f"Unknown tool: {name}", "code": "unknown_tool"})

    try:
        result: list[TextContent] = await handler(arguments)
    except TrellisError as e:
        # Handlers translate their own failures; this catches anything that slipped through
        if _logger:
            _logger.warning("tool_error", extra={"tool": name, "args_data": arguments, "error_code": e.code})
        return _error(e)
    except Exception:
        if _logger:
            _logger.error("tool_error", extra={"tool": name, "args_data": arguments}, exc_info=True)
        raise
    else:
        duration_ms = round((time.monotonic() - t0) * 1000, 1)
        if _logger:
            _logger.info("tool_call", extra={"tool": name, "args_data": arguments, "duration_ms": duration_ms})
        return result
    finally:
        # Safety net: roll back any uncommitted transaction left by a failed mutation
        if tracker.conn.in_transaction:
            tracker.conn.rollback()


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def _resolve_target(project_path: Path | None, db_path: Path | None) -> tuple[Path, Path | None]:
    """Return (database file, .trellis dir or None)."""
    if db_path is not None:
        return db_path, None
    if project_path:
        trellis_dir = project_path / TRELLIS_DIR_NAME
        if not trellis_dir.is_dir():
            print(f"Error: {trellis_dir} not found. Run 'trellis init' first.", file=sys.stderr)
            sys.exit(1)
        return trellis_dir / DB_FILENAME, trellis_dir
    try:
        resolved = resolve_db_path(None)
    except FileNotFoundError:
        print(f"Error: No {TRELLIS_DIR_NAME}/ found and ${DB_ENV_VAR} is not set. Run 'trellis init' first.", file=sys.stderr)
        sys.exit(1)
    trellis_dir = resolved.parent if resolved.parent.name == TRELLIS_DIR_NAME else None
    return resolved, trellis_dir


async def _run(project_path: Path | None, db_path: Path | None) -> None:
    global db, _trellis_dir, _logger

    resolved_db, trellis_dir = _resolve_target(project_path, db_path)
    _trellis_dir = trellis_dir
    db = TrellisDB.open(resolved_db)

    from trellis.logging import setup_logging

    _logger = setup_logging(trellis_dir or resolved_db.parent)
    _logger.info("mcp_server_start", extra={"tool": "server", "args_data": {"db": str(resolved_db)}})

    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        db.close()


def main() -> None:
    import asyncio

    parser = argparse.ArgumentParser(description="Trellis MCP server")
    parser.add_argument("--project", type=Path, default=None, help="Project root (auto-discovers .trellis/ if omitted)")
    parser.add_argument("--db", type=Path, default=None, help=f"Database file (overrides discovery and ${DB_ENV_VAR})")
    args = parser.parse_args()

    asyncio.run(_run(args.project, args.db))


if __name__ == "__main__":
    main()

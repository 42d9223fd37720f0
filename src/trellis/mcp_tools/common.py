"""Pure helpers and constants shared across MCP tool modules.

This module has NO dependency on ``mcp_server`` module globals, so it can
be imported freely without triggering circular-import issues.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.types import TextContent

from trellis.errors import TrellisError
from trellis.models import Task
from trellis.types.api import ErrorResponse, SlimTask
from trellis.validation import sanitize_actor

logger = logging.getLogger(__name__)

# Hard cap on list_tasks results to keep MCP response size within token
# limits. Callers can pass no_limit=true to bypass.
_MAX_LIST_RESULTS = 50

ACTOR_PROPERTY = {"type": "string", "description": "Agent/user identity for audit trail"}
TASK_ID_PROPERTY = {"type": "string", "description": "Task ID"}


def _text(content: object) -> list[TextContent]:
    if isinstance(content, str):
        return [TextContent(type="text", text=content)]
    return [TextContent(type="text", text=json.dumps(content, indent=2, default=str))]


def _error(exc: TrellisError) -> list[TextContent]:
    """Translate a domain failure into the standard error envelope."""
    return _text(ErrorResponse(error=str(exc), code=exc.code))


def _slim_task(task: Task) -> SlimTask:
    """Return a lightweight dict for task listings."""
    return SlimTask(id=task.id, title=task.title, status=task.status, completion=task.completion)


def _resolve_pagination(arguments: dict[str, Any]) -> tuple[int, int]:
    """Compute effective limit and offset for paginated MCP list tools.

    Handles the ``no_limit`` bypass and caps to ``_MAX_LIST_RESULTS``.
    Callers should overfetch by 1 (``limit=effective_limit + 1``) to
    detect ``has_more``.
    """
    no_limit = arguments.get("no_limit", False)
    requested_limit = max(arguments.get("limit", 100), 1)
    offset = arguments.get("offset", 0)

    effective_limit = (requested_limit if "limit" in arguments else 10_000_000) if no_limit else min(requested_limit, _MAX_LIST_RESULTS)

    return effective_limit, offset


def _apply_has_more(items: list[Any], effective_limit: int) -> tuple[list[Any], bool]:
    """Trim an overfetched result list and return ``(trimmed, has_more)``."""
    has_more = len(items) > effective_limit
    if has_more:
        items = items[:effective_limit]
    return items, has_more


def _validate_str(value: Any, name: str) -> list[TextContent] | None:
    """Return a validation error if *value* is not ``None`` and not a ``str``."""
    if value is not None and not isinstance(value, str):
        return _text({"error": f"{name} must be a string", "code": "validation_error"})
    return None


def _validate_int(value: Any, name: str) -> list[TextContent] | None:
    """Return a validation error if *value* is not ``None`` and not an integer."""
    if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
        return _text({"error": f"{name} must be an integer", "code": "validation_error"})
    return None


def _validate_actor(value: Any) -> tuple[str, list[TextContent] | None]:
    """Sanitize actor, returning (cleaned, None) or ("", error_response)."""
    cleaned, err = sanitize_actor(value)
    if err:
        return ("", _text({"error": err, "code": "validation_error"}))
    return (cleaned, None)

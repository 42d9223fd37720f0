"""Shared helpers for HTTP API route modules."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

    from fastapi.responses import JSONResponse
    from starlette.requests import Request

from trellis.errors import TrellisError
from trellis.validation import sanitize_actor

logger = logging.getLogger(__name__)

# Domain error code -> HTTP status. Anything unlisted is a 400.
_STATUS_BY_CODE = {
    "not_found": 404,
    "context_not_found": 404,
    "context_exists": 409,
    "duplicate_dependency": 409,
    "conflict": 409,
}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _error_response(
    message: str,
    code: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Return a structured error response and log the error."""
    from fastapi.responses import JSONResponse

    logger.warning("API error [%s] %s: %s", status_code, code, message)
    return JSONResponse(
        {"error": {"message": message, "code": code, "details": details or {}}},
        status_code=status_code,
    )


def _domain_error(exc: TrellisError) -> JSONResponse:
    """Translate a core failure into its HTTP error response."""
    # parent_not_found is still a missing task from the caller's point of view
    status_code = 404 if isinstance(exc, KeyError) else _STATUS_BY_CODE.get(exc.code, 400)
    return _error_response(exc.message, exc.code, status_code)


async def _parse_json_body(request: Request) -> dict[str, Any] | JSONResponse:
    """Parse and validate a JSON object body, returning 400 on failure."""
    import json

    try:
        body = await request.json()
    except (json.JSONDecodeError, ValueError, UnicodeDecodeError):
        return _error_response("Invalid JSON body", "validation_error", 400)
    if not isinstance(body, dict):
        return _error_response("Request body must be a JSON object", "validation_error", 400)
    return body


def _safe_int(value: str, name: str, *, min_value: int | None = None) -> int | JSONResponse:
    """Parse a query-param string to int, returning a 400 error response on failure.

    When *min_value* is set, values below that floor are rejected with 400.
    """
    try:
        result = int(value)
    except (ValueError, TypeError):
        return _error_response(
            f'Invalid value for {name}: "{value}". Must be an integer.',
            "validation_error",
            400,
        )
    if min_value is not None and result < min_value:
        return _error_response(
            f"Invalid value for {name}: {result}. Must be >= {min_value}.",
            "validation_error",
            400,
        )
    return result


def _parse_pagination(
    params: Mapping[str, str],
    default_limit: int = 100,
) -> tuple[int, int] | JSONResponse:
    """Extract ``limit`` and ``offset`` from query params with validation.

    Returns ``(limit, offset)`` on success or a 400 ``JSONResponse`` on error.
    """
    limit = _safe_int(params.get("limit", str(default_limit)), "limit", min_value=1)
    if not isinstance(limit, int):
        return limit
    offset = _safe_int(params.get("offset", "0"), "offset", min_value=0)
    if not isinstance(offset, int):
        return offset
    return limit, offset


def _optional_str(body: Mapping[str, Any], key: str) -> str | None | JSONResponse:
    """Return ``body[key]`` if it is a string, None if absent, or a 400 response."""
    value = body.get(key)
    if value is None or isinstance(value, str):
        return value
    return _error_response(f"{key} must be a string", "validation_error", 400)


def _validate_actor(value: Any) -> tuple[str, JSONResponse | None]:
    """Sanitize the actor value from a request body."""
    cleaned, err = sanitize_actor(value)
    if err:
        return "", _error_response(err, "validation_error", 400)
    return cleaned, None

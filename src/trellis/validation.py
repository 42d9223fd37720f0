"""Shared validation functions for all entry points.

Pure functions with no MCP, FastAPI, or Click dependencies.
"""

from __future__ import annotations

import unicodedata
from collections.abc import Iterable
from typing import Any

from trellis.errors import ValidationError

_MAX_ACTOR_LENGTH = 128

MAX_TITLE_LENGTH = 300
MAX_PROJECT_NAME_LENGTH = 200
MAX_PATH_LENGTH = 500


def sanitize_actor(value: Any) -> tuple[str, str | None]:
    """Validate and clean an actor name.

    Returns (cleaned_actor, None) on success or ("", error_message) on failure.
    Control/format characters are rejected before stripping so "\\nbad"
    does not sneak through as "bad".
    """
    if not isinstance(value, str):
        return ("", "actor must be a string")
    for ch in value:
        if unicodedata.category(ch).startswith("C"):
            return ("", f"actor must not contain control characters (found U+{ord(ch):04X})")
    cleaned = value.strip()
    if not cleaned:
        return ("", "actor must not be empty")
    if len(cleaned) > _MAX_ACTOR_LENGTH:
        return ("", f"actor must be at most {_MAX_ACTOR_LENGTH} characters")
    return (cleaned, None)


def clamp_percentage(value: int) -> int:
    """Clamp a completion percentage into [0, 100].

    Out-of-range values are policy-clamped, not rejected. Non-integers
    (including bools) are a caller bug and raise.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"completion must be an integer, got {type(value).__name__}"
        raise ValidationError(msg)
    return max(0, min(100, value))


def require_choice(value: Any, name: str, choices: Iterable[str]) -> str:
    """Return *value* if it is one of *choices*, else raise ValidationError."""
    allowed = sorted(choices)
    if not isinstance(value, str) or value not in allowed:
        msg = f"Invalid {name} '{value}'. Valid values: {', '.join(allowed)}"
        raise ValidationError(msg)
    return value


def require_text(value: Any, name: str, *, max_length: int | None = None) -> str:
    """Reject missing/blank text and enforce an optional length cap."""
    if not isinstance(value, str) or not value.strip():
        msg = f"{name} cannot be empty"
        raise ValidationError(msg)
    if max_length is not None and len(value) > max_length:
        msg = f"{name} must be at most {max_length} characters"
        raise ValidationError(msg)
    return value

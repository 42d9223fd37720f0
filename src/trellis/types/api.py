"""TypedDicts for MCP tool handler and HTTP route responses."""

from __future__ import annotations

from typing import TypedDict


class SlimTask(TypedDict):
    """Reduced task shape for listings."""

    id: str
    title: str
    status: str
    completion: int


class ErrorResponse(TypedDict):
    """Standard error envelope returned by MCP error paths."""

    error: str
    code: str


class StatsResult(TypedDict):
    """Aggregate stats returned by ``get_stats()``."""

    by_status: dict[str, int]
    ready_count: int
    blocked_count: int
    open_issue_count: int
    total: int

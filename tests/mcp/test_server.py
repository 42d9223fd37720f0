"""MCP server plumbing: tool listing, unknown tools, resources, prompts."""

from __future__ import annotations

import pytest

from tests.mcp._helpers import _parse
from trellis.core import TrellisDB
from trellis.mcp_server import (
    SUMMARY_URI,
    call_tool,
    get_prompt,
    list_prompts,
    list_resources,
    list_tools,
    read_summary,
)


class TestToolRegistry:
    async def test_all_tools_listed(self, mcp_db: TrellisDB) -> None:
        names = {t.name for t in await list_tools()}
        assert {
            "create_task",
            "update_task_status",
            "add_dependency",
            "can_start_task",
            "set_context",
            "add_conversation",
            "add_iteration",
            "add_image_reference",
            "get_full_context",
            "create_project",
        } <= names

    async def test_tool_names_are_unique(self, mcp_db: TrellisDB) -> None:
        names = [t.name for t in await list_tools()]
        assert len(names) == len(set(names))

    async def test_unknown_tool(self, mcp_db: TrellisDB) -> None:
        data = _parse(await call_tool("launch_rocket", {}))
        assert data["code"] == "unknown_tool"

    async def test_bad_actor_rejected(self, mcp_db: TrellisDB) -> None:
        data = _parse(await call_tool("create_task", {"title": "T", "actor": 42}))
        assert data["code"] == "validation_error"

    async def test_failed_call_leaves_no_open_transaction(self, mcp_db: TrellisDB) -> None:
        a = mcp_db.create_task("A")
        await call_tool("add_dependency", {"dependent_id": a.id, "depends_on_id": a.id})
        assert not mcp_db.conn.in_transaction


class TestSummaryResource:
    async def test_listed(self, mcp_db: TrellisDB) -> None:
        resources = await list_resources()
        assert [str(r.uri) for r in resources] == [SUMMARY_URI]

    async def test_read(self, mcp_db: TrellisDB) -> None:
        mcp_db.create_task("Visible in pulse")
        text = await read_summary(SUMMARY_URI)
        assert "Visible in pulse" in text

    async def test_unknown_resource(self, mcp_db: TrellisDB) -> None:
        with pytest.raises(ValueError, match="Unknown resource"):
            await read_summary("trellis://nope")


class TestPrompts:
    async def test_listed(self, mcp_db: TrellisDB) -> None:
        assert {p.name for p in await list_prompts()} == {"work_on_task", "report_issue"}

    async def test_work_on_task_includes_task_details(self, mcp_db: TrellisDB) -> None:
        task = mcp_db.create_task("Fix pagination", description="Off by one on page 2")
        result = await get_prompt("work_on_task", {"task_id": task.id})
        body = result.messages[-1].content.text
        assert "Fix pagination" in body
        assert f"get_full_context with task_id={task.id}" in body

    async def test_work_on_unknown_task(self, mcp_db: TrellisDB) -> None:
        result = await get_prompt("work_on_task", {"task_id": "mcp-ghost"})
        assert "task not found" in result.messages[-1].content.text

    async def test_report_issue(self, mcp_db: TrellisDB) -> None:
        result = await get_prompt(
            "report_issue",
            {"task_id": "mcp-1", "issue_description": "Save button does nothing", "expected_vs_actual": "Saves / no-op"},
        )
        body = result.messages[-1].content.text
        assert "Save button does nothing" in body
        assert "Expected vs actual" in body

    async def test_requires_task_id(self, mcp_db: TrellisDB) -> None:
        with pytest.raises(ValueError, match="requires task_id"):
            await get_prompt("report_issue", {})

    async def test_unknown_prompt(self, mcp_db: TrellisDB) -> None:
        with pytest.raises(ValueError, match="Unknown prompt"):
            await get_prompt("write_poem", {"task_id": "x"})

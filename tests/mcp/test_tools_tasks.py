"""MCP tool tests: projects, tasks, files, and issues."""

from __future__ import annotations

from pathlib import Path

from tests.mcp._helpers import _parse
from trellis.core import SUMMARY_FILENAME, TrellisDB
from trellis.mcp_server import call_tool


class TestProjectTools:
    async def test_create_and_get(self, mcp_db: TrellisDB) -> None:
        project = _parse(await call_tool("create_project", {"name": "Docs", "description": "User guide"}))
        assert project["name"] == "Docs"
        await call_tool("create_task", {"title": "Outline", "project_id": project["id"]})
        fetched = _parse(await call_tool("get_project", {"project_id": project["id"]}))
        assert fetched["task_count"] == 1
        assert [t["title"] for t in fetched["tasks"]] == ["Outline"]

    async def test_get_missing(self, mcp_db: TrellisDB) -> None:
        result = _parse(await call_tool("get_project", {"project_id": "mcp-p-missing"}))
        assert result["code"] == "not_found"

    async def test_delete_cascades(self, mcp_db: TrellisDB) -> None:
        project = mcp_db.create_project("Temp")
        task = mcp_db.create_task("Gone", project_id=project.id)
        await call_tool("delete_project", {"project_id": project.id})
        assert task.id not in {t.id for t in mcp_db.list_tasks()}


class TestTaskTools:
    async def test_create_task(self, mcp_db: TrellisDB) -> None:
        data = _parse(await call_tool("create_task", {"title": "Write tests", "description": "Cover edge cases"}))
        assert data["title"] == "Write tests"
        assert data["status"] == "not_started"
        assert data["completion"] == 0
        assert data["id"].startswith("mcp-")

    async def test_create_refreshes_summary(self, mcp_db: TrellisDB) -> None:
        await call_tool("create_task", {"title": "Appears in summary"})
        summary = (Path(mcp_db.db_path).parent / SUMMARY_FILENAME).read_text()
        assert "Appears in summary" in summary

    async def test_create_with_missing_parent(self, mcp_db: TrellisDB) -> None:
        data = _parse(await call_tool("create_task", {"title": "Orphan", "parent_id": "mcp-missing"}))
        assert data["code"] == "parent_not_found"

    async def test_get_task_includes_files_and_issues(self, mcp_db: TrellisDB) -> None:
        task = mcp_db.create_task("T")
        mcp_db.add_file(task.id, "src/app.py", change_note="Entry point")
        data = _parse(await call_tool("get_task", {"task_id": task.id}))
        assert [f["path"] for f in data["files"]] == ["src/app.py"]
        assert data["issues"] == []

    async def test_get_missing_task(self, mcp_db: TrellisDB) -> None:
        data = _parse(await call_tool("get_task", {"task_id": "mcp-nope"}))
        assert data == {"error": "Task not found: mcp-nope", "code": "not_found"}

    async def test_list_tasks_paginates(self, mcp_db: TrellisDB) -> None:
        for n in range(5):
            mcp_db.create_task(f"Task {n}")
        data = _parse(await call_tool("list_tasks", {"limit": 2}))
        assert len(data["tasks"]) == 2
        assert data["has_more"] is True
        rest = _parse(await call_tool("list_tasks", {"limit": 10, "offset": 4}))
        assert len(rest["tasks"]) == 1
        assert rest["has_more"] is False

    async def test_list_tasks_non_positive_limit_returns_one(self, mcp_db: TrellisDB) -> None:
        for n in range(3):
            mcp_db.create_task(f"Task {n}")
        data = _parse(await call_tool("list_tasks", {"limit": -5}))
        assert data["limit"] == 1
        assert len(data["tasks"]) == 1
        assert data["has_more"] is True

    async def test_update_reports_changed_fields(self, mcp_db: TrellisDB) -> None:
        task = mcp_db.create_task("T")
        data = _parse(await call_tool("update_task", {"task_id": task.id, "completion": 100}))
        assert data["status"] == "completed"
        assert set(data["changed_fields"]) >= {"status", "completion", "completed_at"}

    async def test_update_rejects_wrong_types(self, mcp_db: TrellisDB) -> None:
        task = mcp_db.create_task("T")
        data = _parse(await call_tool("update_task", {"task_id": task.id, "completion": "50"}))
        assert data["code"] == "validation_error"

    async def test_status_completed_sets_full_completion(self, mcp_db: TrellisDB) -> None:
        task = mcp_db.create_task("T")
        data = _parse(await call_tool("update_task_status", {"task_id": task.id, "status": "completed"}))
        assert data["completion"] == 100
        assert data["completed_at"] is not None

    async def test_invalid_status(self, mcp_db: TrellisDB) -> None:
        task = mcp_db.create_task("T")
        data = _parse(await call_tool("update_task_status", {"task_id": task.id, "status": "done"}))
        assert data["code"] == "validation_error"

    async def test_completion_is_clamped(self, mcp_db: TrellisDB) -> None:
        task = mcp_db.create_task("T")
        data = _parse(await call_tool("update_completion", {"task_id": task.id, "completion": 150}))
        assert data["completion"] == 100
        assert data["status"] == "completed"

    async def test_delete_task(self, mcp_db: TrellisDB) -> None:
        task = mcp_db.create_task("T")
        assert _parse(await call_tool("delete_task", {"task_id": task.id}))["status"] == "deleted"
        assert _parse(await call_tool("delete_task", {"task_id": task.id}))["code"] == "not_found"

    async def test_create_subtask(self, mcp_db: TrellisDB) -> None:
        parent = mcp_db.create_task("Parent")
        data = _parse(await call_tool("create_subtask", {"parent_id": parent.id, "title": "Child"}))
        assert data["parent_id"] == parent.id
        assert mcp_db.get_task(parent.id).subtasks == [data["id"]]


class TestIssueTools:
    async def test_open_issue_blocks_task(self, mcp_db: TrellisDB) -> None:
        task = mcp_db.create_task("T", status="in_progress")
        data = _parse(await call_tool("add_issue", {"task_id": task.id, "title": "Button misaligned"}))
        assert data["status"] == "open"
        assert data["task_status"] == "blocked"

    async def test_completed_task_stays_completed(self, mcp_db: TrellisDB) -> None:
        task = mcp_db.create_task("T", status="completed")
        data = _parse(await call_tool("add_issue", {"task_id": task.id, "title": "Typo"}))
        assert data["task_status"] == "completed"

    async def test_resolving_issue_leaves_task_status(self, mcp_db: TrellisDB) -> None:
        task = mcp_db.create_task("T")
        issue = mcp_db.add_issue(task.id, "Crash")
        data = _parse(await call_tool("update_issue_status", {"issue_id": issue.id, "status": "resolved"}))
        assert data["status"] == "resolved"
        assert mcp_db.get_task(task.id).status == "blocked"

    async def test_issue_id_must_be_int(self, mcp_db: TrellisDB) -> None:
        data = _parse(await call_tool("update_issue_status", {"issue_id": "1", "status": "resolved"}))
        assert data["code"] == "validation_error"

    async def test_add_file(self, mcp_db: TrellisDB) -> None:
        task = mcp_db.create_task("T")
        data = _parse(await call_tool("add_file", {"task_id": task.id, "path": "README.md"}))
        assert data["path"] == "README.md"
        assert data["task_id"] == task.id

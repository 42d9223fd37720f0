"""Tests for the task lifecycle: status/completion coupling, issues, subtasks, deletion."""

from __future__ import annotations

import time

import pytest

from trellis.core import TrellisDB
from trellis.db_base import OPEN, RESOLVED, VALID_ISSUE_STATUSES
from trellis.db_lifecycle import resolve_transition
from trellis.errors import (
    ParentNotFoundError,
    ProjectNotFoundError,
    SubtaskCycleError,
    TaskIssueNotFoundError,
    TaskNotFoundError,
    ValidationError,
)


class TestResolveTransition:
    def test_completed_forces_full_completion(self) -> None:
        assert resolve_transition("in_progress", 40, status="completed") == ("completed", 100)

    def test_full_completion_forces_completed(self) -> None:
        assert resolve_transition("in_progress", 40, completion=100) == ("completed", 100)

    def test_over_range_completion_clamps_then_completes(self) -> None:
        assert resolve_transition("not_started", 0, completion=250) == ("completed", 100)

    def test_negative_completion_clamps_to_zero(self) -> None:
        assert resolve_transition("in_progress", 30, completion=-5) == ("in_progress", 0)

    def test_leaving_completed_keeps_percentage(self) -> None:
        assert resolve_transition("completed", 100, status="in_progress") == ("in_progress", 100)

    def test_status_then_completion_both_supplied(self) -> None:
        # Explicit 100 wins over the supplied status
        assert resolve_transition("not_started", 0, status="in_progress", completion=100) == ("completed", 100)

    def test_nothing_supplied_is_identity(self) -> None:
        assert resolve_transition("blocked", 55) == ("blocked", 55)

    def test_non_integer_completion_rejected(self) -> None:
        with pytest.raises(ValidationError):
            resolve_transition("not_started", 0, completion="50")  # type: ignore[arg-type]

    def test_bool_completion_rejected(self) -> None:
        with pytest.raises(ValidationError):
            resolve_transition("not_started", 0, completion=True)


class TestCreateTask:
    def test_defaults(self, db: TrellisDB) -> None:
        task = db.create_task("Write docs")
        assert task.id.startswith("test-")
        assert task.status == "not_started"
        assert task.completion == 0
        assert task.completed_at is None
        assert task.can_start is True

    def test_created_completed_is_stamped(self, db: TrellisDB) -> None:
        task = db.create_task("Already done", status="completed")
        assert task.completion == 100
        assert task.completed_at is not None

    def test_title_is_stripped(self, db: TrellisDB) -> None:
        task = db.create_task("  Padded  ")
        assert task.title == "Padded"

    def test_empty_title_rejected(self, db: TrellisDB) -> None:
        with pytest.raises(ValidationError, match="Title"):
            db.create_task("   ")

    def test_invalid_status_rejected(self, db: TrellisDB) -> None:
        with pytest.raises(ValidationError, match="status"):
            db.create_task("X", status="done")

    def test_unknown_project_rejected(self, db: TrellisDB) -> None:
        with pytest.raises(ProjectNotFoundError):
            db.create_task("X", project_id="test-p-missing")

    def test_unknown_parent_rejected(self, db: TrellisDB) -> None:
        with pytest.raises(ParentNotFoundError):
            db.create_task("X", parent_id="test-missing")

    def test_records_created_event(self, db: TrellisDB) -> None:
        task = db.create_task("Evented", actor="alice")
        events = db.get_task_events(task.id)
        assert events[-1]["event_type"] == "created"
        assert events[-1]["actor"] == "alice"


class TestStatusCompletionCoupling:
    def test_status_completed_sets_100(self, db: TrellisDB) -> None:
        task = db.create_task("T")
        updated = db.update_status(task.id, "completed")
        assert updated.completion == 100
        assert updated.completed_at is not None

    def test_completion_100_sets_completed(self, db: TrellisDB) -> None:
        task = db.create_task("T")
        updated = db.update_completion(task.id, 100)
        assert updated.status == "completed"
        assert updated.completed_at is not None

    def test_completion_below_100_keeps_status(self, db: TrellisDB) -> None:
        task = db.create_task("T", status="in_progress")
        updated = db.update_completion(task.id, 60)
        assert updated.status == "in_progress"
        assert updated.completion == 60

    def test_completion_clamped(self, db: TrellisDB) -> None:
        task = db.create_task("T")
        assert db.update_completion(task.id, -20).completion == 0
        updated = db.update_completion(task.id, 999)
        assert updated.completion == 100
        assert updated.status == "completed"

    def test_completed_at_not_restamped(self, db: TrellisDB) -> None:
        task = db.create_task("T")
        first = db.update_status(task.id, "completed")
        again = db.update_completion(task.id, 100)
        assert again.completed_at == first.completed_at

    def test_reopen_clears_completed_at_and_keeps_completion(self, db: TrellisDB) -> None:
        task = db.create_task("T")
        db.update_status(task.id, "completed")
        reopened = db.update_status(task.id, "in_progress")
        assert reopened.completed_at is None
        assert reopened.completion == 100
        assert reopened.status == "in_progress"

    def test_update_touches_updated_at(self, db: TrellisDB) -> None:
        task = db.create_task("T")
        time.sleep(0.01)
        updated = db.update_task(task.id, title="T")
        assert updated.updated_at > task.updated_at

    def test_update_missing_task(self, db: TrellisDB) -> None:
        with pytest.raises(TaskNotFoundError):
            db.update_status("test-missing", "completed")

    def test_invalid_status_leaves_task_untouched(self, db: TrellisDB) -> None:
        task = db.create_task("T")
        with pytest.raises(ValidationError):
            db.update_task(task.id, title="New", status="bogus")
        assert db.get_task(task.id).title == "T"

    def test_status_change_event_records_values(self, db: TrellisDB) -> None:
        task = db.create_task("T")
        db.update_status(task.id, "in_progress", actor="bob")
        events = [e for e in db.get_task_events(task.id) if e["event_type"] == "status_changed"]
        assert events[0]["old_value"] == "not_started"
        assert events[0]["new_value"] == "in_progress"


class TestIssues:
    def test_issue_defaults_to_open(self, db: TrellisDB) -> None:
        task = db.create_task("T")
        issue = db.add_issue(task.id, "Crash on save")
        assert issue.status == OPEN
        assert issue.resolved_at is None
        assert {OPEN, RESOLVED} <= VALID_ISSUE_STATUSES

    def test_issue_created_resolved_is_stamped(self, db: TrellisDB) -> None:
        task = db.create_task("T")
        issue = db.add_issue(task.id, "Already fixed", status=RESOLVED)
        assert issue.resolved_at is not None
        assert db.get_task(task.id).status == "not_started"

    def test_open_issue_blocks_task(self, db: TrellisDB) -> None:
        task = db.create_task("T", status="in_progress")
        db.add_issue(task.id, "Login button does nothing")
        assert db.get_task(task.id).status == "blocked"

    def test_open_issue_does_not_touch_completed_task(self, db: TrellisDB) -> None:
        task = db.create_task("T", status="completed")
        db.add_issue(task.id, "Typo on page")
        refreshed = db.get_task(task.id)
        assert refreshed.status == "completed"
        assert refreshed.completion == 100

    def test_resolved_issue_does_not_block(self, db: TrellisDB) -> None:
        task = db.create_task("T")
        issue = db.add_issue(task.id, "Fixed already", status="resolved")
        assert issue.resolved_at is not None
        assert db.get_task(task.id).status == "not_started"

    def test_resolving_issue_leaves_task_blocked(self, db: TrellisDB) -> None:
        task = db.create_task("T")
        issue = db.add_issue(task.id, "Crash")
        resolved = db.update_issue_status(issue.id, "resolved")
        assert resolved.status == "resolved"
        assert resolved.resolved_at is not None
        assert db.get_task(task.id).status == "blocked"

    def test_reopening_issue_clears_resolved_at(self, db: TrellisDB) -> None:
        task = db.create_task("T")
        issue = db.add_issue(task.id, "Crash", status="resolved")
        reopened = db.update_issue_status(issue.id, "open")
        assert reopened.resolved_at is None

    def test_add_issue_refreshes_updated_at(self, db: TrellisDB) -> None:
        task = db.create_task("T", status="completed")
        time.sleep(0.01)
        db.add_issue(task.id, "Flaky test")
        assert db.get_task(task.id).updated_at > task.updated_at

    def test_issue_status_change_refreshes_updated_at(self, db: TrellisDB) -> None:
        task = db.create_task("T")
        issue = db.add_issue(task.id, "Broken build")
        before = db.get_task(task.id).updated_at
        time.sleep(0.01)
        db.update_issue_status(issue.id, "resolved")
        assert db.get_task(task.id).updated_at > before

    def test_same_issue_status_is_a_no_op(self, db: TrellisDB) -> None:
        task = db.create_task("T")
        issue = db.add_issue(task.id, "Broken build")
        events_before = len(db.get_task_events(task.id))
        assert db.update_issue_status(issue.id, "open") == issue
        assert len(db.get_task_events(task.id)) == events_before

    def test_issue_on_missing_task(self, db: TrellisDB) -> None:
        with pytest.raises(ParentNotFoundError):
            db.add_issue("test-missing", "Nope")

    def test_missing_issue(self, db: TrellisDB) -> None:
        with pytest.raises(TaskIssueNotFoundError):
            db.update_issue_status(9999, "resolved")

    def test_filter_by_status(self, db: TrellisDB) -> None:
        task = db.create_task("T")
        db.add_issue(task.id, "Open one")
        db.add_issue(task.id, "Deferred one", status="deferred")
        assert [i.title for i in db.get_issues(task.id, status="deferred")] == ["Deferred one"]
        assert len(db.get_issues(task.id)) == 2


class TestFiles:
    def test_add_and_list(self, db: TrellisDB) -> None:
        task = db.create_task("T")
        db.add_file(task.id, "src/app.py", change_note="Add route")
        db.add_file(task.id, "src/models.py")
        files = db.get_files(task.id)
        assert [f.path for f in files] == ["src/app.py", "src/models.py"]
        assert files[0].change_note == "Add route"

    def test_add_file_refreshes_updated_at(self, db: TrellisDB) -> None:
        task = db.create_task("T")
        time.sleep(0.01)
        db.add_file(task.id, "src/app.py")
        assert db.get_task(task.id).updated_at > task.updated_at

    def test_add_file_missing_task(self, db: TrellisDB) -> None:
        with pytest.raises(ParentNotFoundError):
            db.add_file("test-missing", "a.py")


class TestSubtasks:
    def test_subtask_inherits_project(self, db: TrellisDB) -> None:
        project = db.create_project("P")
        parent = db.create_task("Parent", project_id=project.id)
        child = db.create_subtask(parent.id, "Child")
        assert child.parent_id == parent.id
        assert child.project_id == project.id
        assert db.get_task(parent.id).subtasks == [child.id]

    def test_subtask_of_missing_parent(self, db: TrellisDB) -> None:
        with pytest.raises(ParentNotFoundError):
            db.create_subtask("test-missing", "Orphan")

    def test_reparent_to_descendant_rejected(self, db: TrellisDB) -> None:
        root = db.create_task("Root")
        child = db.create_subtask(root.id, "Child")
        grandchild = db.create_subtask(child.id, "Grandchild")
        with pytest.raises(SubtaskCycleError):
            db.update_task(root.id, parent_id=grandchild.id)

    def test_reparent_to_self_rejected(self, db: TrellisDB) -> None:
        task = db.create_task("T")
        with pytest.raises(SubtaskCycleError):
            db.update_task(task.id, parent_id=task.id)

    def test_empty_parent_detaches(self, db: TrellisDB) -> None:
        parent = db.create_task("Parent")
        child = db.create_subtask(parent.id, "Child")
        detached = db.update_task(child.id, parent_id="")
        assert detached.parent_id is None

    def test_deleting_parent_detaches_children(self, db: TrellisDB) -> None:
        parent = db.create_task("Parent")
        child = db.create_subtask(parent.id, "Child")
        assert db.delete_task(parent.id) is True
        assert db.get_task(child.id).parent_id is None


class TestDeleteTask:
    def test_delete_cascades_owned_records(self, populated_db) -> None:  # type: ignore[no-untyped-def]
        db, ids = populated_db.db, populated_db.ids
        db.add_file(ids["a"], "login.html")
        db.add_issue(ids["a"], "Broken")
        db.add_reference(ids["a"], "note", "Use the shared button component")
        assert db.delete_task(ids["a"]) is True

        for table in ("task_files", "task_issues", "task_contexts", "iterations", "task_references", "events"):
            count = db.conn.execute(f"SELECT COUNT(*) FROM {table} WHERE task_id = ?", (ids["a"],)).fetchone()[0]
            assert count == 0, table
        edges = db.conn.execute(
            "SELECT COUNT(*) FROM dependencies WHERE dependent_id = ? OR depends_on_id = ?", (ids["a"], ids["a"])
        ).fetchone()[0]
        assert edges == 0

    def test_delete_missing_returns_false(self, db: TrellisDB) -> None:
        assert db.delete_task("test-missing") is False


class TestListTasks:
    def test_filters(self, populated_db) -> None:  # type: ignore[no-untyped-def]
        db, ids = populated_db.db, populated_db.ids
        completed = db.list_tasks(status="completed")
        assert [t.id for t in completed] == [ids["c"]]
        children = db.list_tasks(parent_id=ids["a"])
        assert [t.id for t in children] == [ids["s"]]
        assert len(db.list_tasks(project_id=ids["project"])) == 4

    def test_pagination(self, db: TrellisDB) -> None:
        for n in range(5):
            db.create_task(f"Task {n}")
        first = db.list_tasks(limit=2)
        second = db.list_tasks(limit=2, offset=2)
        assert len(first) == 2
        assert {t.id for t in first}.isdisjoint({t.id for t in second})

    def test_stats(self, populated_db) -> None:  # type: ignore[no-untyped-def]
        stats = populated_db.db.get_stats()
        assert stats["total"] == 4
        assert stats["by_status"]["completed"] == 1
        assert stats["blocked_count"] == 1
        assert stats["ready_count"] == 2

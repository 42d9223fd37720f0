"""Tests for the dependency graph: edge validation, cycle detection, readiness."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from trellis.core import TrellisDB
from trellis.errors import (
    CircularDependencyError,
    DuplicateDependencyError,
    InvalidOperationError,
    SelfDependencyError,
    TaskNotFoundError,
)


class TestAddDependency:
    def test_add_dependency(self, db: TrellisDB) -> None:
        a = db.create_task("Waits")
        b = db.create_task("First")
        dep = db.add_dependency(a.id, b.id)
        assert dep.dependent_id == a.id
        assert dep.depends_on_id == b.id
        assert db.get_task(a.id).depends_on == [b.id]
        assert db.get_task(b.id).dependents == [a.id]

    def test_self_dependency_rejected(self, db: TrellisDB) -> None:
        a = db.create_task("Self")
        with pytest.raises(SelfDependencyError):
            db.add_dependency(a.id, a.id)

    def test_two_node_cycle_rejected(self, db: TrellisDB) -> None:
        a = db.create_task("A")
        b = db.create_task("B")
        db.add_dependency(a.id, b.id)
        with pytest.raises(CircularDependencyError, match="cycle"):
            db.add_dependency(b.id, a.id)

    def test_long_chain_cycle_rejected(self, db: TrellisDB) -> None:
        """A->B->C->D, then D->A closes a loop."""
        a, b, c, d = (db.create_task(n) for n in "ABCD")
        db.add_dependency(a.id, b.id)
        db.add_dependency(b.id, c.id)
        db.add_dependency(c.id, d.id)
        with pytest.raises(CircularDependencyError):
            db.add_dependency(d.id, a.id)

    def test_diamond_is_not_a_cycle(self, db: TrellisDB) -> None:
        a, b, c, d = (db.create_task(n) for n in "ABCD")
        db.add_dependency(a.id, b.id)
        db.add_dependency(a.id, c.id)
        db.add_dependency(b.id, d.id)
        db.add_dependency(c.id, d.id)
        assert len(db.get_all_dependencies()) == 4

    def test_duplicate_rejected(self, db: TrellisDB) -> None:
        a = db.create_task("A")
        b = db.create_task("B")
        db.add_dependency(a.id, b.id)
        with pytest.raises(DuplicateDependencyError):
            db.add_dependency(a.id, b.id)

    def test_missing_target_is_not_found(self, db: TrellisDB) -> None:
        a = db.create_task("A")
        with pytest.raises(TaskNotFoundError):
            db.add_dependency(a.id, "test-missing")

    def test_missing_dependent_is_not_found(self, db: TrellisDB) -> None:
        b = db.create_task("B")
        with pytest.raises(TaskNotFoundError):
            db.add_dependency("test-missing", b.id)

    def test_rule_violations_share_a_base(self, db: TrellisDB) -> None:
        a = db.create_task("A")
        with pytest.raises(InvalidOperationError):
            db.add_dependency(a.id, a.id)
        # Still a ValueError for callers that only know the builtins
        with pytest.raises(ValueError):
            db.add_dependency(a.id, a.id)

    def test_concurrent_opposite_edges_cannot_form_cycle(self, file_db_path: Path, second_db: TrellisDB) -> None:
        first_db = TrellisDB(file_db_path, prefix="shared", check_same_thread=False)
        a = first_db.create_task("A")
        b = first_db.create_task("B")
        barrier = threading.Barrier(2)
        results: list[str] = []
        errors: list[BaseException] = []

        def link(conn_db: TrellisDB, dependent_id: str, depends_on_id: str) -> None:
            barrier.wait()
            try:
                conn_db.add_dependency(dependent_id, depends_on_id)
                results.append("added")
            except CircularDependencyError:
                results.append("cycle")
            except BaseException as exc:  # noqa: BLE001 - surfaced via the errors list
                errors.append(exc)

        threads = [
            threading.Thread(target=link, args=(first_db, a.id, b.id)),
            threading.Thread(target=link, args=(second_db, b.id, a.id)),
        ]
        try:
            for t in threads:
                t.start()
            for t in threads:
                t.join()
        finally:
            first_db.close()

        assert errors == []
        assert sorted(results) == ["added", "cycle"]
        assert len(second_db.get_all_dependencies()) == 1

    def test_failed_add_leaves_graph_unchanged(self, db: TrellisDB) -> None:
        a = db.create_task("A")
        b = db.create_task("B")
        db.add_dependency(a.id, b.id)
        with pytest.raises(CircularDependencyError):
            db.add_dependency(b.id, a.id)
        assert [(d.dependent_id, d.depends_on_id) for d in db.get_all_dependencies()] == [(a.id, b.id)]
        assert not db.conn.in_transaction


class TestRemoveDependency:
    def test_remove(self, db: TrellisDB) -> None:
        a = db.create_task("A")
        b = db.create_task("B")
        dep = db.add_dependency(a.id, b.id)
        assert db.remove_dependency(dep.id) is True
        assert db.get_dependency(dep.id) is None
        assert db.can_start(a.id) is True

    def test_remove_missing_returns_false(self, db: TrellisDB) -> None:
        assert db.remove_dependency(424242) is False

    def test_reverse_edge_allowed_after_removal(self, db: TrellisDB) -> None:
        a = db.create_task("A")
        b = db.create_task("B")
        dep = db.add_dependency(a.id, b.id)
        db.remove_dependency(dep.id)
        db.add_dependency(b.id, a.id)


class TestCanStart:
    def test_no_dependencies(self, db: TrellisDB) -> None:
        a = db.create_task("Free")
        assert db.can_start(a.id) is True

    def test_chain_unblocks_one_link_at_a_time(self, db: TrellisDB) -> None:
        """A depends on B, B depends on C."""
        a, b, c = (db.create_task(n) for n in "ABC")
        db.add_dependency(a.id, b.id)
        db.add_dependency(b.id, c.id)
        assert db.can_start(c.id) is True
        assert db.can_start(b.id) is False
        assert db.can_start(a.id) is False

        db.update_status(c.id, "completed")
        assert db.can_start(b.id) is True
        assert db.can_start(a.id) is False

        db.update_completion(b.id, 100)
        assert db.can_start(a.id) is True

    def test_only_completed_counts(self, db: TrellisDB) -> None:
        a = db.create_task("A")
        b = db.create_task("B", status="in_progress")
        db.add_dependency(a.id, b.id)
        db.update_completion(b.id, 99)
        assert db.can_start(a.id) is False

    def test_missing_task(self, db: TrellisDB) -> None:
        with pytest.raises(TaskNotFoundError):
            db.can_start("test-missing")

    def test_dependency_views_carry_target_state(self, db: TrellisDB) -> None:
        a = db.create_task("A")
        b = db.create_task("Blocker title", status="in_progress")
        db.add_dependency(a.id, b.id)
        (view,) = db.get_dependencies(a.id)
        assert view.depends_on_title == "Blocker title"
        assert view.depends_on_status == "in_progress"


class TestReadyBlocked:
    def test_ready_excludes_waiting_tasks(self, db: TrellisDB) -> None:
        a = db.create_task("Waiting")
        b = db.create_task("Blocker")
        db.add_dependency(a.id, b.id)
        ready_ids = [t.id for t in db.get_ready()]
        assert a.id not in ready_ids
        assert b.id in ready_ids
        assert [t.id for t in db.get_blocked()] == [a.id]

    def test_completing_blocker_unblocks(self, db: TrellisDB) -> None:
        a = db.create_task("Waiting")
        b = db.create_task("Blocker")
        db.add_dependency(a.id, b.id)
        db.update_status(b.id, "completed")
        assert a.id in [t.id for t in db.get_ready()]
        assert db.get_blocked() == []

    def test_completed_and_issue_blocked_tasks_are_not_ready(self, db: TrellisDB) -> None:
        done = db.create_task("Done", status="completed")
        stuck = db.create_task("Stuck")
        db.add_issue(stuck.id, "Crashes on load")
        ready_ids = [t.id for t in db.get_ready()]
        assert done.id not in ready_ids
        assert stuck.id not in ready_ids

    def test_task_can_start_flag_matches(self, db: TrellisDB) -> None:
        a = db.create_task("A")
        b = db.create_task("B")
        db.add_dependency(a.id, b.id)
        assert db.get_task(a.id).can_start is False
        assert db.get_task(b.id).can_start is True

"""CLI commands for task CRUD: create, show, list, update, status, progress, delete, subtask, issue, file, stats, events."""

from __future__ import annotations

import click

from trellis.cli_common import emit_json, fail, get_db, refresh_summary
from trellis.db_base import OPEN, VALID_ISSUE_STATUSES, VALID_TASK_STATUSES
from trellis.errors import TrellisError
from trellis.models import Task


def _task_line(t: Task) -> str:
    return f"{t.id} [{t.status} {t.completion}%] {t.title}"


@click.command()
@click.argument("title")
@click.option("--description", "-d", default="", help="Description")
@click.option("--project", "project_id", default=None, help="Project ID")
@click.option("--parent", default=None, help="Parent task ID")
@click.option("--status", type=click.Choice(sorted(VALID_TASK_STATUSES)), default="not_started", help="Initial status")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def create(
    ctx: click.Context,
    title: str,
    description: str,
    project_id: str | None,
    parent: str | None,
    status: str,
    as_json: bool,
) -> None:
    """Create a new task."""
    with get_db() as db:
        try:
            task = db.create_task(
                title,
                description=description,
                project_id=project_id,
                parent_id=parent,
                status=status,
                actor=ctx.obj["actor"],
            )
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json(task.to_dict())
        else:
            click.echo(f"Created {task.id}: {task.title}")
        refresh_summary(db)


@click.command()
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show(task_id: str, as_json: bool) -> None:
    """Show task details."""
    with get_db() as db:
        try:
            task = db.get_task(task_id)
        except KeyError:
            fail(f"Not found: {task_id}", as_json=as_json, code="not_found")
        files = db.get_files(task_id)
        issues = db.get_issues(task_id)

        if as_json:
            emit_json({**task.to_dict(), "files": [f.to_dict() for f in files], "issues": [i.to_dict() for i in issues]})
            return

        click.echo(f"ID:          {task.id}")
        click.echo(f"Title:       {task.title}")
        click.echo(f"Status:      {task.status}")
        click.echo(f"Completion:  {task.completion}%")
        if task.project_id:
            click.echo(f"Project:     {task.project_id}")
        if task.parent_id:
            click.echo(f"Parent:      {task.parent_id}")
        if task.subtasks:
            click.echo(f"Subtasks:    {', '.join(task.subtasks)}")
        if task.depends_on:
            click.echo(f"Depends on:  {', '.join(task.depends_on)}")
        if task.dependents:
            click.echo(f"Dependents:  {', '.join(task.dependents)}")
        click.echo(f"Can start:   {'yes' if task.can_start else 'no'}")
        click.echo(f"Created:     {task.created_at}")
        click.echo(f"Updated:     {task.updated_at}")
        if task.completed_at:
            click.echo(f"Completed:   {task.completed_at}")
        if task.description:
            click.echo(f"\n{task.description}")
        if issues:
            click.echo("\nIssues:")
            for i in issues:
                click.echo(f"  #{i.id} [{i.status}] {i.title}")
        if files:
            click.echo("\nFiles:")
            for f in files:
                note = f" - {f.change_note}" if f.change_note else ""
                click.echo(f"  {f.path}{note}")


@click.command("list")
@click.option("--status", type=click.Choice(sorted(VALID_TASK_STATUSES)), default=None, help="Filter by status")
@click.option("--project", "project_id", default=None, help="Filter by project")
@click.option("--parent", default=None, help="Filter by parent task")
@click.option("--limit", default=100, type=int, help="Max results")
@click.option("--offset", default=0, type=int, help="Skip first N results")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_tasks(
    status: str | None,
    project_id: str | None,
    parent: str | None,
    limit: int,
    offset: int,
    as_json: bool,
) -> None:
    """List tasks with optional filters."""
    with get_db() as db:
        found = db.list_tasks(project_id=project_id, status=status, parent_id=parent, limit=limit, offset=offset)
        if as_json:
            emit_json([t.to_dict() for t in found])
            return
        for t in found:
            click.echo(_task_line(t))
        click.echo(f"\n{len(found)} tasks")


@click.command()
@click.argument("task_id")
@click.option("--title", default=None, help="New title")
@click.option("--description", "-d", default=None, help="New description")
@click.option("--status", type=click.Choice(sorted(VALID_TASK_STATUSES)), default=None, help="New status")
@click.option("--completion", type=int, default=None, help="New completion percentage (0-100)")
@click.option("--parent", default=None, help="New parent task ID (empty string to detach)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def update(
    ctx: click.Context,
    task_id: str,
    title: str | None,
    description: str | None,
    status: str | None,
    completion: int | None,
    parent: str | None,
    as_json: bool,
) -> None:
    """Update a task."""
    with get_db() as db:
        try:
            task = db.update_task(
                task_id,
                title=title,
                description=description,
                status=status,
                completion=completion,
                parent_id=parent,
                actor=ctx.obj["actor"],
            )
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json(task.to_dict())
        else:
            click.echo(f"Updated {_task_line(task)}")
        refresh_summary(db)


@click.command()
@click.argument("task_id")
@click.argument("new_status", type=click.Choice(sorted(VALID_TASK_STATUSES)))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def status(ctx: click.Context, task_id: str, new_status: str, as_json: bool) -> None:
    """Set a task's status (completed forces 100%)."""
    with get_db() as db:
        try:
            task = db.update_status(task_id, new_status, actor=ctx.obj["actor"])
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json(task.to_dict())
        else:
            click.echo(_task_line(task))
        refresh_summary(db)


@click.command()
@click.argument("task_id")
@click.argument("completion", type=int)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def progress(ctx: click.Context, task_id: str, completion: int, as_json: bool) -> None:
    """Set a task's completion percentage (100 marks it completed)."""
    with get_db() as db:
        try:
            task = db.update_completion(task_id, completion, actor=ctx.obj["actor"])
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json(task.to_dict())
        else:
            click.echo(_task_line(task))
        refresh_summary(db)


@click.command()
@click.argument("task_id")
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt")
def delete(task_id: str, yes: bool) -> None:
    """Delete a task with its context, iterations and references (subtasks are detached)."""
    if not yes:
        click.confirm(f"Delete {task_id}?", abort=True)
    with get_db() as db:
        if not db.delete_task(task_id):
            fail(f"Not found: {task_id}", code="not_found")
        click.echo(f"Deleted {task_id}")
        refresh_summary(db)


@click.command()
@click.argument("parent_id")
@click.argument("title")
@click.option("--description", "-d", default="", help="Description")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def subtask(ctx: click.Context, parent_id: str, title: str, description: str, as_json: bool) -> None:
    """Create a subtask under PARENT_ID."""
    with get_db() as db:
        try:
            task = db.create_subtask(parent_id, title, description=description, actor=ctx.obj["actor"])
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json(task.to_dict())
        else:
            click.echo(f"Created {task.id}: {task.title} (under {parent_id})")
        refresh_summary(db)


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------


@click.group()
def issue() -> None:
    """Record and resolve blocking issues found on a task."""


@issue.command("add")
@click.argument("task_id")
@click.argument("title")
@click.option("--description", "-d", default=None, help="Details / reproduction steps")
@click.option("--status", "issue_status", type=click.Choice(sorted(VALID_ISSUE_STATUSES)), default=OPEN)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def issue_add(
    ctx: click.Context, task_id: str, title: str, description: str | None, issue_status: str, as_json: bool
) -> None:
    """Add an issue to a task (an open issue blocks the task)."""
    with get_db() as db:
        try:
            found = db.add_issue(task_id, title, description=description, status=issue_status, actor=ctx.obj["actor"])
            task = db.get_task(task_id)
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json({**found.to_dict(), "task_status": task.status})
        else:
            click.echo(f"Added issue #{found.id} to {task_id} (task is now {task.status})")
        refresh_summary(db)


@issue.command("set")
@click.argument("issue_id", type=int)
@click.argument("new_status", type=click.Choice(sorted(VALID_ISSUE_STATUSES)))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def issue_set(ctx: click.Context, issue_id: int, new_status: str, as_json: bool) -> None:
    """Change an issue's status (the task status is left alone)."""
    with get_db() as db:
        try:
            found = db.update_issue_status(issue_id, new_status, actor=ctx.obj["actor"])
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json(found.to_dict())
        else:
            click.echo(f"Issue #{found.id} is now {found.status}")
        refresh_summary(db)


@issue.command("list")
@click.argument("task_id")
@click.option("--status", "issue_status", type=click.Choice(sorted(VALID_ISSUE_STATUSES)), default=None)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def issue_list(task_id: str, issue_status: str | None, as_json: bool) -> None:
    """List a task's issues."""
    with get_db() as db:
        try:
            found = db.get_issues(task_id, status=issue_status)
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json([i.to_dict() for i in found])
            return
        for i in found:
            click.echo(f"#{i.id} [{i.status}] {i.title}")
        click.echo(f"\n{len(found)} issues")


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


@click.group("file")
def file_group() -> None:
    """Track files changed while working on a task."""


@file_group.command("add")
@click.argument("task_id")
@click.argument("path")
@click.option("--note", default=None, help="What changed")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def file_add(ctx: click.Context, task_id: str, path: str, note: str | None, as_json: bool) -> None:
    """Record a file change against a task."""
    with get_db() as db:
        try:
            record = db.add_file(task_id, path, change_note=note, actor=ctx.obj["actor"])
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json(record.to_dict())
        else:
            click.echo(f"Recorded {record.path} on {task_id}")
        refresh_summary(db)


@file_group.command("list")
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def file_list(task_id: str, as_json: bool) -> None:
    """List files recorded against a task."""
    with get_db() as db:
        try:
            found = db.get_files(task_id)
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json([f.to_dict() for f in found])
            return
        for f in found:
            note = f" - {f.change_note}" if f.change_note else ""
            click.echo(f"{f.modified_at}  {f.path}{note}")


# ---------------------------------------------------------------------------
# Overview
# ---------------------------------------------------------------------------


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def stats(as_json: bool) -> None:
    """Show task counts by status, ready/blocked totals and open issues."""
    with get_db() as db:
        s = db.get_stats()
        if as_json:
            emit_json(s)
            return
        click.echo("Status:")
        for name, count in s["by_status"].items():
            click.echo(f"  {name:12} {count}")
        click.echo(f"\nReady:       {s['ready_count']}")
        click.echo(f"Blocked:     {s['blocked_count']}")
        click.echo(f"Open issues: {s['open_issue_count']}")


@click.command()
@click.argument("task_id", required=False)
@click.option("--limit", default=20, type=int, help="Max events")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def events(task_id: str | None, limit: int, as_json: bool) -> None:
    """Show recent activity (for one task, or across all tasks)."""
    with get_db() as db:
        try:
            found = db.get_task_events(task_id, limit=limit) if task_id else db.get_recent_events(limit)
        except KeyError:
            fail(f"Not found: {task_id}", as_json=as_json, code="not_found")
        if as_json:
            emit_json(found)
            return
        for ev in found:
            detail = f" {ev['old_value']} -> {ev['new_value']}" if ev.get("old_value") else ""
            actor = f" by {ev['actor']}" if ev.get("actor") else ""
            click.echo(f"{ev['created_at']}  {ev['task_id']}  {ev['event_type']}{detail}{actor}")


COMMANDS = [create, show, list_tasks, update, status, progress, delete, subtask, issue, file_group, stats, events]

"""CLI commands for projects: project create/list/show/update/rm."""

from __future__ import annotations

import click

from trellis.cli_common import emit_json, fail, get_db, refresh_summary
from trellis.errors import TrellisError


@click.group()
def project() -> None:
    """Manage projects (groups of tasks)."""


@project.command("create")
@click.argument("name")
@click.option("--description", "-d", default="", help="Description")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def project_create(name: str, description: str, as_json: bool) -> None:
    """Create a project."""
    with get_db() as db:
        try:
            p = db.create_project(name, description=description)
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json(p.to_dict())
        else:
            click.echo(f"Created {p.id}: {p.name}")
        refresh_summary(db)


@project.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def project_list(as_json: bool) -> None:
    """List projects with their task counts."""
    with get_db() as db:
        found = db.list_projects()
        if as_json:
            emit_json([p.to_dict() for p in found])
            return
        for p in found:
            click.echo(f"{p.id}  {p.name}  ({p.task_count} tasks)")
        click.echo(f"\n{len(found)} projects")


@project.command("show")
@click.argument("project_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def project_show(project_id: str, as_json: bool) -> None:
    """Show a project and its tasks."""
    with get_db() as db:
        try:
            p = db.get_project(project_id)
        except KeyError:
            fail(f"Not found: {project_id}", as_json=as_json, code="not_found")
        found = db.list_tasks(project_id=p.id, limit=10000)
        if as_json:
            emit_json({**p.to_dict(), "tasks": [t.to_dict() for t in found]})
            return
        click.echo(f"{p.id}: {p.name}")
        if p.description:
            click.echo(f"  {p.description}")
        for t in found:
            click.echo(f"  {t.id} [{t.status} {t.completion}%] {t.title}")


@project.command("update")
@click.argument("project_id")
@click.option("--name", default=None, help="New name")
@click.option("--description", "-d", default=None, help="New description")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def project_update(project_id: str, name: str | None, description: str | None, as_json: bool) -> None:
    """Rename a project or change its description."""
    with get_db() as db:
        try:
            p = db.update_project(project_id, name=name, description=description)
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json(p.to_dict())
        else:
            click.echo(f"Updated {p.id}: {p.name}")
        refresh_summary(db)


@project.command("rm")
@click.argument("project_id")
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt")
def project_rm(project_id: str, yes: bool) -> None:
    """Delete a project and ALL of its tasks."""
    if not yes:
        click.confirm(f"Delete {project_id} and all of its tasks?", abort=True)
    with get_db() as db:
        if not db.delete_project(project_id):
            fail(f"Not found: {project_id}", code="not_found")
        click.echo(f"Deleted {project_id}")
        refresh_summary(db)


COMMANDS = [project]

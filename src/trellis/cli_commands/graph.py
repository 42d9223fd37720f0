"""CLI commands for the dependency graph: dep add/rm/list, can-start, ready, blocked."""

from __future__ import annotations

import click

from trellis.cli_common import emit_json, fail, get_db, refresh_summary
from trellis.errors import TrellisError


@click.group()
def dep() -> None:
    """Manage dependencies between tasks."""


@dep.command("add")
@click.argument("dependent_id")
@click.argument("depends_on_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def dep_add(ctx: click.Context, dependent_id: str, depends_on_id: str, as_json: bool) -> None:
    """DEPENDENT_ID cannot start until DEPENDS_ON_ID is completed."""
    with get_db() as db:
        try:
            d = db.add_dependency(dependent_id, depends_on_id, actor=ctx.obj["actor"])
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json(d.to_dict())
        else:
            click.echo(f"Added dependency #{d.id}: {dependent_id} -> {depends_on_id}")
        refresh_summary(db)


@dep.command("rm")
@click.argument("dependency_id", type=int)
@click.pass_context
def dep_rm(ctx: click.Context, dependency_id: int) -> None:
    """Remove a dependency edge by its ID."""
    with get_db() as db:
        if not db.remove_dependency(dependency_id, actor=ctx.obj["actor"]):
            fail(f"Dependency not found: {dependency_id}", code="not_found")
        click.echo(f"Removed dependency #{dependency_id}")
        refresh_summary(db)


@dep.command("list")
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def dep_list(task_id: str, as_json: bool) -> None:
    """Show what a task depends on and what depends on it."""
    with get_db() as db:
        try:
            depends_on = db.get_dependencies(task_id)
            dependents = db.get_dependents(task_id)
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json(
                {
                    "task_id": task_id,
                    "depends_on": [d.to_dict() for d in depends_on],
                    "dependents": [d.to_dict() for d in dependents],
                }
            )
            return
        click.echo(f"{task_id} depends on:")
        for d in depends_on:
            click.echo(f"  #{d.id} {d.depends_on_id} [{d.depends_on_status}] {d.depends_on_title}")
        if not depends_on:
            click.echo("  (nothing)")
        click.echo("Depended on by:")
        for d in dependents:
            click.echo(f"  #{d.id} {d.dependent_id}")
        if not dependents:
            click.echo("  (nothing)")


@click.command("can-start")
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def can_start(task_id: str, as_json: bool) -> None:
    """Check whether every dependency of a task is completed."""
    with get_db() as db:
        try:
            ok = db.can_start(task_id)
            waiting = [d for d in db.get_dependencies(task_id) if d.depends_on_status != "completed"]
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json({"task_id": task_id, "can_start": ok, "waiting_on": [d.to_dict() for d in waiting]})
            return
        if ok:
            click.echo(f"{task_id} can start")
        else:
            click.echo(f"{task_id} is waiting on: {', '.join(d.depends_on_id for d in waiting)}")


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def ready(as_json: bool) -> None:
    """Show tasks ready to work on (all dependencies completed)."""
    with get_db() as db:
        found = db.get_ready()

        if as_json:
            emit_json([t.to_dict() for t in found])
            return

        for t in found:
            click.echo(f"{t.id} [{t.status} {t.completion}%] {t.title}")
        click.echo(f"\n{len(found)} ready")


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def blocked(as_json: bool) -> None:
    """Show tasks waiting on unfinished dependencies."""
    with get_db() as db:
        found = db.get_blocked()

        if as_json:
            emit_json([t.to_dict() for t in found])
            return

        for t in found:
            click.echo(f"{t.id} [{t.status}] {t.title} <- {', '.join(t.depends_on)}")
        click.echo(f"\n{len(found)} blocked")


COMMANDS = [dep, can_start, ready, blocked]

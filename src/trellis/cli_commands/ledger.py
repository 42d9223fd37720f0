"""CLI commands for the task ledger: context, iteration, ref, replay."""

from __future__ import annotations

import asyncio

import click

from trellis.attachments import store_image
from trellis.cli_common import emit_json, fail, get_db, refresh_summary
from trellis.conversation import record_answer
from trellis.core import attachments_root
from trellis.db_base import VALID_OUTCOMES, VALID_REFERENCE_KINDS
from trellis.errors import TrellisError
from trellis.models import TaskContext


def _print_context(ctx_obj: TaskContext) -> None:
    click.echo(f"Original request:\n  {ctx_obj.original_request}")
    if ctx_obj.notes:
        click.echo(f"\nNotes:\n  {ctx_obj.notes}")
    if ctx_obj.conversation:
        click.echo("\nConversation:")
        for entry in ctx_obj.conversation:
            click.echo(f"  {entry.position}. Q: {entry.question}")
            click.echo(f"     A: {entry.answer}")


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


@click.group()
def context() -> None:
    """Record the original request, notes and planning Q&A for a task."""


@context.command("set")
@click.argument("task_id")
@click.argument("original_request")
@click.option("--notes", default=None, help="Free-form notes")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def context_set(ctx: click.Context, task_id: str, original_request: str, notes: str | None, as_json: bool) -> None:
    """Create a task's context (fails if it already has one)."""
    with get_db() as db:
        try:
            result = db.set_context(task_id, original_request, notes=notes, actor=ctx.obj["actor"])
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json(result.to_dict())
        else:
            click.echo(f"Context set for {task_id}")


@context.command("update")
@click.argument("task_id")
@click.option("--request", "original_request", default=None, help="Replace the original request")
@click.option("--notes", default=None, help="Replace the notes")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def context_update(
    ctx: click.Context, task_id: str, original_request: str | None, notes: str | None, as_json: bool
) -> None:
    """Overwrite only the supplied context fields."""
    with get_db() as db:
        try:
            result = db.update_context(
                task_id, original_request=original_request, notes=notes, actor=ctx.obj["actor"]
            )
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json(result.to_dict())
        else:
            click.echo(f"Context updated for {task_id}")


@context.command("show")
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def context_show(task_id: str, as_json: bool) -> None:
    """Show a task's context and conversation."""
    with get_db() as db:
        try:
            result = db.get_context(task_id)
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if result is None:
            fail(f"Task {task_id} has no context", as_json=as_json, code="context_not_found")
        if as_json:
            emit_json(result.to_dict())
        else:
            _print_context(result)


@context.command("ask")
@click.argument("task_id")
@click.argument("question")
@click.argument("answer")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def context_ask(ctx: click.Context, task_id: str, question: str, answer: str, as_json: bool) -> None:
    """Append a question/answer pair (creates the context if needed)."""
    actor = ctx.obj["actor"]
    with get_db() as db:
        try:
            entry = record_answer(db, task_id, question, answer, actor=actor)
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json(entry.to_dict())
        else:
            click.echo(f"Recorded Q&A #{entry.position} on {task_id}")


# ---------------------------------------------------------------------------
# Iterations
# ---------------------------------------------------------------------------


@click.group()
def iteration() -> None:
    """Record attempts at a task and what was learned."""


@iteration.command("add")
@click.argument("task_id")
@click.argument("approach")
@click.argument("outcome", type=click.Choice(sorted(VALID_OUTCOMES)))
@click.option("--lessons", default=None, help="What was learned")
@click.option("--files", "files_touched", default=None, help="Files touched (comma-separated)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def iteration_add(
    ctx: click.Context,
    task_id: str,
    approach: str,
    outcome: str,
    lessons: str | None,
    files_touched: str | None,
    as_json: bool,
) -> None:
    """Record one attempt. Iterations are numbered 1, 2, 3... per task."""
    with get_db() as db:
        try:
            it = db.add_iteration(
                task_id, approach, outcome, lessons=lessons, files_touched=files_touched, actor=ctx.obj["actor"]
            )
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json(it.to_dict())
        else:
            click.echo(f"Recorded iteration {it.sequence} ({it.outcome}) on {task_id}")
        refresh_summary(db)


@iteration.command("list")
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def iteration_list(task_id: str, as_json: bool) -> None:
    """List a task's iterations in order."""
    with get_db() as db:
        try:
            found = db.list_iterations(task_id)
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json([i.to_dict() for i in found])
            return
        for it in found:
            click.echo(f"#{it.sequence} [{it.outcome}] {it.approach}")
            if it.lessons:
                click.echo(f"    lessons: {it.lessons}")


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------


@click.group()
def ref() -> None:
    """Attach reference material (notes, URLs, snippets, images) to a task."""


@ref.command("add")
@click.argument("task_id")
@click.argument("kind", type=click.Choice(sorted(VALID_REFERENCE_KINDS - {"image"})))
@click.argument("content")
@click.option("--description", "-d", default="", help="What this reference is")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def ref_add(ctx: click.Context, task_id: str, kind: str, content: str, description: str, as_json: bool) -> None:
    """Attach a file path, URL, code snippet or note."""
    with get_db() as db:
        try:
            r = db.add_reference(task_id, kind, content, description=description, actor=ctx.obj["actor"])
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json(r.to_dict())
        else:
            click.echo(f"Added {kind} reference #{r.id} to {task_id}")


@ref.command("image")
@click.argument("task_id")
@click.argument("source")
@click.option("--description", "-d", default="", help="What the image shows")
@click.option("--filename", default=None, help="Original filename")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def ref_image(
    ctx: click.Context, task_id: str, source: str, description: str, filename: str | None, as_json: bool
) -> None:
    """Copy an image (URL, local path or base64) into the attachments and reference it."""
    with get_db() as db:
        try:
            db.get_task(task_id)
            stored = asyncio.run(store_image(source, attachments_root(db.db_path.parent), task_id, filename=filename))
            r = db.add_reference(
                task_id,
                "image",
                stored.relative_path,
                description=description,
                original_filename=stored.original_filename,
                mime_type=stored.mime_type,
                actor=ctx.obj["actor"],
            )
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json({**r.to_dict(), "size": stored.size})
        else:
            click.echo(f"Stored {stored.relative_path} ({stored.size} bytes) as reference #{r.id}")


@ref.command("list")
@click.argument("task_id")
@click.option("--kind", type=click.Choice(sorted(VALID_REFERENCE_KINDS)), default=None, help="Filter by kind")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def ref_list(task_id: str, kind: str | None, as_json: bool) -> None:
    """List a task's references."""
    with get_db() as db:
        try:
            found = db.list_references(task_id, kind=kind)
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json([r.to_dict() for r in found])
            return
        for r in found:
            desc = f" - {r.description}" if r.description else ""
            click.echo(f"#{r.id} [{r.kind}] {r.content}{desc}")


@ref.command("rm")
@click.argument("reference_id", type=int)
@click.pass_context
def ref_rm(ctx: click.Context, reference_id: int) -> None:
    """Remove a reference (an attached image file stays on disk)."""
    with get_db() as db:
        if not db.delete_reference(reference_id, actor=ctx.obj["actor"]):
            fail(f"Reference not found: {reference_id}", code="not_found")
        click.echo(f"Removed reference #{reference_id}")


# ---------------------------------------------------------------------------
# Replay
# ---------------------------------------------------------------------------


@click.command()
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def replay(task_id: str, as_json: bool) -> None:
    """Show everything recorded about a task: context, iterations, references."""
    with get_db() as db:
        try:
            full = db.get_full_context(task_id)
        except TrellisError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            emit_json(full.to_dict())
            return
        t = full.task
        click.echo(f"{t.id}: {t.title} [{t.status} {t.completion}%]")
        click.echo("")
        if full.context is not None:
            _print_context(full.context)
        else:
            click.echo("(no context recorded)")
        if full.iterations:
            click.echo("\nIterations:")
            for it in full.iterations:
                click.echo(f"  #{it.sequence} [{it.outcome}] {it.approach}")
                if it.lessons:
                    click.echo(f"      lessons: {it.lessons}")
        if full.references:
            click.echo("\nReferences:")
            for r in full.references:
                click.echo(f"  #{r.id} [{r.kind}] {r.content}")


COMMANDS = [context, iteration, ref, replay]

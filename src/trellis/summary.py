"""Pre-computed summary generator for agent context.

Reads the trellis DB and generates a compact markdown summary that agents
can read in a single file read (or via the ``trellis://summary`` MCP
resource) at session start.
"""

from __future__ import annotations

import contextlib
import os
import re
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

from trellis.core import TrellisDB
from trellis.db_base import BLOCKED, COMPLETED, IN_PROGRESS, OPEN

STALE_THRESHOLD_DAYS = 3
_READY_LIMIT = 12
_BLOCKED_LIMIT = 10

# Matches C0/C1 control characters except tab/newline (which we handle separately)
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")


def _sanitize_title(text: str) -> str:
    """Sanitize untrusted text for safe markdown interpolation.

    Strips control characters, collapses newlines to spaces, and truncates.
    """
    text = _CONTROL_CHARS_RE.sub("", text)
    text = " ".join(text.replace("\r\n", " ").replace("\r", " ").replace("\n", " ").split())
    if len(text) > 200:
        text = text[:197] + "..."
    return text


def _parse_iso(ts: str) -> datetime:
    """Parse an ISO timestamp into a UTC-aware datetime."""
    try:
        dt = datetime.fromisoformat(ts)
        if dt.tzinfo is None:
            return dt.replace(tzinfo=UTC)
        return dt.astimezone(UTC)
    except (ValueError, TypeError):
        return datetime.now(UTC)


def _bar(done: int, total: int, width: int = 10) -> str:
    filled = int((done / total) * width) if total > 0 else 0
    return "█" * filled + "░" * (width - filled)


def generate_summary(db: TrellisDB) -> str:
    """Generate the summary markdown from current DB state."""
    now = datetime.now(UTC)
    stats = db.get_stats()
    ready = db.get_ready()
    blocked = db.get_blocked()
    in_progress = db.list_tasks(status=IN_PROGRESS, limit=10000)
    issue_blocked = db.list_tasks(status=BLOCKED, limit=10000)
    recent = db.get_recent_events(limit=10)

    lines: list[str] = [f"# Task Pulse (auto-generated {now.isoformat(timespec='seconds')})", ""]

    by_status = stats["by_status"]
    lines.append("## Vitals")
    lines.append(
        f"Not started: {by_status.get('not_started', 0)} | In Progress: {by_status.get(IN_PROGRESS, 0)} | "
        f"Completed: {by_status.get(COMPLETED, 0)} | Blocked: {by_status.get(BLOCKED, 0)} | "
        f"Ready: {stats['ready_count']} | Open issues: {stats['open_issue_count']}"
    )
    lines.append("")

    projects = db.list_projects()
    if projects:
        lines.append("## Projects")
        for project in projects:
            done = len(db.list_tasks(project_id=project.id, status=COMPLETED, limit=10000))
            lines.append(f"- {_sanitize_title(project.name):<40} [{_bar(done, project.task_count)}] {done}/{project.task_count}")
        lines.append("")

    lines.append("## Ready to Work (all dependencies completed)")
    if ready:
        for task in ready[:_READY_LIMIT]:
            state_info = f" ({task.status}, {task.completion}%)" if task.status == IN_PROGRESS else ""
            lines.append(f'- {task.id} "{_sanitize_title(task.title)}"{state_info}')
        if len(ready) > _READY_LIMIT:
            lines.append(f"  ...and {len(ready) - _READY_LIMIT} more")
    else:
        lines.append("- (none)")
    lines.append("")

    lines.append("## In Progress")
    if in_progress:
        for task in in_progress:
            lines.append(f'- {task.id} "{_sanitize_title(task.title)}" {task.completion}%')
    else:
        lines.append("- (none)")
    lines.append("")

    stale_cutoff = now - timedelta(days=STALE_THRESHOLD_DAYS)
    stale = [t for t in in_progress if _parse_iso(t.updated_at) < stale_cutoff]
    if stale:
        lines.append(f"## Stale (in_progress >{STALE_THRESHOLD_DAYS} days, no activity)")
        for task in stale:
            days_ago = (now - _parse_iso(task.updated_at)).days
            lines.append(f'- {task.id} "{_sanitize_title(task.title)}" ({days_ago}d stale)')
        lines.append("")

    lines.append(f"## Waiting on Dependencies (top {_BLOCKED_LIMIT})")
    if blocked:
        for task in blocked[:_BLOCKED_LIMIT]:
            waiting = [d.depends_on_id for d in db.get_dependencies(task.id) if d.depends_on_status != COMPLETED]
            lines.append(f'- {task.id} "{_sanitize_title(task.title)}" waiting on: {", ".join(waiting) or "?"}')
        if len(blocked) > _BLOCKED_LIMIT:
            lines.append(f"  ...and {len(blocked) - _BLOCKED_LIMIT} more")
    else:
        lines.append("- (none)")
    lines.append("")

    if issue_blocked:
        lines.append("## Blocked by Issues")
        for task in issue_blocked:
            open_issues = db.get_issues(task.id, status=OPEN)
            titles = "; ".join(_sanitize_title(i.title) for i in open_issues) or "(no open issues)"
            lines.append(f'- {task.id} "{_sanitize_title(task.title)}": {titles}')
        lines.append("")

    lines.append("## Recent Activity (last 10 events)")
    if recent:
        for evt in recent:
            evt_type = evt["event_type"].upper().replace("_", " ")
            title = _sanitize_title(evt.get("task_title", evt["task_id"]))
            old_v = _sanitize_title(evt["old_value"] or "")[:50]
            new_v = _sanitize_title(evt["new_value"] or "")[:50]
            detail = ""
            if old_v and new_v:
                detail = f" {old_v}\u2192{new_v}"
            elif new_v:
                detail = f" {new_v}"
            lines.append(f'- {evt_type} {evt["task_id"]} "{title}"{detail}')
    else:
        lines.append("- (no recent activity)")
    lines.append("")

    return "\n".join(lines)


def write_summary(db: TrellisDB, output_path: str | Path) -> None:
    """Generate and write the summary atomically (write-temp then rename)."""
    summary = generate_summary(db)
    output = Path(output_path)
    fd, tmp_name = tempfile.mkstemp(dir=output.parent, suffix=".tmp", prefix=".summary_")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(summary)
        os.replace(tmp_name, str(output))
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise

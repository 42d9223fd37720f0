"""CLI tests: context, Q&A, iterations, references, replay."""

from __future__ import annotations

import base64
import json
from pathlib import Path

from click.testing import CliRunner

from tests.cli.conftest import _extract_id
from trellis.cli import cli
from trellis.core import TRELLIS_DIR_NAME

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def _task(runner: CliRunner, title: str = "Ledger task") -> str:
    return _extract_id(runner.invoke(cli, ["create", title]).output)


class TestContextCommands:
    def test_set_and_show(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        task_id = _task(runner)
        result = runner.invoke(cli, ["context", "set", task_id, "Add CSV export", "--notes", "Excel users"])
        assert result.exit_code == 0
        shown = runner.invoke(cli, ["context", "show", task_id])
        assert "Add CSV export" in shown.output
        assert "Excel users" in shown.output

    def test_set_twice_fails(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        task_id = _task(runner)
        runner.invoke(cli, ["context", "set", task_id, "First"])
        result = runner.invoke(cli, ["context", "set", task_id, "Second", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output)["code"] == "context_exists"

    def test_show_without_context(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        task_id = _task(runner)
        result = runner.invoke(cli, ["context", "show", task_id, "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output)["code"] == "context_not_found"

    def test_update_blank_notes(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        task_id = _task(runner)
        runner.invoke(cli, ["context", "set", task_id, "Request", "--notes", "Old notes"])
        result = runner.invoke(cli, ["context", "update", task_id, "--notes", "", "--json"])
        data = json.loads(result.output)
        assert data["notes"] == ""
        assert data["original_request"] == "Request"

    def test_ask_creates_context(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        task_id = _task(runner)
        first = runner.invoke(cli, ["context", "ask", task_id, "Which format?", "CSV"])
        assert "Recorded Q&A #1" in first.output
        second = runner.invoke(cli, ["context", "ask", task_id, "Headers?", "Yes"])
        assert "Recorded Q&A #2" in second.output
        shown = runner.invoke(cli, ["context", "show", task_id])
        assert "1. Q: Which format?" in shown.output
        assert "2. Q: Headers?" in shown.output


class TestIterationCommands:
    def test_add_and_list(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        task_id = _task(runner)
        first = runner.invoke(cli, ["iteration", "add", task_id, "Stream rows", "failed", "--lessons", "OOM on 1M rows"])
        assert "Recorded iteration 1" in first.output
        second = runner.invoke(cli, ["iteration", "add", task_id, "Chunked writer", "success"])
        assert "Recorded iteration 2" in second.output
        listed = runner.invoke(cli, ["iteration", "list", task_id])
        assert "#1 [failed] Stream rows" in listed.output
        assert "lessons: OOM on 1M rows" in listed.output

    def test_bad_outcome_rejected_by_choice(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        task_id = _task(runner)
        result = runner.invoke(cli, ["iteration", "add", task_id, "Guess", "meh"])
        assert result.exit_code == 2

    def test_missing_task(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["iteration", "add", "test-nope", "Guess", "failed", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output)["code"] == "parent_not_found"


class TestReferenceCommands:
    def test_add_list_rm(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        task_id = _task(runner)
        added = json.loads(
            runner.invoke(cli, ["ref", "add", task_id, "url", "https://example.com/rfc", "-d", "RFC", "--json"]).output
        )
        listed = runner.invoke(cli, ["ref", "list", task_id])
        assert "[url] https://example.com/rfc - RFC" in listed.output
        assert runner.invoke(cli, ["ref", "rm", str(added["id"])]).exit_code == 0
        assert runner.invoke(cli, ["ref", "rm", str(added["id"])]).exit_code == 1

    def test_image_from_local_file(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, root = cli_in_project
        task_id = _task(runner)
        image = root / "mockup.png"
        image.write_bytes(PNG_BYTES)
        result = runner.invoke(cli, ["ref", "image", task_id, str(image), "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["original_filename"] == "mockup.png"
        assert (root / TRELLIS_DIR_NAME / data["content"]).read_bytes() == PNG_BYTES

    def test_image_from_base64(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        task_id = _task(runner)
        result = runner.invoke(cli, ["ref", "image", task_id, base64.b64encode(PNG_BYTES).decode()])
        assert result.exit_code == 0
        assert f"attachments/{task_id}/" in result.output

    def test_image_bad_source(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        task_id = _task(runner)
        result = runner.invoke(cli, ["ref", "image", task_id, "nope !!", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output)["code"] == "attachment_error"


class TestReplay:
    def test_text(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        task_id = _task(runner, "Import users")
        runner.invoke(cli, ["context", "set", task_id, "Bulk import from CSV"])
        runner.invoke(cli, ["iteration", "add", task_id, "pandas", "partial"])
        result = runner.invoke(cli, ["replay", task_id])
        assert result.exit_code == 0
        assert "Import users" in result.output
        assert "Bulk import from CSV" in result.output
        assert "#1 [partial] pandas" in result.output

    def test_json_without_context(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        task_id = _task(runner)
        data = json.loads(runner.invoke(cli, ["replay", task_id, "--json"]).output)
        assert data["context"] is None
        assert data["task"]["id"] == task_id

    def test_missing_task(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        assert runner.invoke(cli, ["replay", "test-nope"]).exit_code == 1

"""Tests for the command-line entry point."""

import asyncio
import json
from datetime import datetime
from pathlib import Path

import pytest
import yaml

from main import EXIT_FAILURE, EXIT_OK, EXIT_REJECTED, main_async, parse_args


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch) -> Path:
    """A config file pointing at a JSON store holding tasks 1 (2 days) and 2 (3 days)."""
    for var in ("CRITPATH_STORAGE_PATH", "CRITPATH_SCHEDULE_TIMEZONE", "CRITPATH_LOGGING_LEVEL"):
        monkeypatch.delenv(var, raising=False)

    store_path = tmp_path / "tasks.json"
    store_path.write_text(
        json.dumps(
            {
                "tasks": [
                    {"id": 1, "title": "Design", "duration": 2},
                    {"id": 2, "title": "Build", "duration": 3},
                ],
                "dependencies": [],
            },
        ),
    )
    config_path = tmp_path / "critpath.yaml"
    config_path.write_text(yaml.dump({"storage": {"path": str(store_path)}, "logging_level": "WARNING"}))
    return tmp_path


def run(workspace: Path, *argv: str) -> int:
    return asyncio.run(main_async(parse_args(["--config", str(workspace / "critpath.yaml"), *argv])))


class TestParseArgs:
    """Test argument parsing."""

    def test_add(self):
        """Test positional ids are parsed as integers."""
        args = parse_args(["add", "4", "2"])

        assert (args.command, args.task, args.depends_on) == ("add", 4, 2)
        assert args.config is None

    def test_debug_sets_log_level(self):
        """Test --debug is shorthand for DEBUG logging."""
        assert parse_args(["--debug", "schedule"]).log_level == "DEBUG"

    def test_preview_edges(self):
        """Test TASK:DEPENDS_ON pairs."""
        assert parse_args(["preview", "4:2", "2:4"]).edges == [(4, 2), (2, 4)]

    def test_malformed_edge(self):
        """Test a badly formed pair is a usage error."""
        with pytest.raises(SystemExit):
            parse_args(["preview", "4-2"])

    def test_task_add(self):
        """Test the nested task subcommand and its options."""
        args = parse_args(["task", "add", "Docs", "--duration", "3", "--due", "2024-07-01"])

        assert (args.command, args.task_command, args.title, args.duration) == ("task", "add", "Docs", 3)
        assert args.due == datetime(2024, 7, 1)

    def test_task_remove(self):
        """Test the task id is parsed as an integer."""
        args = parse_args(["task", "remove", "4"])

        assert (args.command, args.task_command, args.task) == ("task", "remove", 4)

    def test_malformed_due_date(self):
        """Test a due date must be ISO 8601."""
        with pytest.raises(SystemExit):
            parse_args(["task", "add", "Docs", "--due", "next week"])

    def test_command_required(self):
        """Test a subcommand must be given."""
        with pytest.raises(SystemExit):
            parse_args([])


class TestMainAsync:
    """Test commands against a JSON store."""

    def test_add_prints_schedule(self, workspace, capsys):
        """Test adding an edge persists it and prints the new schedule."""
        assert run(workspace, "add", "2", "1") == EXIT_OK

        payload = json.loads(capsys.readouterr().out)
        assert payload["project_duration"] == 5
        assert payload["critical_path"] == [1, 2]

        stored = json.loads((workspace / "tasks.json").read_text())
        assert stored["dependencies"] == [{"task_id": 2, "depends_on_id": 1, "is_draft": False}]

    def test_cycle_exit_code(self, workspace, capsys):
        """Test a rejected edge exits with the rejection code."""
        assert run(workspace, "add", "2", "1") == EXIT_OK
        capsys.readouterr()

        assert run(workspace, "add", "1", "2") == EXIT_REJECTED

        payload = json.loads(capsys.readouterr().out)
        assert "circular dependency" in payload["error"]
        assert payload["cycle"][0] == payload["cycle"][-1]

    def test_validation_exit_code(self, workspace, capsys):
        """Test an unknown task id is rejected."""
        assert run(workspace, "add", "1", "9") == EXIT_REJECTED
        assert "does not exist" in json.loads(capsys.readouterr().out)["error"]

    def test_critical_path(self, workspace, capsys):
        """Test the read-only critical chain report."""
        run(workspace, "add", "2", "1")
        capsys.readouterr()

        assert run(workspace, "critical-path") == EXIT_OK

        payload = json.loads(capsys.readouterr().out)
        assert payload["total_duration"] == 5
        assert [task["id"] for task in payload["critical_path"]] == [1, 2]

    def test_duration(self, workspace, capsys):
        """Test changing a duration reschedules."""
        assert run(workspace, "duration", "1", "4") == EXIT_OK
        assert json.loads(capsys.readouterr().out)["project_duration"] == 4

    def test_preview(self, workspace, capsys):
        """Test a jointly cyclic batch is reported as rejected."""
        assert run(workspace, "preview", "2:1", "1:2") == EXIT_REJECTED

        statuses = [check["status"] for check in json.loads(capsys.readouterr().out)]
        assert statuses == ["ok", "rejected"]

    def test_validate(self, workspace, capsys):
        """Test a consistent store validates."""
        assert run(workspace, "validate") == EXIT_OK
        assert json.loads(capsys.readouterr().out)["is_valid"] is True

    def test_missing_config(self, tmp_path):
        """Test an explicit config path that does not exist."""
        assert run(tmp_path, "schedule") == EXIT_FAILURE

    def test_corrupt_store(self, workspace, capsys):
        """Test an unreadable store is an operation failure."""
        (workspace / "tasks.json").write_text("{")

        assert run(workspace, "schedule") == EXIT_FAILURE
        assert json.loads(capsys.readouterr().out) == {"error": "Operation failed"}

    def test_validate_reports_stored_self_dependency(self, workspace, capsys):
        """Test a task stored as its own prerequisite is reported, not rejected."""
        (workspace / "tasks.json").write_text(
            json.dumps(
                {
                    "tasks": [{"id": 1, "title": "Design", "duration": 2}],
                    "dependencies": [{"task_id": 1, "depends_on_id": 1}],
                },
            ),
        )

        assert run(workspace, "validate") == EXIT_FAILURE

        payload = json.loads(capsys.readouterr().out)
        assert payload["is_valid"] is False
        assert payload["errors"] == ["Task 1 depends on itself"]

    def test_validate_reports_stored_cycle(self, workspace, capsys):
        """Test a cycle written around the service is found."""
        (workspace / "tasks.json").write_text(
            json.dumps(
                {
                    "tasks": [{"id": 1, "duration": 2}, {"id": 2, "duration": 3}],
                    "dependencies": [
                        {"task_id": 1, "depends_on_id": 2},
                        {"task_id": 2, "depends_on_id": 1},
                    ],
                },
            ),
        )

        assert run(workspace, "validate") == EXIT_FAILURE
        assert "Cycle detected" in json.loads(capsys.readouterr().out)["errors"][0]

    def test_store_of_wrong_shape(self, workspace, capsys):
        """Test valid JSON that is not a task document is an operation failure."""
        (workspace / "tasks.json").write_text("[1, 2]")

        assert run(workspace, "schedule") == EXIT_FAILURE
        assert json.loads(capsys.readouterr().out) == {"error": "Operation failed"}

    def test_task_add(self, workspace, capsys):
        """Test a new task is stored and scheduled."""
        assert run(workspace, "task", "add", "Docs", "--duration", "6", "--due", "2024-07-01") == EXIT_OK

        payload = json.loads(capsys.readouterr().out)
        assert payload["task"]["id"] == 3
        assert payload["task"]["title"] == "Docs"
        assert payload["task"]["due_date"].startswith("2024-07-01")
        assert payload["schedule"]["project_duration"] == 6
        assert payload["schedule"]["critical_path"] == [3]

        stored = json.loads((workspace / "tasks.json").read_text())
        assert [task["id"] for task in stored["tasks"]] == [1, 2, 3]

    def test_task_add_invalid_duration(self, workspace, capsys):
        """Test a zero duration is rejected and nothing is written."""
        before = (workspace / "tasks.json").read_text()

        assert run(workspace, "task", "add", "Docs", "--duration", "0") == EXIT_REJECTED
        assert "positive whole number" in json.loads(capsys.readouterr().out)["error"]
        assert (workspace / "tasks.json").read_text() == before

    def test_task_remove(self, workspace, capsys):
        """Test removing a prerequisite drops its edge and shortens the project."""
        run(workspace, "add", "2", "1")
        capsys.readouterr()

        assert run(workspace, "task", "remove", "1") == EXIT_OK

        assert json.loads(capsys.readouterr().out)["project_duration"] == 3
        stored = json.loads((workspace / "tasks.json").read_text())
        assert stored["dependencies"] == []
        assert [task["id"] for task in stored["tasks"]] == [2]

    def test_task_remove_unknown(self, workspace, capsys):
        """Test removing a missing task is rejected."""
        assert run(workspace, "task", "remove", "9") == EXIT_REJECTED
        assert "does not exist" in json.loads(capsys.readouterr().out)["error"]

    def test_logs_carry_correlation_id(self, workspace, capsys):
        """Test every log line of one invocation shares a correlation id."""
        run(workspace, "add", "1", "9")

        events = [json.loads(line) for line in capsys.readouterr().err.splitlines() if line.strip()]
        assert events
        assert len({event["correlation_id"] for event in events}) == 1
        rolled_back = next(e for e in events if e["event"] == "store_transaction_rolled_back")
        assert rolled_back["operation"] == "add_dependency"

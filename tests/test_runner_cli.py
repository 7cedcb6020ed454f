"""Test the `looper` CLI subcommands."""

from __future__ import annotations

import json
import shlex
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from looper import runner
from looper.paths import log_dir_for_root

FAKE_AGENT = Path(__file__).resolve().parent / "fake_agent.py"


def _project(tmp_path: Path) -> Path:
    project = tmp_path / "project"
    project.mkdir()
    store = {
        "schema_version": 1,
        "source_files": [],
        "tasks": [
            {"id": "T1", "title": "Write parser", "priority": 1, "status": "todo"},
            {"id": "T2", "title": "Ship it", "priority": 2, "status": "done"},
            {"id": "T3", "title": "Add docs", "priority": 3, "status": "todo"},
        ],
    }
    (project / "to-do.json").write_text(json.dumps(store, indent=2), encoding="utf-8")
    return project


def _exit_code(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as excinfo:
        runner.main(argv)
    return excinfo.value.code


class TestLs:
    def test_table_lists_matching_tasks(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        project = _project(tmp_path)

        assert _exit_code(["ls", "todo", "--project-dir", str(project)]) == 0

        out = capsys.readouterr().out
        assert "T1" in out
        assert "T3" in out
        assert "T2" not in out

    def test_json_output(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        project = _project(tmp_path)

        assert _exit_code(["ls", "done", "--json", "--project-dir", str(project)]) == 0

        out = capsys.readouterr().out
        assert json.loads(out) == {"id": "T2", "title": "Ship it", "priority": 2, "status": "done"}

    def test_legacy_flag_and_explicit_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        project = _project(tmp_path)

        code = _exit_code(["--ls", "blocked", str(project / "to-do.json"), "--json"])

        assert code == 0
        assert capsys.readouterr().out == ""

    def test_invalid_status(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        project = _project(tmp_path)

        assert _exit_code(["ls", "wip", "--project-dir", str(project)]) == 1

        assert "invalid status 'wip'" in capsys.readouterr().err

    def test_missing_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert _exit_code(["ls", "todo", "--project-dir", str(tmp_path)]) == 1

        assert "Error: to-do.json not found." in capsys.readouterr().err


class TestTail:
    def test_no_log_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        project = _project(tmp_path)

        code = _exit_code(["tail", "--project-dir", str(project), "--log-root", str(tmp_path / "logs")])

        assert code == 1
        assert "No log file found." in capsys.readouterr().err

    def test_log_without_activity(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        project = _project(tmp_path)
        log_root = tmp_path / "logs"
        log_dir = log_dir_for_root(log_root, project.resolve())
        log_dir.mkdir(parents=True)
        log_file = log_dir / "run.jsonl"
        log_file.write_text('{"type":"thread.started"}\n', encoding="utf-8")

        code = _exit_code(["tail", "--project-dir", str(project), "--log-root", str(log_root)])

        assert code == 1
        assert f"No agent activity found in {log_file}." in capsys.readouterr().err

    def test_prints_latest_activity(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        project = _project(tmp_path)
        log_root = tmp_path / "logs"
        log_dir = log_dir_for_root(log_root, project.resolve())
        log_dir.mkdir(parents=True)
        event = {
            "type": "item.started",
            "item": {"type": "command_execution", "command": "/bin/bash -lc 'pytest -q'"},
            "looper_iteration": 2,
        }
        (log_dir / "run.jsonl").write_text(json.dumps(event) + "\n", encoding="utf-8")

        code = _exit_code(["tail", "--project-dir", str(project), "--log-root", str(log_root)])

        assert code == 0
        assert capsys.readouterr().out == "Iter 2 | Task T1 (todo) | Command (start): pytest -q\n"


class TestRun:
    def test_run_completes_backlog(self, tmp_path: Path) -> None:
        project = _project(tmp_path)
        agent = f"{shlex.quote(sys.executable)} {shlex.quote(str(FAKE_AGENT))}"

        code = _exit_code(
            [
                "run",
                "--project-dir",
                str(project),
                "--agent-bin",
                agent,
                "--log-root",
                str(tmp_path / "logs"),
                "--no-git-init",
                "--max-iterations",
                "5",
            ]
        )

        assert code == 0
        data = json.loads((project / "to-do.json").read_text(encoding="utf-8"))
        assert {task["status"] for task in data["tasks"]} == {"done"}

    def test_missing_agent_exits_with_error(self, tmp_path: Path) -> None:
        project = _project(tmp_path)

        code = _exit_code(
            [
                "--project-dir",
                str(project),
                "--agent-bin",
                "looper-missing-agent",
                "--log-root",
                str(tmp_path / "logs"),
            ]
        )

        assert code == 1

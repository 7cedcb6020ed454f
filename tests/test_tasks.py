"""Test next-task selection over the backlog."""

from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from looper.tasks import has_open_tasks, select_next_task, task_summary, tasks_by_status


def _task(task_id: str, status: str, priority: int = 3) -> dict:
    return {"id": task_id, "title": f"Task {task_id}", "priority": priority, "status": status}


class TestSelectNextTask:
    def test_doing_task_wins_over_higher_priority_todo(self) -> None:
        tasks = [_task("T1", "todo", 1), _task("T5", "doing", 5)]

        assert select_next_task(tasks)["id"] == "T5"

    def test_multiple_doing_picks_lowest_id(self) -> None:
        tasks = [_task("T9", "doing", 1), _task("T3", "doing", 5)]

        assert select_next_task(tasks)["id"] == "T3"

    def test_todo_ordered_by_priority_then_id(self) -> None:
        tasks = [
            _task("T4", "todo", 2),
            _task("T2", "todo", 1),
            _task("T1", "todo", 2),
            _task("T3", "done", 1),
        ]

        assert select_next_task(tasks)["id"] == "T2"

    def test_priority_tie_uses_lexicographic_id(self) -> None:
        tasks = [_task("T10", "todo", 1), _task("T2", "todo", 1)]

        # String comparison: "T10" < "T2".
        assert select_next_task(tasks)["id"] == "T10"

    def test_blocked_only_when_no_todo(self) -> None:
        tasks = [_task("T1", "blocked", 1), _task("T2", "todo", 5)]
        assert select_next_task(tasks)["id"] == "T2"

        tasks = [_task("T1", "blocked", 4), _task("T2", "blocked", 2), _task("T3", "done", 1)]
        assert select_next_task(tasks)["id"] == "T2"

    def test_all_done_returns_none(self) -> None:
        tasks = [_task("T1", "done"), _task("T2", "done")]

        assert select_next_task(tasks) is None
        assert select_next_task([]) is None

    def test_missing_priority_sorts_last(self) -> None:
        tasks = [{"id": "T1", "status": "todo"}, _task("T2", "todo", 5)]

        assert select_next_task(tasks)["id"] == "T2"


def test_has_open_tasks_counts_anything_not_done() -> None:
    assert has_open_tasks([_task("T1", "blocked")]) is True
    assert has_open_tasks([_task("T1", "done")]) is False
    assert has_open_tasks([]) is False


def test_tasks_by_status_and_summary() -> None:
    tasks = [_task("T1", "todo"), _task("T2", "done"), _task("T3", "todo")]

    assert [t["id"] for t in tasks_by_status(tasks, "todo")] == ["T1", "T3"]
    assert task_summary(tasks) == {"todo": 2, "doing": 0, "blocked": 0, "done": 1}

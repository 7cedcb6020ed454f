from __future__ import annotations

from typing import Any, Optional

from .constants import (
    TASK_STATUS_BLOCKED,
    TASK_STATUS_DOING,
    TASK_STATUS_DONE,
    TASK_STATUS_TODO,
    TASK_STATUSES,
)

_MISSING_PRIORITY = 1_000_000


def _task_id(task: dict[str, Any]) -> str:
    value = task.get("id")
    return "" if value is None else str(value)


def _task_priority(task: dict[str, Any]) -> int:
    value = task.get("priority")
    if isinstance(value, bool) or not isinstance(value, int):
        return _MISSING_PRIORITY
    return value


def tasks_by_status(tasks: list[dict[str, Any]], status: str) -> list[dict[str, Any]]:
    return [task for task in tasks if task.get("status") == status]


def has_open_tasks(tasks: list[dict[str, Any]]) -> bool:
    return any(task.get("status") != TASK_STATUS_DONE for task in tasks)


def select_next_task(tasks: list[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Pick the task the next iteration should work on.

    Order: a `doing` task (lowest id), then the `todo` task with the lowest
    `(priority, id)`, then the `blocked` task by the same rule so the agent
    can try to unblock it. Returns None when nothing is left.
    """
    doing = tasks_by_status(tasks, TASK_STATUS_DOING)
    if doing:
        return min(doing, key=_task_id)

    for status in (TASK_STATUS_TODO, TASK_STATUS_BLOCKED):
        candidates = tasks_by_status(tasks, status)
        if candidates:
            return min(candidates, key=lambda task: (_task_priority(task), _task_id(task)))
    return None


def task_summary(tasks: list[dict[str, Any]]) -> dict[str, int]:
    counts = {status: 0 for status in TASK_STATUSES}
    for task in tasks:
        status = str(task.get("status") or "")
        counts[status] = counts.get(status, 0) + 1
    return counts

"""Parse the agent's final message and apply it to the task store."""

from __future__ import annotations

import copy
import json
import subprocess
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from pydantic import ValidationError

from .constants import SUMMARY_MAX_CHARS
from .models import IterationSummary
from .store import normalize_tasks
from .utils import _now_iso, shorten


def parse_summary(data: Any) -> Optional[IterationSummary]:
    """Parse a decoded final message, returning None when it is not an object."""
    if not isinstance(data, dict):
        return None
    try:
        return IterationSummary.model_validate(data)
    except ValidationError as exc:
        logger.warning("Unable to parse iteration summary: {}", exc)
        return None


def read_summary(path: Optional[Path]) -> Optional[IterationSummary]:
    """Read the last-message file written by the agent.

    `path` is None when no final message was requested; that is silent.
    A missing file or one that is not a JSON object logs a warning. All of
    these yield None.
    """
    if path is None:
        return None
    if not path.exists():
        logger.warning("No last message written: {}", path)
        return None
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.warning("Unable to read last message {}: {}", path, exc)
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Last message is not valid JSON: {}", path)
        return None
    summary = parse_summary(data)
    if summary is None:
        logger.warning("Last message is not a JSON object: {}", path)
    return summary


def _union(existing: Any, additions: list[str]) -> list[str]:
    current = [str(item) for item in existing] if isinstance(existing, list) else []
    return sorted(set(current) | set(additions))


def apply_summary(
    data: dict[str, Any],
    summary: Optional[IterationSummary],
    *,
    now: Optional[str] = None,
) -> tuple[dict[str, Any], bool]:
    """Apply an iteration summary to a store document.

    Args:
        data: Store document as loaded from disk. Not modified.
        summary: Parsed final message, or None.
        now: Timestamp to record as `updated_at` (defaults to the current UTC time).

    Returns:
        A tuple of `(new_data, changed)`. When nothing applies the original
        document is returned unchanged with `changed=False`.
    """
    if summary is None or not summary.actionable:
        return data, False

    tasks = normalize_tasks(data)
    if not any(str(task.get("id")) == summary.task_id for task in tasks):
        logger.warning("Summary refers to unknown task id: {}", summary.task_id)
        return data, False

    stamp = now or _now_iso()
    updated = copy.deepcopy(data)
    for task in updated.get("tasks", []):
        if not isinstance(task, dict) or str(task.get("id")) != summary.task_id:
            continue
        task["status"] = summary.outcome.value
        task["updated_at"] = stamp
        if summary.files:
            task["files"] = _union(task.get("files"), summary.files)
        if summary.blockers:
            task["blockers"] = _union(task.get("blockers"), summary.blockers)
    return updated, True


def describe_summary(summary: Optional[IterationSummary]) -> Optional[str]:
    if summary is None:
        return None
    if summary.task_id and summary.status:
        return f"{summary.task_id} -> {summary.status}"
    if summary.summary:
        return shorten(summary.summary, SUMMARY_MAX_CHARS)
    return None


def run_hook(
    hook: str,
    summary: Optional[IterationSummary],
    last_message_path: Optional[Path],
    label: str,
    cwd: Path,
) -> Optional[int]:
    """Run the post-iteration hook as `<hook> <task_id> <status> <last_message> <label>`.

    Failures are logged and never stop the loop.

    Returns:
        The hook exit code, or None when it could not be started.
    """
    args = [
        hook,
        (summary.task_id if summary else None) or "",
        (summary.status if summary else None) or "",
        str(last_message_path) if last_message_path else "",
        label,
    ]
    try:
        result = subprocess.run(args, cwd=cwd, check=False)
    except OSError as exc:
        logger.warning("Hook {} failed to start: {}", hook, exc)
        return None
    if result.returncode != 0:
        logger.warning("Hook {} exited with code {}", hook, result.returncode)
    return result.returncode

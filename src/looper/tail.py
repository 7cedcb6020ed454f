"""Show the latest human-relevant activity from the persisted JSONL logs."""

from __future__ import annotations

import json
import sys
import time
from pathlib import Path
from typing import Any, Callable, Optional, TextIO

from .constants import (
    DEFAULT_TODO_FILE,
    FOLLOW_POLL_SECONDS,
    TAIL_AGENT_MAX_CHARS,
    TAIL_COMMAND_MAX_CHARS,
    TAIL_REASONING_MAX_CHARS,
)
from .events import (
    KIND_COMMAND_COMPLETED,
    KIND_COMMAND_STARTED,
    KIND_REASONING,
    MESSAGE_KINDS,
    TailMessage,
    classify_event,
)
from .io_utils import _iter_jsonl
from .paths import find_todo_root, latest_log_file, log_dir_for_root, project_root
from .store import read_tasks
from .tasks import select_next_task
from .utils import shorten


def resolve_tail_root(workdir: Path, todo_name: str = DEFAULT_TODO_FILE) -> Path:
    """Return the project root whose logs `tail` reads."""
    return find_todo_root(workdir, todo_name) or project_root(workdir)


def find_latest_log(log_root: Path, workdir: Path, todo_name: str = DEFAULT_TODO_FILE) -> Optional[Path]:
    root = resolve_tail_root(workdir, todo_name)
    return latest_log_file(log_dir_for_root(log_root, root))


def extract_last_message(log_file: Path) -> Optional[TailMessage]:
    """Return the last interesting event of a log, or None."""
    last: Optional[TailMessage] = None
    for event in _iter_jsonl(log_file):
        message = classify_event(event)
        if message is not None:
            last = message
    return last


def _summary_fields(text: str) -> tuple[str, str]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return "", ""
    if not isinstance(data, dict):
        return "", ""
    task_id = data.get("task_id")
    status = data.get("status")
    return (
        str(task_id) if task_id not in (None, "") else "",
        str(status) if status not in (None, "") else "",
    )


def tail_prefix(
    iteration: Optional[int],
    task_id: str = "",
    task_status: str = "",
    tasks: Optional[list[dict[str, Any]]] = None,
) -> str:
    """Render `Iter <n> | Task <id> (<status>)`, falling back to the selector's pick."""
    if not task_id or not task_status:
        current = select_next_task(tasks or [])
        if current is not None:
            task_id = task_id or str(current.get("id") or "")
            task_status = task_status or str(current.get("status") or "")

    prefix = f"Iter {iteration if iteration is not None else '?'}"
    if task_id:
        prefix += f" | Task {task_id} ({task_status})" if task_status else f" | Task {task_id}"
    return prefix


def format_tail_message(message: TailMessage, tasks: Optional[list[dict[str, Any]]] = None) -> str:
    task_id = task_status = ""
    if message.kind in MESSAGE_KINDS:
        task_id, task_status = _summary_fields(message.text)
    prefix = tail_prefix(message.iteration, task_id, task_status, tasks)

    if message.kind in MESSAGE_KINDS:
        return f"{prefix} | {shorten(message.text, TAIL_AGENT_MAX_CHARS)}"
    if message.kind == KIND_REASONING:
        return f"{prefix} | Reasoning: {shorten(message.text, TAIL_REASONING_MAX_CHARS)}"
    if message.kind == KIND_COMMAND_STARTED:
        return f"{prefix} | Command (start): {shorten(message.text, TAIL_COMMAND_MAX_CHARS)}"
    if message.kind == KIND_COMMAND_COMPLETED:
        return f"{prefix} | Command (done): {shorten(message.text, TAIL_COMMAND_MAX_CHARS)}"
    return f"{prefix} | {shorten(message.text, TAIL_REASONING_MAX_CHARS)}"


class TailReader:
    """Read the latest activity line for a project, once or continuously."""

    def __init__(self, log_root: Path, workdir: Path, todo_name: str = DEFAULT_TODO_FILE):
        self.log_root = log_root
        self.workdir = workdir
        self.todo_name = todo_name

    def latest_log(self) -> Optional[Path]:
        return find_latest_log(self.log_root, self.workdir, self.todo_name)

    def _tasks(self) -> list[dict[str, Any]]:
        root = find_todo_root(self.workdir, self.todo_name)
        if root is None:
            return []
        return read_tasks(root / self.todo_name)

    def render(self, log_file: Path) -> Optional[str]:
        message = extract_last_message(log_file)
        if message is None:
            return None
        return format_tail_message(message, self._tasks())

    def follow(
        self,
        out: Optional[TextIO] = None,
        *,
        interval: float = FOLLOW_POLL_SECONDS,
        max_polls: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> int:
        """Print new activity as it appears.

        A message is printed when it differs from the previous one or when a
        newer log file shows up. Runs until interrupted or `max_polls` polls.

        Returns:
            The number of lines printed.
        """
        stream = out or sys.stdout
        last_message: Optional[TailMessage] = None
        last_file: Optional[Path] = None
        printed = 0
        polls = 0
        while max_polls is None or polls < max_polls:
            polls += 1
            log_file = self.latest_log()
            if log_file is not None and log_file.is_file():
                message = extract_last_message(log_file)
                if message is not None and (message != last_message or log_file != last_file):
                    stream.write(format_tail_message(message, self._tasks()) + "\n")
                    stream.flush()
                    printed += 1
                    last_message = message
                    last_file = log_file
            if max_polls is not None and polls >= max_polls:
                break
            sleep(interval)
        return printed

"""Resolve the per-project log directory and the files of a run."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .constants import DEFAULT_TODO_FILE, SUMMARY_SCHEMA_FILE
from .git_utils import _git_toplevel
from .utils import _hash_path, _safe_label, _slugify


def project_root(workdir: Path) -> Path:
    """Return the git top level containing `workdir`, or `workdir` itself."""
    return _git_toplevel(workdir) or workdir


def find_todo_root(workdir: Path, todo_name: str = DEFAULT_TODO_FILE) -> Optional[Path]:
    """Walk up from `workdir` to the nearest directory holding a task store."""
    current = workdir
    while True:
        if (current / todo_name).is_file():
            return current
        if current.parent == current:
            return None
        current = current.parent


def log_dir_for_root(log_root: Path, root: Path) -> Path:
    root_str = str(root)
    return log_root / f"{_slugify(root.name)}-{_hash_path(root_str)}"


@dataclass(frozen=True)
class RunPaths:
    """Files owned by one run of the loop."""

    log_dir: Path
    run_id: str

    @property
    def log_file(self) -> Path:
        return self.log_dir / f"{self.run_id}.jsonl"

    @property
    def summary_schema(self) -> Path:
        return self.log_dir / SUMMARY_SCHEMA_FILE

    def last_message_file(self, label: str) -> Path:
        return self.log_dir / f"{self.run_id}-{_safe_label(label)}.last.json"


def allocate_run_paths(log_dir: Path, run_id: str) -> RunPaths:
    """Return paths for a new run, suffixing `run_id` while a log with that id exists."""
    paths = RunPaths(log_dir=log_dir, run_id=run_id)
    suffix = 1
    while paths.log_file.exists():
        suffix += 1
        paths = RunPaths(log_dir=log_dir, run_id=f"{run_id}-{suffix}")
    return paths


def latest_log_file(log_dir: Path) -> Optional[Path]:
    """Return the most recently modified `*.jsonl` in `log_dir`."""
    if not log_dir.is_dir():
        return None
    newest: Optional[Path] = None
    newest_mtime = -1.0
    for path in log_dir.glob("*.jsonl"):
        try:
            mtime = path.stat().st_mtime
        except OSError:
            continue
        if mtime > newest_mtime:
            newest, newest_mtime = path, mtime
    return newest

"""Read, validate and atomically rewrite the task store (`to-do.json`)."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from .errors import StoreMissingError
from .io_utils import _atomic_write_json, _load_data_with_error
from .models import validate_store_data


def load_store(path: Path) -> tuple[dict[str, Any], list[str]]:
    """Load the task store and validate it.

    Args:
        path: Path to the task store file.

    Returns:
        A tuple of `(data, errors)`. `errors` holds parse and schema problems
        and is empty when the store is valid.

    Raises:
        StoreMissingError: If the file does not exist.
    """
    if not path.exists():
        raise StoreMissingError(path)
    data, err = _load_data_with_error(path, {})
    if err:
        return data, [err]
    return data, validate_store_data(data)


def validate_store_file(path: Path) -> list[str]:
    if not path.exists():
        return [f"{path.name}: file not found"]
    _, errors = load_store(path)
    return errors


def save_store(path: Path, data: dict[str, Any]) -> None:
    _atomic_write_json(path, data)


def read_tasks(path: Path) -> list[dict[str, Any]]:
    """Best-effort read of the task list, for display commands.

    Returns an empty list when the store is missing or unreadable.
    """
    data, err = _load_data_with_error(path, {})
    if err:
        return []
    return normalize_tasks(data)


def normalize_tasks(data: dict[str, Any]) -> list[dict[str, Any]]:
    tasks = data.get("tasks") if isinstance(data, dict) else None
    if not isinstance(tasks, list):
        return []
    return [task for task in tasks if isinstance(task, dict)]

"""Write the JSON Schema files the agent is pointed at."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

from loguru import logger

from .io_utils import _atomic_write_json, _load_data_with_error

_STRING_LIST = {"type": "array", "items": {"type": "string"}}

TODO_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "Looper Todo",
    "type": "object",
    "additionalProperties": False,
    "required": ["schema_version", "source_files", "tasks"],
    "properties": {
        "schema_version": {"type": "integer", "const": 1},
        "project": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "name": {"type": "string"},
                "root": {"type": "string"},
            },
        },
        "source_files": _STRING_LIST,
        "tasks": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "required": ["id", "title", "priority", "status"],
                "properties": {
                    "id": {"type": "string"},
                    "title": {"type": "string", "minLength": 1},
                    "priority": {"type": "integer", "minimum": 1, "maximum": 5},
                    "status": {"type": "string", "enum": ["todo", "doing", "blocked", "done"]},
                    "details": {"type": "string"},
                    "steps": _STRING_LIST,
                    "blockers": _STRING_LIST,
                    "tags": _STRING_LIST,
                    "files": _STRING_LIST,
                    "depends_on": _STRING_LIST,
                    "created_at": {"type": "string", "format": "date-time"},
                    "updated_at": {"type": "string", "format": "date-time"},
                },
            },
        },
    },
}

SUMMARY_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "Looper Iteration Summary",
    "type": "object",
    "additionalProperties": False,
    "required": ["task_id", "status"],
    "properties": {
        "task_id": {"type": ["string", "null"]},
        "status": {"type": "string", "enum": ["done", "blocked", "skipped"]},
        "summary": {"type": "string"},
        "files": _STRING_LIST,
        "blockers": _STRING_LIST,
    },
}


def schema_path_for(todo_path: Path) -> Path:
    """Return the schema path that sits next to a task store (`x.json` -> `x.schema.json`)."""
    name = todo_path.name
    stem = name[: -len(".json")] if name.endswith(".json") else name
    return todo_path.with_name(f"{stem}.schema.json")


def write_schema_if_missing(schema_path: Path) -> None:
    if not schema_path.exists():
        _atomic_write_json(schema_path, TODO_SCHEMA)
        logger.debug("Wrote task schema: {}", schema_path)
        return
    ensure_schema_has_source_files(schema_path)


def ensure_schema_has_source_files(schema_path: Path) -> bool:
    """Add the `source_files` property to a schema written by an older version.

    Returns:
        True when the schema file was rewritten.
    """
    data, err = _load_data_with_error(schema_path, {})
    if err:
        logger.warning("Unable to read schema {}: {}", schema_path, err)
        return False

    properties = data.get("properties")
    required = data.get("required")
    if isinstance(properties, dict) and "source_files" in properties:
        if isinstance(required, list) and "source_files" in required:
            return False

    updated = copy.deepcopy(data)
    if not isinstance(updated.get("properties"), dict):
        updated["properties"] = {}
    updated["properties"].setdefault("source_files", copy.deepcopy(_STRING_LIST))
    required_list = updated.get("required") if isinstance(updated.get("required"), list) else []
    updated["required"] = sorted(set(required_list) | {"source_files"})
    _atomic_write_json(schema_path, updated)
    logger.info("Added source_files to schema: {}", schema_path)
    return True


def write_summary_schema_if_missing(schema_path: Path) -> None:
    if schema_path.exists():
        return
    _atomic_write_json(schema_path, SUMMARY_SCHEMA)

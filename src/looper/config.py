"""Load loop settings from defaults, `.looper/config.yaml`, the environment and CLI flags."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

from loguru import logger

from .constants import (
    CONFIG_DIR_NAME,
    CONFIG_FILE,
    DEFAULT_AGENT_BIN,
    DEFAULT_LOG_ROOT,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_MODEL,
    DEFAULT_REASONING_EFFORT,
    TASK_STATUSES,
)
from .io_utils import _load_data_with_error

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class LooperSettings:
    """Resolved settings for one invocation."""

    max_iterations: int = DEFAULT_MAX_ITERATIONS
    agent_bin: str = DEFAULT_AGENT_BIN
    model: str = DEFAULT_MODEL
    reasoning_effort: str = DEFAULT_REASONING_EFFORT
    yolo: bool = True
    full_auto: bool = False
    profile: Optional[str] = None
    json_log: bool = True
    progress: bool = True
    enforce_output_schema: bool = False
    log_root: Path = field(default_factory=lambda: Path(DEFAULT_LOG_ROOT).expanduser())
    apply_summary: bool = True
    git_init: bool = True
    hook: Optional[str] = None
    delay_seconds: float = 0.0
    statuses: tuple[str, ...] = TASK_STATUSES

    @property
    def mode(self) -> str:
        if self.yolo:
            return "yolo"
        if self.full_auto:
            return "full-auto"
        return "default"


# Environment variable -> setting name.
ENV_VARS: dict[str, str] = {
    "MAX_ITERATIONS": "max_iterations",
    "CODEX_BIN": "agent_bin",
    "CODEX_MODEL": "model",
    "CODEX_REASONING_EFFORT": "reasoning_effort",
    "CODEX_YOLO": "yolo",
    "CODEX_FULL_AUTO": "full_auto",
    "CODEX_PROFILE": "profile",
    "CODEX_JSON_LOG": "json_log",
    "CODEX_PROGRESS": "progress",
    "CODEX_ENFORCE_OUTPUT_SCHEMA": "enforce_output_schema",
    "LOOPER_BASE_DIR": "log_root",
    "LOOPER_APPLY_SUMMARY": "apply_summary",
    "LOOPER_GIT_INIT": "git_init",
    "LOOPER_HOOK": "hook",
    "LOOP_DELAY_SECONDS": "delay_seconds",
    "LOOPER_STATUSES": "statuses",
}

_FIELD_TYPES = {f.name: f.type for f in fields(LooperSettings)}


def load_looper_config(project_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional config file.

    Args:
        project_dir: Project root directory.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    path = project_dir.resolve() / CONFIG_DIR_NAME / CONFIG_FILE
    if not path.exists():
        return {}, None
    data, err = _load_data_with_error(path, {})
    if err:
        return {}, err
    return data, None


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"expected a boolean, got {value!r}")


def _coerce_statuses(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",")]
    elif isinstance(value, (list, tuple)):
        items = [str(part).strip() for part in value]
    else:
        raise ValueError(f"expected a list of statuses, got {value!r}")
    statuses = tuple(item for item in items if item)
    if not statuses:
        raise ValueError("status list is empty")
    return statuses


def _coerce(name: str, value: Any) -> Any:
    kind = _FIELD_TYPES[name]
    if name == "statuses":
        return _coerce_statuses(value)
    if name == "log_root":
        return Path(str(value)).expanduser()
    if kind == "bool":
        return _coerce_bool(value)
    if kind == "int":
        return int(value)
    if kind == "float":
        return float(value)
    if kind == "Optional[str]":
        text = str(value).strip() if value is not None else ""
        return text or None
    return str(value)


def _apply(settings: LooperSettings, values: Mapping[str, Any], source: str) -> LooperSettings:
    updates: dict[str, Any] = {}
    for name, value in values.items():
        if name not in _FIELD_TYPES:
            logger.warning("Ignoring unknown setting {!r} from {}", name, source)
            continue
        if value is None:
            continue
        try:
            updates[name] = _coerce(name, value)
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring invalid {} from {}: {}", name, source, exc)
    return replace(settings, **updates) if updates else settings


def resolve_settings(
    *,
    file_config: Optional[Mapping[str, Any]] = None,
    env: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> LooperSettings:
    """Merge setting sources; later sources win.

    Args:
        file_config: Parsed `.looper/config.yaml` mapping.
        env: Environment mapping (defaults to `os.environ`).
        overrides: Values from CLI flags; `None` entries are ignored.

    Returns:
        The resolved settings.
    """
    settings = LooperSettings()
    if file_config:
        settings = _apply(settings, file_config, CONFIG_FILE)

    environ = os.environ if env is None else env
    env_values = {name: environ[var] for var, name in ENV_VARS.items() if var in environ}
    if env_values:
        settings = _apply(settings, env_values, "environment")

    if overrides:
        settings = _apply(settings, overrides, "command line")
    return settings

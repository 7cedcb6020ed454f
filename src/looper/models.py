"""Pydantic models for the task store and the per-iteration summary."""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .constants import SUMMARY_STATUS_SKIPPED
from .utils import _coerce_string_list


class TaskStatus(str, Enum):
    """Status of a task in the backlog."""

    TODO = "todo"
    DOING = "doing"
    BLOCKED = "blocked"
    DONE = "done"


class SummaryStatus(str, Enum):
    """Outcome the agent reports for one iteration."""

    DONE = "done"
    BLOCKED = "blocked"
    SKIPPED = "skipped"


class ProjectInfo(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    root: Optional[str] = None


class Task(BaseModel):
    """One backlog entry."""

    model_config = ConfigDict(extra="forbid", strict=True)

    id: str
    title: str = Field(min_length=1)
    priority: int = Field(ge=1, le=5)
    status: TaskStatus
    details: Optional[str] = None
    steps: Optional[list[str]] = None
    blockers: Optional[list[str]] = None
    tags: Optional[list[str]] = None
    files: Optional[list[str]] = None
    depends_on: Optional[list[str]] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _status_from_string(cls, value: Any) -> Any:
        # Strict mode refuses plain strings for enums; the store holds strings.
        if isinstance(value, str):
            try:
                return TaskStatus(value)
            except ValueError:
                return value
        return value


class TaskStore(BaseModel):
    """The whole `to-do.json` document."""

    model_config = ConfigDict(extra="forbid")

    schema_version: Literal[1]
    project: Optional[ProjectInfo] = None
    source_files: list[str]
    tasks: list[Task]

    @model_validator(mode="after")
    def _unique_task_ids(self) -> "TaskStore":
        seen: set[str] = set()
        duplicates: list[str] = []
        for task in self.tasks:
            if task.id in seen and task.id not in duplicates:
                duplicates.append(task.id)
            seen.add(task.id)
        if duplicates:
            raise ValueError(f"duplicate task ids: {', '.join(duplicates)}")
        return self


def validate_store_data(data: Any) -> list[str]:
    """Validate a raw store document.

    Args:
        data: Parsed JSON value of the task store.

    Returns:
        A list of human-readable problems; empty when the document is valid.
    """
    if not isinstance(data, dict):
        return [f"expected object, got {type(data).__name__}"]
    try:
        TaskStore.model_validate(data)
    except ValidationError as exc:
        errors: list[str] = []
        for err in exc.errors():
            loc = ".".join(str(part) for part in err.get("loc", ())) or "<root>"
            errors.append(f"{loc}: {err.get('msg')}")
        return errors
    return []


class IterationSummary(BaseModel):
    """Final message of an iteration, parsed leniently.

    Unknown fields are ignored and list fields accept loose input so a
    slightly off-contract agent reply still yields a usable summary.
    """

    model_config = ConfigDict(extra="ignore")

    task_id: Optional[str] = None
    status: Optional[str] = None
    summary: Optional[str] = None
    files: list[str] = Field(default_factory=list)
    blockers: list[str] = Field(default_factory=list)

    @field_validator("task_id", "status", "summary", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, (dict, list)):
            return None
        text = str(value).strip()
        return text or None

    @field_validator("files", "blockers", mode="before")
    @classmethod
    def _string_list(cls, value: Any) -> list[str]:
        return _coerce_string_list(value)

    @property
    def outcome(self) -> Optional[SummaryStatus]:
        """The reported status as a known variant, or None when unrecognised."""
        if not self.status:
            return None
        try:
            return SummaryStatus(self.status)
        except ValueError:
            return None

    @property
    def actionable(self) -> bool:
        """True when applying this summary would change the store."""
        outcome = self.outcome
        return bool(self.task_id) and outcome is not None and outcome.value != SUMMARY_STATUS_SKIPPED

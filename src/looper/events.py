"""Annotate agent output lines and append them to the run's JSONL log."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .constants import PROGRESS_MAX_CHARS, RAW_EVENT_TYPE
from .utils import _clean_text, shorten

KIND_AGENT_MESSAGE = "agent_message"
KIND_ASSISTANT_MESSAGE = "assistant_message"
KIND_REASONING = "reasoning"
KIND_COMMAND_STARTED = "command_started"
KIND_COMMAND_COMPLETED = "command_completed"

MESSAGE_KINDS = {KIND_AGENT_MESSAGE, KIND_ASSISTANT_MESSAGE}

_ASSISTANT_TYPES = {"assistant", "assistant_message", "assistant_response"}
_PROGRESS_ASSISTANT_TYPES = _ASSISTANT_TYPES | {"message"}
_TOOL_TYPES = {"tool_use", "tool", "tool_call", "tool_request"}
_RESULT_TYPES = {"result", "final", "done"}
_SHELL_PREFIX_RE = re.compile(r"^/bin/bash -lc ")


@dataclass(frozen=True)
class TailMessage:
    """The human-relevant part of one logged event."""

    kind: str
    iteration: Optional[int]
    text: str


def annotate_line(line: str, run_id: str, label: str, iteration: int) -> dict[str, Any]:
    """Tag one line of agent output with run metadata.

    JSON objects get `looper_run_id`, `looper_label` and `looper_iteration`
    merged in. Anything else is kept verbatim under `raw` in a
    `looper.raw` event.
    """
    meta = {
        "looper_run_id": run_id,
        "looper_label": label,
        "looper_iteration": iteration,
    }
    try:
        parsed = json.loads(line)
    except (json.JSONDecodeError, ValueError):
        parsed = None
    if isinstance(parsed, dict):
        annotated = dict(parsed)
        annotated.update(meta)
        return annotated
    return {"type": RAW_EVENT_TYPE, **meta, "raw": line}


class EventLog:
    """Append-only JSONL writer for one run."""

    def __init__(self, path: Path, run_id: str):
        self.path = path
        self.run_id = run_id
        self.count = 0

    def create(self) -> None:
        """Create the log file for a fresh run.

        Raises:
            FileExistsError: If a log already exists at `path`; it is never emptied.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "x", encoding="utf-8"):
            pass

    def append(self, event: dict[str, Any]) -> None:
        line = json.dumps(event, ensure_ascii=False, separators=(",", ":")) + "\n"
        try:
            line.encode("utf-8")
        except UnicodeEncodeError:
            # Undecodable agent bytes arrive as lone surrogates; keep them as \udcXX escapes.
            line = json.dumps(event, ensure_ascii=True, separators=(",", ":")) + "\n"
        with open(self.path, "a", encoding="utf-8") as handle:
            handle.write(line)
            handle.flush()
        self.count += 1

    def record(self, line: str, label: str, iteration: int) -> dict[str, Any]:
        """Annotate one output line, append it, and return the stored event."""
        event = annotate_line(line, self.run_id, label, iteration)
        self.append(event)
        return event


def _first_text(*candidates: Any) -> Optional[str]:
    for value in candidates:
        if isinstance(value, str) and value:
            return value
    return None


def _content_text(container: Any) -> Optional[str]:
    if not isinstance(container, dict):
        return None
    content = container.get("content")
    if isinstance(content, list) and content and isinstance(content[0], dict):
        text = content[0].get("text")
        if isinstance(text, str):
            return text
    return None


def assistant_text(event: dict[str, Any]) -> Optional[str]:
    """Extract assistant text from the loosely typed message shapes agents emit."""
    return _first_text(
        _content_text(event.get("message")),
        _content_text(event),
        event.get("content") if isinstance(event.get("content"), str) else None,
        event.get("text"),
        event.get("output_text"),
    )


def _clean_command(value: Any) -> str:
    text = _SHELL_PREFIX_RE.sub("", _clean_text(value))
    for quote in ('"', "'"):
        if text.startswith(quote):
            text = text[1:]
        if text.endswith(quote):
            text = text[:-1]
    return text


def _iteration_of(event: dict[str, Any]) -> Optional[int]:
    value = event.get("looper_iteration")
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return None
    return value


def classify_event(event: dict[str, Any]) -> Optional[TailMessage]:
    """Map an annotated event to a TailMessage, or None if it is not interesting."""
    event_type = event.get("type")
    item = event.get("item") if isinstance(event.get("item"), dict) else {}
    item_type = item.get("type")
    iteration = _iteration_of(event)

    if event_type == "item.completed" and item_type == "agent_message":
        return TailMessage(KIND_AGENT_MESSAGE, iteration, _clean_text(item.get("text")))
    if event_type in _ASSISTANT_TYPES:
        text = _first_text(
            _content_text(event.get("message")),
            _content_text(event),
            event.get("text"),
            event.get("output_text"),
        )
        return TailMessage(KIND_ASSISTANT_MESSAGE, iteration, _clean_text(text))
    if event_type == "item.completed" and item_type == "reasoning":
        return TailMessage(KIND_REASONING, iteration, _clean_text(item.get("text")))
    if item_type == "command_execution":
        if event_type == "item.started":
            return TailMessage(KIND_COMMAND_STARTED, iteration, _clean_command(item.get("command")))
        if event_type == "item.completed":
            return TailMessage(KIND_COMMAND_COMPLETED, iteration, _clean_command(item.get("command")))
    return None


def render_progress(event: dict[str, Any]) -> Optional[str]:
    """Render a compact live-progress line for an annotated event."""
    event_type = event.get("type") or event.get("event")
    if not event_type:
        return None

    if event_type in _PROGRESS_ASSISTANT_TYPES:
        text = assistant_text(event)
        return f"AI: {shorten(text, PROGRESS_MAX_CHARS)}" if text else None
    if event_type in _TOOL_TYPES:
        name = _first_text(event.get("tool_name"), event.get("name"))
        return f"Tool: {name}" if name else None
    if event_type == "tool_result":
        return "Tool: error" if event.get("is_error") is True else "Tool: ok"
    if event_type in _RESULT_TYPES:
        return "Result: done"

    message = classify_event(event)
    if message is None or not message.text:
        return None
    if message.kind == KIND_AGENT_MESSAGE:
        return f"AI: {shorten(message.text, PROGRESS_MAX_CHARS)}"
    if message.kind == KIND_REASONING:
        return f"Reasoning: {shorten(message.text, PROGRESS_MAX_CHARS)}"
    if message.kind == KIND_COMMAND_STARTED:
        return f"Command: {shorten(message.text, PROGRESS_MAX_CHARS)}"
    return None

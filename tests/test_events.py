"""Test event annotation, the JSONL run log and progress rendering."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from looper.events import (
    KIND_AGENT_MESSAGE,
    KIND_ASSISTANT_MESSAGE,
    KIND_COMMAND_COMPLETED,
    KIND_COMMAND_STARTED,
    KIND_REASONING,
    EventLog,
    TailMessage,
    annotate_line,
    classify_event,
    render_progress,
)


class TestAnnotateLine:
    def test_json_object_is_merged_with_metadata(self) -> None:
        event = annotate_line('{"type":"item.completed","item":{"type":"reasoning"}}', "run-1", "iter-2", 2)

        assert event == {
            "type": "item.completed",
            "item": {"type": "reasoning"},
            "looper_run_id": "run-1",
            "looper_label": "iter-2",
            "looper_iteration": 2,
        }

    def test_metadata_overrides_agent_fields(self) -> None:
        event = annotate_line('{"type":"x","looper_iteration":99}', "run-1", "iter-1", 1)

        assert event["looper_iteration"] == 1

    def test_plain_text_becomes_raw_event(self) -> None:
        event = annotate_line("warning: something odd", "run-1", "bootstrap", 0)

        assert event == {
            "type": "looper.raw",
            "looper_run_id": "run-1",
            "looper_label": "bootstrap",
            "looper_iteration": 0,
            "raw": "warning: something odd",
        }

    def test_json_array_becomes_raw_event(self) -> None:
        event = annotate_line("[1, 2, 3]", "run-1", "iter-1", 1)

        assert event["type"] == "looper.raw"
        assert event["raw"] == "[1, 2, 3]"


def test_event_log_appends_one_compact_line_per_event(tmp_path: Path) -> None:
    path = tmp_path / "logs" / "run-1.jsonl"
    log = EventLog(path, "run-1")
    log.create()

    log.record('{"type": "thread.started"}', "iter-1", 1)
    log.record("not json", "iter-1", 1)

    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert lines[0] == (
        '{"type":"thread.started","looper_run_id":"run-1","looper_label":"iter-1","looper_iteration":1}'
    )
    assert json.loads(lines[1])["raw"] == "not json"
    assert log.count == 2

    with pytest.raises(FileExistsError):
        log.create()
    assert len(path.read_text(encoding="utf-8").splitlines()) == 2


def test_undecodable_output_is_kept_as_escapes(tmp_path: Path) -> None:
    path = tmp_path / "run-1.jsonl"
    log = EventLog(path, "run-1")
    log.create()
    line = b"bad \xff byte".decode("utf-8", "surrogateescape")

    log.record(line, "iter-1", 1)

    text = path.read_text(encoding="utf-8")
    assert "\\udcff" in text
    raw = json.loads(text)["raw"]
    assert raw.encode("utf-8", "surrogateescape") == b"bad \xff byte"


class TestClassifyEvent:
    def test_agent_message(self) -> None:
        event = {
            "type": "item.completed",
            "item": {"type": "agent_message", "text": "line one\nline two"},
            "looper_iteration": 3,
        }

        assert classify_event(event) == TailMessage(KIND_AGENT_MESSAGE, 3, "line one line two")

    def test_assistant_message_content_list(self) -> None:
        event = {"type": "assistant", "message": {"content": [{"text": "hello"}]}, "looper_iteration": 1}

        assert classify_event(event) == TailMessage(KIND_ASSISTANT_MESSAGE, 1, "hello")

    def test_reasoning(self) -> None:
        event = {"type": "item.completed", "item": {"type": "reasoning", "text": "\tthinking\t"}}

        assert classify_event(event) == TailMessage(KIND_REASONING, None, "thinking")

    def test_command_started_and_completed(self) -> None:
        item = {"type": "command_execution", "command": "/bin/bash -lc 'pytest -q'"}

        started = classify_event({"type": "item.started", "item": item, "looper_iteration": 2})
        completed = classify_event({"type": "item.completed", "item": item, "looper_iteration": 2})

        assert started == TailMessage(KIND_COMMAND_STARTED, 2, "pytest -q")
        assert completed == TailMessage(KIND_COMMAND_COMPLETED, 2, "pytest -q")

    def test_uninteresting_events(self) -> None:
        assert classify_event({"type": "thread.started"}) is None
        assert classify_event({"type": "looper.raw", "raw": "text"}) is None

    def test_negative_iteration_is_unknown(self) -> None:
        event = {"type": "item.completed", "item": {"type": "agent_message", "text": "x"}, "looper_iteration": -1}

        assert classify_event(event).iteration is None


class TestRenderProgress:
    def test_agent_message(self) -> None:
        event = {"type": "item.completed", "item": {"type": "agent_message", "text": "Done with T1"}}

        assert render_progress(event) == "AI: Done with T1"

    def test_assistant_text_is_truncated(self) -> None:
        event = {"type": "assistant", "text": "y" * 200}

        assert render_progress(event) == "AI: " + "y" * 120 + "..."

    def test_tool_events(self) -> None:
        assert render_progress({"type": "tool_use", "name": "shell"}) == "Tool: shell"
        assert render_progress({"type": "tool_result", "is_error": True}) == "Tool: error"
        assert render_progress({"type": "tool_result"}) == "Tool: ok"
        assert render_progress({"type": "result"}) == "Result: done"

    def test_reasoning_and_command(self) -> None:
        reasoning = {"type": "item.completed", "item": {"type": "reasoning", "text": "plan"}}
        command = {"type": "item.started", "item": {"type": "command_execution", "command": "ls"}}

        assert render_progress(reasoning) == "Reasoning: plan"
        assert render_progress(command) == "Command: ls"

    def test_nothing_for_other_events(self) -> None:
        assert render_progress({"type": "thread.started"}) is None
        assert render_progress({"type": "looper.raw", "raw": "x"}) is None
        assert render_progress({}) is None

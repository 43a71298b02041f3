"""Tests for structured task lifecycle events."""

import json
import logging

import pytest

from tiered_orchestrator.core.event_log import Event, TaskEventLogger
from tiered_orchestrator.core.task import Task, Tier


@pytest.fixture
def task():
    return Task(id="task-123", description="x", files_owned=("a.ts",), tier=Tier.DEEP, attempt=2)


@pytest.fixture
def session_file(tmp_path):
    return tmp_path / "logs" / "sessions" / "task-123.jsonl"


class TestLoggingSink:
    def test_emits_record_with_task_fields(self, task, caplog):
        with caplog.at_level(logging.INFO, logger="tiered_orchestrator.events"):
            TaskEventLogger().info(Event.ATTEMPT_START, task, retry=True)

        record = caplog.records[-1]
        assert record.getMessage() == "attempt_start"
        assert record.task_id == "task-123"
        assert record.tier == "deep"
        assert record.event == "attempt_start"
        assert record.attempt == 2
        assert record.event_data == {"retry": True}

    def test_levels(self, task, caplog):
        events = TaskEventLogger()
        with caplog.at_level(logging.INFO, logger="tiered_orchestrator.events"):
            events.warn(Event.PATCH_REJECTED, task, reason="No diff block found in response")
            events.error(Event.TASK_ABORT, task, error=ValueError("boom"))

        assert [r.levelno for r in caplog.records[-2:]] == [logging.WARNING, logging.ERROR]
        assert caplog.records[-1].event_data == {"error": "boom"}

    def test_process_event_has_no_task(self, caplog):
        with caplog.at_level(logging.INFO, logger="tiered_orchestrator.events"):
            TaskEventLogger().process_event(Event.ORCHESTRATOR_START, tasks=3)

        record = caplog.records[-1]
        assert record.event == "orchestrator_start"
        assert not hasattr(record, "task_id")


class TestSessionFiles:
    def test_disabled_by_default(self, task, tmp_path, session_file):
        TaskEventLogger(logs_dir=tmp_path / "logs").info(Event.TASK_CREATED, task)
        assert not session_file.exists()

    def test_appends_jsonl(self, task, tmp_path, session_file):
        events = TaskEventLogger(logs_dir=tmp_path / "logs", session_logs=True)
        events.info(Event.TASK_CREATED, task, files=["a.ts"])
        events.info(Event.ESCALATION, task, from_tier="fast", new_tier="deep")

        lines = [json.loads(line) for line in session_file.read_text().splitlines()]
        assert [entry["event"] for entry in lines] == ["task_created", "escalation"]
        assert lines[0]["files"] == ["a.ts"]
        assert lines[1]["tier"] == "deep"
        assert lines[1]["attempt"] == 2
        assert "ts" in lines[0]

    def test_write_failure_does_not_raise(self, task, tmp_path):
        blocker = tmp_path / "logs"
        blocker.write_text("not a directory")
        events = TaskEventLogger(logs_dir=blocker, session_logs=True)

        events.info(Event.TASK_CREATED, task)

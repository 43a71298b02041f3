"""Structured lifecycle events for each task.

Every transition the driver makes (creation, attempt start/end, model call,
patch apply/reject, verification, escalation, completion, abort) is emitted
as one event carrying task id, tier, event name and attempt number.

Events go to the ``tiered_orchestrator.events`` logger with the fields in
``extra`` (so formatters can render or serialize them), and optionally to an
append-only JSONL file per task at logs/sessions/{task_id}.jsonl.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .task import Task
from ..utils.error_handling import log_and_ignore

logger = logging.getLogger(__name__)

events_logger = logging.getLogger("tiered_orchestrator.events")


class Event:
    """Lifecycle event names."""
    TASK_CREATED = "task_created"
    ATTEMPT_START = "attempt_start"
    ATTEMPT_END = "attempt_end"
    MODEL_CALL_START = "model_call_start"
    MODEL_CALL_COMPLETE = "model_call_complete"
    PATCH_APPLIED = "patch_applied"
    PATCH_REJECTED = "patch_rejected"
    VERIFICATION_START = "verification_start"
    VERIFICATION_PASS = "verification_pass"
    VERIFICATION_FAIL = "verification_fail"
    ESCALATION = "escalation"
    TASK_COMPLETE = "task_complete"
    TASK_ABORT = "task_abort"

    # Process-level, not tied to a task
    ORCHESTRATOR_START = "orchestrator_start"
    ORCHESTRATOR_SHUTDOWN = "orchestrator_shutdown"
    ORCHESTRATOR_COMPLETE = "orchestrator_complete"
    ORCHESTRATOR_CRASH = "orchestrator_crash"
    WORKSPACE_INVALID = "workspace_invalid"
    TASK_INPUT_ERROR = "task_input_error"


class TaskEventLogger:
    """Emits task lifecycle events to logging and, optionally, JSONL files.

    One instance can be shared by many concurrently running drivers; every
    call names the task it is about.
    """

    def __init__(
        self,
        logs_dir: Optional[Path] = None,
        session_logs: bool = False,
    ):
        self._sessions_dir = (logs_dir / "sessions") if (logs_dir and session_logs) else None

    def emit(self, event: str, task: Task, level: int = logging.INFO, **data: Any) -> None:
        """Log one event for ``task``."""
        fields = {
            "task_id": task.id,
            "tier": task.tier.value,
            "event": event,
            "attempt": task.attempt,
        }
        events_logger.log(level, event, extra={**fields, "event_data": data})
        self._append_session(task.id, fields, data)

    def info(self, event: str, task: Task, **data: Any) -> None:
        self.emit(event, task, logging.INFO, **data)

    def warn(self, event: str, task: Task, **data: Any) -> None:
        self.emit(event, task, logging.WARNING, **data)

    def error(self, event: str, task: Task, error: Any = None, **data: Any) -> None:
        if error is not None:
            data["error"] = str(error)
        self.emit(event, task, logging.ERROR, **data)

    def process_event(self, event: str, level: int = logging.INFO, **data: Any) -> None:
        """Log an event that belongs to the run rather than a task."""
        events_logger.log(level, event, extra={"event": event, "event_data": data})

    def _append_session(self, task_id: str, fields: dict, data: dict) -> None:
        if self._sessions_dir is None:
            return
        entry = {"ts": datetime.now(timezone.utc).isoformat(), **fields, **data}
        try:
            self._sessions_dir.mkdir(parents=True, exist_ok=True)
            with open(self._sessions_dir / f"{task_id}.jsonl", "a") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            log_and_ignore(e, "Session log write failed", logger_instance=logger, level=logging.DEBUG)

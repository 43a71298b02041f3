"""Exception hierarchy for the orchestrator.

Two families:
- RetryableError subclasses describe a failed attempt. The task driver catches
  them, turns them into feedback for the next prompt, and lets the tier policy
  decide whether to escalate or abort.
- FatalError subclasses describe a run that must not start (bad workspace,
  bad task input, bad config). They propagate to the CLI and end the process
  with a non-zero exit before any task is created.
"""

from typing import List, Optional


class OrchestratorError(Exception):
    """Base class for all orchestrator errors."""


class RetryableError(OrchestratorError):
    """An attempt failed; the task may try again within its budget."""

    category = "retryable"

    def to_feedback(self) -> List[str]:
        """Error lines fed into the next attempt's prompt."""
        return [str(self)]


class ModelCallError(RetryableError):
    """Transport or backend failure while calling the model."""

    category = "model_call"

    def __init__(self, model: str, reason: str):
        self.model = model
        self.reason = reason
        super().__init__(f"Model call failed: {reason}")


class PatchFormatError(RetryableError):
    """Model response held no usable diff, or the diff was too large."""

    category = "patch_format"

    def __init__(self, reason: str, lines_changed: Optional[int] = None):
        self.reason = reason
        self.lines_changed = lines_changed
        super().__init__(reason)


class PatchApplyError(RetryableError):
    """The patch utility rejected the diff."""

    category = "patch_apply"

    def __init__(self, message: str):
        super().__init__(message or "Failed to apply patch")


class VerificationError(RetryableError):
    """One or more check commands failed."""

    category = "verification"

    def __init__(self, errors: List[str], logs: str = ""):
        self.errors = list(errors)
        self.logs = logs
        super().__init__(f"Verification failed with {len(self.errors)} error(s)")

    def to_feedback(self) -> List[str]:
        return list(self.errors) or ["Verification failed"]


class FatalError(OrchestratorError):
    """The run cannot start. Never retried."""


class WorkspaceError(FatalError):
    """Workspace is missing a usable project manifest."""

    def __init__(self, workspace: str, reason: str):
        self.workspace = workspace
        self.reason = reason
        super().__init__(f"Invalid workspace {workspace}: {reason}")


class TaskInputError(FatalError):
    """Task input could not be read or failed validation."""


class ConfigError(FatalError):
    """Configuration file could not be parsed or validated."""


class EscalationError(OrchestratorError):
    """escalate() was called on a task with no next tier.

    A programming error: callers must check should_escalate() first.
    """

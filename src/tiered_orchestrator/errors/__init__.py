"""Error taxonomy and user-facing translation."""

from .exceptions import (
    ConfigError,
    EscalationError,
    FatalError,
    ModelCallError,
    OrchestratorError,
    PatchApplyError,
    PatchFormatError,
    RetryableError,
    TaskInputError,
    VerificationError,
    WorkspaceError,
)
from .translator import ErrorTranslator, UserFriendlyError

__all__ = [
    "OrchestratorError",
    "RetryableError",
    "ModelCallError",
    "PatchFormatError",
    "PatchApplyError",
    "VerificationError",
    "FatalError",
    "WorkspaceError",
    "TaskInputError",
    "ConfigError",
    "EscalationError",
    "ErrorTranslator",
    "UserFriendlyError",
]

"""Shared utility functions for the orchestrator."""

from .error_handling import log_and_reraise, log_and_ignore
from .subprocess_utils import (
    SubprocessError,
    ProcessResult,
    run_process,
    kill_process_tree,
)
from .rich_logging import setup_logging

__all__ = [
    # Error handling
    "log_and_reraise",
    "log_and_ignore",
    # Subprocess utilities
    "SubprocessError",
    "ProcessResult",
    "run_process",
    "kill_process_tree",
    # Logging
    "setup_logging",
]

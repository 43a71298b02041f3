"""Standardized error handling utilities."""

import logging
from typing import Optional

logger = logging.getLogger(__name__)


def log_and_reraise(
    error: Exception,
    message: str,
    *,
    logger_instance: Optional[logging.Logger] = None,
    level: int = logging.ERROR,
) -> None:
    """
    Log an error with context and re-raise it.

    Must be called from inside the ``except`` block handling ``error``.

    Args:
        error: Exception to log and re-raise
        message: Context message to log
        logger_instance: Logger to use (defaults to module logger)
        level: Log level (default: ERROR)

    Raises:
        The original exception
    """
    log = logger_instance or logger
    log.log(level, f"{message}: {error}")
    raise


def log_and_ignore(
    error: Exception,
    message: str,
    *,
    logger_instance: Optional[logging.Logger] = None,
    level: int = logging.WARNING,
) -> None:
    """
    Log an error and continue.

    For side channels (session files, diagnostics) whose failure must not
    interrupt a task.

    Args:
        error: Exception to log
        message: Context message to log
        logger_instance: Logger to use (defaults to module logger)
        level: Log level (default: WARNING)
    """
    log = logger_instance or logger
    log.log(level, f"{message}: {error}")

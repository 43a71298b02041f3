"""Log formatting with task context."""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

# Attributes every LogRecord has; anything else arrived via ``extra``
_STANDARD_ATTRS = set(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {"message", "asctime"}


class OrchestratorLogFormatter(logging.Formatter):
    """Human-readable formatter that renders task context when present."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",      # Cyan
        "INFO": "\033[32m",       # Green
        "WARNING": "\033[33m",    # Yellow
        "ERROR": "\033[31m",      # Red
        "CRITICAL": "\033[35m",   # Magenta
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        task_context = ""
        if hasattr(record, "task_id"):
            task_context = f"[{record.task_id[:8]}] [{record.tier}] #{record.attempt} "

        data = getattr(record, "event_data", None)
        suffix = ""
        if data:
            suffix = " " + " ".join(f"{k}={_short(v)}" for k, v in data.items())

        if self.use_colors:
            level_color = self.LEVEL_COLORS.get(record.levelname, "")
            reset = "\033[0m"
        else:
            level_color = reset = ""

        line = (
            f"{timestamp} {level_color}{record.levelname:8s}{reset} "
            f"{task_context}{record.getMessage()}{suffix}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line with every structured field flattened in."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key == "event_data":
                continue
            entry[key] = value
        entry.update(getattr(record, "event_data", None) or {})
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _short(value, limit: int = 120) -> str:
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    return text if len(text) <= limit else text[:limit] + "..."


def setup_logging(
    log_level: str = "INFO",
    use_json: bool = False,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        use_json: Emit JSON lines instead of colored text
        log_file: Also write plain (uncolored) lines to this file

    Returns:
        The configured ``tiered_orchestrator`` logger
    """
    logger = logging.getLogger("tiered_orchestrator")
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.propagate = False

    # Close existing handlers before clearing (prevents file descriptor leak)
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    if use_json:
        formatter: logging.Formatter = JsonLogFormatter()
    else:
        use_colors = sys.stderr.isatty() if hasattr(sys.stderr, "isatty") else False
        formatter = OrchestratorLogFormatter(use_colors=use_colors)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JsonLogFormatter() if use_json else OrchestratorLogFormatter(use_colors=False))
        logger.addHandler(file_handler)

    return logger

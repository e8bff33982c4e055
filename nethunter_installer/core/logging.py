"""Logging Configuration"""

import logging
import sys
import json
from datetime import datetime, timezone

from ..config import settings


class JSONFormatter(logging.Formatter):
    """JSON log formatter"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Install phase, when the engine attached one
        phase = getattr(record, "phase", None)
        if phase:
            log_data["phase"] = phase

        return json.dumps(log_data)


class TextFormatter(logging.Formatter):
    """Human-readable log formatter"""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging() -> logging.Logger:
    """Setup installer logging.

    Logs go to stderr; stdout is reserved for the operator-facing prompts and
    progress bar.
    """

    logger = logging.getLogger()
    if settings.DEBUG:
        level = logging.DEBUG
    else:
        level = getattr(logging, settings.LOG_LEVEL.upper(), logging.WARNING)
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)

    if settings.LOG_FORMAT == "json":
        formatter = JSONFormatter()
    else:
        formatter = TextFormatter()

    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Set levels for third-party loggers
    logging.getLogger("urllib3").setLevel(
        logging.DEBUG if settings.DEBUG else logging.WARNING
    )

    return logger

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from imagelabel.config import get_settings

_ROOT_LOGGER_NAME = "imagelabel"

# Fields callers may attach via ``extra=`` that are copied into the JSON line.
_EXTRA_FIELDS = (
    "phase",
    "image_path",
    "model_path",
    "labels_path",
    "num_labels",
    "best_index",
    "score",
    "shape",
)


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for key in _EXTRA_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logger(name: str | None = None) -> logging.Logger:
    """Setup a structured logger for the application.

    Args:
        name: Optional logger name. Defaults to the package name.

    Returns:
        Configured logger instance.
    """
    settings = get_settings()
    logger_name = name or _ROOT_LOGGER_NAME

    logger = logging.getLogger(logger_name)
    if logger.handlers:
        # Avoid adding multiple handlers if called repeatedly
        return logger

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logger.setLevel(level)

    # StreamHandler writes to stderr, keeping stdout for classification output.
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)

    return logger

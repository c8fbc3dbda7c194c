"""
Logging utilities for the wd toolkit.

Provides unified structured logging:
- pretty console output via Rich, on stderr so command output stays clean
- structured (JSON lines) file output when `WD_LOG_FILE` is set
"""

import json
import logging
import os
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

LOG_FILE_ENV = "WD_LOG_FILE"
LOG_LEVEL_ENV = "WD_LOG_LEVEL"


class JSONFormatter(logging.Formatter):
    """
    Formatter that serializes log records to JSON.
    """
    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level":     record.levelname,
            "logger":    record.name,
            "message":   record.getMessage(),
        }
        if record.exc_info:
            log_record["exc"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def get_logger(name: str, level: int | str | None = None) -> logging.Logger:
    """
    Return a configured logger for the given name.

    Attaches:
    - a RichHandler for console output
    - when `WD_LOG_FILE` is set, a FileHandler appending JSON lines to it

    Parameters
    ----------
    name
        Logger name (typically __name__).
    level
        Log level (int or string); defaults to `WD_LOG_LEVEL` or INFO.

    Returns
    -------
    logging.Logger
        Configured logger instance.
    """
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        # Console via Rich
        console_handler = RichHandler(console=Console(stderr=True), rich_tracebacks=True)
        console_handler.setLevel(level)
        logger.addHandler(console_handler)

        # Optional JSON file output
        log_file = os.environ.get(LOG_FILE_ENV)
        if log_file:
            file_handler = logging.FileHandler(Path(log_file), mode="a", encoding="utf-8")
            file_handler.setLevel(level)
            file_handler.setFormatter(JSONFormatter())
            logger.addHandler(file_handler)

    return logger

"""
Log formatters.

JSONFormatter writes one JSON document per record for log shipping;
ConsoleFormatter writes one readable line with any bound context (sales id,
statement kind, ...) appended in brackets.
"""

import json
import logging
import socket
import sys
import traceback
from datetime import UTC, datetime
from typing import Any

# Present on every LogRecord; anything else arrived through ``extra``
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
}


def extract_context(record: logging.LogRecord) -> dict[str, Any]:
    """The ``extra`` fields attached to a record."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _STANDARD_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """Structured formatter: level, logger, message, source and context."""

    def __init__(
        self,
        include_timestamp: bool = True,
        include_hostname: bool = True,
        app_name: str = "salesline-recon",
    ):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_hostname = include_hostname
        self.app_name = app_name
        self.hostname = socket.gethostname() if include_hostname else None

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any] | None:
        if not record.exc_info or record.exc_info[0] is None:
            return None
        exc_type, exc_value, exc_tb = record.exc_info
        return {
            "type": exc_type.__name__,
            "message": str(exc_value),
            "traceback": traceback.format_exception(exc_type, exc_value, exc_tb),
        }

    def format(self, record: logging.LogRecord) -> str:
        document: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "app": self.app_name,
            "source": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }
        if self.include_timestamp:
            document["timestamp"] = datetime.fromtimestamp(record.created, UTC).isoformat()
        if self.hostname:
            document["hostname"] = self.hostname

        exception = self._exception_fields(record)
        if exception:
            document["exception"] = exception

        context = extract_context(record)
        if context:
            document["context"] = context

        return json.dumps(document, default=str)


class ConsoleFormatter(logging.Formatter):
    """Single-line formatter, level name colored when stderr is a terminal."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        color = self.COLORS.get(levelname) if self.use_colors else None
        if color:
            record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            line = super().format(record)
        finally:
            record.levelname = levelname

        context = extract_context(record)
        if not context:
            return line
        pairs = ", ".join(f"{key}={value}" for key, value in context.items())
        return f"{line} [{pairs}]"

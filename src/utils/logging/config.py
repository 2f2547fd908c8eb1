"""
Root logger setup for the salesline-recon CLI.

Console output goes to stderr so report and SQL text printed on stdout can
be piped; an optional rotating file receives the same records.
"""

import logging
import logging.handlers
import sys
from pathlib import Path

from .formatters import ConsoleFormatter, JSONFormatter

APP_NAME = "salesline-recon"

PLAIN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
PLAIN_DATEFMT = "%Y-%m-%d %H:%M:%S"

# HTTP and driver chatter is only useful when debugging those libraries
NOISY_LOGGERS = ("urllib3", "requests", "pyodbc", "opentelemetry")


def _formatter(json_format: bool, app_name: str, colored: bool) -> logging.Formatter:
    if json_format:
        return JSONFormatter(app_name=app_name)
    if colored:
        return ConsoleFormatter(use_colors=True)
    return logging.Formatter(fmt=PLAIN_FORMAT, datefmt=PLAIN_DATEFMT)


def _rotating_file_handler(
    log_file: str, max_bytes: int, backup_count: int
) -> logging.Handler:
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        filename=log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    console_output: bool = True,
    json_format: bool = False,
    app_name: str = APP_NAME,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 3,
) -> None:
    """
    Replace the root logger's handlers.

    Args:
        level: Level name; unknown names fall back to INFO
        log_file: Rotating log file, created with its directory if needed
        console_output: Attach a stderr handler
        json_format: One JSON document per record on every handler
        app_name: ``app`` field of JSON records
        max_bytes: Size at which the log file rotates
        backup_count: Rotated files kept
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handlers: list[logging.Handler] = []
    if console_output:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(_formatter(json_format, app_name, colored=True))
        handlers.append(console)
    if log_file:
        file_handler = _rotating_file_handler(log_file, max_bytes, backup_count)
        file_handler.setFormatter(_formatter(json_format, app_name, colored=False))
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(numeric_level)
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        f"Logging configured: level={logging.getLevelName(numeric_level)}, "
        f"file={log_file or 'none'}, json={json_format}"
    )


def get_logger(name: str) -> logging.Logger:
    """Module logger; handlers live on the root logger."""
    return logging.getLogger(name)


def shutdown_logging() -> None:
    """Flush and detach every root handler, closing the log file."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.flush()
        handler.close()

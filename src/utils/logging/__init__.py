"""
Structured logging configuration for the reconciliation service

Provides JSON-formatted logging with contextual information for
reconciliation runs and correction-script generation.

Usage:
    from utils.logging import setup_logging, get_logger

    # Setup logging (call once at application startup)
    setup_logging(level="INFO", log_file="/var/log/salesline-recon/app.log")

    # Get logger for your module
    logger = get_logger(__name__)

    # Log with context
    logger.info("Reconciled order", extra={
        "sales_id": "PAT-000123",
        "line_count": 12,
    })
"""

from .config import get_logger, setup_logging, shutdown_logging
from .formatters import ConsoleFormatter, JSONFormatter
from .handlers import ContextLogger

__all__ = [
    "setup_logging",
    "get_logger",
    "shutdown_logging",
    "JSONFormatter",
    "ConsoleFormatter",
    "ContextLogger",
]

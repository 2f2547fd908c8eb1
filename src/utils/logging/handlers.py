"""
Logger adapter that carries reconciliation context.

A component binds ``sales_id`` (or any other key) once and every record it
emits carries it; keyword arguments passed to a logging call are added for
that record only.
"""

import logging
from collections.abc import MutableMapping
from typing import Any

# Keyword arguments the logging API itself understands
_LOGGING_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})


class ContextLogger(logging.LoggerAdapter):
    """
    Usage:
        logger = ContextLogger(__name__, sales_id="PAT-000123")
        logger.info("Statement recorded", kind="update")
        # record carries sales_id and kind
    """

    def __init__(self, name: str, **context: Any):
        super().__init__(logging.getLogger(name), context)

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        call_context = {
            key: kwargs.pop(key) for key in list(kwargs) if key not in _LOGGING_KWARGS
        }
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {}), **call_context}
        return msg, kwargs

    def bind(self, **context: Any) -> "ContextLogger":
        """New adapter on the same logger with ``context`` merged in."""
        return ContextLogger(self.logger.name, **{**self.extra, **context})

    def get_context(self) -> dict[str, Any]:
        return dict(self.extra)

"""
Span helpers used across reconciliation, correction building and the audit log.

Attribute values keep their type when OpenTelemetry accepts it (str, bool,
int, float) and are rendered with ``str`` otherwise, e.g. None or Decimal.
"""

from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from .tracer import get_tracer

_NATIVE_TYPES = (str, bool, int, float)


def span_value(value: Any) -> str | bool | int | float:
    return value if isinstance(value, _NATIVE_TYPES) else str(value)


@contextmanager
def trace_operation(
    operation_name: str,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
    **attributes
):
    """
    Run a block inside a new current span.

    An exception leaving the block marks the span as failed, is recorded on
    it and is re-raised unchanged.

    Args:
        operation_name: Span name
        kind: Span kind (INTERNAL, CLIENT, ...)
        **attributes: Initial span attributes

    Yields:
        The active span

    Example:
        >>> with trace_operation("reconcile_sales_id", sales_id="PAT-1") as span:
        ...     report = await reconciler.reconcile("PAT-1")
        ...     span.set_attribute("line_count", len(report.lines))
    """
    tracer = get_tracer()

    with tracer.start_as_current_span(
        operation_name,
        kind=kind,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        for key, value in attributes.items():
            span.set_attribute(key, span_value(value))

        try:
            yield span
        except Exception as e:
            span.set_attribute("error.type", type(e).__name__)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise


def add_span_attributes(**attributes):
    """Set attributes on the current span, if it is recording."""
    span = trace.get_current_span()
    if not span.is_recording():
        return
    for key, value in attributes.items():
        span.set_attribute(key, span_value(value))


def add_span_event(name: str, **attributes):
    """Add a named event to the current span, if it is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        span.add_event(
            name, attributes={key: span_value(value) for key, value in attributes.items()}
        )

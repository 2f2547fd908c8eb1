"""
Decorators for adding tracing to functions.

Provides a decorator that creates a span per call for plain functions and
coroutine functions alike.
"""

import functools
import inspect

from opentelemetry import trace

from .context import trace_operation


def trace_function(
    operation_name: str | None = None,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
    **default_attributes
):
    """
    Decorator for tracing function calls.

    Args:
        operation_name: Optional custom operation name (defaults to module.function)
        kind: Span kind for the created spans
        **default_attributes: Default attributes to add to all spans

    Example:
        >>> @trace_function(kind=trace.SpanKind.CLIENT, component="odata")
        ... async def fetch_by_sales_id(self, sales_id):
        ...     ...
    """
    def decorator(func):
        name = operation_name or f"{func.__module__}.{func.__name__}"
        attributes = {**default_attributes, "function": func.__name__}

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                with trace_operation(name, kind=kind, **attributes):
                    return await func(*args, **kwargs)

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with trace_operation(name, kind=kind, **attributes):
                return func(*args, **kwargs)

        return wrapper
    return decorator

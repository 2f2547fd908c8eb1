"""
Unit tests for utils/tracing span helpers
"""

import asyncio
from unittest.mock import MagicMock, patch

import pytest
from opentelemetry import trace
from opentelemetry.trace import StatusCode

from utils.tracing import (
    add_span_attributes,
    add_span_event,
    shutdown_tracing,
    trace_function,
    trace_operation,
)


@pytest.fixture
def mock_span():
    span = MagicMock()
    tracer = MagicMock()
    tracer.start_as_current_span.return_value.__enter__.return_value = span
    with patch("utils.tracing.context.get_tracer", return_value=tracer):
        yield tracer, span


class TestTraceOperation:
    """Tests for trace_operation"""

    def test_attributes_set(self, mock_span):
        tracer, span = mock_span

        with trace_operation("reconcile", sales_id="PAT-1", line_count=3) as active:
            assert active is span

        assert tracer.start_as_current_span.call_args.args == ("reconcile",)
        assert tracer.start_as_current_span.call_args.kwargs["kind"] == trace.SpanKind.INTERNAL
        span.set_attribute.assert_any_call("sales_id", "PAT-1")
        span.set_attribute.assert_any_call("line_count", 3)

    def test_non_native_attribute_stringified(self, mock_span):
        _, span = mock_span

        with trace_operation("build_correction_plan", data_area_id=None):
            pass

        span.set_attribute.assert_called_once_with("data_area_id", "None")

    def test_error_recorded_and_raised(self, mock_span):
        _, span = mock_span
        error = RuntimeError("warehouse unavailable")

        with pytest.raises(RuntimeError):
            with trace_operation("fetch_lines", kind=trace.SpanKind.CLIENT):
                raise error

        span.set_attribute.assert_any_call("error.type", "RuntimeError")
        status = span.set_status.call_args.args[0]
        assert status.status_code == StatusCode.ERROR
        assert status.description == "warehouse unavailable"
        span.record_exception.assert_called_once_with(error)


class TestTraceFunction:
    """Tests for the trace_function decorator"""

    def test_sync_function(self, mock_span):
        tracer, span = mock_span

        @trace_function(component="sql")
        def build(value):
            return value * 2

        assert build(4) == 8
        assert build.__name__ == "build"
        name = tracer.start_as_current_span.call_args.args[0]
        assert name.endswith(".build")
        span.set_attribute.assert_any_call("component", "sql")
        span.set_attribute.assert_any_call("function", "build")

    def test_async_function(self, mock_span):
        tracer, _ = mock_span

        @trace_function(operation_name="query_log.record", kind=trace.SpanKind.CLIENT)
        async def record():
            return True

        assert asyncio.run(record()) is True
        call = tracer.start_as_current_span.call_args
        assert call.args == ("query_log.record",)
        assert call.kwargs["kind"] == trace.SpanKind.CLIENT

    def test_async_error_propagates(self, mock_span):
        @trace_function()
        async def failing():
            raise LookupError("missing")

        with pytest.raises(LookupError):
            asyncio.run(failing())


class TestCurrentSpanHelpers:
    """Tests for add_span_attributes and add_span_event"""

    def test_recording_span(self):
        span = MagicMock()
        span.is_recording.return_value = True

        with patch("utils.tracing.context.trace.get_current_span", return_value=span):
            add_span_attributes(insert_count=2)
            add_span_event("correction_plan_built", update_count=1)

        span.set_attribute.assert_called_once_with("insert_count", 2)
        span.add_event.assert_called_once_with(
            "correction_plan_built", attributes={"update_count": 1}
        )

    def test_non_recording_span_ignored(self):
        span = MagicMock()
        span.is_recording.return_value = False

        with patch("utils.tracing.context.trace.get_current_span", return_value=span):
            add_span_attributes(insert_count=2)
            add_span_event("ignored")

        span.set_attribute.assert_not_called()
        span.add_event.assert_not_called()


class TestShutdownTracing:
    """Tests for shutdown_tracing"""

    def test_noop_when_not_initialized(self):
        with patch("utils.tracing.tracer._is_initialized", False), \
                patch("utils.tracing.tracer.trace.get_tracer_provider") as get_provider:
            shutdown_tracing()
        get_provider.assert_not_called()

    def test_provider_shutdown(self):
        provider = MagicMock()
        with patch.multiple("utils.tracing.tracer", _is_initialized=True, _tracer=MagicMock()), \
                patch("utils.tracing.tracer.trace.get_tracer_provider", return_value=provider):
            shutdown_tracing()
        provider.shutdown.assert_called_once()

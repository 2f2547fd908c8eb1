"""
OpenTelemetry tracer setup.

Spans are exported only when an OTLP endpoint is given (argument or
``OTLP_ENDPOINT``) or console export is requested (argument or
``TRACE_CONSOLE=true``). Without an exporter spans are still created, so
span helpers behave the same, but nothing leaves the process.
"""

import logging
import os

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SpanExporter,
)

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "salesline-recon"

_tracer: trace.Tracer | None = None
_is_initialized = False


def _span_exporters(otlp_endpoint: str | None, console_export: bool) -> dict[str, SpanExporter]:
    exporters: dict[str, SpanExporter] = {}
    if otlp_endpoint:
        # grpc is only loaded when spans are actually shipped
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )

        exporters["OTLP"] = OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)
    if console_export:
        exporters["Console"] = ConsoleSpanExporter()
    return exporters


def initialize_tracing(
    service_name: str = DEFAULT_SERVICE_NAME,
    otlp_endpoint: str | None = None,
    console_export: bool = False,
) -> trace.Tracer:
    """
    Install a tracer provider once per process.

    Args:
        service_name: ``service.name`` resource attribute
        otlp_endpoint: OTLP gRPC collector, e.g. ``localhost:4317``
        console_export: Print finished spans to stdout

    Returns:
        Tracer for ``service_name``; the existing one on repeated calls
    """
    global _tracer, _is_initialized

    if _is_initialized:
        return _tracer

    otlp_endpoint = otlp_endpoint or os.getenv("OTLP_ENDPOINT")
    console_export = console_export or os.getenv("TRACE_CONSOLE", "").lower() == "true"

    provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: service_name}))
    exporters = _span_exporters(otlp_endpoint, console_export)
    for exporter in exporters.values():
        provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer(service_name)
    _is_initialized = True

    logger.debug(
        f"Tracing initialized for {service_name} "
        f"(exporters: {', '.join(exporters) or 'none'})"
    )
    return _tracer


def get_tracer() -> trace.Tracer:
    """Tracer in use, initializing with defaults on first call."""
    if _tracer is None:
        return initialize_tracing()
    return _tracer


def shutdown_tracing() -> None:
    """Flush pending spans and shut the provider down; no-op when not initialized."""
    global _is_initialized, _tracer

    if not _is_initialized:
        return

    provider = trace.get_tracer_provider()
    try:
        if hasattr(provider, "shutdown"):
            provider.shutdown()
    except Exception as e:
        logger.error(f"Error during tracing shutdown: {e}")
    finally:
        _is_initialized = False
        _tracer = None

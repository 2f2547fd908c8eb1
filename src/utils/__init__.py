"""
Utility modules for the sales-line reconciliation service

Provides:
- logging: structured logging configuration
- tracing: OpenTelemetry span helpers
- metrics: Prometheus metrics for reconciliation runs
- sql_safety: identifier validation and literal escaping
"""

__version__ = "1.0.0"
__all__ = ["logging", "tracing", "metrics", "sql_safety"]

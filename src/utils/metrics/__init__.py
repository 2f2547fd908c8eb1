"""
Prometheus metrics for the reconciliation service

Usage:
    from utils.metrics import ReconciliationMetrics

    metrics = ReconciliationMetrics()
    metrics.record_reconciliation_run(success=True, duration=0.8)
    metrics.record_line_status("AMOUNT_MISMATCH")
"""

from .reconciliation import ReconciliationMetrics
from .registry import get_or_create_metric

__all__ = [
    "ReconciliationMetrics",
    "get_or_create_metric",
]

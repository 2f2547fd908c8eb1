"""
Metrics for sales-line reconciliation and correction generation.

Tracks reconciliation runs, per-line statuses and generated correction
statements.
"""

import logging
import time
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
)

from .registry import get_or_create_metric

logger = logging.getLogger(__name__)


class ReconciliationMetrics:
    """
    Metrics for line reconciliation runs

    Safe to instantiate more than once against the same registry: existing
    collectors are reused.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize reconciliation metrics

        Args:
            registry: Custom Prometheus registry (default: global REGISTRY)
        """
        self.registry = registry or REGISTRY

        self.reconciliation_runs_total = get_or_create_metric(
            lambda: Counter(
                "salesline_reconciliation_runs_total",
                "Total number of sales-id reconciliation runs",
                ["status"],
                registry=self.registry,
            ),
            "salesline_reconciliation_runs",
            self.registry,
        )

        self.reconciliation_duration_seconds = get_or_create_metric(
            lambda: Histogram(
                "salesline_reconciliation_duration_seconds",
                "Duration of sales-id reconciliation runs in seconds",
                buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60),
                registry=self.registry,
            ),
            "salesline_reconciliation_duration_seconds",
            self.registry,
        )

        self.reconciliation_last_run_timestamp = get_or_create_metric(
            lambda: Gauge(
                "salesline_reconciliation_last_run_timestamp",
                "Timestamp of last reconciliation run",
                registry=self.registry,
            ),
            "salesline_reconciliation_last_run_timestamp",
            self.registry,
        )

        self.line_status_total = get_or_create_metric(
            lambda: Counter(
                "salesline_reconciliation_lines_total",
                "Reconciled lines by primary status",
                ["status"],
                registry=self.registry,
            ),
            "salesline_reconciliation_lines",
            self.registry,
        )

        self.correction_statements_total = get_or_create_metric(
            lambda: Counter(
                "salesline_correction_statements_total",
                "Generated correction statements",
                ["kind", "actionable"],
                registry=self.registry,
            ),
            "salesline_correction_statements",
            self.registry,
        )

    def record_reconciliation_run(self, success: bool, duration: float) -> None:
        """
        Record a reconciliation run

        Args:
            success: Whether the run completed successfully
            duration: Duration in seconds
        """
        status = "success" if success else "failed"

        self.reconciliation_runs_total.labels(status=status).inc()
        self.reconciliation_duration_seconds.observe(duration)
        self.reconciliation_last_run_timestamp.set(time.time())

        logger.debug(
            f"Recorded reconciliation run: status={status}, duration={duration:.3f}s"
        )

    def record_line_status(self, status: str, count: int = 1) -> None:
        """
        Record reconciled lines under their primary status

        Args:
            status: Line status (MATCH, AMOUNT_MISMATCH, ...)
            count: Number of lines
        """
        self.line_status_total.labels(status=status).inc(count)

    def record_correction_statement(self, kind: str, actionable: bool) -> None:
        """
        Record a generated correction statement

        Args:
            kind: insert or update
            actionable: Whether SQL was generated for execution
        """
        self.correction_statements_total.labels(
            kind=kind,
            actionable=str(actionable).lower(),
        ).inc()

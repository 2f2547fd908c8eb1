"""
Unit tests for utils/metrics

Every test uses its own CollectorRegistry so counters start from zero.
"""

from unittest.mock import patch

import pytest
from prometheus_client import CollectorRegistry, Counter

from utils.metrics import ReconciliationMetrics, get_or_create_metric


@pytest.fixture
def registry():
    return CollectorRegistry()


class TestGetOrCreateMetric:
    """Tests for get_or_create_metric"""

    def test_creates(self, registry):
        counter = get_or_create_metric(
            lambda: Counter("recon_test_total", "Test counter", registry=registry),
            "recon_test",
            registry,
        )
        counter.inc()
        assert registry.get_sample_value("recon_test_total") == 1

    def test_reuses_existing(self, registry):
        def factory():
            return Counter("recon_dup_total", "Duplicate", registry=registry)

        first = get_or_create_metric(factory, "recon_dup", registry)
        second = get_or_create_metric(factory, "recon_dup", registry)

        assert first is second

    def test_unrelated_error_raised(self, registry):
        def factory():
            raise ValueError("bad labels")

        with pytest.raises(ValueError, match="bad labels"):
            get_or_create_metric(factory, "recon_missing", registry)


class TestReconciliationMetrics:
    """Tests for ReconciliationMetrics"""

    def test_record_successful_run(self, registry):
        metrics = ReconciliationMetrics(registry=registry)

        with patch("utils.metrics.reconciliation.time.time", return_value=1700000000.0):
            metrics.record_reconciliation_run(success=True, duration=0.75)

        assert registry.get_sample_value(
            "salesline_reconciliation_runs_total", {"status": "success"}
        ) == 1
        assert registry.get_sample_value(
            "salesline_reconciliation_duration_seconds_count"
        ) == 1
        assert registry.get_sample_value(
            "salesline_reconciliation_duration_seconds_sum"
        ) == 0.75
        assert registry.get_sample_value(
            "salesline_reconciliation_last_run_timestamp"
        ) == 1700000000.0

    def test_record_failed_run(self, registry):
        ReconciliationMetrics(registry=registry).record_reconciliation_run(
            success=False, duration=0.1
        )
        assert registry.get_sample_value(
            "salesline_reconciliation_runs_total", {"status": "failed"}
        ) == 1

    def test_line_status(self, registry):
        metrics = ReconciliationMetrics(registry=registry)

        metrics.record_line_status("MATCH", 3)
        metrics.record_line_status("AMOUNT_MISMATCH")

        assert registry.get_sample_value(
            "salesline_reconciliation_lines_total", {"status": "MATCH"}
        ) == 3
        assert registry.get_sample_value(
            "salesline_reconciliation_lines_total", {"status": "AMOUNT_MISMATCH"}
        ) == 1

    def test_correction_statement(self, registry):
        metrics = ReconciliationMetrics(registry=registry)

        metrics.record_correction_statement("update", actionable=False)

        assert registry.get_sample_value(
            "salesline_correction_statements_total",
            {"kind": "update", "actionable": "false"},
        ) == 1

    def test_second_instance_shares_collectors(self, registry):
        first = ReconciliationMetrics(registry=registry)
        second = ReconciliationMetrics(registry=registry)

        first.record_line_status("MATCH")
        second.record_line_status("MATCH")

        assert first.line_status_total is second.line_status_total
        assert registry.get_sample_value(
            "salesline_reconciliation_lines_total", {"status": "MATCH"}
        ) == 2

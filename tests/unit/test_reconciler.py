"""
Unit tests for line-level reconciliation

Tests for line alignment, per-line classification, summary buckets and the
async LineReconciler orchestration with mocked collaborators.
"""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from salesline_recon.config import ReconciliationSettings
from salesline_recon.line_level import (
    LineReconciler,
    LineStatus,
    SourceLineSnapshot,
    WarehouseLineSnapshot,
    reconcile_lines,
)
from salesline_recon.line_level.reconciler import (
    compare_line,
    index_lines,
    source_line_number,
    warehouse_line_number,
)


def _odata(line, amount=100.0, **extra):
    return {"LineCreationSequenceNumber": line, "LineAmount": amount, **extra}


def _snow(line, amount=100.0, **extra):
    return {"LINECREATIONSEQUENCENUMBER": line, "LINEAMOUNT": amount, **extra}


class TestSnapshots:
    """Tests for SourceLineSnapshot and WarehouseLineSnapshot"""

    def test_source_amount_prefers_accounting_amount(self):
        snapshot = SourceLineSnapshot.from_raw(
            {"AccountingCurrencyAmount": "5.5", "LineAmount": 9}
        )
        assert snapshot.amount == 5.5

    def test_source_fields_normalized(self):
        snapshot = SourceLineSnapshot.from_raw(
            {"ItemId": " sku ", "InvoiceId": "fac-1", "GAPCanalDimension": "ecom"}
        )
        assert snapshot.item_id == "SKU"
        assert snapshot.invoice_id == "FAC-1"
        assert snapshot.canal == "ECOM"

    @pytest.mark.parametrize("raw", [
        {
            "accountingCurrencyAmount": "7.25",
            "itemNumber": "sku-9",
            "invoiceID": "fac-2",
            "gapCanalDimension": "retail",
        },
        {
            "ACCOUNTING_CURRENCY_AMOUNT": 7.25,
            "ITEM_ID": "sku-9",
            "INVOICE_ID": "fac-2",
            "GAP_CANAL_DIMENSION": "retail",
        },
    ])
    def test_source_field_spelling_variants(self, raw):
        snapshot = SourceLineSnapshot.from_raw(raw)

        assert snapshot.amount == 7.25
        assert snapshot.item_id == "SKU-9"
        assert snapshot.invoice_id == "FAC-2"
        assert snapshot.canal == "RETAIL"

    def test_source_blank_amount_falls_back(self):
        snapshot = SourceLineSnapshot.from_raw({"accountingCurrencyAmount": "", "lineAmount": 4})
        assert snapshot.amount == 4.0

    def test_warehouse_field_spelling_variants(self):
        snapshot = WarehouseLineSnapshot.from_raw(
            {"lineAmount": "2", "invoice_id": "fac-1", "canal": "ecom", "salesLinePk": "pk"}
        )
        assert snapshot.amount == 2.0
        assert snapshot.invoice_id == "FAC-1"
        assert snapshot.canal == "ECOM"
        assert snapshot.line_pk == "pk"

    def test_source_raw_is_read_only(self):
        snapshot = SourceLineSnapshot.from_raw({"A": 1})
        with pytest.raises(TypeError):
            snapshot.raw["A"] = 2

    def test_warehouse_amount_fallback(self):
        snapshot = WarehouseLineSnapshot.from_raw({"LINEAMOUNTMST": "3"})
        assert snapshot.amount == 3.0

    def test_warehouse_key(self):
        snapshot = WarehouseLineSnapshot.from_raw({"SALESLINEPK": "pk", "CANAL": " retail"})
        assert snapshot.line_pk == "pk"
        assert snapshot.canal == "RETAIL"


class TestLineNumbers:
    """Tests for line number extraction and indexing"""

    def test_source_line_number_fallback(self):
        assert source_line_number({"LineNumber": "3"}) == 3

    def test_warehouse_line_number_fallbacks(self):
        assert warehouse_line_number({"LINE_NO": 2}) == 2
        assert warehouse_line_number({"LINENUM": 4.0}) == 4

    def test_index_lines_counts_unaligned(self):
        indexed, unaligned = index_lines(
            [{"n": 1}, {"n": None}, {"n": 1, "last": True}],
            lambda row: row["n"],
            lambda row: row,
        )
        assert unaligned == 1
        assert indexed == {1: {"n": 1, "last": True}}


class TestCompareLine:
    """Tests for compare_line"""

    def test_match(self):
        record = compare_line(
            1, SourceLineSnapshot.from_raw(_odata(1)), WarehouseLineSnapshot.from_raw(_snow(1))
        )
        assert record.status == LineStatus.MATCH
        assert record.issues == ()
        assert record.diff_amount == 0.0

    def test_missing_in_odata(self):
        record = compare_line(2, None, WarehouseLineSnapshot.from_raw(_snow(2, 10)))
        assert record.status == LineStatus.MISSING_IN_ODATA
        assert record.issues == ("Line missing in OData",)
        assert record.diff_amount == 10.0

    def test_missing_in_snowflake(self):
        record = compare_line(2, SourceLineSnapshot.from_raw(_odata(2, 10)), None)
        assert record.status == LineStatus.MISSING_IN_SNOWFLAKE
        assert record.diff_amount == -10.0

    def test_amount_within_tolerance(self):
        record = compare_line(
            1,
            SourceLineSnapshot.from_raw(_odata(1, 100.0)),
            WarehouseLineSnapshot.from_raw(_snow(1, 100.005)),
        )
        assert record.status == LineStatus.MATCH

    def test_amount_mismatch(self):
        record = compare_line(
            1,
            SourceLineSnapshot.from_raw(_odata(1, 100.0)),
            WarehouseLineSnapshot.from_raw(_snow(1, 101.5)),
        )
        assert record.status == LineStatus.AMOUNT_MISMATCH
        assert record.issues == ("Amount differs by 1.50",)

    def test_amount_skipped_when_one_side_missing(self):
        record = compare_line(
            1,
            SourceLineSnapshot.from_raw({"LineCreationSequenceNumber": 1}),
            WarehouseLineSnapshot.from_raw(_snow(1, 50)),
        )
        assert record.status == LineStatus.MATCH
        assert record.diff_amount == 50.0

    def test_multiple_issues_first_is_status(self):
        record = compare_line(
            1,
            SourceLineSnapshot.from_raw(_odata(1, 1.0, InvoiceId="A", Canal="ECOM")),
            WarehouseLineSnapshot.from_raw(_snow(1, 2.0, INVOICEID="B", CANAL="RETAIL")),
        )
        assert record.status == LineStatus.AMOUNT_MISMATCH
        assert record.flags == (
            LineStatus.AMOUNT_MISMATCH,
            LineStatus.INVOICE_MISMATCH,
            LineStatus.CANAL_MISMATCH,
        )
        assert record.issues[1:] == ("InvoiceId differs", "Canal differs")

    def test_invoice_ignored_when_blank(self):
        record = compare_line(
            1,
            SourceLineSnapshot.from_raw(_odata(1, InvoiceId="")),
            WarehouseLineSnapshot.from_raw(_snow(1, INVOICEID="B")),
        )
        assert record.status == LineStatus.MATCH

    def test_item_and_date_off_by_default(self):
        record = compare_line(
            1,
            SourceLineSnapshot.from_raw(_odata(1, ItemId="A", InvoiceDate="2024-01-01")),
            WarehouseLineSnapshot.from_raw(_snow(1, ITEMID="B", INVOICEDATE="2024-01-02")),
        )
        assert record.status == LineStatus.MATCH

    def test_item_and_date_checks(self):
        record = compare_line(
            1,
            SourceLineSnapshot.from_raw(_odata(1, ItemId="A", InvoiceDate="2024-01-01")),
            WarehouseLineSnapshot.from_raw(_snow(1, ITEMID="B", INVOICEDATE="2024-01-02")),
            compare_item_and_date=True,
        )
        assert record.flags == (LineStatus.ITEM_MISMATCH, LineStatus.DATE_MISMATCH)

    def test_to_dict(self):
        record = compare_line(1, SourceLineSnapshot.from_raw(_odata(1)), None)
        data = record.to_dict()
        assert data["status"] == "MISSING_IN_SNOWFLAKE"
        assert data["snowflake"] is None
        assert data["odata"]["amount"] == 100.0


class TestReconcileLines:
    """Tests for reconcile_lines"""

    def test_source_spelling_variants_still_compared(self):
        odata_rows = [{
            "lineCreationSequenceNumber": 1,
            "accountingCurrencyAmount": 100.0,
            "invoiceID": "INV-A",
            "gapCanalDimension": "ECOM",
        }]
        snowflake_rows = [{
            "LINECREATIONSEQUENCENUMBER": 1,
            "LINEAMOUNT": 250.0,
            "INVOICEID": "INV-B",
            "CANAL": "TIENDA",
        }]

        report = reconcile_lines("SO-1", odata_rows, snowflake_rows)

        line = report.lines[0]
        assert line.status == LineStatus.AMOUNT_MISMATCH
        assert line.flags == (
            LineStatus.AMOUNT_MISMATCH,
            LineStatus.INVOICE_MISMATCH,
            LineStatus.CANAL_MISMATCH,
        )
        assert line.odata_amount == 100.0
        assert report.summary.invoice_mismatches == (1,)
        assert report.summary.canal_mismatches == (1,)
        assert not report.is_consistent

    def test_snake_case_canal_and_item_compared(self):
        settings = ReconciliationSettings(compare_item_and_date=True)
        odata_rows = [{
            "line_creation_sequence_number": 1,
            "line_amount": 10,
            "item_number": "SKU-1",
            "canal": "ECOM",
        }]
        snowflake_rows = [{
            "LINECREATIONSEQUENCENUMBER": 1,
            "LINEAMOUNT": 10,
            "itemId": "SKU-2",
            "CANAL": "TIENDA",
        }]

        line = reconcile_lines("SO-1", odata_rows, snowflake_rows, settings).lines[0]

        assert line.flags == (LineStatus.ITEM_MISMATCH, LineStatus.CANAL_MISMATCH)


    def test_buckets_and_order(self):
        report = reconcile_lines(
            "PAT-1",
            [_odata(3), _odata(1, 5.0), _odata(2)],
            [_snow(1, 6.0), _snow(2), _snow(4)],
        )
        assert [line.line_number for line in report.lines] == [1, 2, 3, 4]
        summary = report.summary
        assert summary.amount_mismatches == (1,)
        assert summary.missing_in_snowflake == (3,)
        assert summary.missing_in_odata == (4,)
        assert summary.odata_line_count == 3
        assert summary.snowflake_line_count == 3
        assert summary.discrepancy_count == 3
        assert not report.is_consistent

    def test_line_in_several_buckets(self):
        report = reconcile_lines(
            "PAT-1",
            [_odata(1, 1.0, Canal="A")],
            [_snow(1, 2.0, CANAL="B")],
        )
        assert report.summary.amount_mismatches == (1,)
        assert report.summary.canal_mismatches == (1,)
        assert report.summary.discrepancy_count == 1

    def test_string_and_numeric_line_numbers_align(self):
        report = reconcile_lines("PAT-1", [_odata("1")], [_snow(1.0)])
        assert len(report.lines) == 1
        assert report.is_consistent

    def test_unaligned_rows_counted_and_logged(self, caplog):
        with caplog.at_level(logging.WARNING):
            report = reconcile_lines("PAT-1", [{"LineAmount": 1}], [_snow(1)])
        assert report.sources.odata_raw_count == 1
        assert report.sources.odata_unaligned_count == 1
        assert "without a line number" in caplog.text
        assert report.summary.missing_in_odata == (1,)

    def test_empty_sides(self):
        report = reconcile_lines("PAT-1", [], [])
        assert report.lines == ()
        assert report.is_consistent

    def test_settings_enable_item_check(self):
        settings = ReconciliationSettings(compare_item_and_date=True)
        report = reconcile_lines(
            "PAT-1", [_odata(1, ItemId="A")], [_snow(1, ITEMID="B")], settings
        )
        assert report.summary.item_mismatches == (1,)

    def test_report_to_dict(self, odata_line, warehouse_line):
        report = reconcile_lines("PAT-000123", [odata_line], [warehouse_line])
        data = report.to_dict()
        assert data["sales_id"] == "PAT-000123"
        assert data["summary"]["odata_line_count"] == 1
        assert data["lines"][0]["status"] == "MATCH"
        assert data["sources"]["snowflake_raw_count"] == 1
        assert "generated_at" in data


class TestLineReconciler:
    """Tests for LineReconciler"""

    def _reconciler(self, odata_rows, snowflake_rows, metrics=None):
        warehouse = MagicMock()
        warehouse.execute = AsyncMock(return_value=snowflake_rows)
        erp = MagicMock()
        erp.fetch_by_sales_id = AsyncMock(return_value={"value": odata_rows})
        return LineReconciler(warehouse, erp, metrics=metrics), warehouse, erp

    def test_reconcile_trims_sales_id(self, odata_line, warehouse_line):
        reconciler, warehouse, erp = self._reconciler([odata_line], [warehouse_line])

        report = asyncio.run(reconciler.reconcile("  PAT-000123 "))

        assert report.sales_id == "PAT-000123"
        assert report.is_consistent
        erp.fetch_by_sales_id.assert_awaited_once_with("PAT-000123")
        sql, binds = warehouse.execute.await_args.args
        assert "TRIM(UPPER(SALESID)) = TRIM(UPPER(?))" in sql
        assert binds == ["PAT-000123"]

    @pytest.mark.parametrize("sales_id", ["", "   ", None])
    def test_blank_sales_id_rejected_before_io(self, sales_id):
        reconciler, warehouse, erp = self._reconciler([], [])

        with pytest.raises(ValueError, match="sales_id is required"):
            asyncio.run(reconciler.reconcile(sales_id))

        warehouse.execute.assert_not_awaited()
        erp.fetch_by_sales_id.assert_not_awaited()

    def test_erp_failure_propagates(self):
        reconciler, _, erp = self._reconciler([], [])
        erp.fetch_by_sales_id.side_effect = ConnectionError("odata down")

        with pytest.raises(ConnectionError, match="odata down"):
            asyncio.run(reconciler.reconcile("PAT-1"))

    def test_warehouse_failure_propagates(self):
        reconciler, warehouse, _ = self._reconciler([], [])
        warehouse.execute.side_effect = RuntimeError("warehouse down")

        with pytest.raises(RuntimeError, match="warehouse down"):
            asyncio.run(reconciler.reconcile("PAT-1"))

    def test_failed_fetch_cancels_the_other(self):
        reconciler, warehouse, erp = self._reconciler([], [])
        cancelled = []

        async def slow_fetch(sales_id):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(sales_id)
                raise

        async def failing_query(sql, binds):
            await asyncio.sleep(0)
            raise RuntimeError("warehouse down")

        erp.fetch_by_sales_id.side_effect = slow_fetch
        warehouse.execute.side_effect = failing_query

        with pytest.raises(RuntimeError, match="warehouse down"):
            asyncio.run(reconciler.reconcile("PAT-1"))

        assert cancelled == ["PAT-1"]

    def test_missing_value_list_treated_as_empty(self):
        reconciler, _, erp = self._reconciler([], [_snow(1)])
        erp.fetch_by_sales_id.return_value = {"error": "none"}

        report = asyncio.run(reconciler.reconcile("PAT-1"))

        assert report.summary.missing_in_odata == (1,)

    def test_metrics_recorded(self):
        metrics = MagicMock()
        reconciler, _, _ = self._reconciler([_odata(1)], [_snow(1, 5)], metrics=metrics)

        asyncio.run(reconciler.reconcile("PAT-1"))

        metrics.record_line_status.assert_called_once_with(LineStatus.AMOUNT_MISMATCH)
        assert metrics.record_reconciliation_run.call_args.args[0] is True

    def test_metrics_recorded_on_failure(self):
        metrics = MagicMock()
        reconciler, _, erp = self._reconciler([], [], metrics=metrics)
        erp.fetch_by_sales_id.side_effect = TimeoutError()

        with pytest.raises(TimeoutError):
            asyncio.run(reconciler.reconcile("PAT-1"))

        assert metrics.record_reconciliation_run.call_args.args[0] is False

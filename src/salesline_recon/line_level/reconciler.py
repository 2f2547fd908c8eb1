"""
Line-level reconciliation of one sales order between the ERP and the warehouse.

Lines are aligned by their creation sequence number. Each aligned line gets a
primary status (the first issue detected) plus the full list of issues, and
every issue feeds a summary bucket of line numbers.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from opentelemetry import trace

from utils.metrics import ReconciliationMetrics
from utils.tracing import add_span_attributes, trace_operation

from ..collaborators.protocols import ErpRecordFetcher, WarehouseQueryExecutor
from ..config import ReconciliationSettings
from ..normalize import (
    index_fields,
    lookup_field,
    normalize_amount,
    normalize_date,
    normalize_key,
    normalize_line_number,
    normalize_string,
    within_tolerance,
)
from ..queries.lines import build_sales_line_detail_query

logger = logging.getLogger(__name__)


def field_values(raw: Mapping[str, Any], *names: str) -> list[Any]:
    """Values of `names` in order, matched by normalized field name."""
    index = index_fields(raw)
    return [index.get(normalize_key(name)) for name in names]


class LineStatus:
    """Per-line status labels (the correction generator filters on these)."""

    MATCH = "MATCH"
    # Present in the warehouse only
    MISSING_IN_ODATA = "MISSING_IN_ODATA"
    # Present in the ERP only
    MISSING_IN_SNOWFLAKE = "MISSING_IN_SNOWFLAKE"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    ITEM_MISMATCH = "ITEM_MISMATCH"
    INVOICE_MISMATCH = "INVOICE_MISMATCH"
    DATE_MISMATCH = "DATE_MISMATCH"
    CANAL_MISMATCH = "CANAL_MISMATCH"


@dataclass(frozen=True)
class SourceLineSnapshot:
    """Normalized view of one ERP line."""

    amount: float | None
    item_id: str | None
    invoice_id: str | None
    canal: str | None
    raw: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "SourceLineSnapshot":
        return cls(
            amount=normalize_amount(*field_values(raw, "AccountingCurrencyAmount", "LineAmount")),
            item_id=normalize_string(*field_values(raw, "ItemNumber", "ItemId")),
            invoice_id=normalize_string(*field_values(raw, "InvoiceId")),
            canal=normalize_string(*field_values(raw, "GAPCanalDimension")),
            raw=MappingProxyType(dict(raw)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "amount": self.amount,
            "item_id": self.item_id,
            "invoice_id": self.invoice_id,
            "canal": self.canal,
            "raw": dict(self.raw),
        }


@dataclass(frozen=True)
class WarehouseLineSnapshot:
    """Normalized view of one processed warehouse line."""

    amount: float | None
    invoice_id: str | None
    canal: str | None
    line_pk: str | None
    raw: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "WarehouseLineSnapshot":
        return cls(
            amount=normalize_amount(*field_values(raw, "LINEAMOUNT", "LINEAMOUNTMST")),
            invoice_id=normalize_string(*field_values(raw, "INVOICEID")),
            canal=normalize_string(*field_values(raw, "CANAL")),
            line_pk=lookup_field(raw, "SALESLINEPK"),
            raw=MappingProxyType(dict(raw)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "amount": self.amount,
            "invoice_id": self.invoice_id,
            "canal": self.canal,
            "line_pk": self.line_pk,
            "raw": dict(self.raw),
        }


@dataclass(frozen=True)
class LineComparisonRecord:
    """One row of the reconciliation report."""

    line_number: int | float
    status: str
    issues: tuple[str, ...]
    odata_amount: float | None
    snowflake_amount: float | None
    diff_amount: float | None
    odata: SourceLineSnapshot | None
    snowflake: WarehouseLineSnapshot | None
    # Every status raised, in detection order; ``status`` is the first
    flags: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "line_number": self.line_number,
            "status": self.status,
            "flags": list(self.flags),
            "issues": list(self.issues),
            "odata_amount": self.odata_amount,
            "snowflake_amount": self.snowflake_amount,
            "diff_amount": self.diff_amount,
            "odata": self.odata.to_dict() if self.odata else None,
            "snowflake": self.snowflake.to_dict() if self.snowflake else None,
        }


@dataclass(frozen=True)
class ReconciliationSummary:
    """Line counts and line numbers per issue type."""

    odata_line_count: int = 0
    snowflake_line_count: int = 0
    missing_in_odata: tuple = ()
    missing_in_snowflake: tuple = ()
    amount_mismatches: tuple = ()
    item_mismatches: tuple = ()
    invoice_mismatches: tuple = ()
    date_mismatches: tuple = ()
    canal_mismatches: tuple = ()

    @property
    def discrepancy_count(self) -> int:
        return len({
            *self.missing_in_odata,
            *self.missing_in_snowflake,
            *self.amount_mismatches,
            *self.item_mismatches,
            *self.invoice_mismatches,
            *self.date_mismatches,
            *self.canal_mismatches,
        })

    def to_dict(self) -> dict[str, Any]:
        return {
            "odata_line_count": self.odata_line_count,
            "snowflake_line_count": self.snowflake_line_count,
            "missing_in_odata": list(self.missing_in_odata),
            "missing_in_snowflake": list(self.missing_in_snowflake),
            "amount_mismatches": list(self.amount_mismatches),
            "item_mismatches": list(self.item_mismatches),
            "invoice_mismatches": list(self.invoice_mismatches),
            "date_mismatches": list(self.date_mismatches),
            "canal_mismatches": list(self.canal_mismatches),
        }


@dataclass(frozen=True)
class SourceCounts:
    """Raw row counts and rows left out of alignment for lack of a line number."""

    odata_raw_count: int = 0
    snowflake_raw_count: int = 0
    odata_unaligned_count: int = 0
    snowflake_unaligned_count: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "odata_raw_count": self.odata_raw_count,
            "snowflake_raw_count": self.snowflake_raw_count,
            "odata_unaligned_count": self.odata_unaligned_count,
            "snowflake_unaligned_count": self.snowflake_unaligned_count,
        }


@dataclass(frozen=True)
class ReconciliationReport:
    """Result of reconciling one SalesId."""

    sales_id: str
    summary: ReconciliationSummary
    lines: tuple[LineComparisonRecord, ...]
    sources: SourceCounts
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_consistent(self) -> bool:
        return all(line.status == LineStatus.MATCH for line in self.lines)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "sales_id": self.sales_id,
            "summary": self.summary.to_dict(),
            "lines": [line.to_dict() for line in self.lines],
            "sources": self.sources.to_dict(),
            "generated_at": self.generated_at.isoformat(),
        }


def source_line_number(raw: Mapping[str, Any]) -> int | float | None:
    """Line number of an ERP line."""
    return normalize_line_number(
        lookup_field(raw, "LineCreationSequenceNumber", "LineNumber")
    )


def warehouse_line_number(raw: Mapping[str, Any]) -> int | float | None:
    """Line number of a processed warehouse line."""
    return normalize_line_number(
        lookup_field(raw, "LINECREATIONSEQUENCENUMBER", "LINE_NO", "LINENUM")
    )


def index_lines(
    rows: Iterable[Mapping[str, Any]],
    line_number_of: Callable[[Mapping[str, Any]], Any],
    snapshot_of: Callable[[Mapping[str, Any]], Any],
) -> tuple[dict[Any, Any], int]:
    """
    Key rows by line number

    Returns:
        (line number -> snapshot, count of rows without a line number).
        A repeated line number keeps the last row.
    """
    indexed: dict[Any, Any] = {}
    unaligned = 0
    for row in rows:
        line_number = line_number_of(row)
        if line_number is None:
            unaligned += 1
            continue
        indexed[line_number] = snapshot_of(row)
    return indexed, unaligned


def compare_line(
    line_number: int | float,
    odata: SourceLineSnapshot | None,
    snowflake: WarehouseLineSnapshot | None,
    compare_item_and_date: bool = False,
) -> LineComparisonRecord:
    """
    Classify one aligned line

    Args:
        line_number: Shared line number
        odata: ERP side, or None
        snowflake: Warehouse side, or None
        compare_item_and_date: Also check item id and invoice date

    Returns:
        Comparison record; status is the first issue found, or MATCH
    """
    flags: list[str] = []
    issues: list[str] = []

    if odata is None:
        flags.append(LineStatus.MISSING_IN_ODATA)
        issues.append("Line missing in OData")
    elif snowflake is None:
        flags.append(LineStatus.MISSING_IN_SNOWFLAKE)
        issues.append("Line missing in Snowflake")
    else:
        if odata.amount is not None and snowflake.amount is not None:
            if not within_tolerance(snowflake.amount, odata.amount):
                diff = snowflake.amount - odata.amount
                flags.append(LineStatus.AMOUNT_MISMATCH)
                issues.append(f"Amount differs by {diff:.2f}")

        if compare_item_and_date:
            warehouse_item = normalize_string(*field_values(snowflake.raw, "ITEMID"))
            if odata.item_id and warehouse_item and odata.item_id != warehouse_item:
                flags.append(LineStatus.ITEM_MISMATCH)
                issues.append("ItemId differs")

        if odata.invoice_id and snowflake.invoice_id and odata.invoice_id != snowflake.invoice_id:
            flags.append(LineStatus.INVOICE_MISMATCH)
            issues.append("InvoiceId differs")

        if compare_item_and_date:
            source_date = normalize_date(lookup_field(odata.raw, "InvoiceDate", "InvoicingDate"))
            warehouse_date = normalize_date(lookup_field(snowflake.raw, "INVOICEDATE"))
            if source_date and warehouse_date and source_date != warehouse_date:
                flags.append(LineStatus.DATE_MISMATCH)
                issues.append("Invoice date differs")

        source_canal = normalize_string(*field_values(odata.raw, "Canal", "GAPCanalDimension"))
        if source_canal and snowflake.canal and source_canal != snowflake.canal:
            flags.append(LineStatus.CANAL_MISMATCH)
            issues.append("Canal differs")

    odata_amount = odata.amount if odata else None
    snowflake_amount = snowflake.amount if snowflake else None
    diff_amount = (snowflake_amount or 0.0) - (odata_amount or 0.0)

    return LineComparisonRecord(
        line_number=line_number,
        status=flags[0] if flags else LineStatus.MATCH,
        issues=tuple(issues),
        odata_amount=odata_amount,
        snowflake_amount=snowflake_amount,
        diff_amount=diff_amount,
        odata=odata,
        snowflake=snowflake,
        flags=tuple(flags),
    )


_STATUS_BUCKETS = {
    LineStatus.MISSING_IN_ODATA: "missing_in_odata",
    LineStatus.MISSING_IN_SNOWFLAKE: "missing_in_snowflake",
    LineStatus.AMOUNT_MISMATCH: "amount_mismatches",
    LineStatus.ITEM_MISMATCH: "item_mismatches",
    LineStatus.INVOICE_MISMATCH: "invoice_mismatches",
    LineStatus.DATE_MISMATCH: "date_mismatches",
    LineStatus.CANAL_MISMATCH: "canal_mismatches",
}


def reconcile_lines(
    sales_id: str,
    odata_rows: list[Mapping[str, Any]],
    snowflake_rows: list[Mapping[str, Any]],
    settings: ReconciliationSettings | None = None,
) -> ReconciliationReport:
    """
    Align and classify already fetched lines

    Args:
        sales_id: Order id the rows belong to
        odata_rows: ERP lines
        snowflake_rows: Processed warehouse lines
        settings: Comparison settings

    Returns:
        ReconciliationReport with lines in ascending line-number order
    """
    settings = settings or ReconciliationSettings()

    odata_map, odata_unaligned = index_lines(
        odata_rows, source_line_number, SourceLineSnapshot.from_raw
    )
    snowflake_map, snowflake_unaligned = index_lines(
        snowflake_rows, warehouse_line_number, WarehouseLineSnapshot.from_raw
    )

    if odata_unaligned or snowflake_unaligned:
        logger.warning(
            f"Lines without a line number left out of alignment for {sales_id}: "
            f"odata={odata_unaligned}, snowflake={snowflake_unaligned}"
        )

    buckets: dict[str, list] = {name: [] for name in _STATUS_BUCKETS.values()}
    lines = []
    for line_number in sorted(set(odata_map) | set(snowflake_map)):
        record = compare_line(
            line_number,
            odata_map.get(line_number),
            snowflake_map.get(line_number),
            compare_item_and_date=settings.compare_item_and_date,
        )
        for status in record.flags:
            buckets[_STATUS_BUCKETS[status]].append(line_number)
        lines.append(record)

    summary = ReconciliationSummary(
        odata_line_count=len(odata_map),
        snowflake_line_count=len(snowflake_map),
        **{name: tuple(numbers) for name, numbers in buckets.items()},
    )
    sources = SourceCounts(
        odata_raw_count=len(odata_rows),
        snowflake_raw_count=len(snowflake_rows),
        odata_unaligned_count=odata_unaligned,
        snowflake_unaligned_count=snowflake_unaligned,
    )
    return ReconciliationReport(
        sales_id=sales_id,
        summary=summary,
        lines=tuple(lines),
        sources=sources,
    )


class LineReconciler:
    """
    Reconciles one SalesId between the ERP and the processed line table.

    Both sources are fetched concurrently; a failure on either side fails
    the whole call with the original exception.
    """

    def __init__(
        self,
        warehouse: WarehouseQueryExecutor,
        erp: ErpRecordFetcher,
        settings: ReconciliationSettings | None = None,
        metrics: ReconciliationMetrics | None = None,
    ):
        """
        Initialize line reconciler.

        Args:
            warehouse: Executor for the processed line table
            erp: ERP line fetcher
            settings: Table names and comparison settings
            metrics: Optional Prometheus metrics
        """
        self.warehouse = warehouse
        self.erp = erp
        self.settings = settings or ReconciliationSettings()
        self.metrics = metrics

    async def fetch_lines(
        self, sales_id: str
    ) -> tuple[list[Mapping[str, Any]], list[Mapping[str, Any]]]:
        """
        Fetch (ERP lines, warehouse lines) for an already validated SalesId.

        Both fetches run concurrently; the first failure cancels the other
        and is raised as is.
        """
        try:
            async with asyncio.TaskGroup() as group:
                warehouse_task = group.create_task(
                    self.warehouse.execute(build_sales_line_detail_query(self.settings), [sales_id])
                )
                erp_task = group.create_task(self.erp.fetch_by_sales_id(sales_id))
        except ExceptionGroup as failure:
            raise failure.exceptions[0] from None

        snowflake_rows = warehouse_task.result()
        odata_response = erp_task.result()
        value = odata_response.get("value") if isinstance(odata_response, Mapping) else None
        odata_rows = value if isinstance(value, list) else []
        return odata_rows, list(snowflake_rows or [])

    async def reconcile(self, sales_id: str) -> ReconciliationReport:
        """
        Reconcile all lines of one order

        Args:
            sales_id: Order id (trimmed before use)

        Returns:
            ReconciliationReport

        Raises:
            ValueError: If sales_id is blank (raised before any I/O)
        """
        trimmed_id = (sales_id or "").strip()
        if not trimmed_id:
            raise ValueError("sales_id is required")

        start = time.monotonic()
        with trace_operation(
            "reconcile_sales_id",
            kind=trace.SpanKind.INTERNAL,
            sales_id=trimmed_id,
        ):
            logger.info(f"Starting line reconciliation for {trimmed_id}")
            try:
                odata_rows, snowflake_rows = await self.fetch_lines(trimmed_id)
            except Exception:
                if self.metrics:
                    self.metrics.record_reconciliation_run(False, time.monotonic() - start)
                raise

            report = reconcile_lines(trimmed_id, odata_rows, snowflake_rows, self.settings)

            add_span_attributes(
                line_count=len(report.lines),
                discrepancy_count=report.summary.discrepancy_count,
            )
            logger.info(
                f"Line reconciliation for {trimmed_id}: "
                f"{report.summary.odata_line_count} odata lines, "
                f"{report.summary.snowflake_line_count} snowflake lines, "
                f"{report.summary.discrepancy_count} with discrepancies"
            )

            if self.metrics:
                for line in report.lines:
                    self.metrics.record_line_status(line.status)
                self.metrics.record_reconciliation_run(True, time.monotonic() - start)

            return report

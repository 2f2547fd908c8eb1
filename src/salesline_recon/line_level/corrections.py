"""
Correction SQL generation from a line reconciliation report.

Lines present in the ERP only become INSERTs (rolled back by a DELETE on the
composite key). Lines present on both sides become UPDATEs of the columns
that actually differ (rolled back by an UPDATE restoring the old values).
A line whose recomputed SALESLINEPK no longer matches the stored one is
never updated: the key would change, so the line has to be recreated.

Lines that cannot be corrected are returned as non-actionable statements
rather than raised, so one bad line does not stop the rest of the batch.
Nothing here performs I/O.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from opentelemetry import trace

from utils.metrics import ReconciliationMetrics
from utils.tracing import add_span_event, trace_operation

from ..config import ReconciliationSettings
from ..keys import COMPOSITE_KEY_COLUMN, SALES_LINE_PK_SEQUENCE, is_blank_composite_key
from ..normalize import lookup_field, values_equal
from ..payload import (
    AUDIT_TIMESTAMP_COLUMNS,
    PROCESSED_COLUMNS,
    ProcessedPayloadMapper,
    column_type,
    map_source_record,
)
from ..sql import DeleteBuilder, InsertBuilder, UpdateBuilder, format_sql_value
from .reconciler import LineComparisonRecord, LineStatus, ReconciliationReport

logger = logging.getLogger(__name__)

KIND_INSERT = "insert"
KIND_UPDATE = "update"

REASON_PK_MISMATCH = "PK_MISMATCH"

# Prefix of the SQL text of a statement that must not be executed
NOT_GENERATED_MARKER = "-- NOT GENERATED:"
NOT_APPLICABLE = "-- N/A"

INSERT_EXCLUDED_COLUMNS = AUDIT_TIMESTAMP_COLUMNS
UPDATE_EXCLUDED_COLUMNS = AUDIT_TIMESTAMP_COLUMNS | {COMPOSITE_KEY_COLUMN}


@dataclass(frozen=True)
class CorrectionStatement:
    """A generated statement with its rollback and a reviewer-facing preview."""

    kind: str
    line_number: int | float | None
    reason: str
    sql: str
    rollback_sql: str
    affected_columns: tuple[str, ...] = ()
    preview: Mapping[str, Any] = field(default_factory=dict)
    actionable: bool = True
    entry_id: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "preview", MappingProxyType(dict(self.preview)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "line_number": self.line_number,
            "reason": self.reason,
            "sql": self.sql,
            "rollback_sql": self.rollback_sql,
            "affected_columns": list(self.affected_columns),
            "preview": dict(self.preview),
            "actionable": self.actionable,
            "entry_id": self.entry_id,
        }


@dataclass(frozen=True)
class CorrectionPlan:
    """Inserts and updates generated for one SalesId."""

    sales_id: str
    inserts: tuple[CorrectionStatement, ...] = ()
    updates: tuple[CorrectionStatement, ...] = ()
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def statements(self) -> list[CorrectionStatement]:
        return [*self.inserts, *self.updates]

    @property
    def summary(self) -> dict[str, int]:
        statements = self.statements
        actionable = sum(1 for statement in statements if statement.actionable)
        return {
            "insert_count": len(self.inserts),
            "update_count": len(self.updates),
            "actionable_count": actionable,
            "non_actionable_count": len(statements) - actionable,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "sales_id": self.sales_id,
            "summary": self.summary,
            "inserts": [statement.to_dict() for statement in self.inserts],
            "updates": [statement.to_dict() for statement in self.updates],
            "generated_at": self.generated_at.isoformat(),
        }


def _has_source_key_fields(source_record: Mapping[str, Any]) -> bool:
    mapped = map_source_record(source_record)
    for column in SALES_LINE_PK_SEQUENCE:
        value = mapped.get(column)
        if value is not None and str(value).strip():
            return True
    return False


class CorrectionScriptGenerator:
    """
    Builds INSERT/UPDATE corrections and their rollbacks.

    Example:
        >>> generator = CorrectionScriptGenerator(settings)
        >>> plan = generator.build_correction_plan(report)
        >>> print(render_correction_script(plan.statements))
    """

    def __init__(
        self,
        settings: ReconciliationSettings | None = None,
        metrics: ReconciliationMetrics | None = None,
    ):
        self.settings = settings or ReconciliationSettings()
        self.mapper = ProcessedPayloadMapper(self.settings)
        self.metrics = metrics

    @property
    def table(self) -> str:
        return self.settings.processed_table

    def payload_for_line(self, sales_id: str, line: LineComparisonRecord) -> dict[str, Any]:
        """Target row for a line, built from its ERP side."""
        source_record = line.odata.raw if line.odata else {}
        return self.mapper.build_for_line(sales_id, source_record, line.line_number)

    def _record(self, statement: CorrectionStatement) -> CorrectionStatement:
        if self.metrics:
            self.metrics.record_correction_statement(statement.kind, statement.actionable)
        return statement

    def build_insert_statements(
        self, sales_id: str, lines: Iterable[LineComparisonRecord]
    ) -> list[CorrectionStatement]:
        """
        INSERTs for lines present in the ERP but not in the warehouse

        Args:
            sales_id: Order id
            lines: Report lines (only MISSING_IN_SNOWFLAKE lines with ERP data
                are used)

        Returns:
            One statement per eligible line; a non-actionable placeholder when
            the composite key cannot be built from the source data
        """
        statements = []
        for line in lines:
            if line.status != LineStatus.MISSING_IN_SNOWFLAKE or not line.odata or not line.odata.raw:
                continue
            statements.append(self._record(self._insert_statement(sales_id, line)))
        return statements

    def _insert_statement(self, sales_id: str, line: LineComparisonRecord) -> CorrectionStatement:
        payload = self.payload_for_line(sales_id, line)
        sales_line_pk = payload[COMPOSITE_KEY_COLUMN]

        if is_blank_composite_key(sales_line_pk) or not _has_source_key_fields(line.odata.raw):
            logger.warning(
                f"INSERT not generated for {sales_id} line {line.line_number}: "
                f"source line has no SALESLINEPK fields"
            )
            return CorrectionStatement(
                kind=KIND_INSERT,
                line_number=line.line_number,
                reason=LineStatus.MISSING_IN_SNOWFLAKE,
                sql=f"{NOT_GENERATED_MARKER} INSERT skipped, SALESLINEPK is incomplete",
                rollback_sql=NOT_APPLICABLE,
                preview={
                    "sales_line_pk": None,
                    "warning": "Source line lacks the fields that make up SALESLINEPK",
                },
                actionable=False,
            )

        insert = InsertBuilder(self.table, comment=f"Suggested insert for SalesLinePk {sales_line_pk}")
        for column in PROCESSED_COLUMNS:
            if column in INSERT_EXCLUDED_COLUMNS or column not in payload:
                continue
            insert.value(column, format_sql_value(payload[column], column_type(column)))

        rollback = DeleteBuilder(
            self.table, comment=f"Rollback of insert for SalesLinePk {sales_line_pk}"
        ).where(COMPOSITE_KEY_COLUMN, format_sql_value(sales_line_pk))

        return CorrectionStatement(
            kind=KIND_INSERT,
            line_number=line.line_number,
            reason=LineStatus.MISSING_IN_SNOWFLAKE,
            sql=insert.build(),
            rollback_sql=rollback.build(),
            affected_columns=tuple(insert.columns),
            preview={
                "sales_line_pk": sales_line_pk,
                "invoice_id": payload.get("INVOICEID"),
                "amount": payload.get("LINEAMOUNT"),
                "canal": payload.get("CANAL"),
                "data_area_id": payload.get("DATAAREAID"),
            },
            entry_id=sales_line_pk,
        )

    def build_update_statements(
        self, lines: Iterable[LineComparisonRecord]
    ) -> list[CorrectionStatement]:
        """
        UPDATEs for lines present on both sides

        Lines whose columns all compare equal produce nothing. Lines whose
        recomputed key differs from the stored one produce a non-actionable
        PK_MISMATCH statement.

        Args:
            lines: Report lines

        Returns:
            Statements in line order
        """
        statements = []
        for line in lines:
            if not line.snowflake or not line.odata:
                continue
            if not line.snowflake.raw or not line.odata.raw:
                continue
            current_pk = line.snowflake.line_pk
            if not current_pk:
                continue

            statement = self._update_statement(line, str(current_pk))
            if statement is not None:
                statements.append(self._record(statement))
        return statements

    def _update_statement(
        self, line: LineComparisonRecord, current_pk: str
    ) -> CorrectionStatement | None:
        current = line.snowflake.raw
        sales_id = (
            lookup_field(line.odata.raw, "SalesId")
            or current.get("SALESID")
            or ""
        )
        target = self.payload_for_line(str(sales_id), line)
        target_pk = target[COMPOSITE_KEY_COLUMN]

        if target_pk != current_pk:
            logger.warning(
                f"UPDATE not generated for line {line.line_number}: "
                f"SALESLINEPK would change from {current_pk} to {target_pk}"
            )
            return CorrectionStatement(
                kind=KIND_UPDATE,
                line_number=line.line_number,
                reason=REASON_PK_MISMATCH,
                sql=(
                    f"{NOT_GENERATED_MARKER} UPDATE skipped, the target SALESLINEPK "
                    f"differs from the current one. Insert a new line instead."
                ),
                rollback_sql=NOT_APPLICABLE,
                preview={
                    "sales_line_pk": current_pk,
                    "new_sales_line_pk": target_pk,
                },
                actionable=False,
                entry_id=current_pk,
            )

        key_literal = format_sql_value(current_pk)
        update = UpdateBuilder(
            self.table,
            comment=f"Suggested correction for SalesLinePk {current_pk} · Line {line.line_number}",
        ).where(COMPOSITE_KEY_COLUMN, key_literal)
        rollback = UpdateBuilder(
            self.table,
            comment=f"Rollback of correction for SalesLinePk {current_pk}",
        ).where(COMPOSITE_KEY_COLUMN, key_literal)

        for column in PROCESSED_COLUMNS:
            if column in UPDATE_EXCLUDED_COLUMNS or column not in target:
                continue
            kind = column_type(column)
            desired = target[column]
            existing = current.get(column)
            if values_equal(existing, desired, kind):
                continue
            update.set(column, format_sql_value(desired, kind))
            rollback.set(column, format_sql_value(existing, kind))

        if not update.columns:
            return None

        return CorrectionStatement(
            kind=KIND_UPDATE,
            line_number=line.line_number,
            reason=line.status,
            sql=update.build(),
            rollback_sql=rollback.build(),
            affected_columns=tuple(update.columns),
            preview={
                "sales_line_pk": current_pk,
                "columns": list(update.columns),
                "before": {
                    "amount": current.get("LINEAMOUNT"),
                    "invoice_id": current.get("INVOICEID"),
                    "canal": current.get("CANAL"),
                },
                "after": {
                    "amount": target.get("LINEAMOUNT"),
                    "invoice_id": target.get("INVOICEID"),
                    "canal": target.get("CANAL"),
                },
            },
            entry_id=current_pk,
        )

    def build_correction_plan(self, report: ReconciliationReport) -> CorrectionPlan:
        """
        All corrections for a reconciliation report

        Args:
            report: Output of LineReconciler.reconcile

        Returns:
            CorrectionPlan with inserts and updates
        """
        with trace_operation(
            "build_correction_plan",
            kind=trace.SpanKind.INTERNAL,
            sales_id=report.sales_id,
            line_count=len(report.lines),
        ):
            plan = CorrectionPlan(
                sales_id=report.sales_id,
                inserts=tuple(self.build_insert_statements(report.sales_id, report.lines)),
                updates=tuple(self.build_update_statements(report.lines)),
            )
            summary = plan.summary
            add_span_event("correction_plan_built", **summary)
            logger.info(
                f"Correction plan for {report.sales_id}: "
                f"{summary['insert_count']} inserts, {summary['update_count']} updates, "
                f"{summary['non_actionable_count']} not actionable"
            )
            return plan


def build_insert_statements(
    sales_id: str,
    lines: Iterable[LineComparisonRecord],
    settings: ReconciliationSettings | None = None,
) -> list[CorrectionStatement]:
    """INSERT corrections for lines missing in the warehouse."""
    return CorrectionScriptGenerator(settings).build_insert_statements(sales_id, lines)


def build_update_statements(
    lines: Iterable[LineComparisonRecord],
    settings: ReconciliationSettings | None = None,
) -> list[CorrectionStatement]:
    """UPDATE corrections for lines present on both sides."""
    return CorrectionScriptGenerator(settings).build_update_statements(lines)


def build_correction_plan(
    report: ReconciliationReport,
    settings: ReconciliationSettings | None = None,
) -> CorrectionPlan:
    """Inserts and updates for a whole report."""
    return CorrectionScriptGenerator(settings).build_correction_plan(report)


def _as_comment(sql: str) -> list[str]:
    return [line if line.startswith("--") else f"-- {line}" for line in sql.splitlines()]


def render_correction_script(
    statements: list[CorrectionStatement],
    title: str | None = None,
    rollback: bool = False,
    generated_at: datetime | None = None,
) -> str:
    """
    Render statements as one reviewable script.

    Actionable statements are wrapped in ``BEGIN; ... COMMIT;``. Non-actionable
    ones are kept as comments so the reviewer still sees them. The rollback
    script undoes statements in reverse order.

    Args:
        statements: Statements to render
        title: Header label (e.g. the SalesId)
        rollback: Render the rollback script instead of the corrections
        generated_at: Header timestamp (default: now)

    Returns:
        SQL script text
    """
    generated_at = generated_at or datetime.now(UTC)
    actionable = [statement for statement in statements if statement.actionable]
    label = "Rollback script" if rollback else "Correction script"

    script_lines = [
        f"-- {label}" + (f" for {title}" if title else ""),
        f"-- Generated: {generated_at.isoformat()}",
        f"-- Statements: {len(statements)} ({len(actionable)} actionable)",
        "",
    ]

    ordered = list(reversed(statements)) if rollback else list(statements)

    if not actionable:
        script_lines.append("-- Nothing to execute")
        script_lines.append("")
    else:
        script_lines.append("BEGIN;")
        script_lines.append("")

    for statement in ordered:
        header = f"-- [{statement.kind}] line {statement.line_number} {statement.reason}"
        if not statement.actionable:
            script_lines.append(f"{header} (not actionable)")
            if not rollback:
                script_lines.extend(_as_comment(statement.sql))
            script_lines.append("")
            continue
        script_lines.append(header)
        script_lines.append(statement.rollback_sql if rollback else statement.sql)
        script_lines.append("")

    if actionable:
        script_lines.append("COMMIT;")

    return "\n".join(script_lines)

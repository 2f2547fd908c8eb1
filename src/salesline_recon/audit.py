"""
Audit log of executed correction statements.

Every executed statement is appended to the query log table together with
its rollback, so an operator can later look an entry up and undo it. Only
metadata serialization problems are tolerated here: they are logged and the
entry is stored with empty metadata.
"""

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from opentelemetry import trace

from utils.logging import ContextLogger
from utils.tracing import trace_function

from .collaborators.protocols import WarehouseQueryExecutor
from .config import ReconciliationSettings
from .line_level.corrections import NOT_APPLICABLE, CorrectionStatement

logger = ContextLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
DEFAULT_EXECUTED_BY = "cli"

LOG_COLUMNS = (
    "LOG_ID",
    "EXECUTED_AT",
    "ACTION_TYPE",
    "KIND",
    "SALES_ID",
    "LINE_NUMBER",
    "ENTRY_ID",
    "EXECUTED_SQL",
    "ROLLBACK_SQL",
    "EXECUTED_BY",
    "EXTRA_METADATA",
)


def safe_json_dumps(value: Any) -> str:
    """
    Serialize audit metadata, falling back to ``{}``

    Dates and other non-JSON values are rendered with ``str``; anything that
    still fails (e.g. circular references) is logged and replaced.
    """
    try:
        return json.dumps(value if value is not None else {}, default=str)
    except (TypeError, ValueError) as e:
        logger.warning(f"Audit metadata could not be serialized, storing empty object: {e}")
        return "{}"


@dataclass(frozen=True)
class AuditLogEntry:
    """One row of the query log."""

    executed_sql: str
    action_type: str = "sql"
    kind: str | None = None
    sales_id: str | None = None
    line_number: int | float | None = None
    entry_id: str | None = None
    rollback_sql: str | None = None
    executed_by: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    log_id: int | None = None
    executed_at: Any = None

    @classmethod
    def from_statement(
        cls,
        statement: CorrectionStatement,
        sales_id: str,
        executed_by: str | None = None,
        action_type: str = "correction",
    ) -> "AuditLogEntry":
        """Entry for an executed correction statement."""
        return cls(
            executed_sql=statement.sql,
            action_type=action_type,
            kind=statement.kind,
            sales_id=sales_id,
            line_number=statement.line_number,
            entry_id=statement.entry_id or statement.preview.get("sales_line_pk"),
            rollback_sql=statement.rollback_sql,
            executed_by=executed_by,
            metadata={
                "reason": statement.reason,
                "affected_columns": list(statement.affected_columns),
                "preview": dict(statement.preview),
            },
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "AuditLogEntry":
        metadata = row.get("EXTRA_METADATA")
        if isinstance(metadata, str):
            try:
                metadata = json.loads(metadata)
            except ValueError:
                metadata = {"raw": metadata}
        return cls(
            executed_sql=row.get("EXECUTED_SQL") or "",
            action_type=row.get("ACTION_TYPE"),
            kind=row.get("KIND"),
            sales_id=row.get("SALES_ID"),
            line_number=row.get("LINE_NUMBER"),
            entry_id=row.get("ENTRY_ID"),
            rollback_sql=row.get("ROLLBACK_SQL"),
            executed_by=row.get("EXECUTED_BY"),
            metadata=metadata or {},
            log_id=row.get("LOG_ID"),
            executed_at=row.get("EXECUTED_AT"),
        )

    @property
    def has_rollback(self) -> bool:
        return bool(self.rollback_sql) and self.rollback_sql != NOT_APPLICABLE

    def to_dict(self) -> dict[str, Any]:
        executed_at = self.executed_at
        if hasattr(executed_at, "isoformat"):
            executed_at = executed_at.isoformat()
        return {
            "log_id": self.log_id,
            "executed_at": executed_at,
            "action_type": self.action_type,
            "kind": self.kind,
            "sales_id": self.sales_id,
            "line_number": self.line_number,
            "entry_id": self.entry_id,
            "executed_sql": self.executed_sql,
            "rollback_sql": self.rollback_sql,
            "executed_by": self.executed_by,
            "metadata": dict(self.metadata),
        }


def clamp_pagination(limit: Any = None, offset: Any = None) -> tuple[int, int]:
    """Limit in 1..200 (default 50) and offset >= 0 (default 0)."""
    try:
        safe_limit = int(limit)
    except (TypeError, ValueError):
        safe_limit = DEFAULT_PAGE_SIZE
    try:
        safe_offset = int(offset)
    except (TypeError, ValueError):
        safe_offset = 0
    return min(max(safe_limit, 1), MAX_PAGE_SIZE), max(safe_offset, 0)


def build_log_filter(
    sales_id: str | None = None,
    action_type: str | None = None,
    kind: str | None = None,
) -> tuple[str, list[Any]]:
    """WHERE clause (possibly empty) and binds for the log filters."""
    clauses = []
    binds: list[Any] = []
    if sales_id and str(sales_id).strip():
        clauses.append("SALES_ID ILIKE ?")
        binds.append(f"%{str(sales_id).strip()}%")
    if action_type and str(action_type).strip():
        clauses.append("ACTION_TYPE = ?")
        binds.append(str(action_type).strip())
    if kind and str(kind).strip():
        clauses.append("KIND = ?")
        binds.append(str(kind).strip())
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, binds


class QueryLogRepository:
    """
    Append-only store of executed statements in the warehouse.

    The table is created on first use.
    """

    def __init__(
        self,
        executor: WarehouseQueryExecutor,
        settings: ReconciliationSettings | None = None,
    ):
        self.executor = executor
        self.settings = settings or ReconciliationSettings()
        self._table_ensured = False

    @property
    def table(self) -> str:
        return self.settings.audit_table

    def create_table_sql(self) -> str:
        return (
            f"CREATE TABLE IF NOT EXISTS {self.table} (\n"
            "  LOG_ID NUMBER AUTOINCREMENT START 1 INCREMENT 1,\n"
            "  EXECUTED_AT TIMESTAMP_LTZ DEFAULT CURRENT_TIMESTAMP(),\n"
            "  ACTION_TYPE STRING,\n"
            "  KIND STRING,\n"
            "  SALES_ID STRING,\n"
            "  LINE_NUMBER NUMBER,\n"
            "  ENTRY_ID STRING,\n"
            "  EXECUTED_SQL STRING,\n"
            "  ROLLBACK_SQL STRING,\n"
            "  EXECUTED_BY STRING,\n"
            "  EXTRA_METADATA VARIANT\n"
            ");"
        )

    async def ensure_table(self) -> None:
        if self._table_ensured:
            return
        await self.executor.execute(self.create_table_sql(), [])
        self._table_ensured = True

    @trace_function(kind=trace.SpanKind.CLIENT, component="query_log")
    async def record(self, entry: AuditLogEntry) -> bool:
        """
        Append an entry

        Returns:
            False (and nothing written) when the entry has no SQL
        """
        if not entry.executed_sql:
            logger.warning("Audit entry without executed SQL, skipping")
            return False

        await self.ensure_table()
        sql = (
            f"INSERT INTO {self.table} (\n"
            "  ACTION_TYPE, KIND, SALES_ID, LINE_NUMBER, ENTRY_ID,\n"
            "  EXECUTED_SQL, ROLLBACK_SQL, EXECUTED_BY, EXTRA_METADATA\n"
            ")\n"
            "SELECT ?, ?, ?, ?, ?, ?, ?, ?, PARSE_JSON(?)"
        )
        binds = [
            entry.action_type,
            entry.kind,
            entry.sales_id,
            entry.line_number,
            entry.entry_id,
            entry.executed_sql,
            entry.rollback_sql,
            entry.executed_by or os.getenv("LOG_EXECUTOR", DEFAULT_EXECUTED_BY),
            safe_json_dumps(dict(entry.metadata)),
        ]
        await self.executor.execute(sql, binds)
        logger.bind(sales_id=entry.sales_id).info(
            f"Recorded {entry.action_type} statement", kind=entry.kind, entry_id=entry.entry_id
        )
        return True

    async def fetch(
        self,
        sales_id: str | None = None,
        action_type: str | None = None,
        kind: str | None = None,
        limit: Any = None,
        offset: Any = None,
    ) -> dict[str, Any]:
        """
        Page through entries, newest first

        Returns:
            ``{"logs": [AuditLogEntry, ...], "limit": n, "offset": n}``
        """
        await self.ensure_table()
        where, binds = build_log_filter(sales_id, action_type, kind)
        safe_limit, safe_offset = clamp_pagination(limit, offset)
        lines = [f"SELECT {', '.join(LOG_COLUMNS)}", f"FROM {self.table}"]
        if where:
            lines.append(where)
        lines.extend([
            "ORDER BY EXECUTED_AT DESC",
            f"LIMIT {safe_limit}",
            f"OFFSET {safe_offset}",
        ])
        rows = await self.executor.execute("\n".join(lines), binds)
        return {
            "logs": [AuditLogEntry.from_row(row) for row in rows],
            "limit": safe_limit,
            "offset": safe_offset,
        }

    async def count(
        self,
        sales_id: str | None = None,
        action_type: str | None = None,
        kind: str | None = None,
    ) -> int:
        await self.ensure_table()
        where, binds = build_log_filter(sales_id, action_type, kind)
        sql = f"SELECT COUNT(*) AS TOTAL FROM {self.table}"
        if where:
            sql = f"{sql} {where}"
        rows = await self.executor.execute(sql, binds)
        if not rows:
            return 0
        return int(rows[0].get("TOTAL") or 0)

    async def fetch_by_id(self, log_id: Any) -> AuditLogEntry | None:
        """Entry by id; None for a non-positive or unparseable id."""
        try:
            numeric_id = int(log_id)
        except (TypeError, ValueError):
            return None
        if numeric_id <= 0:
            return None

        await self.ensure_table()
        rows = await self.executor.execute(
            f"SELECT {', '.join(LOG_COLUMNS)} FROM {self.table} WHERE LOG_ID = ?",
            [numeric_id],
        )
        return AuditLogEntry.from_row(rows[0]) if rows else None

    @trace_function(kind=trace.SpanKind.CLIENT, component="query_log")
    async def rollback_sql_for(self, log_id: Any) -> str:
        """
        Rollback SQL of a logged statement

        Raises:
            LookupError: If the entry does not exist
            ValueError: If the entry has no rollback
        """
        entry = await self.fetch_by_id(log_id)
        if entry is None:
            raise LookupError(f"Query log entry {log_id} not found")
        if not entry.has_rollback:
            raise ValueError(f"Query log entry {log_id} has no rollback available")
        return entry.rollback_sql

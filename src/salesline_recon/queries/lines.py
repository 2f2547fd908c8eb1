"""
Line-level query builders.

``build_sales_line_detail_query`` feeds the line reconciler.
``build_line_download_query`` builds filtered exports from the comparison
view or the processed line table. User-supplied values always travel as
``?`` binds; only validated identifiers and integers are inlined.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from utils.sql_safety import validate_integer_param

from ..config import ReconciliationSettings

logger = logging.getLogger(__name__)

FILTER_DATE_FROM = "date_from"
FILTER_DATE_TO = "date_to"
FILTER_EQUALS = "equals"
FILTER_CONTAINS = "contains"
FILTER_LIST = "list"


@dataclass(frozen=True)
class LineFilter:
    """One accepted request filter and the column it applies to."""

    name: str
    column: str
    kind: str


@dataclass(frozen=True)
class LineSource:
    """A downloadable line source."""

    name: str
    table_setting: str
    date_column: str
    filters: tuple[LineFilter, ...]
    safe_columns: tuple[str, ...]
    order_by: tuple[str, ...]

    def table(self, settings: ReconciliationSettings) -> str:
        return getattr(settings, self.table_setting)

    def filter_named(self, name: str) -> LineFilter | None:
        for line_filter in self.filters:
            if line_filter.name == name:
                return line_filter
        return None


LINE_SOURCES: dict[str, LineSource] = {
    "vista": LineSource(
        name="vista",
        table_setting="view_table",
        date_column="ACCOUNTINGDATE",
        filters=(
            LineFilter("accountingDateFrom", "ACCOUNTINGDATE", FILTER_DATE_FROM),
            LineFilter("accountingDateTo", "ACCOUNTINGDATE", FILTER_DATE_TO),
            LineFilter("sourceFlag", "SOURCE_FLAG", FILTER_EQUALS),
            LineFilter("salesId", "SALESID", FILTER_CONTAINS),
            LineFilter("canal", "GAPCANALDIMENSION", FILTER_LIST),
            LineFilter("invoiceId", "INVOICEID", FILTER_CONTAINS),
        ),
        safe_columns=(
            "ACCOUNTINGDATE",
            "SOURCE_FLAG",
            "SALESID",
            "INVOICEID",
            "GAPCANALDIMENSION",
            "LEDGERACCOUNT",
            "ITEMID",
            "QTY",
            "ACCOUNTINGCURRENCYAMOUNT",
        ),
        order_by=("ACCOUNTINGDATE", "SALESID", "INVOICEID"),
    ),
    "procesada": LineSource(
        name="procesada",
        table_setting="processed_table",
        date_column="INVOICEDATE",
        filters=(
            LineFilter("invoiceDateFrom", "INVOICEDATE", FILTER_DATE_FROM),
            LineFilter("invoiceDateTo", "INVOICEDATE", FILTER_DATE_TO),
            LineFilter("salesId", "SALESID", FILTER_CONTAINS),
            LineFilter("invoiceId", "INVOICEID", FILTER_CONTAINS),
        ),
        safe_columns=(
            "SALESLINEPK",
            "SALESID",
            "INVOICEID",
            "INVOICEDATE",
            "LINECREATIONSEQUENCENUMBER",
            "ITEMID",
            "QTY",
            "LINEAMOUNT",
            "CANAL",
            "DATAAREAID",
        ),
        order_by=("INVOICEDATE", "SALESID", "LINECREATIONSEQUENCENUMBER"),
    ),
}

SALES_ID_NON_EMPTY = "salesIdNonEmpty"


@dataclass(frozen=True)
class LineQuery:
    """SQL text, its positional binds and a description of what was applied."""

    sql: str
    binds: list[Any] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


def build_sales_line_detail_query(settings: ReconciliationSettings | None = None) -> str:
    """All processed lines for one SalesId (one ``?`` bind), by line number."""
    settings = settings or ReconciliationSettings()
    return (
        "SELECT *\n"
        f"FROM {settings.processed_table}\n"
        "WHERE TRIM(UPPER(SALESID)) = TRIM(UPPER(?))\n"
        "ORDER BY LINECREATIONSEQUENCENUMBER;"
    )


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


def _parse_day(name: str, value: Any) -> str:
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value).strip()).isoformat()
    except ValueError:
        raise ValueError(f"Invalid date for {name}: {value!r}. Expected YYYY-MM-DD.") from None


def _split_list(value: Any) -> list[str]:
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = [str(item) for item in value]
    return [item.strip().upper() for item in items if item and item.strip()]


def _resolve_limit(source: LineSource, limit: Any, settings: ReconciliationSettings) -> int:
    ceiling = settings.line_limit_ceilings.get(source.name)
    if ceiling is None:
        raise ValueError(f"No row ceiling configured for source {source.name!r}")
    if _is_empty(limit):
        return ceiling
    try:
        value = int(str(limit).strip())
    except ValueError:
        raise ValueError(f"Invalid limit: {limit!r}. Must be an integer.") from None
    validate_integer_param(value, "limit", min_value=1)
    if value > ceiling:
        raise ValueError(
            f"Requested limit {value} exceeds the {source.name} ceiling of {ceiling} rows"
        )
    return value


def build_line_download_query(
    source: str,
    filters: Mapping[str, Any] | None = None,
    limit: int | str | None = None,
    include_all_columns: bool = False,
    settings: ReconciliationSettings | None = None,
) -> LineQuery:
    """
    Build a filtered line export for ``vista`` or ``procesada``.

    Args:
        source: Line source name
        filters: Request filters by name (blank values are ignored).
            ``salesIdNonEmpty`` drops rows with a blank SALESID and
            supersedes a ``salesId`` filter.
        limit: Row cap; defaults to the source's ceiling, above it is rejected
        include_all_columns: ``SELECT *`` instead of the safe column subset
        settings: Table names and ceilings

    Returns:
        LineQuery with ``?`` binds

    Raises:
        ValueError: Unknown source or filter, malformed or inverted date
            range, limit above the ceiling
    """
    settings = settings or ReconciliationSettings()
    line_source = LINE_SOURCES.get((source or "").strip().lower())
    if line_source is None:
        raise ValueError(
            f"Unknown line source: {source!r}. Expected one of {sorted(LINE_SOURCES)}."
        )

    row_limit = _resolve_limit(line_source, limit, settings)
    filters = dict(filters or {})

    sales_id_non_empty = _parse_flag(filters.pop(SALES_ID_NON_EMPTY, False))
    if sales_id_non_empty:
        filters.pop("salesId", None)

    conditions: list[str] = []
    binds: list[Any] = []
    applied: dict[str, Any] = {}
    date_range: dict[str, str] = {}

    for name, value in filters.items():
        line_filter = line_source.filter_named(name)
        if line_filter is None:
            raise ValueError(f"Unknown filter {name!r} for source {line_source.name!r}")
        if _is_empty(value):
            continue

        if line_filter.kind in (FILTER_DATE_FROM, FILTER_DATE_TO):
            day = _parse_day(name, value)
            date_range[line_filter.kind] = day
            operator = ">=" if line_filter.kind == FILTER_DATE_FROM else "<="
            conditions.append(f"CAST({line_filter.column} AS DATE) {operator} TO_DATE(?)")
            binds.append(day)
            applied[name] = day
        elif line_filter.kind == FILTER_EQUALS:
            text = str(value).strip()
            conditions.append(f"TRIM(UPPER({line_filter.column})) = TRIM(UPPER(?))")
            binds.append(text)
            applied[name] = text
        elif line_filter.kind == FILTER_CONTAINS:
            text = str(value).strip()
            conditions.append(f"{line_filter.column} ILIKE ?")
            binds.append(f"%{text}%")
            applied[name] = text
        elif line_filter.kind == FILTER_LIST:
            items = _split_list(value)
            if not items:
                continue
            placeholders = ", ".join("?" for _ in items)
            conditions.append(f"TRIM(UPPER({line_filter.column})) IN ({placeholders})")
            binds.extend(items)
            applied[name] = items

    if (
        FILTER_DATE_FROM in date_range
        and FILTER_DATE_TO in date_range
        and date_range[FILTER_DATE_FROM] > date_range[FILTER_DATE_TO]
    ):
        raise ValueError(
            f"Date range start {date_range[FILTER_DATE_FROM]} is after "
            f"end {date_range[FILTER_DATE_TO]}"
        )

    if sales_id_non_empty:
        conditions.append("NULLIF(TRIM(COALESCE(SALESID::STRING, '')), '') IS NOT NULL")
        applied[SALES_ID_NON_EMPTY] = True

    projection = "*" if include_all_columns else ",\n  ".join(line_source.safe_columns)
    table = line_source.table(settings)

    sql_lines = [f"SELECT\n  {projection}", f"FROM {table}"]
    if conditions:
        sql_lines.append("WHERE " + "\n  AND ".join(conditions))
    sql_lines.append("ORDER BY " + ", ".join(line_source.order_by))
    sql_lines.append(f"LIMIT {row_limit};")

    metadata = {
        "source": line_source.name,
        "table": table,
        "date_column": line_source.date_column,
        "limit": row_limit,
        "include_all_columns": include_all_columns,
        "columns": None if include_all_columns else list(line_source.safe_columns),
        "filters": applied,
    }
    logger.debug(
        f"Built line download query: source={line_source.name}, "
        f"filters={sorted(applied)}, limit={row_limit}"
    )
    return LineQuery(sql="\n".join(sql_lines), binds=binds, metadata=metadata)

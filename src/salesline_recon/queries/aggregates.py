"""
Aggregate BASE vs VIEW comparison queries.

Both queries declare their date window (and tolerance) once, in a
``WINDOW_RAW`` object at the top, so an operator reading the SQL sees every
parameter in one place. BASE amounts are sign-inverted to match the view.
"""

import logging
from dataclasses import dataclass
from datetime import date

from utils.sql_safety import escape_string_literal, validate_integer_param

from ..config import ReconciliationSettings
from ..normalize import format_number

logger = logging.getLogger(__name__)

# Up to yesterday, evaluated by the warehouse
DEFAULT_WINDOW_END_SQL = "TO_CHAR(CURRENT_DATE() - 1, 'YYYY-MM-DD')"


def _parse_iso_day(value: str | date, label: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValueError(f"Invalid {label}: {value!r}. Expected YYYY-MM-DD.") from None


@dataclass(frozen=True)
class DateWindow:
    """
    Inclusive comparison window

    ``date_to`` of None means "yesterday", resolved by the warehouse at run
    time.
    """

    date_from: date
    date_to: date | None = None

    def __post_init__(self):
        object.__setattr__(self, "date_from", _parse_iso_day(self.date_from, "window start"))
        if self.date_to is not None:
            object.__setattr__(self, "date_to", _parse_iso_day(self.date_to, "window end"))
            if self.date_from > self.date_to:
                raise ValueError(
                    f"Window start {self.date_from} is after window end {self.date_to}"
                )

    @classmethod
    def from_settings(
        cls,
        settings: ReconciliationSettings,
        date_from: str | date | None = None,
        date_to: str | date | None = None,
    ) -> "DateWindow":
        return cls(date_from or settings.window_start, date_to)

    def from_sql(self) -> str:
        return escape_string_literal(self.date_from.isoformat())

    def to_sql(self) -> str:
        if self.date_to is None:
            return DEFAULT_WINDOW_END_SQL
        return escape_string_literal(self.date_to.isoformat())


def _window_cte(window: DateWindow, tolerance: float | None = None) -> str:
    entries = [
        f"'from', {window.from_sql()}",
        f"'to',   {window.to_sql()}",
    ]
    columns = [
        'TO_DATE(W:"from"::string)      AS D_FROM',
        'TO_DATE(W:"to"::string)        AS D_TO',
    ]
    if tolerance is not None:
        entries.append(f"'tol',  {format_number(tolerance)}")
        columns.append('(W:"tol"::number(10,6))        AS TOL')

    entry_sql = ",\n           ".join(entries)
    column_sql = ",\n    ".join(columns)
    return (
        "WINDOW_RAW AS (\n"
        "  SELECT OBJECT_CONSTRUCT(\n"
        f"           {entry_sql}\n"
        "         ) AS W\n"
        "),\n"
        "WINDOW AS (\n"
        "  SELECT\n"
        f"    {column_sql}\n"
        "  FROM WINDOW_RAW\n"
        ")"
    )


def _ledger_filters(settings: ReconciliationSettings) -> tuple[str, str]:
    validate_integer_param(settings.ledger_account, "ledger_account", min_value=1)
    account = settings.ledger_account
    # BASE stores the account as text with punctuation
    base_filter = (
        f"TO_NUMBER(REGEXP_REPLACE(b.LEDGERACCOUNT::STRING, '[^0-9]', '')) = {account}"
    )
    view_filter = f"v.LEDGERACCOUNT = {account}"
    return base_filter, view_filter


def build_channel_comparison_query(
    window: DateWindow,
    settings: ReconciliationSettings | None = None,
) -> str:
    """
    Per-channel BASE vs VIEW totals for the ledger account.

    Rows with a blank SALESID are excluded on both sides. Output columns:
    CANAL, BASE_TOTAL, VIEW_TOTAL, DIFF_BASE_VIEW, PCT_BASE_VIEW (NULL when
    BASE_TOTAL is zero).

    Args:
        window: Comparison window
        settings: Table names and ledger account

    Returns:
        SQL text with no placeholders
    """
    settings = settings or ReconciliationSettings()
    base_filter, view_filter = _ledger_filters(settings)
    logger.debug(
        f"Building channel comparison query: {window.date_from} to "
        f"{window.date_to or 'yesterday'}"
    )

    return f"""/* Channel comparison: BASE (ledger {settings.ledger_account}, sign inverted) vs VIEW */
WITH
{_window_cte(window)},

BASE_F AS (
  SELECT
    COALESCE(TRIM(UPPER(b.GAPCANALDIMENSION)), '__NULL__')   AS CANAL_NORM,
    CAST(b.ACCOUNTINGCURRENCYAMOUNT AS NUMBER(38,6))         AS AMT
  FROM {settings.base_table} b
  WHERE {base_filter}
    AND b.ACCOUNTINGDATE BETWEEN (SELECT D_FROM FROM WINDOW) AND (SELECT D_TO FROM WINDOW)
    AND NULLIF(TRIM(COALESCE(b.SALESID::STRING, '')), '') IS NOT NULL
),
VIEW_F AS (
  SELECT
    COALESCE(TRIM(UPPER(v.GAPCANALDIMENSION)), '__NULL__')   AS CANAL_NORM,
    CAST(v.ACCOUNTINGCURRENCYAMOUNT AS NUMBER(38,6))         AS AMT
  FROM {settings.view_table} v
  WHERE {view_filter}
    AND v.ACCOUNTINGDATE BETWEEN (SELECT D_FROM FROM WINDOW) AND (SELECT D_TO FROM WINDOW)
    AND NULLIF(TRIM(COALESCE(v.SALESID::STRING, '')), '') IS NOT NULL
),
BASE_AGG AS (
  SELECT CANAL_NORM, (SUM(AMT) * (-1))::NUMBER(38,6) AS BASE_TOTAL
  FROM BASE_F
  GROUP BY CANAL_NORM
),
VIEW_AGG AS (
  SELECT CANAL_NORM, SUM(AMT)::NUMBER(38,6) AS VIEW_TOTAL
  FROM VIEW_F
  GROUP BY CANAL_NORM
)

SELECT
  COALESCE(b.CANAL_NORM, v.CANAL_NORM) AS CANAL,
  b.BASE_TOTAL,
  v.VIEW_TOTAL,
  (COALESCE(b.BASE_TOTAL, 0::NUMBER(38,6)) - COALESCE(v.VIEW_TOTAL, 0::NUMBER(38,6)))::NUMBER(38,6) AS DIFF_BASE_VIEW,
  CASE
    WHEN COALESCE(b.BASE_TOTAL, 0::NUMBER(38,6)) = 0::NUMBER(38,6) THEN NULL
    ELSE ((COALESCE(b.BASE_TOTAL, 0::NUMBER(38,6)) - COALESCE(v.VIEW_TOTAL, 0::NUMBER(38,6)))
           / NULLIF(b.BASE_TOTAL, 0::NUMBER(38,6)))
  END AS PCT_BASE_VIEW
FROM BASE_AGG b
FULL OUTER JOIN VIEW_AGG v
  ON COALESCE(b.CANAL_NORM, '__NULL__') = COALESCE(v.CANAL_NORM, '__NULL__')
ORDER BY CANAL;
"""


def build_mismatch_orders_query(
    window: DateWindow,
    tolerance: float | None = None,
    settings: ReconciliationSettings | None = None,
) -> str:
    """
    Per (canal, salesId, invoiceId) triplet mismatch summary.

    Each triplet is classified ONLY_IN_BASE, ONLY_IN_VIEW, AMOUNT_MISMATCH
    (``|diff| > tolerance``) or MATCH_OK; MATCH_OK rows are filtered out.

    Args:
        window: Comparison window
        tolerance: Absolute amount tolerance (default: settings.aggregate_tolerance)
        settings: Table names and ledger account

    Returns:
        SQL text with no placeholders
    """
    settings = settings or ReconciliationSettings()
    if tolerance is None:
        tolerance = settings.aggregate_tolerance
    if tolerance < 0:
        raise ValueError(f"Invalid tolerance: {tolerance}. Must be >= 0.")
    base_filter, view_filter = _ledger_filters(settings)

    return f"""/* Mismatch summary by CANAL, SALESID, INVOICEID: BASE (sign inverted) vs VIEW */
WITH
{_window_cte(window, tolerance)},

BASE_RAW AS (
  SELECT
    COALESCE(TRIM(UPPER(b.GAPCANALDIMENSION)), '__NULL__')   AS CANAL_NORM,
    COALESCE(TRIM(UPPER(b.SALESID)), '__NULL__')             AS SALESID_NORM,
    COALESCE(TRIM(UPPER(b.INVOICEID)), '__NULL__')           AS INVOICEID_NORM,
    CAST(b.ACCOUNTINGCURRENCYAMOUNT AS NUMBER(38,6))         AS AMT
  FROM {settings.base_table} b
  WHERE {base_filter}
    AND b.ACCOUNTINGDATE BETWEEN (SELECT D_FROM FROM WINDOW) AND (SELECT D_TO FROM WINDOW)
),
BASE_GRP AS (
  SELECT CANAL_NORM, SALESID_NORM, INVOICEID_NORM,
         (SUM(AMT) * (-1))::NUMBER(38,6) AS BASE_AMT
  FROM BASE_RAW
  GROUP BY 1,2,3
),
VIEW_RAW AS (
  SELECT
    COALESCE(TRIM(UPPER(v.GAPCANALDIMENSION)), '__NULL__')   AS CANAL_NORM,
    COALESCE(TRIM(UPPER(v.SALESID)), '__NULL__')             AS SALESID_NORM,
    COALESCE(TRIM(UPPER(v.INVOICEID)), '__NULL__')           AS INVOICEID_NORM,
    CAST(v.ACCOUNTINGCURRENCYAMOUNT AS NUMBER(38,6))         AS AMT
  FROM {settings.view_table} v
  WHERE {view_filter}
    AND v.ACCOUNTINGDATE BETWEEN (SELECT D_FROM FROM WINDOW) AND (SELECT D_TO FROM WINDOW)
),
VIEW_GRP AS (
  SELECT CANAL_NORM, SALESID_NORM, INVOICEID_NORM,
         SUM(AMT)::NUMBER(38,6) AS VIEW_AMT
  FROM VIEW_RAW
  GROUP BY 1,2,3
),
PAIR AS (
  SELECT
    COALESCE(b.CANAL_NORM, v.CANAL_NORM)           AS CANAL_NORM,
    COALESCE(b.SALESID_NORM, v.SALESID_NORM)       AS SALESID_NORM,
    COALESCE(b.INVOICEID_NORM, v.INVOICEID_NORM)   AS INVOICEID_NORM,
    b.BASE_AMT, v.VIEW_AMT,
    (COALESCE(b.BASE_AMT, 0) - COALESCE(v.VIEW_AMT, 0))::NUMBER(38,6) AS DIFF_AMT
  FROM BASE_GRP b
  FULL OUTER JOIN VIEW_GRP v
    ON  COALESCE(b.CANAL_NORM, '__NULL__')     = COALESCE(v.CANAL_NORM, '__NULL__')
    AND COALESCE(b.SALESID_NORM, '__NULL__')   = COALESCE(v.SALESID_NORM, '__NULL__')
    AND COALESCE(b.INVOICEID_NORM, '__NULL__') = COALESCE(v.INVOICEID_NORM, '__NULL__')
),
MISMATCH AS (
  SELECT
    p.*,
    CASE
      WHEN p.VIEW_AMT IS NULL AND p.BASE_AMT IS NOT NULL THEN 'ONLY_IN_BASE'
      WHEN p.BASE_AMT IS NULL AND p.VIEW_AMT IS NOT NULL THEN 'ONLY_IN_VIEW'
      WHEN ABS(p.DIFF_AMT) > (SELECT TOL FROM WINDOW)      THEN 'AMOUNT_MISMATCH'
      ELSE 'MATCH_OK'
    END AS MATCH_STATUS
  FROM PAIR p
)
SELECT
  CANAL_NORM     AS CANAL,
  SALESID_NORM   AS SALESID,
  INVOICEID_NORM AS INVOICEID,
  BASE_AMT,
  VIEW_AMT,
  DIFF_AMT,
  MATCH_STATUS
FROM MISMATCH
WHERE MATCH_STATUS <> 'MATCH_OK' AND SALESID <> ''
ORDER BY CANAL, SALESID, INVOICEID;
"""

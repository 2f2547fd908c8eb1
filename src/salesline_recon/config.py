"""
Configuration for reconciliation, correction generation and query building.

Settings are passed explicitly to every component that needs them;
``from_env`` is the only place process environment is read.
"""

import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from utils.sql_safety import validate_integer_param, validate_qualified_name

DEFAULT_PROCESSED_TABLE = "ERP_PROCESSED_SALESLINE"
DEFAULT_BASE_TABLE = "ERP_ACCOUNTING_TRANSACTION"
DEFAULT_VIEW_TABLE = "VW_VENTA_COSTO_LINEAS_TEST"
DEFAULT_AUDIT_TABLE = "ZLOGS_QUERYS"

DEFAULT_LINE_LIMIT_CEILINGS = MappingProxyType({
    "vista": 200_000,
    "procesada": 200_000,
})


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class ReconciliationSettings:
    """
    Immutable settings shared by the reconciler, generator and query builders.

    Attributes:
        processed_table: Warehouse table holding processed sales lines
        base_table: Ledger transaction table (BASE)
        view_table: Comparison view (VISTA)
        audit_table: Table receiving executed statements and rollbacks
        default_data_area_id: Company used when a source line carries none
        ledger_account: Ledger account filtered by the aggregate queries
        window_start: Default first day of aggregate comparison windows
        aggregate_tolerance: Default tolerance for the mismatch summary query
        line_limit_ceilings: Maximum row limit per line-download source
        compare_item_and_date: Also flag item id and invoice date differences
    """

    processed_table: str = DEFAULT_PROCESSED_TABLE
    base_table: str = DEFAULT_BASE_TABLE
    view_table: str = DEFAULT_VIEW_TABLE
    audit_table: str = DEFAULT_AUDIT_TABLE
    default_data_area_id: str | None = None
    ledger_account: int = 400000
    window_start: str = "2020-01-01"
    aggregate_tolerance: float = 0.005
    line_limit_ceilings: Mapping[str, int] = field(
        default_factory=lambda: DEFAULT_LINE_LIMIT_CEILINGS
    )
    compare_item_and_date: bool = False

    def __post_init__(self):
        for name in (self.processed_table, self.base_table, self.view_table, self.audit_table):
            validate_qualified_name(name)
        validate_integer_param(self.ledger_account, "ledger_account", min_value=1)
        for source, ceiling in self.line_limit_ceilings.items():
            validate_integer_param(ceiling, f"line_limit_ceilings[{source}]", min_value=1)
        if self.aggregate_tolerance < 0:
            raise ValueError(
                f"Invalid aggregate_tolerance: {self.aggregate_tolerance}. Must be >= 0."
            )

    @classmethod
    def from_env(cls) -> "ReconciliationSettings":
        """
        Build settings from environment variables

        Environment variables:
            PROCESSED_SALESLINE_TABLE: processed line table
            BASE_TRANSACTION_TABLE: ledger table (BASE)
            COMPARISON_VIEW: comparison view (VISTA)
            QUERY_LOG_TABLE: audit log table
            DATAAREAID: default data area id
            LEDGER_ACCOUNT: ledger account (default: 400000)
            COMPARISON_WINDOW_START: first day of aggregate windows
            LINE_LIMIT_CEILING: row ceiling applied to every line source
            COMPARE_ITEM_AND_DATE: enable item/date line checks
        """
        ceilings = dict(DEFAULT_LINE_LIMIT_CEILINGS)
        if os.getenv("LINE_LIMIT_CEILING"):
            ceiling = int(os.environ["LINE_LIMIT_CEILING"])
            ceilings = {source: ceiling for source in ceilings}

        return cls(
            processed_table=os.getenv("PROCESSED_SALESLINE_TABLE", DEFAULT_PROCESSED_TABLE),
            base_table=os.getenv("BASE_TRANSACTION_TABLE", DEFAULT_BASE_TABLE),
            view_table=os.getenv("COMPARISON_VIEW", DEFAULT_VIEW_TABLE),
            audit_table=os.getenv("QUERY_LOG_TABLE", DEFAULT_AUDIT_TABLE),
            default_data_area_id=os.getenv("DATAAREAID") or None,
            ledger_account=int(os.getenv("LEDGER_ACCOUNT", "400000")),
            window_start=os.getenv("COMPARISON_WINDOW_START", "2020-01-01"),
            line_limit_ceilings=MappingProxyType(ceilings),
            compare_item_and_date=_env_flag("COMPARE_ITEM_AND_DATE"),
        )

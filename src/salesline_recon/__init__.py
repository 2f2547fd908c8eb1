"""
Sales-line reconciliation between an ERP OData entity and the warehouse.

Compares one order's lines on both sides under a half-cent tolerance, and
turns the differences into reviewable INSERT/UPDATE statements with paired
rollbacks. Also builds the aggregate BASE vs VIEW comparison queries.
"""

from .config import ReconciliationSettings
from .keys import derive_composite_key
from .line_level import (
    CorrectionScriptGenerator,
    CorrectionStatement,
    LineReconciler,
    LineStatus,
    ReconciliationReport,
    build_insert_statements,
    build_update_statements,
)
from .payload import build_processed_payload

__version__ = "1.0.0"

__all__ = [
    "CorrectionScriptGenerator",
    "CorrectionStatement",
    "LineReconciler",
    "LineStatus",
    "ReconciliationReport",
    "ReconciliationSettings",
    "build_insert_statements",
    "build_processed_payload",
    "build_update_statements",
    "derive_composite_key",
]

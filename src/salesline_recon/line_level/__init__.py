"""
Line-level reconciliation for one sales order.

Identifies:
- Lines present in only one of the ERP and the warehouse
- Amount, invoice and channel differences (item and date optionally)
- Generates INSERT/UPDATE corrections with rollbacks
"""

from .corrections import (
    NOT_APPLICABLE,
    NOT_GENERATED_MARKER,
    REASON_PK_MISMATCH,
    CorrectionPlan,
    CorrectionScriptGenerator,
    CorrectionStatement,
    build_correction_plan,
    build_insert_statements,
    build_update_statements,
    render_correction_script,
)
from .reconciler import (
    LineComparisonRecord,
    LineReconciler,
    LineStatus,
    ReconciliationReport,
    ReconciliationSummary,
    SourceCounts,
    SourceLineSnapshot,
    WarehouseLineSnapshot,
    reconcile_lines,
)

__all__ = [
    'CorrectionPlan',
    'CorrectionScriptGenerator',
    'CorrectionStatement',
    'LineComparisonRecord',
    'LineReconciler',
    'LineStatus',
    'NOT_APPLICABLE',
    'NOT_GENERATED_MARKER',
    'REASON_PK_MISMATCH',
    'ReconciliationReport',
    'ReconciliationSummary',
    'SourceCounts',
    'SourceLineSnapshot',
    'WarehouseLineSnapshot',
    'build_correction_plan',
    'build_insert_statements',
    'build_update_statements',
    'reconcile_lines',
    'render_correction_script',
]

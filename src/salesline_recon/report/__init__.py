"""
Report formatting and export for reconciliation results and correction plans.
"""

from .formatters import (
    export_report_csv,
    export_report_json,
    export_rows_csv,
    format_correction_plan_console,
    format_report_console,
)

__all__ = [
    'export_report_csv',
    'export_report_json',
    'export_rows_csv',
    'format_correction_plan_console',
    'format_report_console',
]

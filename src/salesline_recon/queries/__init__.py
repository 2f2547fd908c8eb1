"""
SQL text builders for aggregate comparisons and line downloads.

These builders only produce SQL; executing it is the caller's job.
"""

from .aggregates import (
    DateWindow,
    build_channel_comparison_query,
    build_mismatch_orders_query,
)
from .lines import (
    LINE_SOURCES,
    LineQuery,
    build_line_download_query,
    build_sales_line_detail_query,
)

__all__ = [
    'DateWindow',
    'LINE_SOURCES',
    'LineQuery',
    'build_channel_comparison_query',
    'build_line_download_query',
    'build_mismatch_orders_query',
    'build_sales_line_detail_query',
]

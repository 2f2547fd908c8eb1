"""
Literal formatting and statement builders for generated correction SQL.
"""

from .builder import (
    NULL,
    DeleteBuilder,
    InsertBuilder,
    UpdateBuilder,
    format_sql_value,
)

__all__ = [
    'NULL',
    'DeleteBuilder',
    'InsertBuilder',
    'UpdateBuilder',
    'format_sql_value',
]

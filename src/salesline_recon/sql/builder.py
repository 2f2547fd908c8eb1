"""
Literal formatting and statement assembly for correction SQL.

Every statement produced here is standalone text meant to be read by an
operator before it is executed, so values are rendered as literals rather
than bound parameters. Literal formatting lives in ``format_sql_value`` and
statement layout lives in the builder classes; neither knows about the other
beyond the already formatted literal strings.
"""

from typing import Any

from utils.sql_safety import (
    escape_string_literal,
    validate_identifier,
    validate_qualified_name,
)

from ..normalize import format_number, normalize_date, stringify_value, to_number

NULL = "NULL"


def format_sql_value(value: Any, column_type: str = "string") -> str:
    """
    Render a value as a SQL literal for its declared column type.

    Args:
        value: Raw value
        column_type: ``number``, ``date`` or ``string``

    Returns:
        ``NULL``, a bare number, ``'YYYY-MM-DD'::DATE`` or a quoted string
        with single quotes doubled
    """
    if value is None:
        return NULL

    if column_type == "number":
        number = to_number(value)
        if number is None:
            return NULL
        return format_number(number)

    if column_type == "date":
        day = normalize_date(value)
        return f"'{day}'::DATE" if day else NULL

    return escape_string_literal(stringify_value(value))


def _comment_lines(comment: str | None) -> list[str]:
    if not comment:
        return []
    return [f"-- {line}" for line in comment.splitlines()]


class _StatementBuilder:
    """Shared table validation and WHERE handling."""

    def __init__(self, table: str, comment: str | None = None):
        validate_qualified_name(table)
        self.table = table
        self.comment = comment
        self._conditions: list[tuple[str, str]] = []

    def where(self, column: str, literal: str):
        """Add an equality condition; conditions are AND-ed in insertion order."""
        validate_identifier(column)
        self._conditions.append((column, literal))
        return self

    def _where_clause(self) -> str:
        if not self._conditions:
            raise ValueError(f"{type(self).__name__} for {self.table} has no WHERE condition")
        return " AND ".join(f"{column} = {literal}" for column, literal in self._conditions)


class InsertBuilder(_StatementBuilder):
    """
    Single-row INSERT with an explicit column list.

    Example:
        >>> InsertBuilder("T").value("A", "1").value("B", "'x'").build()
        "INSERT INTO T\\n  (A, B)\\nVALUES\\n  (1, 'x');"
    """

    def __init__(self, table: str, comment: str | None = None):
        super().__init__(table, comment)
        self._values: list[tuple[str, str]] = []

    def value(self, column: str, literal: str) -> "InsertBuilder":
        validate_identifier(column)
        self._values.append((column, literal))
        return self

    @property
    def columns(self) -> list[str]:
        return [column for column, _ in self._values]

    def build(self) -> str:
        if not self._values:
            raise ValueError(f"INSERT into {self.table} has no columns")
        columns = ", ".join(column for column, _ in self._values)
        literals = ", ".join(literal for _, literal in self._values)
        lines = _comment_lines(self.comment)
        lines.extend([
            f"INSERT INTO {self.table}",
            f"  ({columns})",
            "VALUES",
            f"  ({literals});",
        ])
        return "\n".join(lines)


class UpdateBuilder(_StatementBuilder):
    """UPDATE with one ``SET`` assignment per line, in insertion order."""

    def __init__(self, table: str, comment: str | None = None):
        super().__init__(table, comment)
        self._assignments: list[tuple[str, str]] = []

    def set(self, column: str, literal: str) -> "UpdateBuilder":
        validate_identifier(column)
        self._assignments.append((column, literal))
        return self

    @property
    def columns(self) -> list[str]:
        return [column for column, _ in self._assignments]

    def build(self) -> str:
        if not self._assignments:
            raise ValueError(f"UPDATE of {self.table} has no assignments")
        assignments = ",\n  ".join(
            f"{column} = {literal}" for column, literal in self._assignments
        )
        lines = _comment_lines(self.comment)
        lines.extend([
            f"UPDATE {self.table}",
            "SET",
            f"  {assignments}",
            f"WHERE {self._where_clause()};",
        ])
        return "\n".join(lines)


class DeleteBuilder(_StatementBuilder):
    """DELETE restricted by at least one WHERE condition."""

    def build(self) -> str:
        lines = _comment_lines(self.comment)
        lines.extend([
            f"DELETE FROM {self.table}",
            f"WHERE {self._where_clause()};",
        ])
        return "\n".join(lines)

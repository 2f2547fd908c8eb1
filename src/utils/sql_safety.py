"""
Guards for SQL text assembled by the statement and query builders.

Values travel as bind parameters wherever the warehouse allows it. The
remaining interpolations are configured table names, column names from
fixed lists, and literals in generated correction scripts; these helpers
cover those three cases.
"""

import re

# ASCII only; '$' is legal after the first character in the warehouse dialect
_IDENTIFIER = r"[a-zA-Z_][a-zA-Z0-9_$]*"
VALID_IDENTIFIER = re.compile(rf"^{_IDENTIFIER}$")
VALID_QUALIFIED_NAME = re.compile(rf"^{_IDENTIFIER}(\.{_IDENTIFIER}){{0,2}}$")


def validate_identifier(identifier: str) -> None:
    """
    Reject anything that is not a bare column name or alias.

    Raises:
        ValueError: If ``identifier`` is empty or not a plain ASCII identifier
    """
    if not identifier:
        raise ValueError("SQL identifier cannot be empty")
    if not VALID_IDENTIFIER.match(identifier):
        raise ValueError(
            f"Invalid SQL identifier: {identifier!r}. Use ASCII letters, digits, "
            "'_' or '$', starting with a letter or '_'."
        )


def validate_qualified_name(name: str) -> None:
    """
    Accept ``table``, ``schema.table`` or ``database.schema.table``.

    Raises:
        ValueError: If ``name`` is empty or has more than three parts
    """
    if not name:
        raise ValueError("Table name cannot be empty")
    if not VALID_QUALIFIED_NAME.match(name):
        raise ValueError(
            f"Invalid table name: {name!r}. "
            "Expected up to three dot-separated ASCII identifiers."
        )


def escape_string_literal(value: str) -> str:
    """``O'Brien`` -> ``'O''Brien'``"""
    return "'" + str(value).replace("'", "''") + "'"


def validate_integer_param(value: int, param_name: str, min_value: int = 0) -> None:
    """
    Check a number that is rendered into SQL text (LIMIT, account ids).

    Raises:
        ValueError: If ``value`` is not an int (bool excluded) or is below ``min_value``
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Invalid {param_name}: {value!r}. Must be an integer.")
    if value < min_value:
        raise ValueError(f"Invalid {param_name}: {value}. Must be >= {min_value}.")

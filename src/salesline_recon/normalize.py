"""
Field normalization shared by line reconciliation and correction generation.

Both sides of a comparison go through the same helpers so that tolerance and
null handling classify a difference identically whether it is being reported
or turned into SQL.
"""

import math
import re
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

# Absolute tolerance for monetary and quantity comparisons (half a cent)
NUMBER_TOLERANCE = 0.005

_NON_ALPHANUMERIC = re.compile(r"[^A-Za-z0-9]")


def normalize_key(key: str | None) -> str:
    """
    Normalize a field name for lookups: alphanumerics only, uppercased.

    ``LineCreationSequenceNumber``, ``LINE_CREATION_SEQUENCE_NUMBER`` and
    ``lineCreationSequenceNumber`` all normalize to the same key.
    """
    return _NON_ALPHANUMERIC.sub("", key or "").upper()


def index_fields(record: Any) -> dict[str, Any]:
    """
    Index a record by normalized field name.

    Later fields win when two source names normalize to the same key.
    Non-mapping input yields an empty index.
    """
    if not hasattr(record, "items"):
        return {}
    return {normalize_key(str(name)): value for name, value in record.items()}


def lookup_field(record: Any, *names: str) -> Any:
    """Return the first non-null value for any of ``names`` (normalized lookup)."""
    index = index_fields(record)
    for name in names:
        value = index.get(normalize_key(name))
        if value is not None:
            return value
    return None


def to_number(value: Any) -> float | None:
    """
    Convert a value to a finite float.

    Returns None for null, empty strings, booleans, non-numeric text and
    non-finite numbers.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def format_number(value: float | int | Decimal) -> str:
    """
    Render a number for composite keys and SQL literals.

    Integral values drop the fractional part (``1.0`` and ``Decimal('1.000')``
    both render as ``1``); other values use the shortest round-trip digits in
    fixed-point notation, so ``1e-05`` renders as ``0.00001``.
    """
    if isinstance(value, int):
        return str(value)
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return format(Decimal(repr(number)), "f")


def format_instant(value: datetime | date) -> str:
    """Render a date/datetime as an ISO-8601 UTC instant with milliseconds."""
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day, tzinfo=UTC)
    elif value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    else:
        value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def stringify_value(value: Any) -> str:
    """
    Render any field value as text for keys and string literals.

    None becomes the empty string; dates become ISO instants; booleans are
    lowercase; numbers follow ``format_number``.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return format_instant(value)
    if isinstance(value, (int, float, Decimal)):
        if isinstance(value, float) and not math.isfinite(value):
            return repr(value)
        return format_number(value)
    return str(value)


def normalize_amount(*candidates: Any) -> float | None:
    """
    Return the first candidate convertible to a finite number, else None.
    """
    for candidate in candidates:
        number = to_number(candidate)
        if number is not None:
            return number
    return None


def normalize_string(*candidates: Any) -> str | None:
    """
    Return the first non-empty candidate, trimmed and uppercased, else None.

    ``0`` counts as a value; ``None``, ``False`` and blank text do not.
    """
    for candidate in candidates:
        if candidate is None or candidate is False:
            continue
        if isinstance(candidate, float) and math.isnan(candidate):
            continue
        text = stringify_value(candidate).strip()
        if text:
            return text.upper()
    return None


def normalize_line_number(value: Any) -> int | float | None:
    """
    Normalize a line creation sequence number.

    Integral values come back as ``int`` so ``1``, ``1.0`` and ``"1"`` align;
    anything not convertible to a finite number is None.
    """
    number = to_number(value)
    if number is None:
        return None
    return int(number) if number.is_integer() else number


def normalize_date(value: Any) -> str | None:
    """
    Normalize a date-like value to an ISO calendar day (``YYYY-MM-DD``).

    Timezone-aware values are converted to UTC first. Unparseable text falls
    back to its first ten characters.
    """
    if value is None or value is False or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    text = str(value).strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return text[:10] or None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC)
    return parsed.date().isoformat()


def values_equal(before: Any, after: Any, column_type: str = "string") -> bool:
    """
    Compare two column values under the shared equality rules.

    Args:
        before: Current value
        after: Desired value
        column_type: ``number``, ``date`` or anything else for string rules

    Returns:
        True when the values are equal for reconciliation purposes
    """
    if column_type == "number":
        before_num = to_number(before)
        after_num = to_number(after)
        if before_num is None and after_num is None:
            return True
        if before_num is None or after_num is None:
            return False
        return within_tolerance(before_num, after_num)

    if column_type == "date":
        return normalize_date(before) == normalize_date(after)

    before_text = _comparable_text(before)
    after_text = _comparable_text(after)
    if before_text is None and after_text is None:
        return True
    if before_text is None or after_text is None:
        return False
    return before_text == after_text


def within_tolerance(a: float, b: float, tolerance: float = NUMBER_TOLERANCE) -> bool:
    """
    True when ``|a - b| <= tolerance``.

    The difference is rounded to 9 places first so that ``100.005 - 100.0``
    is not pushed over the boundary by binary representation error.
    """
    return round(abs(a - b), 9) <= tolerance


def _comparable_text(value: Any) -> str | None:
    # Blank text compares like a missing value
    if value is None:
        return None
    return stringify_value(value).strip().upper() or None

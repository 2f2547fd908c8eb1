"""
Composite primary key (SALESLINEPK) derivation for processed sales lines.

The key is the hyphen-joined rendering of seventeen fields in a fixed order.
A missing field contributes an empty segment, so every key carries exactly
sixteen separators regardless of how complete the input is.
"""

from collections.abc import Mapping
from typing import Any

from .normalize import index_fields, normalize_key, stringify_value

COMPOSITE_KEY_COLUMN = "SALESLINEPK"
COMPOSITE_KEY_SEPARATOR = "-"

SALES_LINE_PK_SEQUENCE = (
    "QTY",
    "INVENTTRANSID",
    "INVENTDIMID",
    "REFCUSTINVOICETRANSRECID",
    "INVOICECODE",
    "INVOICEID",
    "SALESID",
    "DEV_INVOICEID",
    "DEV_SALESID",
    "ITEMID",
    "CONFIGID",
    "INVENTCOLORID",
    "INVENTSIZEID",
    "INVENTSTYLEID",
    "INVENTSTATUSID",
    "INVENTLOCATIONID",
    "LINECREATIONSEQUENCENUMBER",
)


def derive_composite_key(fields: Mapping[str, Any] | None) -> str:
    """
    Derive the SALESLINEPK for a line.

    Field names are matched after normalization, so ``InventTransId`` and
    ``INVENTTRANSID`` feed the same segment.

    Args:
        fields: Any mapping holding some or all of the key fields

    Returns:
        Seventeen segments joined by ``-``
    """
    index = index_fields(fields or {})
    segments = [
        stringify_value(index.get(normalize_key(column)))
        for column in SALES_LINE_PK_SEQUENCE
    ]
    return COMPOSITE_KEY_SEPARATOR.join(segments)


def is_blank_composite_key(key: str | None) -> bool:
    """True when a key is missing or made only of separators and whitespace."""
    if not key:
        return True
    return not key.replace(COMPOSITE_KEY_SEPARATOR, "").strip()

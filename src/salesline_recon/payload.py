"""
Maps ERP sales-line records onto the processed sales-line table.

Source field names vary between integration versions, so every field is
matched through its normalized name against a lookup table built once from
the fixed target column list. The composite key is computed last, over the
fully assembled row.
"""

from collections.abc import Mapping
from typing import Any

from .config import ReconciliationSettings
from .keys import COMPOSITE_KEY_COLUMN, derive_composite_key
from .normalize import index_fields, lookup_field, normalize_key

PROCESSED_COLUMNS = (
    "SALESLINEPK",
    "DEFINITIONGROUP",
    "EXECUTIONID",
    "ISSELECTED",
    "TRANSFERSTATUS",
    "INVOICEDATE",
    "INVOICEID",
    "SALESID",
    "EXCHRATE",
    "SALESPRICE",
    "QTY",
    "ORIGINALPRICE",
    "ITEMID",
    "LINENUM",
    "CURRENCYCODE",
    "INVENTTRANSID",
    "INVENTDIMID",
    "INVENTLOCATIONID",
    "INVENTLOCATIONNAME",
    "REFCUSTINVOICETRANSRECID",
    "SALESPOOLID",
    "PURCHORDERFORMNUM",
    "DEV_SALESID",
    "DEV_INVOICEID",
    "LINEDISC",
    "LINEPERCENT",
    "MULTILNDISC",
    "MULTILNPERCENT",
    "SUMLINEDISC",
    "COSTAMOUNTADJUSTMENT",
    "COSTAMOUNTPOSTED",
    "COSTAMOUNTPHYSICAL",
    "DISCPERCENT",
    "LINEAMOUNT",
    "LINEAMOUNTTAX",
    "CONTRIBUTIONMARGIN",
    "CONTRIBUTIONRATIO",
    "BARCODE",
    "LINEAMOUNTMST",
    "LINEAMOUNTTAXMST",
    "SUMLINEDISCMST",
    "TAXAMOUNTMST",
    "DISCOUNTCODE",
    "STAFFID",
    "STAFFNAME",
    "TENDERTYPEID",
    "LINEAMOUNTWITHTAXES",
    "CONFIGID",
    "INVENTBATCHID",
    "INVENTCOLORID",
    "INVENTSERIALID",
    "INVENTSITEID",
    "INVENTSIZEID",
    "INVENTSTATUSID",
    "INVENTSTYLEID",
    "INVENTVERSIONID",
    "WMSLOCATIONID",
    "ITEMNAME",
    "SALESUNIT",
    "TAXITEMGROUP",
    "TAXGROUP",
    "TENDERTYPENAME",
    "CANAL",
    "CECO",
    "CANALCODE",
    "CECOCODE",
    "EXTERNALITEMID",
    "PRICEGROUPLIST",
    "CREATEDTRANSACTIONDATE2",
    "DEFAULTDIMENSIONDISPLAYVALUE",
    "PARTITION",
    "CUSTACCOUNT",
    "ORGANIZATIONNAME",
    "INVENTORYLOTID",
    "TRANSACTIONID",
    "RETURNTRANSACTIONID",
    "SKU",
    "LINECREATIONSEQUENCENUMBER",
    "SHIPPINGWAREHOUSEID",
    "PRIMARYCONTACTEMAIL",
    "INVOICECODE",
    "ITEMIDSCANNED",
    "KEYBOARDITEMENTRY",
    "PRICECHANGE",
    "DATAAREAID",
    "SYNCSTARTDATETIME",
    "SNOWFLAKE_CREATED_AT",
    "SNOWFLAKE_UPDATED_AT",
)

# Populated by the load process, never by a correction
AUDIT_TIMESTAMP_COLUMNS = frozenset({
    "SNOWFLAKE_CREATED_AT",
    "SNOWFLAKE_UPDATED_AT",
    "SYNCSTARTDATETIME",
})

NUMBER_COLUMNS = frozenset({
    "QTY",
    "SALESPRICE",
    "ORIGINALPRICE",
    "LINENUM",
    "LINECREATIONSEQUENCENUMBER",
    "LINEAMOUNT",
    "LINEAMOUNTMST",
    "LINEAMOUNTWITHTAXES",
    "LINEAMOUNTTAX",
    "LINEAMOUNTTAXMST",
    "LINEDISC",
    "LINEPERCENT",
    "SUMLINEDISC",
    "SUMLINEDISCMST",
    "MULTILNDISC",
    "MULTILNPERCENT",
    "COSTAMOUNTADJUSTMENT",
    "COSTAMOUNTPOSTED",
    "COSTAMOUNTPHYSICAL",
    "DISCPERCENT",
    "CONTRIBUTIONMARGIN",
    "CONTRIBUTIONRATIO",
    "TENDERTYPEID",
    "EXCHRATE",
    "TAXAMOUNTMST",
    "ITEMIDSCANNED",
    "KEYBOARDITEMENTRY",
    "PRICECHANGE",
})

DATE_COLUMNS = frozenset({"INVOICEDATE"})

# Normalized source name -> canonical target column
COLUMN_INDEX = {normalize_key(column): column for column in PROCESSED_COLUMNS}

# Source aliases consulted when a column is still blank after overrides
BACKFILL_ALIASES = {
    "LINECREATIONSEQUENCENUMBER": ("LineCreationSequenceNumber",),
    "LINENUM": ("LineNum", "LineNumber"),
    "INVOICEDATE": ("InvoiceDate", "InvoicingDate"),
}


class _Unset:
    """Marker for an override that should be ignored (as opposed to None)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()


def column_type(column: str) -> str:
    """Declared comparison/formatting type of a target column."""
    if column in NUMBER_COLUMNS:
        return "number"
    if column in DATE_COLUMNS:
        return "date"
    return "string"


def _is_blank(value: Any) -> bool:
    return value is None or value is UNSET or (isinstance(value, str) and not value.strip())


def map_source_record(source_record: Mapping[str, Any] | None) -> dict[str, Any]:
    """
    Copy the fields of a source record that match a target column.

    Unmatched fields are dropped. Output keys are canonical column names.
    """
    mapped: dict[str, Any] = {}
    if not isinstance(source_record, Mapping):
        return mapped
    for name, value in source_record.items():
        column = COLUMN_INDEX.get(normalize_key(str(name)))
        if column:
            mapped[column] = value
    return mapped


def build_processed_payload(
    sales_id: str | None,
    source_record: Mapping[str, Any] | None,
    overrides: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Build a processed sales-line row from an ERP record.

    Args:
        sales_id: Order id written to SALESID (and DEV_SALESID when absent)
        source_record: Raw ERP line
        overrides: Column values applied after mapping; ``UNSET`` values are
            skipped, ``None`` is written as-is

    Returns:
        Row keyed by canonical column name, always including SALESLINEPK
    """
    payload = map_source_record(source_record)

    if sales_id:
        payload["SALESID"] = sales_id
        if _is_blank(payload.get("DEV_SALESID")):
            payload["DEV_SALESID"] = sales_id

    for column, value in (overrides or {}).items():
        if value is UNSET:
            continue
        payload[column] = value

    source_index = index_fields(source_record)
    for column, aliases in BACKFILL_ALIASES.items():
        if not _is_blank(payload.get(column)):
            continue
        for alias in aliases:
            value = source_index.get(normalize_key(alias))
            if not _is_blank(value):
                payload[column] = value
                break

    payload[COMPOSITE_KEY_COLUMN] = derive_composite_key(payload)
    return payload


class ProcessedPayloadMapper:
    """
    Builds target rows for reconciled lines using explicit settings.

    The per-line overrides pin the line number to the reconciled key and
    fall back to the configured data area when the source carries none.
    """

    def __init__(self, settings: ReconciliationSettings | None = None):
        self.settings = settings or ReconciliationSettings()

    def line_overrides(
        self,
        line_number: Any,
        source_record: Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        line_sequence = line_number
        if line_sequence is None:
            line_sequence = lookup_field(source_record, "LineCreationSequenceNumber")

        data_area_id = lookup_field(source_record, "dataAreaId")
        if _is_blank(data_area_id):
            data_area_id = self.settings.default_data_area_id

        return {
            "LINECREATIONSEQUENCENUMBER": line_sequence,
            "LINENUM": lookup_field(source_record, "LineNum", "LineNumber"),
            "DATAAREAID": data_area_id,
        }

    def build_for_line(
        self,
        sales_id: str | None,
        source_record: Mapping[str, Any] | None,
        line_number: Any = None,
    ) -> dict[str, Any]:
        """
        Build the target row for one reconciled line

        Args:
            sales_id: Order id
            source_record: Raw ERP line
            line_number: Reconciled line number (preferred over the source)

        Returns:
            Target row including SALESLINEPK
        """
        return build_processed_payload(
            sales_id,
            source_record,
            self.line_overrides(line_number, source_record),
        )

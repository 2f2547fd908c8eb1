"""
Pytest configuration and fixtures for sales-line reconciliation tests.
Provides shared line records, settings and a clean environment.
"""

from pathlib import Path

import pytest

from salesline_recon.config import ReconciliationSettings

# Variables read by the from_env constructors
_CONFIG_ENV_VARS = (
    "PROCESSED_SALESLINE_TABLE",
    "BASE_TRANSACTION_TABLE",
    "COMPARISON_VIEW",
    "QUERY_LOG_TABLE",
    "DATAAREAID",
    "LEDGER_ACCOUNT",
    "COMPARISON_WINDOW_START",
    "LINE_LIMIT_CEILING",
    "COMPARE_ITEM_AND_DATE",
    "LOG_EXECUTOR",
    "LOG_FILE",
    "OTLP_ENDPOINT",
    "TRACE_CONSOLE",
)


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: mark test as slow running")


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Get project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture(autouse=True)
def clean_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Start every test from default configuration."""
    for name in _CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings() -> ReconciliationSettings:
    """Default settings with a known data area."""
    return ReconciliationSettings(default_data_area_id="pat")


@pytest.fixture
def odata_line() -> dict:
    """A complete ERP line as returned by the OData entity."""
    return {
        "SalesId": "PAT-000123",
        "LineCreationSequenceNumber": 1,
        "LineNum": 1,
        "dataAreaId": "pat",
        "InvoiceId": "FAC-001",
        "InvoiceDate": "2024-03-15T00:00:00Z",
        "ItemId": "SKU-1",
        "ItemNumber": "SKU-1",
        "Qty": 2,
        "LineAmount": 100.0,
        "InventTransId": "IT-1",
        "InventDimId": "DIM-1",
        "InvoiceCode": "IC",
        "Canal": "ECOM",
        "GAPCanalDimension": "ECOM",
    }


@pytest.fixture
def warehouse_line() -> dict:
    """The processed row matching ``odata_line``."""
    return {
        "SALESLINEPK": "2-IT-1-DIM-1--IC-FAC-001-PAT-000123--PAT-000123-SKU-1-------1",
        "SALESID": "PAT-000123",
        "DEV_SALESID": "PAT-000123",
        "LINECREATIONSEQUENCENUMBER": 1,
        "LINENUM": 1,
        "DATAAREAID": "pat",
        "INVOICEID": "FAC-001",
        "INVOICEDATE": "2024-03-15",
        "ITEMID": "SKU-1",
        "QTY": 2,
        "LINEAMOUNT": 100.0,
        "INVENTTRANSID": "IT-1",
        "INVENTDIMID": "DIM-1",
        "INVOICECODE": "IC",
        "CANAL": "ECOM",
    }

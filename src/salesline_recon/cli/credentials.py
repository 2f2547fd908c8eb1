"""
Collaborator construction and logging setup for the CLI.

Connection settings come from the environment; nothing is read at import
time.
"""

import logging
import os

from utils.logging import setup_logging
from utils.tracing import initialize_tracing

from ..collaborators import (
    DBAPIQueryExecutor,
    ODataClient,
    ODataSettings,
    WarehouseConnectionSettings,
    odbc_connector,
)

logger = logging.getLogger(__name__)


def setup_cli_logging(log_level: str = "INFO", json_logs: bool = False) -> None:
    """
    Setup logging and tracing for a CLI run

    Log lines also go to the LOG_FILE path when that variable is set.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_logs: Emit JSON log lines instead of console text
    """
    setup_logging(level=log_level, log_file=os.getenv("LOG_FILE"), json_format=json_logs)
    initialize_tracing()


def get_warehouse_executor() -> DBAPIQueryExecutor:
    """
    Warehouse executor from SNOWFLAKE_* environment variables

    Raises:
        ValueError: If required variables are missing
    """
    settings = WarehouseConnectionSettings.from_env()
    logger.info(f"Using warehouse {settings.account}/{settings.database}.{settings.schema}")
    return DBAPIQueryExecutor(odbc_connector(settings))


def get_odata_client() -> ODataClient:
    """
    OData client from environment variables

    Raises:
        ValueError: If required variables are missing
    """
    return ODataClient(ODataSettings.from_env())

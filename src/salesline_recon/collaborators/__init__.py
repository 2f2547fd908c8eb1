"""
Data-source contracts and their adapters.

- WarehouseQueryExecutor / DBAPIQueryExecutor: SQL with ``?`` binds
- ErpRecordFetcher / ODataClient: ERP lines by SalesId
"""

from .odata import ODataClient, ODataResponseError, ODataSettings, escape_odata
from .protocols import ErpRecordFetcher, WarehouseQueryExecutor
from .warehouse import (
    DBAPIQueryExecutor,
    WarehouseConnectionSettings,
    normalize_account,
    odbc_connector,
)

__all__ = [
    'DBAPIQueryExecutor',
    'ErpRecordFetcher',
    'ODataClient',
    'ODataResponseError',
    'ODataSettings',
    'WarehouseConnectionSettings',
    'WarehouseQueryExecutor',
    'escape_odata',
    'normalize_account',
    'odbc_connector',
]

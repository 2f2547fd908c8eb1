"""
Contracts for the data sources the reconciler depends on.
"""

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class WarehouseQueryExecutor(Protocol):
    """Runs SQL with ``?`` positional binds and returns column-keyed rows."""

    async def execute(self, sql: str, binds: Sequence[Any] = ()) -> list[dict[str, Any]]:
        ...


@runtime_checkable
class ErpRecordFetcher(Protocol):
    """Fetches ERP sales lines for one order as an OData ``{"value": [...]}`` body."""

    async def fetch_by_sales_id(self, sales_id: str) -> dict[str, Any]:
        ...

"""
DB-API adapter for the warehouse query executor.

Each query opens its own connection, runs, and closes it; driver calls run
in a worker thread so the event loop is never blocked. Placeholders are
qmark style (``?``), as used by pyodbc and the Snowflake ODBC driver.
"""

import asyncio
import logging
import os
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from opentelemetry import trace

from utils.tracing import trace_operation

logger = logging.getLogger(__name__)

DEFAULT_ODBC_DRIVER = "SnowflakeDSIIDriver"


def normalize_account(value: str | None) -> str:
    """Strip scheme, ``.snowflakecomputing.com`` and any path from an account."""
    account = (value or "").strip()
    account = re.sub(r"^https?://", "", account, flags=re.IGNORECASE)
    account = re.sub(r"/.*$", "", account)
    return re.sub(r"\.snowflakecomputing\.com$", "", account, flags=re.IGNORECASE)


@dataclass(frozen=True)
class WarehouseConnectionSettings:
    """Snowflake connection settings for the ODBC driver."""

    account: str
    username: str
    password: str
    warehouse: str
    database: str
    schema: str
    role: str | None = None
    driver: str = DEFAULT_ODBC_DRIVER

    REQUIRED_ENV = (
        "SNOWFLAKE_ACCOUNT",
        "SNOWFLAKE_USERNAME",
        "SNOWFLAKE_PASSWORD",
        "SNOWFLAKE_WAREHOUSE",
        "SNOWFLAKE_DATABASE",
        "SNOWFLAKE_SCHEMA",
    )

    @classmethod
    def from_env(cls) -> "WarehouseConnectionSettings":
        """
        Build settings from SNOWFLAKE_* environment variables

        Raises:
            ValueError: If a required variable is missing
        """
        missing = [name for name in cls.REQUIRED_ENV if not os.getenv(name)]
        if missing:
            raise ValueError(f"Missing Snowflake environment variables: {', '.join(missing)}")

        return cls(
            account=normalize_account(os.environ["SNOWFLAKE_ACCOUNT"]),
            username=os.environ["SNOWFLAKE_USERNAME"],
            password=os.environ["SNOWFLAKE_PASSWORD"],
            warehouse=os.environ["SNOWFLAKE_WAREHOUSE"],
            database=os.environ["SNOWFLAKE_DATABASE"],
            schema=os.environ["SNOWFLAKE_SCHEMA"],
            role=os.getenv("SNOWFLAKE_ROLE") or None,
            driver=os.getenv("SNOWFLAKE_ODBC_DRIVER", DEFAULT_ODBC_DRIVER),
        )

    def connection_string(self) -> str:
        parts = [
            f"DRIVER={{{self.driver}}}",
            f"SERVER={self.account}.snowflakecomputing.com",
            f"UID={self.username}",
            f"PWD={self.password}",
            f"WAREHOUSE={self.warehouse}",
            f"DATABASE={self.database}",
            f"SCHEMA={self.schema}",
        ]
        if self.role:
            parts.append(f"ROLE={self.role}")
        return ";".join(parts) + ";"


def odbc_connector(settings: WarehouseConnectionSettings) -> Callable[[], Any]:
    """Connection factory for DBAPIQueryExecutor backed by pyodbc."""

    def connect():
        # Imported here so the package loads without the ODBC driver manager
        import pyodbc

        return pyodbc.connect(settings.connection_string())

    return connect


class DBAPIQueryExecutor:
    """
    Runs SQL through any DB-API 2.0 connection factory.

    Statements that return no result set are committed. Driver errors are
    raised unchanged.
    """

    def __init__(self, connect: Callable[[], Any]):
        """
        Initialize executor

        Args:
            connect: Zero-argument callable returning a new DB-API connection
        """
        self.connect = connect

    def run(self, sql: str, binds: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """
        Execute one statement synchronously

        Args:
            sql: Statement with ``?`` placeholders
            binds: Positional bind values

        Returns:
            Rows as dicts keyed by column name (empty for DML/DDL)
        """
        conn = self.connect()
        try:
            cursor = conn.cursor()
            try:
                if binds:
                    cursor.execute(sql, list(binds))
                else:
                    cursor.execute(sql)

                if cursor.description is None:
                    conn.commit()
                    logger.debug(f"Statement executed, {cursor.rowcount} rows affected")
                    return []

                columns = [column[0] for column in cursor.description]
                rows = [dict(zip(columns, row)) for row in cursor.fetchall()]
                logger.debug(f"Query returned {len(rows)} rows")
                return rows
            finally:
                cursor.close()
        finally:
            conn.close()

    async def execute(self, sql: str, binds: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Execute in a worker thread; see ``run``."""
        with trace_operation(
            "warehouse_execute",
            kind=trace.SpanKind.CLIENT,
            bind_count=len(binds),
        ):
            return await asyncio.to_thread(self.run, sql, binds)

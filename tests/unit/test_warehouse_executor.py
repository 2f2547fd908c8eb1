"""
Unit tests for the warehouse DB-API executor and connection settings
"""

import asyncio
import sys
from unittest.mock import MagicMock, patch

import pytest

from salesline_recon.collaborators import (
    DBAPIQueryExecutor,
    WarehouseConnectionSettings,
    WarehouseQueryExecutor,
    normalize_account,
    odbc_connector,
)


def _connection(description=None, rows=None):
    cursor = MagicMock()
    cursor.description = description
    cursor.fetchall.return_value = rows or []
    cursor.rowcount = 1
    connection = MagicMock()
    connection.cursor.return_value = cursor
    return connection, cursor


class TestNormalizeAccount:
    """Tests for normalize_account"""

    @pytest.mark.parametrize("value", [
        "xy12345",
        "https://xy12345.snowflakecomputing.com",
        "xy12345.snowflakecomputing.com/console",
        "  HTTP://xy12345.SNOWFLAKECOMPUTING.COM  ",
    ])
    def test_normalize(self, value):
        assert normalize_account(value).lower() == "xy12345"

    def test_empty(self):
        assert normalize_account(None) == ""


class TestWarehouseConnectionSettings:
    """Tests for WarehouseConnectionSettings"""

    def _set_env(self, monkeypatch):
        for name in WarehouseConnectionSettings.REQUIRED_ENV:
            monkeypatch.setenv(name, name.lower())
        monkeypatch.setenv("SNOWFLAKE_ACCOUNT", "https://acct.snowflakecomputing.com")

    def test_from_env(self, monkeypatch):
        self._set_env(monkeypatch)
        monkeypatch.setenv("SNOWFLAKE_ROLE", "ANALYST")

        settings = WarehouseConnectionSettings.from_env()

        assert settings.account == "acct"
        assert settings.role == "ANALYST"

    def test_from_env_missing(self, monkeypatch):
        self._set_env(monkeypatch)
        monkeypatch.delenv("SNOWFLAKE_PASSWORD")

        with pytest.raises(ValueError, match="SNOWFLAKE_PASSWORD"):
            WarehouseConnectionSettings.from_env()

    def test_connection_string(self):
        settings = WarehouseConnectionSettings("acct", "u", "p", "wh", "db", "sch")
        conn_str = settings.connection_string()
        assert conn_str.startswith("DRIVER={SnowflakeDSIIDriver};SERVER=acct.snowflakecomputing.com;")
        assert "SCHEMA=sch;" in conn_str
        assert "ROLE" not in conn_str

    def test_odbc_connector(self):
        settings = WarehouseConnectionSettings("acct", "u", "p", "wh", "db", "sch", role="R")
        fake_pyodbc = MagicMock()
        with patch.dict(sys.modules, {"pyodbc": fake_pyodbc}):
            odbc_connector(settings)()
        fake_pyodbc.connect.assert_called_once_with(settings.connection_string())


class TestDBAPIQueryExecutor:
    """Tests for DBAPIQueryExecutor"""

    def test_satisfies_protocol(self):
        assert isinstance(DBAPIQueryExecutor(MagicMock()), WarehouseQueryExecutor)

    def test_rows_as_dicts(self):
        connection, cursor = _connection(
            description=[("SALESID",), ("LINEAMOUNT",)],
            rows=[("PAT-1", 10), ("PAT-1", 20)],
        )
        executor = DBAPIQueryExecutor(lambda: connection)

        rows = executor.run("SELECT ... WHERE SALESID = ?", ["PAT-1"])

        assert rows == [
            {"SALESID": "PAT-1", "LINEAMOUNT": 10},
            {"SALESID": "PAT-1", "LINEAMOUNT": 20},
        ]
        cursor.execute.assert_called_once_with("SELECT ... WHERE SALESID = ?", ["PAT-1"])
        connection.commit.assert_not_called()
        cursor.close.assert_called_once()
        connection.close.assert_called_once()

    def test_no_binds(self):
        connection, cursor = _connection(description=[("X",)], rows=[(1,)])
        DBAPIQueryExecutor(lambda: connection).run("SELECT 1")
        cursor.execute.assert_called_once_with("SELECT 1")

    def test_statement_without_result_committed(self):
        connection, _ = _connection(description=None)

        rows = DBAPIQueryExecutor(lambda: connection).run("CREATE TABLE T (A INT)")

        assert rows == []
        connection.commit.assert_called_once()

    def test_connection_closed_on_error(self):
        connection, cursor = _connection()
        cursor.execute.side_effect = RuntimeError("syntax error")

        with pytest.raises(RuntimeError, match="syntax error"):
            DBAPIQueryExecutor(lambda: connection).run("SELEC 1")

        cursor.close.assert_called_once()
        connection.close.assert_called_once()

    def test_execute_async(self):
        connection, _ = _connection(description=[("N",)], rows=[(3,)])

        rows = asyncio.run(DBAPIQueryExecutor(lambda: connection).execute("SELECT 3 AS N"))

        assert rows == [{"N": 3}]

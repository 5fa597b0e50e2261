"""Unit tests for MySQLConnector."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import Mock

import mysql.connector
import pytest

from sqlchat.connectors.base import ConnectionError, QueryError, SchemaError
from sqlchat.connectors.mysql import MySQLConnector


def _install_fake_mysql(monkeypatch, connect_impl: Mock) -> None:
    fake_mysql = SimpleNamespace(
        connector=SimpleNamespace(connect=connect_impl),
    )
    monkeypatch.setattr("sqlchat.connectors.mysql.mysql", fake_mysql)


def _build_connection(*, with_rows: bool = True, rows: list[dict] | None = None):
    conn = Mock()
    cursor = Mock()
    conn.cursor.return_value = cursor
    cursor.with_rows = with_rows
    cursor.fetchall.return_value = rows or []
    cursor.description = [("id",), ("name",)]
    return conn, cursor


def _connector() -> MySQLConnector:
    return MySQLConnector(
        host="localhost",
        port=3306,
        database="app",
        user="root",
        password="secret",
    )


@pytest.mark.asyncio
async def test_connect_success(monkeypatch):
    conn, _ = _build_connection()
    connect_impl = Mock(return_value=conn)
    _install_fake_mysql(monkeypatch, connect_impl)

    connector = _connector()
    await connector.connect()

    assert connector.is_connected is True
    conn.ping.assert_called_once_with(reconnect=False)
    conn.close.assert_called_once()


@pytest.mark.asyncio
async def test_connect_failure_raises_connection_error(monkeypatch):
    connect_impl = Mock(side_effect=mysql.connector.Error("connection refused"))
    _install_fake_mysql(monkeypatch, connect_impl)

    connector = _connector()

    with pytest.raises(ConnectionError, match="Failed to connect"):
        await connector.connect()
    assert connector.is_connected is False


@pytest.mark.asyncio
async def test_execute_query_returns_rows(monkeypatch):
    conn1, _ = _build_connection()
    rows = [{"id": 1, "name": "Alice"}, {"id": 2, "name": "Bob"}]
    conn2, cursor2 = _build_connection(rows=rows)
    connect_impl = Mock(side_effect=[conn1, conn2])
    _install_fake_mysql(monkeypatch, connect_impl)

    connector = _connector()
    await connector.connect()
    result = await connector.execute("SELECT id, name FROM users", timeout=7)

    assert result.row_count == 2
    assert result.columns == ["id", "name"]
    assert result.rows[0]["id"] == 1
    cursor2.execute.assert_called_with("SELECT id, name FROM users")
    assert connect_impl.call_args.kwargs["connection_timeout"] == 7
    conn2.close.assert_called_once()


@pytest.mark.asyncio
async def test_execute_without_connect_raises(monkeypatch):
    _install_fake_mysql(monkeypatch, Mock())

    with pytest.raises(ConnectionError, match="Not connected"):
        await _connector().execute("SELECT 1")


@pytest.mark.asyncio
async def test_execute_error_keeps_server_message(monkeypatch):
    conn1, _ = _build_connection()
    conn2, cursor2 = _build_connection()
    cursor2.execute.side_effect = mysql.connector.Error(
        "1054 (42S22): Unknown column 'nope' in 'field list'"
    )
    connect_impl = Mock(side_effect=[conn1, conn2])
    _install_fake_mysql(monkeypatch, connect_impl)

    connector = _connector()
    await connector.connect()
    with pytest.raises(QueryError, match="Unknown column 'nope'"):
        await connector.execute("SELECT nope FROM users")


@pytest.mark.asyncio
async def test_get_schema_success(monkeypatch):
    conn1, _ = _build_connection()
    conn2, cursor2 = _build_connection()
    cursor2.fetchall.side_effect = [
        [
            {
                "table_name": "orders",
                "table_type": "BASE TABLE",
                "table_rows": 10,
                "table_comment": "",
            }
        ],
        [
            {
                "table_name": "orders",
                "column_name": "id",
                "column_type": "int",
                "is_nullable": "NO",
                "column_default": None,
                "column_key": "PRI",
                "max_length": None,
                "column_comment": "",
            },
            {
                "table_name": "orders",
                "column_name": "customer_id",
                "column_type": "int",
                "is_nullable": "YES",
                "column_default": None,
                "column_key": "MUL",
                "max_length": None,
                "column_comment": "buyer",
            },
        ],
        [
            {
                "table_name": "orders",
                "column_name": "customer_id",
                "foreign_table_name": "customers",
                "foreign_column_name": "id",
            }
        ],
        [{"table_name": "orders", "index_name": "PRIMARY", "index_columns": "id"}],
    ]
    connect_impl = Mock(side_effect=[conn1, conn2])
    _install_fake_mysql(monkeypatch, connect_impl)

    connector = _connector()
    await connector.connect()
    tables = await connector.get_schema(schema_name="app")

    assert len(tables) == 1
    table = tables[0]
    assert table.schema_name == "app"
    assert table.table_name == "orders"
    assert table.row_count == 10
    assert table.comment is None
    assert table.indexes[0].name == "PRIMARY"
    id_col, customer_col = table.columns
    assert id_col.is_primary_key is True
    assert id_col.is_nullable is False
    assert customer_col.is_foreign_key is True
    assert customer_col.foreign_table == "customers"
    assert customer_col.comment == "buyer"


@pytest.mark.asyncio
async def test_get_schema_error_raises(monkeypatch):
    conn1, _ = _build_connection()
    conn2, cursor2 = _build_connection()
    cursor2.execute.side_effect = mysql.connector.Error("schema error")
    connect_impl = Mock(side_effect=[conn1, conn2])
    _install_fake_mysql(monkeypatch, connect_impl)

    connector = _connector()
    await connector.connect()
    with pytest.raises(SchemaError, match="Failed to introspect schema"):
        await connector.get_schema(schema_name="app")


def test_backtick_quoting():
    assert _connector().quote_identifier("app.order`s") == "`app`.`order``s`"


def test_database_id_has_no_credentials():
    assert _connector().database_id == "mysql|localhost|3306|app"

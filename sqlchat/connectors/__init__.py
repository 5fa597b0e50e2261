"""
Database Connectors Module

Async connectors for the relational stores questions are answered from.

Available Connectors:
    - BaseConnector: Abstract base class
    - PostgresConnector: PostgreSQL connector (asyncpg)
    - MySQLConnector: MySQL connector (mysql-connector-python)

Usage:
    from sqlchat.connectors import create_connector

    connector = create_connector(database_url="postgresql://user:pw@localhost/shop")
    async with connector:
        result = await connector.execute("SELECT * FROM orders LIMIT 5")
        tables = await connector.get_schema()
"""

from sqlchat.connectors.base import (
    BaseConnector,
    ColumnInfo,
    ConnectionError,
    ConnectorError,
    IndexInfo,
    QueryError,
    QueryResult,
    SchemaError,
    TableInfo,
)
from sqlchat.connectors.factory import (
    create_connector,
    create_connector_from_settings,
    infer_database_type,
    resolve_database_type,
)
from sqlchat.connectors.mysql import MySQLConnector
from sqlchat.connectors.postgres import PostgresConnector

__all__ = [
    "BaseConnector",
    "PostgresConnector",
    "MySQLConnector",
    "create_connector",
    "create_connector_from_settings",
    "infer_database_type",
    "resolve_database_type",
    "ColumnInfo",
    "IndexInfo",
    "TableInfo",
    "QueryResult",
    "ConnectorError",
    "ConnectionError",
    "QueryError",
    "SchemaError",
]

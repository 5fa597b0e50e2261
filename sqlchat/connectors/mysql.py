"""
MySQL Connector

Async-compatible MySQL connector using mysql-connector-python.

The driver is synchronous, so every operation opens a short-lived connection
inside a worker thread via asyncio.to_thread.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from typing import Any

import mysql.connector
from mysql.connector import Error as MySQLError

from sqlchat.connectors.base import (
    BaseConnector,
    ColumnInfo,
    ConnectionError,
    IndexInfo,
    QueryError,
    QueryResult,
    SchemaError,
    TableInfo,
)

logger = logging.getLogger(__name__)


class MySQLConnector(BaseConnector):
    """MySQL database connector using mysql-connector-python."""

    dialect = "mysql"
    identifier_quote = "`"

    def __init__(
        self,
        host: str,
        port: int = 3306,
        database: str = "",
        user: str = "root",
        password: str = "",
        pool_size: int = 5,
        timeout: int = 30,
        **kwargs,
    ) -> None:
        super().__init__(
            host=host,
            port=port,
            database=database,
            user=user,
            password=password,
            pool_size=pool_size,
            timeout=timeout,
            **kwargs,
        )

    async def connect(self) -> None:
        """Validate connection credentials."""
        if self._connected:
            return
        try:
            await asyncio.to_thread(self._ping_sync)
        except MySQLError as exc:
            logger.error(f"MySQL connection failed: {exc}")
            raise ConnectionError(f"Failed to connect to MySQL: {exc}") from exc
        self._connected = True

    async def execute(
        self,
        query: str,
        params: list[Any] | dict[str, Any] | None = None,
        timeout: int | None = None,
    ) -> QueryResult:
        """Execute SQL query and return rows."""
        if not self._connected:
            raise ConnectionError("Not connected to database. Call connect() first.")

        start_time = time.perf_counter()
        query_timeout = timeout or self.timeout
        try:
            rows, columns = await asyncio.to_thread(
                self._execute_sync, query, params, query_timeout
            )
        except MySQLError as exc:
            logger.error(f"MySQL query failed: {exc}\nQuery: {query[:200]}...")
            raise QueryError(f"Query execution failed: {exc}") from exc

        execution_time_ms = (time.perf_counter() - start_time) * 1000
        return QueryResult(
            rows=rows,
            row_count=len(rows),
            columns=columns,
            execution_time_ms=execution_time_ms,
        )

    async def get_schema(self, schema_name: str | None = None) -> list[TableInfo]:
        """Introspect schema via information_schema."""
        if not self._connected:
            raise ConnectionError("Not connected to database. Call connect() first.")
        target_schema = schema_name or self.database
        try:
            return await asyncio.to_thread(self._get_schema_sync, target_schema)
        except MySQLError as exc:
            logger.error(f"MySQL schema introspection failed: {exc}")
            raise SchemaError(f"Failed to introspect schema: {exc}") from exc

    async def close(self) -> None:
        """Connections are per-call; only the state flag is reset."""
        self._connected = False

    def _connection_kwargs(self, query_timeout: int | None = None) -> dict[str, Any]:
        kwargs = {
            "host": self.host,
            "port": self.port,
            "database": self.database or None,
            "user": self.user,
            "password": self.password,
            "autocommit": True,
            "connection_timeout": query_timeout or self.timeout,
        }
        kwargs.update(self.kwargs)
        return kwargs

    def _ping_sync(self) -> None:
        conn = mysql.connector.connect(**self._connection_kwargs())
        try:
            conn.ping(reconnect=False)
        finally:
            conn.close()

    def _execute_sync(
        self,
        query: str,
        params: list[Any] | dict[str, Any] | None,
        query_timeout: int,
    ) -> tuple[list[dict[str, Any]], list[str]]:
        conn = mysql.connector.connect(**self._connection_kwargs(query_timeout))
        cursor = conn.cursor(dictionary=True)
        try:
            if params is None:
                cursor.execute(query)
            elif isinstance(params, dict):
                cursor.execute(query, params)
            else:
                cursor.execute(query, tuple(params))
            if not cursor.with_rows:
                return [], []
            rows = cursor.fetchall()
            columns = [col[0] for col in cursor.description]
            return rows, columns
        finally:
            cursor.close()
            conn.close()

    def _fetch_all(self, cursor, sql: str, schema_name: str) -> list[dict[str, Any]]:
        cursor.execute(sql, (schema_name,))
        return cursor.fetchall()

    def _get_schema_sync(self, schema_name: str) -> list[TableInfo]:
        conn = mysql.connector.connect(**self._connection_kwargs())
        cursor = conn.cursor(dictionary=True)
        try:
            tables = self._fetch_all(
                cursor,
                """
                SELECT table_name AS table_name, table_type AS table_type,
                       table_rows AS table_rows, table_comment AS table_comment
                FROM information_schema.tables
                WHERE table_schema = %s
                ORDER BY table_name
                """,
                schema_name,
            )
            columns = self._fetch_all(
                cursor,
                """
                SELECT table_name AS table_name, column_name AS column_name,
                       column_type AS column_type, is_nullable AS is_nullable,
                       column_default AS column_default, column_key AS column_key,
                       character_maximum_length AS max_length,
                       column_comment AS column_comment
                FROM information_schema.columns
                WHERE table_schema = %s
                ORDER BY table_name, ordinal_position
                """,
                schema_name,
            )
            foreign_keys = self._fetch_all(
                cursor,
                """
                SELECT table_name AS table_name, column_name AS column_name,
                       referenced_table_name AS foreign_table_name,
                       referenced_column_name AS foreign_column_name
                FROM information_schema.key_column_usage
                WHERE table_schema = %s AND referenced_table_name IS NOT NULL
                """,
                schema_name,
            )
            indexes = self._fetch_all(
                cursor,
                """
                SELECT table_name AS table_name, index_name AS index_name,
                       GROUP_CONCAT(column_name ORDER BY seq_in_index) AS index_columns
                FROM information_schema.statistics
                WHERE table_schema = %s
                GROUP BY table_name, index_name
                ORDER BY table_name, index_name
                """,
                schema_name,
            )
        finally:
            cursor.close()
            conn.close()

        fk_map = {
            (str(row["table_name"]), str(row["column_name"])): (
                str(row["foreign_table_name"]),
                str(row["foreign_column_name"]),
            )
            for row in foreign_keys
        }
        index_map: dict[str, list[IndexInfo]] = defaultdict(list)
        for row in indexes:
            index_map[str(row["table_name"])].append(
                IndexInfo(name=str(row["index_name"]), definition=row["index_columns"])
            )

        column_map: dict[str, list[ColumnInfo]] = defaultdict(list)
        for row in columns:
            table_name = str(row["table_name"])
            col_name = str(row["column_name"])
            fk_target = fk_map.get((table_name, col_name))
            column_map[table_name].append(
                ColumnInfo(
                    name=col_name,
                    data_type=str(row["column_type"]),
                    is_nullable=str(row["is_nullable"]).upper() == "YES",
                    default_value=(
                        str(row["column_default"]) if row["column_default"] is not None else None
                    ),
                    max_length=row["max_length"],
                    is_primary_key=str(row["column_key"]).upper() == "PRI",
                    is_foreign_key=fk_target is not None,
                    foreign_table=fk_target[0] if fk_target else None,
                    foreign_column=fk_target[1] if fk_target else None,
                    comment=row["column_comment"] or None,
                )
            )

        return [
            TableInfo(
                schema=schema_name,
                table_name=str(row["table_name"]),
                columns=column_map.get(str(row["table_name"]), []),
                indexes=index_map.get(str(row["table_name"]), []),
                row_count=int(row["table_rows"]) if row["table_rows"] is not None else None,
                table_type=str(row["table_type"]),
                comment=row["table_comment"] or None,
            )
            for row in tables
        ]

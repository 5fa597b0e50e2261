"""
PostgreSQL Connector

Async PostgreSQL connector using asyncpg.

Introspection runs one catalog query per kind of metadata (tables, columns,
primary keys, foreign keys, indexes) for the whole schema and groups the
rows per table in Python.

Usage:
    async with PostgresConnector(
        host="localhost", port=5432, database="shop", user="postgres", password="secret"
    ) as connector:
        result = await connector.execute("SELECT * FROM orders LIMIT 10")
        tables = await connector.get_schema(schema_name="public")
"""

import logging
import time
from collections import defaultdict
from typing import Any

import asyncpg

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

_TABLES_SQL = """
    SELECT c.relname AS table_name,
           CASE c.relkind WHEN 'v' THEN 'VIEW' ELSE 'BASE TABLE' END AS table_type,
           GREATEST(c.reltuples, 0)::bigint AS estimate,
           obj_description(c.oid, 'pg_class') AS comment
    FROM pg_class c
    JOIN pg_namespace n ON n.oid = c.relnamespace
    WHERE n.nspname = $1 AND c.relkind IN ('r', 'p', 'v')
    ORDER BY c.relname
"""

_COLUMNS_SQL = """
    SELECT table_name, column_name, data_type, is_nullable, column_default,
           character_maximum_length,
           col_description(format('%I.%I', table_schema, table_name)::regclass,
                           ordinal_position) AS comment
    FROM information_schema.columns
    WHERE table_schema = $1
    ORDER BY table_name, ordinal_position
"""

_PRIMARY_KEYS_SQL = """
    SELECT kcu.table_name, kcu.column_name
    FROM information_schema.table_constraints tc
    JOIN information_schema.key_column_usage kcu
        ON tc.constraint_name = kcu.constraint_name
        AND tc.table_schema = kcu.table_schema
    WHERE tc.constraint_type = 'PRIMARY KEY' AND tc.table_schema = $1
    ORDER BY kcu.table_name, kcu.ordinal_position
"""

_FOREIGN_KEYS_SQL = """
    SELECT kcu.table_name, kcu.column_name,
           ccu.table_name AS foreign_table_name,
           ccu.column_name AS foreign_column_name
    FROM information_schema.table_constraints tc
    JOIN information_schema.key_column_usage kcu
        ON tc.constraint_name = kcu.constraint_name
        AND tc.table_schema = kcu.table_schema
    JOIN information_schema.constraint_column_usage ccu
        ON ccu.constraint_name = tc.constraint_name
        AND ccu.table_schema = tc.table_schema
    WHERE tc.constraint_type = 'FOREIGN KEY' AND tc.table_schema = $1
"""

_INDEXES_SQL = """
    SELECT tablename AS table_name, indexname AS index_name, indexdef
    FROM pg_indexes
    WHERE schemaname = $1
    ORDER BY tablename, indexname
"""


class PostgresConnector(BaseConnector):
    """PostgreSQL connector with an asyncpg pool."""

    dialect = "postgresql"
    identifier_quote = '"'

    def __init__(self, *args, schema_name: str = "public", **kwargs):
        super().__init__(*args, **kwargs)
        self.schema_name = schema_name

    async def connect(self) -> None:
        """
        Create the asyncpg pool and check the server answers.

        Raises:
            ConnectionError: If connection fails
        """
        if self._connected and self._pool:
            logger.debug("Already connected, skipping connection")
            return

        try:
            logger.info(f"Connecting to PostgreSQL at {self.host}:{self.port}/{self.database}")
            self._pool = await asyncpg.create_pool(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.user,
                password=self.password,
                min_size=1,
                max_size=self.pool_size,
                command_timeout=self.timeout,
                **self.kwargs,
            )
            async with self._pool.acquire() as conn:
                version = await conn.fetchval("SELECT version()")
                logger.info(f"Connected to PostgreSQL: {version.split(',')[0]}")
            self._connected = True
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"PostgreSQL connection failed: {e}")
            raise ConnectionError(f"Failed to connect to PostgreSQL: {e}") from e

    async def execute(
        self,
        query: str,
        params: list[Any] | None = None,
        timeout: int | None = None,
    ) -> QueryResult:
        """
        Execute a SQL query under a server-side statement timeout.

        Raises:
            QueryError: If the statement fails; the server message is preserved
            ConnectionError: If not connected
        """
        if not self._connected or not self._pool:
            raise ConnectionError("Not connected to database. Call connect() first.")

        start_time = time.perf_counter()
        query_timeout = timeout or self.timeout

        try:
            async with self._pool.acquire() as conn:
                await conn.execute(f"SET statement_timeout = {int(query_timeout * 1000)}")
                stmt = await conn.prepare(query)
                records = await stmt.fetch(*(params or []))
        except asyncpg.QueryCanceledError as e:
            logger.error(f"Query timed out after {query_timeout}s: {query[:100]}...")
            raise QueryError(f"Query timeout ({query_timeout}s)") from e
        except asyncpg.PostgresError as e:
            logger.error(f"Query failed: {e}\nQuery: {query[:200]}...")
            raise QueryError(f"Query execution failed: {e}") from e

        rows = [dict(record) for record in records]
        # From the statement description; present even when no rows match
        columns = [attr.name for attr in stmt.get_attributes()]
        execution_time_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(
            f"Query executed in {execution_time_ms:.2f}ms, returned {len(rows)} rows"
        )
        return QueryResult(
            rows=rows,
            row_count=len(rows),
            columns=columns,
            execution_time_ms=execution_time_ms,
        )

    async def get_schema(self, schema_name: str | None = None) -> list[TableInfo]:
        """
        Introspect one PostgreSQL schema (default: the connector's schema).

        Raises:
            SchemaError: If schema introspection fails
        """
        if not self._connected or not self._pool:
            raise ConnectionError("Not connected to database. Call connect() first.")

        schema = schema_name or self.schema_name
        try:
            async with self._pool.acquire() as conn:
                tables = await conn.fetch(_TABLES_SQL, schema)
                columns = await conn.fetch(_COLUMNS_SQL, schema)
                primary_keys = await conn.fetch(_PRIMARY_KEYS_SQL, schema)
                foreign_keys = await conn.fetch(_FOREIGN_KEYS_SQL, schema)
                indexes = await conn.fetch(_INDEXES_SQL, schema)
        except asyncpg.PostgresError as e:
            logger.error(f"Schema introspection failed: {e}")
            raise SchemaError(f"Failed to introspect schema: {e}") from e

        pk_map: dict[str, set[str]] = defaultdict(set)
        for row in primary_keys:
            pk_map[row["table_name"]].add(row["column_name"])

        fk_map: dict[tuple[str, str], tuple[str, str]] = {
            (row["table_name"], row["column_name"]): (
                row["foreign_table_name"],
                row["foreign_column_name"],
            )
            for row in foreign_keys
        }

        index_map: dict[str, list[IndexInfo]] = defaultdict(list)
        for row in indexes:
            index_map[row["table_name"]].append(
                IndexInfo(name=row["index_name"], definition=row["indexdef"])
            )

        column_map: dict[str, list[ColumnInfo]] = defaultdict(list)
        for row in columns:
            table_name = row["table_name"]
            fk_target = fk_map.get((table_name, row["column_name"]))
            column_map[table_name].append(
                ColumnInfo(
                    name=row["column_name"],
                    data_type=row["data_type"],
                    is_nullable=row["is_nullable"] == "YES",
                    default_value=row["column_default"],
                    max_length=row["character_maximum_length"],
                    is_primary_key=row["column_name"] in pk_map[table_name],
                    is_foreign_key=fk_target is not None,
                    foreign_table=fk_target[0] if fk_target else None,
                    foreign_column=fk_target[1] if fk_target else None,
                    comment=row["comment"],
                )
            )

        table_infos = [
            TableInfo(
                schema=schema,
                table_name=row["table_name"],
                columns=column_map.get(row["table_name"], []),
                indexes=index_map.get(row["table_name"], []),
                row_count=row["estimate"],
                table_type=row["table_type"],
                comment=row["comment"],
            )
            for row in tables
        ]
        logger.info(f"Introspected schema '{schema}': found {len(table_infos)} tables")
        return table_infos

    async def close(self) -> None:
        """Close the pool. Safe to call multiple times."""
        if not self._pool:
            logger.debug("No connection pool to close")
            return

        await self._pool.close()
        self._pool = None
        self._connected = False
        logger.info("PostgreSQL connection closed")

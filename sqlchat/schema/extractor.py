"""
Schema Extractor

Builds a ``SchemaSnapshot`` from a live connector: catalog introspection,
an exact ``COUNT(*)`` per table and a couple of sample rows from every
non-empty table. A table whose count or sample query fails is still
recorded, with zero rows and no samples.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any

from pydantic_core import to_jsonable_python

from sqlchat.connectors.base import BaseConnector, QueryError, TableInfo
from sqlchat.schema.models import (
    ColumnSnapshot,
    ForeignKeySnapshot,
    IndexSnapshot,
    Relationship,
    SchemaSnapshot,
    SchemaStatistics,
    TableSnapshot,
)

logger = logging.getLogger(__name__)


class SchemaExtractor:
    """Extracts a schema snapshot through a ``BaseConnector``."""

    def __init__(self, schema_name: str | None = None, sample_rows: int = 2):
        self.schema_name = schema_name
        self.sample_rows = sample_rows

    async def extract(self, connector: BaseConnector) -> SchemaSnapshot:
        """
        Extract the full schema snapshot.

        Args:
            connector: Connected database connector

        Returns:
            SchemaSnapshot with tables, relationships and statistics

        Raises:
            SchemaError: If catalog introspection itself fails
        """
        started = time.perf_counter()
        table_infos = await connector.get_schema(self.schema_name)

        tables: list[TableSnapshot] = []
        relationships: list[Relationship] = []
        statistics = SchemaStatistics()

        for info in table_infos:
            table = await self._extract_table(connector, info)
            tables.append(table)
            relationships.extend(
                Relationship(
                    from_table=table.full_name or table.name,
                    from_column=fk.column,
                    to_table=fk.references_table,
                    to_column=fk.references_column,
                )
                for fk in table.foreign_keys
            )
            statistics.total_columns += len(table.columns)
            statistics.total_foreign_keys += len(table.foreign_keys)
            statistics.total_indexes += len(table.indexes)
            if table.has_data:
                statistics.tables_with_data += 1
            else:
                statistics.tables_without_data += 1

        snapshot = SchemaSnapshot(
            database_name=connector.database,
            database_type=connector.dialect,
            extracted_at=datetime.now(timezone.utc),
            total_tables=len(tables),
            tables=tables,
            relationships=relationships,
            statistics=statistics,
        )
        logger.info(
            f"Extracted schema of {connector.database}: {len(tables)} tables "
            f"in {(time.perf_counter() - started):.1f}s",
            extra={
                "database": connector.database,
                "tables": len(tables),
                "tables_with_data": statistics.tables_with_data,
            },
        )
        return snapshot

    async def _extract_table(self, connector: BaseConnector, info: TableInfo) -> TableSnapshot:
        qualified = f"{info.schema_name}.{info.table_name}"
        quoted = connector.quote_identifier(qualified)

        row_count = await self._count_rows(connector, quoted, qualified)
        samples: list[dict[str, Any]] = []
        if row_count > 0 and self.sample_rows > 0:
            samples = await self._sample_rows(connector, quoted, qualified)

        return TableSnapshot(
            schema=info.schema_name,
            name=info.table_name,
            full_name=qualified,
            columns=[
                ColumnSnapshot(
                    name=column.name,
                    type=column.data_type,
                    max_length=column.max_length,
                    nullable=column.is_nullable,
                    default=column.default_value,
                    position=position,
                    is_primary_key=column.is_primary_key,
                    comment=column.comment,
                )
                for position, column in enumerate(info.columns, start=1)
            ],
            primary_keys=[column.name for column in info.columns if column.is_primary_key],
            foreign_keys=[
                ForeignKeySnapshot(
                    column=column.name,
                    references_table=column.foreign_table,
                    references_column=column.foreign_column or "",
                )
                for column in info.columns
                if column.is_foreign_key and column.foreign_table
            ],
            indexes=[
                IndexSnapshot(name=index.name, definition=index.definition)
                for index in info.indexes
            ],
            row_count=row_count,
            sample_data=samples,
            comment=info.comment,
            has_data=row_count > 0,
        )

    async def _count_rows(self, connector: BaseConnector, quoted: str, qualified: str) -> int:
        try:
            result = await connector.execute(f"SELECT COUNT(*) AS row_count FROM {quoted}")
        except QueryError as e:
            logger.warning(f"Could not count rows of {qualified}: {e}")
            return 0
        if not result.rows:
            return 0
        return int(next(iter(result.rows[0].values())) or 0)

    async def _sample_rows(
        self, connector: BaseConnector, quoted: str, qualified: str
    ) -> list[dict[str, Any]]:
        try:
            result = await connector.execute(
                f"SELECT * FROM {quoted} LIMIT {int(self.sample_rows)}"
            )
        except QueryError as e:
            logger.warning(f"Could not sample rows of {qualified}: {e}")
            return []
        return [to_jsonable_python(row, fallback=str) for row in result.rows]

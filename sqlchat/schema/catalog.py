"""
Schema Catalog

Read-only view over one database's schema snapshot.

``summary()`` gives every table's name, columns, key columns, year partitions
and detail/parent pairing; ``detail(names)`` gives the full column list,
keys, indexes and sample rows for a handful of tables. Both return an empty
list when no snapshot is available.

The snapshot is injected, lazily loaded from the ``SnapshotStore`` on first
use, and replaced only by an explicit ``refresh``/``replace``.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import TYPE_CHECKING

from sqlchat.schema.models import (
    ColumnDetail,
    SchemaSnapshot,
    TableDetail,
    TableSnapshot,
    TableSummary,
)
from sqlchat.schema.store import SnapshotStore

if TYPE_CHECKING:
    from sqlchat.connectors.base import BaseConnector
    from sqlchat.schema.extractor import SchemaExtractor

logger = logging.getLogger(__name__)

DEFAULT_DETAIL_SUFFIX = "_details"
DEFAULT_KEY_COLUMN_LIMIT = 10
DETAIL_SAMPLE_ROWS = 2


class SchemaCatalog:
    """Summary and detail views over a ``SchemaSnapshot``."""

    def __init__(
        self,
        database_id: str,
        snapshot: SchemaSnapshot | None = None,
        store: SnapshotStore | None = None,
        detail_suffix: str = DEFAULT_DETAIL_SUFFIX,
        key_column_limit: int = DEFAULT_KEY_COLUMN_LIMIT,
    ):
        self.database_id = database_id
        self.store = store
        self.detail_suffix = detail_suffix
        self.key_column_limit = key_column_limit
        self._snapshot = snapshot
        self._summary: list[TableSummary] | None = None
        self._refresh_lock = asyncio.Lock()

    @property
    def snapshot(self) -> SchemaSnapshot | None:
        if self._snapshot is None and self.store is not None:
            self._snapshot = self.store.load(self.database_id)
            if self._snapshot is not None:
                logger.info(
                    f"Loaded schema snapshot: {self._snapshot.total_tables} tables",
                    extra={"database_id": self.database_id},
                )
        return self._snapshot

    @property
    def is_loaded(self) -> bool:
        return self.snapshot is not None

    def replace(self, snapshot: SchemaSnapshot) -> None:
        """Swap in a new snapshot. Views built from the old one are dropped."""
        self._snapshot = snapshot
        self._summary = None

    async def refresh(
        self,
        connector: BaseConnector,
        extractor: SchemaExtractor | None = None,
        persist: bool = True,
    ) -> SchemaSnapshot:
        """Re-extract the schema from ``connector`` and replace the snapshot."""
        from sqlchat.schema.extractor import SchemaExtractor

        async with self._refresh_lock:
            snapshot = await (extractor or SchemaExtractor()).extract(connector)
            if persist and self.store is not None:
                self.store.save(self.database_id, snapshot)
            self.replace(snapshot)
            return snapshot

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def summary(self) -> list[TableSummary]:
        snapshot = self.snapshot
        if snapshot is None:
            logger.warning(
                "No schema snapshot available, returning empty summary",
                extra={"database_id": self.database_id},
            )
            return []
        if self._summary is None:
            names = snapshot.table_names()
            existing = set(names)
            self._summary = [
                self._summarize(table, names, existing) for table in snapshot.tables
            ]
        return list(self._summary)

    def detail(self, names: list[str] | set[str] | tuple[str, ...]) -> list[TableDetail]:
        snapshot = self.snapshot
        if snapshot is None:
            return []
        by_name = {table.name: table for table in snapshot.tables}
        details: list[TableDetail] = []
        seen: set[str] = set()
        for name in names:
            table = by_name.get(name)
            if table is None or name in seen:
                continue
            seen.add(name)
            details.append(self._describe(table))
        return details

    def table_names(self) -> list[str]:
        snapshot = self.snapshot
        return snapshot.table_names() if snapshot else []

    # ------------------------------------------------------------------
    # Inference helpers
    # ------------------------------------------------------------------

    def _summarize(
        self, table: TableSnapshot, names: list[str], existing: set[str]
    ) -> TableSummary:
        partition_pattern = re.compile(re.escape(table.name) + r"_y\d+")
        partitions = [name for name in names if partition_pattern.fullmatch(name)]
        return TableSummary(
            name=table.name,
            columns=[column.name for column in table.columns],
            has_data=table.has_data,
            row_count=table.row_count,
            year_partitions=partitions or None,
            related_tables=self.related_tables(table.name, existing),
            key_columns=self._key_columns(table),
        )

    def related_tables(self, name: str, existing: set[str]) -> list[str]:
        """
        Pair a detail table with its parent and vice versa.

        ``box_details`` relates to ``box``, ``boxs`` or ``boxes``, whichever
        exists first; ``orders`` relates to ``orders_details`` or
        ``order_details``.
        """
        suffix = self.detail_suffix
        if name.endswith(suffix) and len(name) > len(suffix):
            base = name[: -len(suffix)]
            candidates = [base, f"{base}s", f"{base}es"]
        else:
            candidates = [f"{stem}{suffix}" for stem in _singular_forms(name)]
        for candidate in candidates:
            if candidate != name and candidate in existing:
                return [candidate]
        return []

    def _key_columns(self, table: TableSnapshot) -> list[str]:
        primary = set(table.primary_keys)
        keys = [
            column.name
            for column in table.columns
            if column.is_primary_key
            or column.name in primary
            or column.name.lower().endswith("_id")
            or "date" in column.name.lower()
        ]
        return keys[: self.key_column_limit]

    @staticmethod
    def _describe(table: TableSnapshot) -> TableDetail:
        primary = set(table.primary_keys)
        return TableDetail(
            name=table.name,
            columns=[
                ColumnDetail(
                    name=column.name,
                    type=column.type,
                    nullable=column.nullable,
                    is_primary_key=column.is_primary_key or column.name in primary,
                )
                for column in table.columns
            ],
            primary_keys=list(table.primary_keys),
            indexes=[index.name for index in table.indexes],
            row_count=table.row_count,
            sample_data=table.sample_data[:DETAIL_SAMPLE_ROWS],
        )


def _singular_forms(name: str) -> list[str]:
    forms = [name]
    if name.endswith("es") and len(name) > 2:
        forms.append(name[:-2])
    if name.endswith("s") and len(name) > 1:
        forms.append(name[:-1])
    return forms


class SchemaCache:
    """
    Process-wide registry of catalogs keyed by database identifier.

    Concurrent questions against one database share a single catalog and
    therefore a single loaded snapshot.
    """

    def __init__(self):
        self._catalogs: dict[str, SchemaCatalog] = {}

    def get(
        self,
        database_id: str,
        store: SnapshotStore | None = None,
        **catalog_kwargs,
    ) -> SchemaCatalog:
        catalog = self._catalogs.get(database_id)
        if catalog is None:
            catalog = SchemaCatalog(database_id, store=store, **catalog_kwargs)
            self._catalogs[database_id] = catalog
        return catalog

    def put(self, catalog: SchemaCatalog) -> None:
        self._catalogs[catalog.database_id] = catalog

    def clear(self) -> None:
        self._catalogs.clear()

    def __contains__(self, database_id: str) -> bool:
        return database_id in self._catalogs

    def __len__(self) -> int:
        return len(self._catalogs)


schema_cache = SchemaCache()

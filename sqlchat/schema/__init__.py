"""
Schema Module

Snapshot extraction, storage and the catalog views used by the pipeline.
"""

from sqlchat.schema.catalog import SchemaCache, SchemaCatalog, schema_cache
from sqlchat.schema.extractor import SchemaExtractor
from sqlchat.schema.models import (
    ColumnDetail,
    ColumnSnapshot,
    ForeignKeySnapshot,
    IndexSnapshot,
    Relationship,
    SchemaSnapshot,
    SchemaStatistics,
    TableDetail,
    TableSnapshot,
    TableSummary,
)
from sqlchat.schema.store import SnapshotStore

__all__ = [
    "ColumnDetail",
    "ColumnSnapshot",
    "ForeignKeySnapshot",
    "IndexSnapshot",
    "Relationship",
    "SchemaCache",
    "SchemaCatalog",
    "SchemaExtractor",
    "SchemaSnapshot",
    "SchemaStatistics",
    "SnapshotStore",
    "TableDetail",
    "TableSnapshot",
    "TableSummary",
    "schema_cache",
]

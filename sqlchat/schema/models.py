"""
Schema Snapshot Models

Pydantic models for the extracted schema artifact and the two views derived
from it: the lightweight per-table summary used for table identification and
the detailed per-table description used for SQL generation.

The snapshot serializes to the JSON document written by ``sqlchat schema extract``.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ColumnSnapshot(BaseModel):
    """One column of an extracted table."""

    name: str
    type: str
    max_length: int | None = None
    nullable: bool = True
    default: str | None = None
    position: int | None = None
    is_primary_key: bool = False
    comment: str | None = None


class ForeignKeySnapshot(BaseModel):
    column: str
    references_table: str
    references_column: str
    constraint_name: str | None = None


class IndexSnapshot(BaseModel):
    name: str
    definition: str | None = None


class TableSnapshot(BaseModel):
    """One extracted table with keys, indexes, row count and sample rows."""

    schema_name: str | None = Field(None, alias="schema")
    name: str
    full_name: str | None = None
    columns: list[ColumnSnapshot] = Field(default_factory=list)
    primary_keys: list[str] = Field(default_factory=list)
    foreign_keys: list[ForeignKeySnapshot] = Field(default_factory=list)
    indexes: list[IndexSnapshot] = Field(default_factory=list)
    row_count: int = Field(default=0, ge=0)
    sample_data: list[dict[str, Any]] = Field(default_factory=list)
    comment: str | None = None
    has_data: bool = False

    model_config = ConfigDict(populate_by_name=True)


class Relationship(BaseModel):
    from_table: str
    from_column: str
    to_table: str
    to_column: str
    relationship_type: str = "foreign_key"


class SchemaStatistics(BaseModel):
    total_columns: int = 0
    total_foreign_keys: int = 0
    total_indexes: int = 0
    tables_with_data: int = 0
    tables_without_data: int = 0


class SchemaSnapshot(BaseModel):
    """
    Extracted schema of one database.

    Treated as immutable once loaded; a refresh replaces the whole object.
    """

    database_name: str
    database_type: str | None = None
    extracted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    total_tables: int = 0
    tables: list[TableSnapshot] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)
    statistics: SchemaStatistics = Field(default_factory=SchemaStatistics)

    model_config = ConfigDict(frozen=True)

    def table_names(self) -> list[str]:
        return [table.name for table in self.tables]


class TableSummary(BaseModel):
    """Lightweight description of one table for table identification."""

    name: str
    columns: list[str]
    has_data: bool
    row_count: int
    year_partitions: list[str] | None = None
    related_tables: list[str] = Field(default_factory=list)
    key_columns: list[str] = Field(default_factory=list)


class ColumnDetail(BaseModel):
    name: str
    type: str
    nullable: bool
    is_primary_key: bool = False


class TableDetail(BaseModel):
    """Full description of one table for SQL generation."""

    name: str
    columns: list[ColumnDetail]
    primary_keys: list[str] = Field(default_factory=list)
    indexes: list[str] = Field(default_factory=list)
    row_count: int = 0
    sample_data: list[dict[str, Any]] = Field(default_factory=list)

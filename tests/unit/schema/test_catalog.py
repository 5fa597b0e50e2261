"""
Unit tests for SchemaCatalog.

Tests the summary and detail views including:
- Year partition detection
- Detail/parent table pairing
- Key column inference
- Behavior with no snapshot
- Lazy loading from the snapshot store
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from sqlchat.schema.catalog import SchemaCache, SchemaCatalog
from sqlchat.schema.models import ColumnSnapshot, SchemaSnapshot, TableSnapshot
from sqlchat.schema.store import SnapshotStore


def snapshot_with(*names: str) -> SchemaSnapshot:
    tables = [
        TableSnapshot(name=name, columns=[ColumnSnapshot(name="id", type="integer")])
        for name in names
    ]
    return SchemaSnapshot(database_name="test", total_tables=len(tables), tables=tables)


class TestSummary:
    """Test the per-table summary."""

    def test_one_entry_per_table(self, sample_catalog):
        summary = sample_catalog.summary()

        assert [entry.name for entry in summary] == [
            "orders",
            "order_details",
            "customers",
            "orders_y2023",
            "sales",
        ]

    def test_year_partitions(self, sample_catalog):
        summary = {entry.name: entry for entry in sample_catalog.summary()}

        assert summary["orders"].year_partitions == ["orders_y2023"]
        assert summary["customers"].year_partitions is None

    def test_partition_must_match_exactly(self):
        catalog = SchemaCatalog(
            "db", snapshot=snapshot_with("sales", "sales_y2023", "sales_y2023_old", "sales_ytd")
        )
        summary = {entry.name: entry for entry in catalog.summary()}

        assert summary["sales"].year_partitions == ["sales_y2023"]

    def test_detail_parent_pairing(self, sample_catalog):
        summary = {entry.name: entry for entry in sample_catalog.summary()}

        assert summary["orders"].related_tables == ["order_details"]
        assert summary["order_details"].related_tables == ["orders"]
        assert summary["customers"].related_tables == []

    def test_key_columns(self, sample_catalog):
        summary = {entry.name: entry for entry in sample_catalog.summary()}

        assert summary["orders"].key_columns == ["id", "customer_id", "order_date"]

    def test_key_columns_capped(self):
        columns = [ColumnSnapshot(name=f"ref{i}_id", type="integer") for i in range(15)]
        snapshot = SchemaSnapshot(
            database_name="test", tables=[TableSnapshot(name="wide", columns=columns)]
        )
        catalog = SchemaCatalog("db", snapshot=snapshot, key_column_limit=10)

        assert len(catalog.summary()[0].key_columns) == 10

    def test_has_data_and_row_count(self, sample_catalog):
        summary = {entry.name: entry for entry in sample_catalog.summary()}

        assert summary["orders"].has_data is True
        assert summary["orders"].row_count == 120
        assert summary["sales"].has_data is False


class TestRelatedTables:
    """Test detail-suffix inference on its own."""

    @pytest.fixture
    def catalog(self):
        return SchemaCatalog("db", snapshot=snapshot_with())

    def test_detail_to_plural_parent(self, catalog):
        assert catalog.related_tables("box_details", {"box_details", "boxes"}) == ["boxes"]

    def test_detail_prefers_exact_base(self, catalog):
        existing = {"box_details", "box", "boxes"}
        assert catalog.related_tables("box_details", existing) == ["box"]

    def test_parent_to_singular_detail(self, catalog):
        existing = {"invoices", "invoice_details"}
        assert catalog.related_tables("invoices", existing) == ["invoice_details"]

    def test_custom_suffix(self):
        catalog = SchemaCatalog("db", snapshot=snapshot_with(), detail_suffix="_lines")
        assert catalog.related_tables("order_lines", {"order_lines", "orders"}) == ["orders"]

    def test_no_match(self, catalog):
        assert catalog.related_tables("orders", {"orders"}) == []


class TestDetail:
    """Test the detail view."""

    def test_detail_for_requested_tables_only(self, sample_catalog):
        details = sample_catalog.detail(["customers", "orders"])

        assert [detail.name for detail in details] == ["customers", "orders"]

    def test_detail_contents(self, sample_catalog):
        detail = sample_catalog.detail(["orders"])[0]

        assert [column.name for column in detail.columns] == [
            "id",
            "customer_id",
            "order_date",
            "total_amount",
        ]
        assert detail.columns[0].is_primary_key is True
        assert detail.columns[0].nullable is False
        assert detail.primary_keys == ["id"]
        assert detail.indexes == ["orders_pkey", "idx_orders_date"]
        assert detail.row_count == 120
        assert len(detail.sample_data) == 2

    def test_unknown_and_duplicate_names_skipped(self, sample_catalog):
        details = sample_catalog.detail(["orders", "ghosts", "orders"])

        assert [detail.name for detail in details] == ["orders"]


class TestNoSnapshot:
    """Without a snapshot both views are empty."""

    def test_empty_views(self, tmp_path):
        catalog = SchemaCatalog("db", store=SnapshotStore(cache_dir=tmp_path))

        assert catalog.summary() == []
        assert catalog.detail(["orders"]) == []
        assert catalog.is_loaded is False


class TestLoadingAndRefresh:
    """Test lazy loading and explicit replacement."""

    def test_lazy_load_from_store(self, tmp_path, sample_snapshot):
        store = SnapshotStore(cache_dir=tmp_path)
        store.save("db-1", sample_snapshot)

        catalog = SchemaCatalog("db-1", store=store)

        assert catalog.table_names()[0] == "orders"
        assert catalog.is_loaded is True

    def test_replace_invalidates_summary(self, sample_catalog):
        assert len(sample_catalog.summary()) == 5

        sample_catalog.replace(snapshot_with("only_table"))

        assert [entry.name for entry in sample_catalog.summary()] == ["only_table"]

    @pytest.mark.asyncio
    async def test_refresh_uses_extractor_and_persists(self, tmp_path, mock_connector):
        new_snapshot = snapshot_with("fresh")
        extractor = MagicMock()
        extractor.extract = AsyncMock(return_value=new_snapshot)
        store = SnapshotStore(cache_dir=tmp_path)
        catalog = SchemaCatalog("db-1", snapshot=snapshot_with("stale"), store=store)

        result = await catalog.refresh(mock_connector, extractor=extractor)

        assert result is new_snapshot
        assert catalog.table_names() == ["fresh"]
        assert store.load("db-1").table_names() == ["fresh"]


class TestSchemaCache:
    """Test the process-wide catalog registry."""

    def test_same_catalog_per_database(self):
        cache = SchemaCache()

        first = cache.get("postgresql|h|5432|a")
        second = cache.get("postgresql|h|5432|a")
        other = cache.get("postgresql|h|5432|b")

        assert first is second
        assert first is not other
        assert len(cache) == 2
        assert "postgresql|h|5432|a" in cache

    def test_put_and_clear(self, sample_catalog):
        cache = SchemaCache()
        cache.put(sample_catalog)

        assert cache.get(sample_catalog.database_id) is sample_catalog

        cache.clear()
        assert len(cache) == 0

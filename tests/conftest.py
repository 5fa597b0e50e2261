"""
Pytest configuration and shared fixtures.

This module provides fixtures and configuration used across all tests.
"""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from sqlchat.config import clear_settings_cache
from sqlchat.connectors.base import QueryResult
from sqlchat.schema.catalog import SchemaCatalog, schema_cache
from sqlchat.schema.models import (
    ColumnSnapshot,
    ForeignKeySnapshot,
    IndexSnapshot,
    SchemaSnapshot,
    TableSnapshot,
)

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests (requires a database and an LLM API key)",
    )


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (may require external services)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless explicitly enabled."""
    if config.getoption("--run-integration"):
        return
    skip_integration = pytest.mark.skip(
        reason="Integration tests disabled (use --run-integration to enable)."
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ============================================================================
# Environment and Configuration
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """
    Give every test a clean, offline configuration.

    The API key is fake, .env files are ignored and schema snapshots are
    written under the test's temporary directory.
    """
    monkeypatch.setenv("SQLCHAT_ENV_SOURCE", "environment")
    monkeypatch.setenv("LLM_API_KEY", "sk-test-key-1234567890-abcdefghijklmnop")
    monkeypatch.setenv("SCHEMA_CACHE_DIR", str(tmp_path / "schemas"))
    for name in (
        "DATABASE_URL",
        "DATABASE_TYPE",
        "SCHEMA_CACHE_PATH",
        "LLM_PROVIDER",
        "PIPELINE_CONTEXT_PATH",
        "PIPELINE_INSTRUCTIONS",
    ):
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    schema_cache.clear()
    yield
    clear_settings_cache()
    schema_cache.clear()


@pytest.fixture
def disable_logging():
    """Disable logging for tests that generate excessive logs."""
    logging.disable(logging.CRITICAL)
    yield
    logging.disable(logging.NOTSET)


# ============================================================================
# Mock LLM Provider
# ============================================================================


@pytest.fixture
def mock_llm_provider():
    """
    Mock completion provider.

    Usage:
        mock_llm_provider.complete.return_value = '{"tables": ["orders"]}'
        mock_llm_provider.complete.side_effect = ["first reply", "second reply"]
    """
    provider = MagicMock()
    provider.provider_name = "mock"
    provider.complete = AsyncMock(return_value="")
    provider.aclose = AsyncMock()
    return provider


# ============================================================================
# Mock Database Connectors
# ============================================================================


@pytest.fixture
def mock_connector():
    """
    Mock PostgreSQL connector.

    Usage:
        mock_connector.execute.return_value = QueryResult(...)
        mock_connector.execute.side_effect = QueryError("column x does not exist")
    """
    connector = AsyncMock()
    connector.dialect = "postgresql"
    connector.database_id = "postgresql|localhost|5432|shop"
    connector.connect = AsyncMock()
    connector.close = AsyncMock()
    connector.execute = AsyncMock(
        return_value=QueryResult(
            rows=[{"total": 42}],
            row_count=1,
            columns=["total"],
            execution_time_ms=5.0,
        )
    )
    connector.get_schema = AsyncMock(return_value=[])
    return connector


# ============================================================================
# Common Test Data
# ============================================================================


@pytest.fixture
def sample_snapshot() -> SchemaSnapshot:
    """
    Small shop schema.

    ``orders`` has a detail table and a year partition; ``sales`` is empty.
    """
    orders = TableSnapshot(
        schema="public",
        name="orders",
        full_name="public.orders",
        columns=[
            ColumnSnapshot(name="id", type="integer", nullable=False, is_primary_key=True),
            ColumnSnapshot(name="customer_id", type="integer"),
            ColumnSnapshot(name="order_date", type="date"),
            ColumnSnapshot(name="total_amount", type="numeric"),
        ],
        primary_keys=["id"],
        foreign_keys=[
            ForeignKeySnapshot(
                column="customer_id", references_table="customers", references_column="id"
            )
        ],
        indexes=[IndexSnapshot(name="orders_pkey"), IndexSnapshot(name="idx_orders_date")],
        row_count=120,
        sample_data=[
            {"id": 1, "customer_id": 7, "order_date": "2024-01-03", "total_amount": 19.5},
            {"id": 2, "customer_id": 9, "order_date": "2024-01-04", "total_amount": 42.0},
        ],
        has_data=True,
    )
    order_details = TableSnapshot(
        schema="public",
        name="order_details",
        columns=[
            ColumnSnapshot(name="id", type="integer", nullable=False, is_primary_key=True),
            ColumnSnapshot(name="order_id", type="integer"),
            ColumnSnapshot(name="product_name", type="text"),
            ColumnSnapshot(name="quantity", type="integer"),
        ],
        primary_keys=["id"],
        row_count=300,
        has_data=True,
    )
    customers = TableSnapshot(
        schema="public",
        name="customers",
        columns=[
            ColumnSnapshot(name="id", type="integer", nullable=False, is_primary_key=True),
            ColumnSnapshot(name="name", type="text"),
            ColumnSnapshot(name="signup_date", type="date"),
        ],
        primary_keys=["id"],
        row_count=25,
        has_data=True,
    )
    orders_y2023 = TableSnapshot(
        schema="public",
        name="orders_y2023",
        columns=[
            ColumnSnapshot(name="id", type="integer", nullable=False),
            ColumnSnapshot(name="order_date", type="date"),
        ],
        row_count=80,
        has_data=True,
    )
    sales = TableSnapshot(
        schema="public",
        name="sales",
        columns=[ColumnSnapshot(name="amount", type="numeric")],
        row_count=0,
        has_data=False,
    )
    tables = [orders, order_details, customers, orders_y2023, sales]
    return SchemaSnapshot(
        database_name="shop",
        database_type="postgresql",
        total_tables=len(tables),
        tables=tables,
    )


@pytest.fixture
def sample_catalog(sample_snapshot, mock_connector) -> SchemaCatalog:
    """Catalog over ``sample_snapshot`` keyed like ``mock_connector``."""
    return SchemaCatalog(mock_connector.database_id, snapshot=sample_snapshot)


@pytest.fixture
def sample_query() -> str:
    """Sample user question for testing."""
    return "What was the total order amount last month?"

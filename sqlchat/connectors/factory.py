"""Connector factory for supported database URLs."""

from __future__ import annotations

from urllib.parse import unquote, urlparse

from sqlchat.config import DatabaseSettings
from sqlchat.connectors.base import BaseConnector
from sqlchat.connectors.mysql import MySQLConnector
from sqlchat.connectors.postgres import PostgresConnector
from sqlchat.models.agent import ConfigurationError

_POSTGRES_SCHEMES = {"postgres", "postgresql"}
_MYSQL_SCHEMES = {"mysql"}


def infer_database_type(database_url: str) -> str:
    """Infer logical database type from connection URL scheme."""
    scheme = urlparse(database_url).scheme.split("+")[0].lower()
    if scheme in _POSTGRES_SCHEMES:
        return "postgresql"
    if scheme in _MYSQL_SCHEMES:
        return "mysql"
    raise ValueError(f"Unsupported database URL scheme: {scheme or '<none>'}")


def resolve_database_type(database_type: str | None, database_url: str) -> str:
    """Resolve target database type from explicit type or URL."""
    if database_type:
        value = database_type.strip().lower()
        if value in _POSTGRES_SCHEMES:
            return "postgresql"
        if value in _MYSQL_SCHEMES:
            return "mysql"
        raise ValueError(f"Unsupported database type: {database_type}")
    return infer_database_type(database_url)


def create_connector(
    *,
    database_url: str,
    database_type: str | None = None,
    pool_size: int = 5,
    timeout: int = 30,
    schema_name: str | None = None,
    **kwargs,
) -> BaseConnector:
    """Create a typed connector instance from URL + optional database_type."""
    parsed = urlparse(database_url)
    if not parsed.hostname:
        raise ValueError("Invalid database URL: host is required.")

    target_type = resolve_database_type(database_type, database_url)
    db_name = parsed.path.lstrip("/")
    password = unquote(parsed.password) if parsed.password else ""

    if target_type == "postgresql":
        return PostgresConnector(
            host=parsed.hostname,
            port=parsed.port or 5432,
            database=db_name or "postgres",
            user=unquote(parsed.username) if parsed.username else "postgres",
            password=password,
            pool_size=pool_size,
            timeout=timeout,
            schema_name=schema_name or "public",
            **kwargs,
        )

    return MySQLConnector(
        host=parsed.hostname,
        port=parsed.port or 3306,
        database=schema_name or db_name,
        user=unquote(parsed.username) if parsed.username else "root",
        password=password,
        pool_size=pool_size,
        timeout=timeout,
        **kwargs,
    )


def create_connector_from_settings(settings: DatabaseSettings) -> BaseConnector:
    """
    Build the connector for the configured target database (not connected).

    Raises:
        ConfigurationError: No URL configured, or the URL/type is unsupported
    """
    if settings.url is None:
        raise ConfigurationError("DATABASE_URL is not configured")
    try:
        return create_connector(
            database_url=str(settings.url),
            database_type=settings.db_type,
            pool_size=settings.pool_size,
            timeout=settings.timeout,
            schema_name=settings.schema_name,
        )
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

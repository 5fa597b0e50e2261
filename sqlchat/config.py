"""
Application Configuration

Pydantic-based settings management using environment variables.
Supports nested configuration, validation, and caching.

Usage:
    from sqlchat.config import get_settings

    settings = get_settings()
    print(settings.llm.model)
    print(settings.database.url)
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

from dotenv import load_dotenv
from pydantic import AnyUrl, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """LLM completion service configuration."""

    provider: Literal["compatible", "openai"] = Field(
        default="compatible",
        description=(
            "'compatible' talks to any OpenAI-compatible /chat/completions endpoint "
            "over httpx; 'openai' uses the official SDK."
        ),
    )
    api_key: str | None = Field(None, description="API key sent as a Bearer token")
    base_url: str = Field(
        default="https://dashscope-intl.aliyuncs.com/compatible-mode/v1",
        description="Base URL of the completion service (without /chat/completions)",
    )
    model: str = Field(default="qwen-plus", description="Model identifier")
    max_tokens: int | None = Field(
        default=None,
        gt=0,
        le=32000,
        description="Optional cap on generated tokens (None = service default)",
    )
    timeout: float = Field(
        default=300.0,
        gt=0,
        description="Per-phase request timeout in seconds (first byte, then body)",
    )

    # Per-stage sampling temperatures
    identify_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    generate_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    repair_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    refine_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    suggest_temperature: float = Field(default=0.7, ge=0.0, le=2.0)

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("api_key", mode="before")
    @classmethod
    def normalize_api_key(cls, v: str | None) -> str | None:
        """Treat blank keys as missing."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an http(s) base URL and drop the trailing slash."""
        parsed = urlparse(v)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError("LLM_BASE_URL must be an http(s) URL.")
        return v.rstrip("/")


class DatabaseSettings(BaseSettings):
    """Target database configuration."""

    db_type: Literal["postgresql", "mysql"] | None = Field(
        default=None,
        description="Target database type (inferred from the URL scheme when unset).",
        validation_alias="DATABASE_TYPE",
    )
    url: AnyUrl | None = Field(
        None,
        description="Target database connection URL (the database you query)",
    )
    pool_size: int = Field(
        default=5,
        gt=0,
        le=20,
        description="Database connection pool size",
    )
    timeout: int = Field(
        default=30,
        gt=0,
        description="Statement/connection timeout in seconds",
    )
    schema_name: str | None = Field(
        default=None,
        description="Restrict introspection to one schema (PostgreSQL: default 'public')",
    )

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("url", mode="before")
    @classmethod
    def normalize_url(cls, v: str | AnyUrl | None) -> str | AnyUrl | None:
        """Treat empty strings as missing."""
        if v == "":
            return None
        return v

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: AnyUrl | None) -> AnyUrl | None:
        """Validate supported database URL schemes."""
        if v is None:
            return v
        parsed = urlparse(str(v))
        scheme = parsed.scheme.split("+")[0].lower() if parsed.scheme else ""
        if scheme not in {"postgres", "postgresql", "mysql"}:
            raise ValueError("DATABASE_URL must use postgresql or mysql scheme.")
        if not parsed.hostname:
            raise ValueError("DATABASE_URL must include a host.")
        return v


class SchemaSettings(BaseSettings):
    """Schema snapshot caching and summarization."""

    cache_dir: Path = Field(
        default=Path("~/.sqlchat/cache/schemas"),
        description="Directory holding one JSON snapshot per database",
    )
    cache_path: Path | None = Field(
        default=None,
        description="Explicit snapshot artifact path (overrides cache_dir lookup)",
    )
    detail_suffix: str = Field(
        default="_details",
        min_length=1,
        description="Suffix that marks a detail table of a parent table",
    )
    key_column_limit: int = Field(
        default=10,
        gt=0,
        le=100,
        description="Maximum key columns listed per table in the summary",
    )
    sample_rows: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Sample rows captured per table during extraction",
    )

    model_config = SettingsConfigDict(
        env_prefix="SCHEMA_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("cache_dir")
    @classmethod
    def expand_cache_dir(cls, v: Path) -> Path:
        return v.expanduser()


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Application log level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format",
    )
    date_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        description="Log timestamp format",
    )
    file: Path | None = Field(
        default=None,
        description="Optional log file path (None = stderr only)",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore",
    )

    def configure(self) -> None:
        """Configure Python logging with these settings."""
        handlers: list[logging.Handler] = [logging.StreamHandler()]

        if self.file:
            self.file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(self.file))

        logging.basicConfig(
            level=getattr(logging, self.level),
            format=self.format,
            datefmt=self.date_format,
            handlers=handlers,
            force=True,  # Override any existing configuration
        )


class PipelineSettings(BaseSettings):
    """Prompt budgets, application context and limits of the question pipeline."""

    # Table identification
    identify_schema_max_chars: int = Field(
        default=50000,
        ge=1000,
        description="Maximum characters of schema summary embedded in the identification prompt.",
    )

    # SQL generation
    generation_schema_max_chars: int = Field(
        default=80000,
        ge=1000,
        description="Maximum characters of detailed schema in the generation prompt.",
    )
    generation_columns_max_chars: int = Field(
        default=30000,
        ge=500,
        description="Maximum characters of the available-columns section.",
    )
    generation_history_max_chars: int = Field(
        default=2000,
        ge=0,
        description="Maximum characters of conversation history in the generation prompt.",
    )
    generation_compact_schema_max_chars: int = Field(
        default=60000,
        ge=1000,
        description="Schema budget used when the full prompt exceeds the ceiling.",
    )
    generation_compact_columns_max_chars: int = Field(
        default=20000,
        ge=500,
        description="Columns budget used when the full prompt exceeds the ceiling.",
    )
    generation_prompt_max_chars: int = Field(
        default=250000,
        ge=10000,
        description="Hard ceiling on the total generation prompt; larger prompts are never sent.",
    )
    generation_table_list_limit: int = Field(
        default=100,
        gt=0,
        description="Number of table names listed as the global table index.",
    )
    generation_max_indexes: int = Field(
        default=5,
        ge=0,
        description="Maximum index names kept per table in the generation prompt.",
    )
    history_turns: int = Field(
        default=2,
        ge=0,
        le=20,
        description="Number of prior conversation turns passed to the LLM.",
    )
    history_turn_max_chars: int = Field(
        default=150,
        gt=0,
        description="Characters kept from each prior turn.",
    )
    max_result_rows: int = Field(
        default=1000,
        gt=0,
        description="Row cap the generated SQL must enforce with LIMIT.",
    )

    # Result refinement
    refine_max_rows: int = Field(
        default=100,
        gt=0,
        description="Maximum rows sent to the LLM for narration.",
    )
    refine_fallback_rows: int = Field(
        default=10,
        gt=0,
        description="Rows enumerated by the deterministic fallback narrative.",
    )
    response_max_rows: int = Field(
        default=100,
        gt=0,
        description="Maximum rows returned in the pipeline answer payload.",
    )

    # Application context
    context_path: Path | None = Field(
        default=None,
        description="Plain-text document describing the application and its data.",
    )
    identify_context_max_chars: int = Field(
        default=8000,
        ge=0,
        description="Characters of the context document in the identification prompt.",
    )
    generation_context_max_chars: int = Field(
        default=10000,
        ge=0,
        description="Characters of the context document in the generation prompt.",
    )
    instructions: str | None = Field(
        default=None,
        description="Database-specific guidance for identification, generation and suggestions.",
    )

    # Self-healing repair
    repair_enabled: bool = Field(
        default=True,
        description="Attempt one LLM repair when execution fails on an unknown identifier.",
    )
    repair_patterns_postgresql: list[str] = Field(
        default_factory=lambda: ["does not exist", "undefined column", "column"],
        description="Case-insensitive error substrings that trigger repair on PostgreSQL.",
    )
    repair_patterns_mysql: list[str] = Field(
        default_factory=lambda: ["unknown column", "doesn't exist", "unknown table"],
        description="Case-insensitive error substrings that trigger repair on MySQL.",
    )

    model_config = SettingsConfigDict(
        env_prefix="PIPELINE_",
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_budgets(self) -> "PipelineSettings":
        """Compact budgets must not exceed the full ones."""
        if self.generation_compact_schema_max_chars > self.generation_schema_max_chars:
            raise ValueError(
                "generation_compact_schema_max_chars must not exceed generation_schema_max_chars"
            )
        if self.generation_compact_columns_max_chars > self.generation_columns_max_chars:
            raise ValueError(
                "generation_compact_columns_max_chars must not exceed generation_columns_max_chars"
            )
        return self

    @field_validator("context_path")
    @classmethod
    def expand_context_path(cls, v: Path | None) -> Path | None:
        return v.expanduser() if v is not None else None

    @field_validator("instructions")
    @classmethod
    def normalize_instructions(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None

    def load_context(self) -> str:
        """
        Read the context document.

        Returns an empty string when no document is configured or it cannot
        be read; a missing document never stops the pipeline.
        """
        if self.context_path is None:
            return ""
        try:
            return self.context_path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as e:
            logging.getLogger(__name__).warning(
                f"Context document unavailable: {e}",
                extra={"context_path": str(self.context_path)},
            )
            return ""

    def repair_patterns(self, dialect: str) -> list[str]:
        """Return the repair trigger patterns for a database dialect."""
        if dialect == "mysql":
            return list(self.repair_patterns_mysql)
        return list(self.repair_patterns_postgresql)


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    Settings are nested by domain (llm, database, schema, pipeline, logging).

    Environment Variables:
        ENVIRONMENT: Deployment environment (development, staging, production)
        APP_NAME: Application name for logging
        LLM_*: Completion service configuration (see LLMSettings)
        DATABASE_*: Target database configuration (see DatabaseSettings)
        SCHEMA_*: Snapshot cache configuration (see SchemaSettings)
        PIPELINE_*: Budgets and repair configuration (see PipelineSettings)
        LOG_*: Logging configuration (see LoggingSettings)

    Example:
        >>> settings = get_settings()
        >>> settings.llm.model
        'qwen-plus'
        >>> settings.pipeline.refine_max_rows
        100
    """

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    app_name: str = Field(
        default="SQLChat",
        description="Application name",
    )

    # Nested settings
    llm: LLMSettings = Field(default_factory=LLMSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    schema_cache: SchemaSettings = Field(default_factory=SchemaSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @model_validator(mode="after")
    def configure_logging(self) -> "Settings":
        """Configure logging when settings are loaded."""
        self.logging.configure()
        return self

    def model_post_init(self, __context) -> None:
        """Log configuration on initialization."""
        logger = logging.getLogger(__name__)
        logger.info(
            f"Settings loaded for {self.app_name} ({self.environment})",
            extra={
                "environment": self.environment,
                "llm_provider": self.llm.provider,
                "llm_model": self.llm.model,
                "database_pool_size": self.database.pool_size,
            },
        )


_DOTENV_PATH = Path(__file__).resolve().parents[1] / ".env"


def _apply_dotenv_precedence() -> None:
    env_source = os.getenv("SQLCHAT_ENV_SOURCE", "dotenv").lower()
    if env_source not in {"dotenv", "envfile", "file"}:
        return
    if _DOTENV_PATH.exists():
        load_dotenv(_DOTENV_PATH, override=True)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Singleton settings instance
    """
    _apply_dotenv_precedence()
    return Settings()


def clear_settings_cache() -> None:
    """
    Clear the settings cache.

    Useful for testing when you need to reload settings with different
    environment variables.
    """
    get_settings.cache_clear()

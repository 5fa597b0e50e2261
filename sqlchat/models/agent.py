"""
Agent I/O Models

Pydantic models and exceptions shared by the pipeline stages.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class Message(BaseModel):
    """Single message in conversation history."""

    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    model_config = ConfigDict(frozen=True)


class AgentMetadata(BaseModel):
    """Metadata about agent execution."""

    agent_name: str
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: datetime | None = None
    duration_ms: float | None = None
    llm_calls: int = 0
    error: str | None = None

    model_config = ConfigDict(frozen=False)

    def mark_complete(self) -> None:
        """Mark execution as complete and calculate duration."""
        self.completed_at = datetime.utcnow()
        if self.started_at:
            delta = self.completed_at - self.started_at
            self.duration_ms = delta.total_seconds() * 1000


class ConfigurationError(Exception):
    """Missing or invalid configuration. Fatal at pipeline construction."""


class AgentError(Exception):
    """
    Custom exception for agent execution errors.

    Attributes:
        agent: Name of the agent that raised the error
        message: Error description
        recoverable: Whether the pipeline can continue with a degraded answer
        context: Additional context for debugging
    """

    def __init__(
        self,
        agent: str,
        message: str,
        recoverable: bool = True,
        context: dict[str, Any] | None = None,
    ):
        self.agent = agent
        self.message = message
        self.recoverable = recoverable
        self.context = context or {}
        super().__init__(f"[{agent}] {message}")

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging."""
        return {
            "agent": self.agent,
            "message": self.message,
            "recoverable": self.recoverable,
            "context": self.context,
            "type": self.__class__.__name__,
        }


class SQLGenerationError(AgentError):
    """The generator could not produce a statement."""

    def __init__(self, agent: str, message: str, context: dict[str, Any] | None = None):
        super().__init__(agent, message, recoverable=True, context=context)


class ExecutionError(AgentError):
    """
    The store rejected a statement.

    ``message`` is the store's raw error text; ``sql`` is the statement that
    failed last (the repaired one when a repair was attempted).
    """

    def __init__(
        self,
        agent: str,
        message: str,
        sql: str | None = None,
        repair_attempted: bool = False,
        context: dict[str, Any] | None = None,
    ):
        self.sql = sql
        self.repair_attempted = repair_attempted
        super().__init__(agent, message, recoverable=False, context=context)


class ValidationResult(BaseModel):
    """Outcome of the SQL safety check."""

    ok: bool
    reason: str | None = None
    keyword: str | None = Field(None, description="Dangerous keyword that caused rejection")

    @classmethod
    def accepted(cls) -> "ValidationResult":
        return cls(ok=True)

    @classmethod
    def rejected(cls, reason: str, keyword: str | None = None) -> "ValidationResult":
        return cls(ok=False, reason=reason, keyword=keyword)


class QueryOutcome(BaseModel):
    """Successful execution of one statement."""

    sql: str
    rows: list[dict[str, Any]] = Field(default_factory=list)
    columns: list[str] = Field(default_factory=list)
    row_count: int = Field(default=0, ge=0)
    execution_time_ms: float = Field(default=0.0, ge=0)
    repaired: bool = Field(default=False, description="True when the repaired statement ran")


class QueryResultPayload(BaseModel):
    """Rows returned to the caller alongside the answer."""

    rows: list[dict[str, Any]] = Field(default_factory=list)
    columns: list[str] = Field(default_factory=list)
    row_count: int = Field(default=0, ge=0, description="Total rows the query produced")


class PipelineAnswer(BaseModel):
    """Result of ``process_question``."""

    success: bool
    answer: str
    sql_query: str | None = None
    query_result: QueryResultPayload | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": True,
                "answer": "There were 42 orders last month.",
                "sql_query": "SELECT COUNT(*) AS orders FROM orders LIMIT 1000",
                "query_result": {"rows": [{"orders": 42}], "columns": ["orders"], "row_count": 1},
            }
        }
    )

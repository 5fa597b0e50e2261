"""Shared data models and exceptions."""

from sqlchat.models.agent import (
    AgentError,
    AgentMetadata,
    ConfigurationError,
    ExecutionError,
    Message,
    PipelineAnswer,
    QueryOutcome,
    QueryResultPayload,
    SQLGenerationError,
    ValidationResult,
)

__all__ = [
    "AgentError",
    "AgentMetadata",
    "ConfigurationError",
    "ExecutionError",
    "Message",
    "PipelineAnswer",
    "QueryOutcome",
    "QueryResultPayload",
    "SQLGenerationError",
    "ValidationResult",
]

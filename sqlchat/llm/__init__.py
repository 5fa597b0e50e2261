"""
LLM Provider Module

Completion providers shared by every reasoning stage of the pipeline.

Usage:
    from sqlchat.llm import LLMProviderFactory
    from sqlchat.config import get_settings

    provider = LLMProviderFactory.create_default_provider(get_settings().llm)
    text = await provider.complete(
        [{"role": "user", "content": "Hello!"}], temperature=0.3, timeout=60
    )
"""

from sqlchat.llm.base import (
    BaseLLMProvider,
    LLMGatewayError,
    LLMParseError,
    LLMProtocolError,
    LLMTimeoutError,
    LLMTransportError,
)
from sqlchat.llm.factory import LLMProviderFactory
from sqlchat.llm.gateway import CompletionGateway, CompletionState, PendingCompletion
from sqlchat.llm.models import LLMMessage, LLMRequest, LLMResponse, LLMUsage
from sqlchat.llm.openai import OpenAIProvider

__all__ = [
    # Base classes and errors
    "BaseLLMProvider",
    "LLMGatewayError",
    "LLMParseError",
    "LLMProtocolError",
    "LLMTimeoutError",
    "LLMTransportError",
    # Models
    "LLMMessage",
    "LLMRequest",
    "LLMResponse",
    "LLMUsage",
    # Factory
    "LLMProviderFactory",
    # Providers
    "CompletionGateway",
    "CompletionState",
    "OpenAIProvider",
    "PendingCompletion",
]

"""
LLM Provider Factory

Creates the configured completion provider from LLMSettings.
"""

import logging
from typing import Literal

from sqlchat.config import LLMSettings
from sqlchat.llm.base import BaseLLMProvider
from sqlchat.llm.gateway import CompletionGateway
from sqlchat.llm.openai import OpenAIProvider
from sqlchat.models.agent import ConfigurationError

logger = logging.getLogger(__name__)


class LLMProviderFactory:
    """Factory for completion provider instances."""

    # Registry of available providers
    PROVIDERS = {
        "compatible": CompletionGateway,
        "openai": OpenAIProvider,
    }

    @staticmethod
    def create_provider(
        provider_type: Literal["compatible", "openai"],
        config: LLMSettings,
    ) -> BaseLLMProvider:
        """
        Create a provider instance.

        Args:
            provider_type: Type of provider to create
            config: LLM configuration settings

        Returns:
            Configured provider instance

        Raises:
            ConfigurationError: Unknown provider type or missing API key
        """
        if provider_type not in LLMProviderFactory.PROVIDERS:
            raise ConfigurationError(
                f"Unknown provider type: {provider_type}. "
                f"Available providers: {list(LLMProviderFactory.PROVIDERS.keys())}"
            )
        if not config.api_key:
            raise ConfigurationError("LLM API key is not configured. Set LLM_API_KEY.")

        logger.info(
            f"Creating {provider_type} provider for model {config.model}",
            extra={"provider": provider_type, "model": config.model},
        )

        if provider_type == "openai":
            return OpenAIProvider(
                api_key=config.api_key,
                model=config.model,
                base_url=config.base_url,
                max_tokens=config.max_tokens,
                timeout=config.timeout,
            )
        return CompletionGateway(
            api_key=config.api_key,
            base_url=config.base_url,
            model=config.model,
            max_tokens=config.max_tokens,
            timeout=config.timeout,
        )

    @staticmethod
    def create_default_provider(config: LLMSettings) -> BaseLLMProvider:
        """Create the provider selected by ``config.provider``."""
        return LLMProviderFactory.create_provider(config.provider, config)

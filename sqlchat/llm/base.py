"""
Base LLM Provider

Abstract base class defining the interface for completion providers, and the
error taxonomy every provider maps its failures onto.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

from sqlchat.llm.models import LLMMessage, LLMRequest, LLMResponse

logger = logging.getLogger(__name__)


class LLMGatewayError(Exception):
    """Base class for completion failures."""

    def __init__(self, message: str, provider: str | None = None):
        self.provider = provider
        super().__init__(message)


class LLMTimeoutError(LLMGatewayError):
    """No first byte, or no complete body, within the timeout."""

    def __init__(self, message: str, phase: str, provider: str | None = None):
        self.phase = phase
        super().__init__(message, provider=provider)


class LLMTransportError(LLMGatewayError):
    """Connection-level failure before a response was obtained."""


class LLMProtocolError(LLMGatewayError):
    """Non-2xx status, or an error payload reported by the service."""

    def __init__(self, message: str, status_code: int | None = None, provider: str | None = None):
        self.status_code = status_code
        super().__init__(message, provider=provider)


class LLMParseError(LLMGatewayError):
    """Body is not a recognized completion shape."""


class BaseLLMProvider(ABC):
    """
    Abstract base class for completion providers.

    Attributes:
        provider_name: Unique identifier for this provider
        model: Default model identifier
        temperature: Default sampling temperature
        timeout: Default per-phase timeout in seconds
    """

    def __init__(
        self,
        provider_name: str,
        model: str,
        temperature: float = 0.3,
        max_tokens: int | None = None,
        timeout: float = 300.0,
    ):
        self.provider_name = provider_name
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

        logger.info(
            f"Initialized {provider_name} provider",
            extra={
                "provider": provider_name,
                "model": model,
                "timeout": timeout,
            },
        )

    @abstractmethod
    async def generate(self, request: LLMRequest) -> LLMResponse:
        """
        Generate a completion.

        Args:
            request: LLM request with messages and parameters

        Returns:
            LLMResponse with generated content and metadata

        Raises:
            LLMTimeoutError: First-byte or body deadline elapsed
            LLMTransportError: Connection failed
            LLMProtocolError: Non-2xx status or service-reported error
            LLMParseError: Unrecognized response body
        """
        pass  # pragma: no cover - abstract method

    async def complete(
        self,
        messages: Sequence[LLMMessage | dict],
        temperature: float | None = None,
        timeout: float | None = None,
    ) -> str:
        """
        Send one chat completion and return the assistant text.

        Each call issues exactly one request; retries are the caller's concern.
        """
        request = LLMRequest(
            messages=[
                m if isinstance(m, LLMMessage) else LLMMessage.model_validate(m)
                for m in messages
            ],
            temperature=temperature,
            timeout=timeout,
        )
        response = await self.generate(request)
        return response.content

    async def aclose(self) -> None:
        """Release pooled connections."""
        return None

    def _apply_defaults(self, request: LLMRequest) -> LLMRequest:
        if request.temperature is None:
            request.temperature = self.temperature
        if request.timeout is None:
            request.timeout = self.timeout
        if request.max_tokens is None:
            request.max_tokens = self.max_tokens
        return request

    def _log_request(self, request: LLMRequest) -> None:
        """Log request details for debugging."""
        logger.debug(
            f"{self.provider_name} request",
            extra={
                "provider": self.provider_name,
                "message_count": len(request.messages),
                "prompt_chars": sum(len(m.content) for m in request.messages),
                "temperature": request.temperature,
                "timeout": request.timeout,
            },
        )

    def _log_response(self, response: LLMResponse) -> None:
        """Log response details for debugging."""
        logger.debug(
            f"{self.provider_name} response",
            extra={
                "provider": self.provider_name,
                "model": response.model,
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "finish_reason": response.finish_reason,
            },
        )

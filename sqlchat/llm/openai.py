"""
OpenAI LLM Provider

Completion provider backed by the official openai SDK. Works against
api.openai.com or any compatible ``base_url``. SDK exceptions are mapped onto
the gateway error taxonomy so callers handle both providers alike.
"""

import asyncio
import logging

import openai
from openai import AsyncOpenAI

from sqlchat.llm.base import (
    BaseLLMProvider,
    LLMGatewayError,
    LLMParseError,
    LLMProtocolError,
    LLMTimeoutError,
    LLMTransportError,
)
from sqlchat.llm.gateway import PHASE_BODY, PHASE_FIRST_BYTE, PendingCompletion
from sqlchat.llm.models import LLMRequest, LLMResponse, LLMUsage

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseLLMProvider):
    """
    OpenAI SDK provider.

    Responses are streamed so the first-byte and body deadlines can be
    enforced separately; ``max_retries`` is forced to 0 so that one
    ``generate`` call is one request.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        temperature: float = 0.3,
        max_tokens: int | None = None,
        timeout: float = 300.0,
        client: AsyncOpenAI | None = None,
    ):
        super().__init__(
            provider_name="openai",
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=float(timeout),
            max_retries=0,
        )

        logger.info(f"OpenAI provider initialized with model: {model}", extra={"model": model})

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """
        Generate completion using the OpenAI API.

        The response is streamed under the same two-phase deadline as the
        httpx gateway: one timeout for the response headers, then a fresh one
        for the streamed body.

        Raises:
            LLMTimeoutError: First-byte or body deadline, or openai.APITimeoutError
            LLMTransportError: On openai.APIConnectionError and other transport failures
            LLMProtocolError: On non-2xx statuses and other API errors
            LLMParseError: When the stream carries no completion choice
        """
        request = self._apply_defaults(request)
        self._log_request(request)

        pending = PendingCompletion(request.timeout, provider=self.provider_name)
        pending.arm(PHASE_FIRST_BYTE)
        transport = asyncio.create_task(self._stream(request, pending))
        try:
            llm_response = await pending.wait()
        except LLMGatewayError as e:
            logger.error(
                f"OpenAI request failed: {e}",
                extra={"provider": self.provider_name, "error_type": type(e).__name__},
            )
            raise
        finally:
            pending.cancel()
            if not transport.done():
                transport.cancel()
            await asyncio.gather(transport, return_exceptions=True)

        self._log_response(llm_response)
        return llm_response

    async def aclose(self) -> None:
        await self.client.close()

    async def _stream(self, request: LLMRequest, pending: PendingCompletion) -> None:
        """Transport task: collect the streamed chunks into ``pending``."""
        messages = [{"role": msg.role, "content": msg.content} for msg in request.messages]
        kwargs = {}
        if request.max_tokens is not None:
            kwargs["max_tokens"] = request.max_tokens

        try:
            stream = await self.client.chat.completions.create(
                model=request.model or self.model,
                messages=messages,
                temperature=request.temperature,
                timeout=request.timeout,
                stream=True,
                stream_options={"include_usage": True},
                **kwargs,
            )
            pending.arm(PHASE_BODY)
            try:
                response = await self._collect(stream, request.model or self.model)
            finally:
                await stream.close()
        except openai.APITimeoutError as e:
            pending.fail(
                LLMTimeoutError(
                    str(e), phase=pending.phase or PHASE_FIRST_BYTE, provider=self.provider_name
                )
            )
        except openai.APIConnectionError as e:
            pending.fail(LLMTransportError(str(e), provider=self.provider_name))
        except openai.APIStatusError as e:
            pending.fail(
                LLMProtocolError(str(e), status_code=e.status_code, provider=self.provider_name)
            )
        except openai.APIError as e:
            pending.fail(LLMProtocolError(str(e), provider=self.provider_name))
        except LLMGatewayError as e:
            pending.fail(e)
        except Exception as e:
            pending.fail(LLMTransportError(f"Transport error: {e}", provider=self.provider_name))
        else:
            pending.succeed(response)

    async def _collect(self, stream, model: str) -> LLMResponse:
        parts: list[str] = []
        seen_choice = False
        finish_reason = None
        usage = None
        response_id = None
        async for chunk in stream:
            response_id = response_id or chunk.id
            model = chunk.model or model
            if chunk.usage is not None:
                usage = chunk.usage
            for choice in chunk.choices or []:
                if choice.index != 0:
                    continue
                seen_choice = True
                if choice.delta is not None and choice.delta.content:
                    parts.append(choice.delta.content)
                if choice.finish_reason:
                    finish_reason = choice.finish_reason

        if not seen_choice:
            raise LLMParseError("Unexpected API response format", provider=self.provider_name)

        return LLMResponse(
            content="".join(parts),
            model=model,
            usage=LLMUsage(
                prompt_tokens=usage.prompt_tokens if usage else 0,
                completion_tokens=usage.completion_tokens if usage else 0,
                total_tokens=usage.total_tokens if usage else 0,
            ),
            finish_reason=self._map_finish_reason(finish_reason),
            provider=self.provider_name,
            metadata={"id": response_id},
        )

    def _map_finish_reason(self, reason: str | None) -> str:
        """Map OpenAI finish reason to our standard format."""
        if reason in {"stop", "length", "content_filter"}:
            return reason
        return "stop"

"""
Completion Gateway

httpx client for any OpenAI-compatible ``/chat/completions`` endpoint
(DashScope/Qwen, vLLM, Ollama's compatibility layer, OpenAI itself).

Every request runs under a two-phase deadline: the timer starts when the
request is sent, and is re-armed once when response headers arrive so the
body gets a full timeout of its own. The outcome of a request is held by a
``PendingCompletion`` which settles exactly once; timers that fire after the
request settled do nothing.
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Any

import httpx

from sqlchat.llm.base import (
    BaseLLMProvider,
    LLMGatewayError,
    LLMParseError,
    LLMProtocolError,
    LLMTimeoutError,
    LLMTransportError,
)
from sqlchat.llm.models import LLMRequest, LLMResponse, LLMUsage

logger = logging.getLogger(__name__)

PHASE_FIRST_BYTE = "first_byte"
PHASE_BODY = "body"


class CompletionState(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class PendingCompletion:
    """
    Single-assignment holder for one in-flight request.

    ``succeed``, ``fail`` and the timeout callback race to settle the request.
    Only the first one leaves ``PENDING``; the others return ``False``.
    """

    def __init__(
        self,
        timeout: float,
        loop: asyncio.AbstractEventLoop | None = None,
        provider: str | None = None,
    ):
        self.timeout = timeout
        self.provider = provider
        self.state = CompletionState.PENDING
        self.phase: str | None = None
        self._loop = loop or asyncio.get_running_loop()
        self._future: asyncio.Future = self._loop.create_future()
        self._timer: asyncio.TimerHandle | None = None

    @property
    def resolved(self) -> bool:
        return self.state is CompletionState.RESOLVED

    def arm(self, phase: str) -> None:
        """Start (or restart) the deadline for ``phase``."""
        if self.resolved:
            return
        self._cancel_timer()
        self.phase = phase
        self._timer = self._loop.call_later(self.timeout, self._on_timeout, phase)

    def succeed(self, value: Any) -> bool:
        if not self._settle():
            return False
        self._future.set_result(value)
        return True

    def fail(self, error: BaseException) -> bool:
        if not self._settle():
            return False
        self._future.set_exception(error)
        return True

    def cancel(self) -> bool:
        """Settle without a result once the waiter has gone away."""
        if not self._settle():
            return False
        self._future.cancel()
        return True

    async def wait(self) -> Any:
        return await self._future

    def _on_timeout(self, phase: str) -> None:
        waited = "first byte" if phase == PHASE_FIRST_BYTE else "response body"
        resolved = self.fail(
            LLMTimeoutError(
                f"Completion request timed out after {self.timeout:g}s waiting for {waited}",
                phase=phase,
                provider=self.provider,
            )
        )
        if not resolved:
            logger.debug("Ignoring timeout for an already resolved completion")

    def _settle(self) -> bool:
        if self.resolved:
            return False
        self.state = CompletionState.RESOLVED
        self._cancel_timer()
        # The waiter may have been cancelled by its own caller
        return not self._future.done()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class CompletionGateway(BaseLLMProvider):
    """
    Provider for OpenAI-compatible completion services.

    Sends ``POST {base_url}/chat/completions`` with a Bearer key and returns the
    first choice's message content. Never retries.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str = "qwen-plus",
        temperature: float = 0.3,
        max_tokens: int | None = None,
        timeout: float = 300.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the gateway.

        Args:
            api_key: Bearer token for the service
            base_url: Service base URL, e.g. ``https://host/compatible-mode/v1``
            model: Model identifier sent with each request
            temperature: Default sampling temperature
            max_tokens: Optional completion token cap
            timeout: Default per-phase timeout in seconds
            client: Pre-built httpx client (tests inject a MockTransport here)
        """
        super().__init__(
            provider_name="compatible",
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
        self.base_url = base_url.rstrip("/")
        self.endpoint = f"{self.base_url}/chat/completions"
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        # Deadlines are enforced by PendingCompletion, not by httpx
        self.client = client or httpx.AsyncClient(timeout=None)

    async def generate(self, request: LLMRequest) -> LLMResponse:
        request = self._apply_defaults(request)
        self._log_request(request)

        pending = PendingCompletion(request.timeout, provider=self.provider_name)
        pending.arm(PHASE_FIRST_BYTE)
        transport = asyncio.create_task(self._send(self._build_payload(request), pending))
        try:
            status_code, raw = await pending.wait()
        except LLMGatewayError as e:
            logger.error(
                f"Completion request failed: {e}",
                extra={"provider": self.provider_name, "error_type": type(e).__name__},
            )
            raise
        finally:
            pending.cancel()
            if not transport.done():
                transport.cancel()
            await asyncio.gather(transport, return_exceptions=True)

        response = self._parse_body(status_code, raw, request.model or self.model)
        self._log_response(response)
        return response

    async def aclose(self) -> None:
        await self.client.aclose()

    def _build_payload(self, request: LLMRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model or self.model,
            "messages": [{"role": msg.role, "content": msg.content} for msg in request.messages],
            "temperature": request.temperature,
        }
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens
        return payload

    async def _send(self, payload: dict[str, Any], pending: PendingCompletion) -> None:
        """Transport task: stream the response into ``pending``."""
        try:
            async with self.client.stream(
                "POST", self.endpoint, json=payload, headers=self._headers
            ) as response:
                pending.arm(PHASE_BODY)
                raw = await response.aread()
                pending.succeed((response.status_code, raw))
        except httpx.TimeoutException as e:
            pending.fail(
                LLMTimeoutError(
                    f"Transport timeout: {e}",
                    phase=pending.phase or PHASE_FIRST_BYTE,
                    provider=self.provider_name,
                )
            )
        except httpx.HTTPError as e:
            pending.fail(
                LLMTransportError(f"Transport error: {e}", provider=self.provider_name)
            )
        except Exception as e:
            pending.fail(
                LLMTransportError(f"Transport error: {e}", provider=self.provider_name)
            )

    def _parse_body(self, status_code: int, raw: bytes, model: str) -> LLMResponse:
        text = raw.decode("utf-8", errors="replace")
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            if not 200 <= status_code < 300:
                raise LLMProtocolError(
                    f"HTTP {status_code}: {text[:200]}",
                    status_code=status_code,
                    provider=self.provider_name,
                ) from e
            raise LLMParseError(
                f"Parse error: {e}", provider=self.provider_name
            ) from e

        if isinstance(data, dict) and data.get("error"):
            raise LLMProtocolError(
                f"API error: {self._error_message(data['error'])}",
                status_code=status_code,
                provider=self.provider_name,
            )
        if not 200 <= status_code < 300:
            raise LLMProtocolError(
                f"HTTP {status_code}: {text[:200]}",
                status_code=status_code,
                provider=self.provider_name,
            )

        try:
            choice = data["choices"][0]
            content = choice["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMParseError(
                "Unexpected API response format", provider=self.provider_name
            ) from e
        if not isinstance(content, str):
            raise LLMParseError("Unexpected API response format", provider=self.provider_name)

        usage = data.get("usage") or {}
        return LLMResponse(
            content=content,
            model=data.get("model") or model,
            usage=LLMUsage(
                prompt_tokens=usage.get("prompt_tokens") or 0,
                completion_tokens=usage.get("completion_tokens") or 0,
                total_tokens=usage.get("total_tokens") or 0,
            ),
            finish_reason=_map_finish_reason(choice.get("finish_reason")),
            provider=self.provider_name,
            metadata={"id": data.get("id"), "status_code": status_code},
        )

    @staticmethod
    def _error_message(error: Any) -> str:
        if isinstance(error, dict):
            return str(error.get("message") or error.get("code") or error)
        return str(error)


def _map_finish_reason(reason: str | None) -> str:
    if reason in {"stop", "length", "content_filter"}:
        return reason
    return "stop"

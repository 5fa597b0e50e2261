"""
Base Agent Framework

Abstract base class for the stages of the question pipeline.
Provides a consistent call interface, timing, logging and error wrapping.

Usage:
    class MyAgent(BaseAgent):
        def __init__(self, llm_provider):
            super().__init__(name="MyAgent", llm_provider=llm_provider)

        async def execute(self, *, question: str) -> str:
            return await self._complete(
                system="system/my_agent.md",
                prompt="agents/my_agent.md",
                temperature=0.3,
                question=question,
            )
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from sqlchat.config import Settings, get_settings
from sqlchat.llm.base import BaseLLMProvider, LLMGatewayError
from sqlchat.llm.models import LLMMessage
from sqlchat.models.agent import AgentError, AgentMetadata, Message
from sqlchat.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)


class BaseAgent(ABC):
    """
    Abstract base class for pipeline agents.

    ``__call__`` wraps ``execute`` with timing and logging. Agent and gateway
    errors propagate unchanged; anything else is wrapped in a non-recoverable
    ``AgentError``. There is no retry loop: each call does its work once.

    Attributes:
        name: Unique identifier for this agent
        llm: Completion provider (None for rule-based agents)
        config: Application settings
        prompts: Prompt template loader
    """

    def __init__(
        self,
        name: str,
        llm_provider: BaseLLMProvider | None = None,
        settings: Settings | None = None,
        prompts: PromptLoader | None = None,
    ):
        self.name = name
        self.llm = llm_provider
        self.config = settings or get_settings()
        self.prompts = prompts or PromptLoader()
        self._context: str | None = None
        self._metadata = self._create_metadata()

        logger.debug(f"Initialized {self.name}", extra={"agent": self.name})

    @abstractmethod
    async def execute(self, **kwargs: Any) -> Any:
        """
        Execute the agent's core logic.

        Raises:
            AgentError: On execution failures
        """
        pass  # pragma: no cover - abstract method

    async def __call__(self, **kwargs: Any) -> Any:
        """Run ``execute`` with timing, logging and error wrapping."""
        start_time = time.perf_counter()
        self._metadata = self._create_metadata()
        logger.info(f"Starting {self.name}", extra={"agent": self.name})

        try:
            result = await self.execute(**kwargs)
        except (AgentError, LLMGatewayError) as e:
            self._finish(start_time, error=str(e))
            logger.warning(
                f"{self.name} failed: {e}",
                extra={"agent": self.name, "error_type": type(e).__name__},
            )
            raise
        except Exception as e:
            self._finish(start_time, error=str(e))
            logger.error(
                f"Unexpected error in {self.name}",
                extra={"agent": self.name, "error_type": type(e).__name__},
                exc_info=True,
            )
            raise AgentError(
                agent=self.name,
                message=f"Unexpected error: {e}",
                recoverable=False,
                context={"error_type": type(e).__name__},
            ) from e

        self._finish(start_time)
        logger.info(
            f"Completed {self.name}",
            extra={
                "agent": self.name,
                "duration_ms": self._metadata.duration_ms,
                "llm_calls": self._metadata.llm_calls,
            },
        )
        return result

    @property
    def metadata(self) -> AgentMetadata:
        return self._metadata

    def _create_metadata(self) -> AgentMetadata:
        return AgentMetadata(agent_name=self.name)

    def _finish(self, start_time: float, error: str | None = None) -> None:
        self._metadata.mark_complete()
        self._metadata.duration_ms = (time.perf_counter() - start_time) * 1000
        self._metadata.error = error

    async def _complete(
        self,
        *,
        system: str,
        prompt: str,
        temperature: float,
        **variables: Any,
    ) -> str:
        """Render ``prompt``, send it with the ``system`` prompt and return the reply."""
        if self.llm is None:
            raise AgentError(self.name, "No LLM provider configured", recoverable=False)
        messages = [
            LLMMessage(role="system", content=self.prompts.load(system)),
            LLMMessage(role="user", content=self.prompts.render(prompt, **variables)),
        ]
        return await self._send(messages, temperature)

    async def _send(self, messages: list[LLMMessage], temperature: float) -> str:
        self._metadata.llm_calls += 1
        return await self.llm.complete(
            messages, temperature=temperature, timeout=self.config.llm.timeout
        )

    def _context_document(self) -> str:
        """Application context document, read once per agent."""
        if self._context is None:
            self._context = self.config.pipeline.load_context()
        return self._context

    def _recent_history(self, chat_history: list[Message | dict] | None) -> list[dict[str, str]]:
        """Last N turns, each cut to the configured length."""
        turns = self.config.pipeline.history_turns
        limit = self.config.pipeline.history_turn_max_chars
        if not chat_history or turns == 0:
            return []
        recent = []
        for turn in list(chat_history)[-turns:]:
            role = turn.role if isinstance(turn, Message) else str(turn.get("role", "user"))
            content = turn.content if isinstance(turn, Message) else str(turn.get("content", ""))
            recent.append({"role": role, "content": content[:limit]})
        return recent

"""
SQLChat Pipeline Orchestrator

LangGraph-based pipeline that answers one question per run:
- summary → TableIdentifierAgent → detail → SQLGeneratorAgent → SQLValidator
  → QueryExecutor → ResultRefinerAgent
- Self-healing step: an unknown-identifier failure is repaired once by
  SQLRepairAgent, re-validated and re-executed
- Every per-question failure ends in an answer, never an exception
"""

import logging
import time
from typing import Any, TypedDict

from langgraph.graph import END, StateGraph

from sqlchat.agents.executor import QueryExecutor
from sqlchat.agents.refiner import ResultRefinerAgent, format_results_simple
from sqlchat.agents.repair import SQLRepairAgent
from sqlchat.agents.sql_generator import SQLGeneratorAgent
from sqlchat.agents.table_identifier import TableIdentifierAgent
from sqlchat.agents.validator import SQLValidator
from sqlchat.config import Settings, get_settings
from sqlchat.connectors.base import BaseConnector
from sqlchat.connectors.factory import create_connector_from_settings
from sqlchat.llm.base import BaseLLMProvider, LLMGatewayError
from sqlchat.llm.factory import LLMProviderFactory
from sqlchat.models.agent import (
    AgentError,
    ExecutionError,
    Message,
    PipelineAnswer,
    QueryOutcome,
    QueryResultPayload,
)
from sqlchat.prompts.loader import PromptLoader
from sqlchat.schema.catalog import SchemaCatalog, schema_cache
from sqlchat.schema.models import TableDetail, TableSummary
from sqlchat.schema.store import SnapshotStore

logger = logging.getLogger(__name__)

NO_TABLES_ANSWER = (
    "I could not identify any relevant tables for your question. Please try rephrasing."
)
GENERATION_FAILED_ANSWER = (
    "I'm sorry, I couldn't create a query for your question right now. "
    "Please try rephrasing your question."
)
UNEXPECTED_ERROR_ANSWER = (
    "I'm sorry, something went wrong while answering your question. "
    "Please try rephrasing your question."
)


# ============================================================================
# Pipeline State Schema
# ============================================================================


class PipelineState(TypedDict, total=False):
    """
    State schema for one question.

    ``sql`` always holds the most recent statement (the repaired one after a
    repair); ``repair_attempted`` enforces the single-repair rule.
    """

    # Input
    question: str
    chat_history: list[Message]

    # Catalog views
    schema_summary: list[TableSummary]
    tables: list[str]
    table_details: list[TableDetail]

    # SQL
    sql: str | None
    validation_reason: str | None
    repair_attempted: bool
    execution_error: str | None
    repairable: bool

    # Result
    outcome: QueryOutcome | None
    answer: str | None
    success: bool

    # Pipeline metadata
    current_agent: str | None
    error: str | None
    error_kind: str | None
    agent_timings: dict[str, float]
    llm_calls: int


# ============================================================================
# SQLChat Pipeline
# ============================================================================


class SQLChatPipeline:
    """
    LangGraph-based pipeline orchestrating the question stages.

    Flow:
        1. identify: catalog summary → TableIdentifierAgent → catalog detail
        2. generate: SQLGeneratorAgent
        3. validate: SQLValidator (also for repaired SQL)
        4. execute: QueryExecutor
        5. repair: SQLRepairAgent, at most once, back to validate
        6. refine: ResultRefinerAgent

    Usage:
        pipeline = SQLChatPipeline(connector)
        answer = await pipeline.process_question("How many orders last month?")
        print(answer.answer, answer.sql_query)
    """

    def __init__(
        self,
        connector: BaseConnector,
        llm_provider: BaseLLMProvider | None = None,
        catalog: SchemaCatalog | None = None,
        settings: Settings | None = None,
        prompts: PromptLoader | None = None,
    ):
        """
        Initialize pipeline with dependencies.

        Args:
            connector: Database connector used for execution
            llm_provider: Completion provider (built from settings when omitted)
            catalog: Schema catalog (shared process-wide cache when omitted)
            settings: Application settings
            prompts: Prompt loader shared by the agents

        Raises:
            ConfigurationError: LLM provider cannot be configured
        """
        self.connector = connector
        self.config = settings or get_settings()
        self.dialect = connector.dialect
        self.llm = llm_provider or LLMProviderFactory.create_default_provider(self.config.llm)
        self.catalog = catalog or schema_cache.get(
            connector.database_id,
            store=SnapshotStore(
                cache_dir=self.config.schema_cache.cache_dir,
                path=self.config.schema_cache.cache_path,
            ),
            detail_suffix=self.config.schema_cache.detail_suffix,
            key_column_limit=self.config.schema_cache.key_column_limit,
        )

        prompts = prompts or PromptLoader()
        agent_kwargs = {"settings": self.config, "prompts": prompts}
        self.identifier = TableIdentifierAgent(self.llm, **agent_kwargs)
        self.generator = SQLGeneratorAgent(self.llm, **agent_kwargs)
        self.repairer = SQLRepairAgent(self.llm, **agent_kwargs)
        self.refiner = ResultRefinerAgent(self.llm, **agent_kwargs)
        self.validator = SQLValidator(self.dialect)
        self.executor = QueryExecutor(connector, settings=self.config)

        self.graph = self._build_graph()
        logger.info(
            "SQLChatPipeline initialized",
            extra={"dialect": self.dialect, "database_id": connector.database_id},
        )

    def _build_graph(self):
        """
        Build LangGraph state machine.

        Returns:
            Compiled LangGraph
        """
        workflow = StateGraph(PipelineState)

        workflow.add_node("identify", self._run_identify)
        workflow.add_node("generate", self._run_generate)
        workflow.add_node("validate", self._run_validate)
        workflow.add_node("execute", self._run_execute)
        workflow.add_node("repair", self._run_repair)
        workflow.add_node("refine", self._run_refine)
        workflow.add_node("error_handler", self._handle_error)

        workflow.set_entry_point("identify")

        workflow.add_conditional_edges(
            "identify",
            self._should_generate,
            {"generate": "generate", "error": "error_handler"},
        )
        workflow.add_conditional_edges(
            "generate",
            self._should_validate,
            {"validate": "validate", "error": "error_handler"},
        )
        workflow.add_conditional_edges(
            "validate",
            self._should_execute,
            {"execute": "execute", "error": "error_handler"},
        )
        workflow.add_conditional_edges(
            "execute",
            self._should_repair,
            {"refine": "refine", "repair": "repair", "error": "error_handler"},
        )
        workflow.add_conditional_edges(
            "repair",
            self._should_validate,
            {"validate": "validate", "error": "error_handler"},
        )
        workflow.add_edge("refine", END)
        workflow.add_edge("error_handler", END)

        return workflow.compile()

    # ========================================================================
    # Nodes
    # ========================================================================

    async def _run_identify(self, state: PipelineState) -> PipelineState:
        """Summary → TableIdentifierAgent → detail."""
        start_time = time.time()
        state["current_agent"] = self.identifier.name

        summary = self.catalog.summary()
        state["schema_summary"] = summary
        try:
            tables = await self.identifier(
                question=state["question"],
                schema_summary=summary,
                chat_history=state.get("chat_history", []),
            )
        except AgentError as e:
            logger.warning(f"Table identification error: {e}")
            tables = set()
        finally:
            self._track(state, self.identifier, start_time)

        # Keep the summary's order so prompts are stable across runs
        state["tables"] = [table.name for table in summary if table.name in tables]
        state["table_details"] = self.catalog.detail(state["tables"])
        if not state["table_details"]:
            state["error"] = "No relevant tables identified"
            state["error_kind"] = "no_tables"
        return state

    async def _run_generate(self, state: PipelineState) -> PipelineState:
        """Run SQLGeneratorAgent."""
        start_time = time.time()
        state["current_agent"] = self.generator.name
        try:
            state["sql"] = await self.generator(
                question=state["question"],
                tables=state["table_details"],
                schema_summary=state.get("schema_summary", []),
                chat_history=state.get("chat_history", []),
                dialect=self.dialect,
            )
        except (AgentError, LLMGatewayError) as e:
            state["error"] = str(e)
            state["error_kind"] = "generation"
        finally:
            self._track(state, self.generator, start_time)
        return state

    async def _run_validate(self, state: PipelineState) -> PipelineState:
        """Run SQLValidator."""
        state["current_agent"] = self.validator.name
        result = self.validator.validate(state.get("sql") or "")
        if not result.ok:
            state["validation_reason"] = result.reason
            state["error"] = result.reason
            state["error_kind"] = "validation"
        return state

    async def _run_execute(self, state: PipelineState) -> PipelineState:
        """Run QueryExecutor."""
        start_time = time.time()
        state["current_agent"] = self.executor.name
        repaired = state.get("repair_attempted", False)
        try:
            state["outcome"] = await self.executor.execute(state["sql"], repaired=repaired)
            state["execution_error"] = None
        except ExecutionError as e:
            state["execution_error"] = e.message
            state["repairable"] = (
                self.config.pipeline.repair_enabled
                and bool(e.context.get("repairable"))
                and not repaired
            )
            if not state["repairable"]:
                state["error"] = e.message
                state["error_kind"] = "execution"
        finally:
            state["agent_timings"][self.executor.name] = (time.time() - start_time) * 1000
        return state

    async def _run_repair(self, state: PipelineState) -> PipelineState:
        """Run SQLRepairAgent once."""
        start_time = time.time()
        state["current_agent"] = self.repairer.name
        state["repair_attempted"] = True
        try:
            fixed = await self.repairer(
                sql=state["sql"],
                tables=state["table_details"],
                error=state["execution_error"],
                dialect=self.dialect,
            )
        except AgentError as e:
            logger.warning(f"SQL repair error: {e}")
            fixed = None
        finally:
            self._track(state, self.repairer, start_time)

        if fixed is None:
            state["error"] = state["execution_error"]
            state["error_kind"] = "execution"
        else:
            state["sql"] = fixed
        return state

    async def _run_refine(self, state: PipelineState) -> PipelineState:
        """Run ResultRefinerAgent."""
        start_time = time.time()
        state["current_agent"] = self.refiner.name
        outcome = state["outcome"]
        try:
            state["answer"] = await self.refiner(
                question=state["question"], sql=outcome.sql, outcome=outcome
            )
        except AgentError as e:
            logger.warning(f"Result refinement error, using simple formatting: {e}")
            state["answer"] = format_results_simple(
                outcome, self.config.pipeline.refine_fallback_rows
            )
        finally:
            self._track(state, self.refiner, start_time)
        state["success"] = True
        return state

    async def _handle_error(self, state: PipelineState) -> PipelineState:
        """Turn the failure into a user-facing answer."""
        state["current_agent"] = "ErrorHandler"
        state["success"] = False
        kind = state.get("error_kind")
        logger.warning(
            f"Pipeline ended without an answer: {state.get('error')}",
            extra={"error_kind": kind, "sql": state.get("sql")},
        )

        if kind == "no_tables":
            state["answer"] = NO_TABLES_ANSWER
            state["sql"] = None
        elif kind == "validation":
            state["answer"] = f"Query validation failed: {state.get('validation_reason')}"
        elif kind == "execution":
            state["answer"] = (
                f"I encountered an error: {state.get('error')}. "
                "Please try rephrasing your question."
            )
        else:
            state["answer"] = GENERATION_FAILED_ANSWER
            state["sql"] = None
        return state

    # ========================================================================
    # Conditional Edge Logic
    # ========================================================================

    def _should_generate(self, state: PipelineState) -> str:
        return "error" if state.get("error") else "generate"

    def _should_validate(self, state: PipelineState) -> str:
        return "error" if state.get("error") else "validate"

    def _should_execute(self, state: PipelineState) -> str:
        return "error" if state.get("error") else "execute"

    def _should_repair(self, state: PipelineState) -> str:
        """
        Decide what follows an execution attempt.

        Returns:
            "refine": Execution succeeded
            "repair": Unknown identifier error and no repair yet
            "error": Anything else, including a failure after repair
        """
        if state.get("error"):
            return "error"
        if state.get("execution_error"):
            logger.info("Attempting SQL repair after identifier error")
            return "repair"
        return "refine"

    # ========================================================================
    # Public API
    # ========================================================================

    async def process_question(
        self,
        question: str,
        chat_history: list[Message | dict[str, Any]] | None = None,
    ) -> PipelineAnswer:
        """
        Answer one question.

        Args:
            question: User's natural language question
            chat_history: Previous conversation messages

        Returns:
            PipelineAnswer; per-question failures come back with success=False
        """
        initial_state: PipelineState = {
            "question": question,
            "chat_history": list(chat_history or []),
            "schema_summary": [],
            "tables": [],
            "table_details": [],
            "sql": None,
            "validation_reason": None,
            "repair_attempted": False,
            "execution_error": None,
            "repairable": False,
            "outcome": None,
            "answer": None,
            "success": False,
            "current_agent": None,
            "error": None,
            "error_kind": None,
            "agent_timings": {},
            "llm_calls": 0,
        }

        logger.info(f"Starting pipeline for question: {question[:100]}...")
        start_time = time.time()

        try:
            result = await self.graph.ainvoke(initial_state)
        except Exception as e:
            logger.error(
                f"Pipeline failed unexpectedly: {e}",
                extra={"error_type": type(e).__name__},
                exc_info=True,
            )
            return PipelineAnswer(success=False, answer=UNEXPECTED_ERROR_ANSWER)

        total_time = (time.time() - start_time) * 1000
        logger.info(
            f"Pipeline complete in {total_time:.1f}ms ({result.get('llm_calls', 0)} LLM calls)",
            extra={
                "success": result.get("success", False),
                "repair_attempted": result.get("repair_attempted", False),
                "agent_timings": result.get("agent_timings", {}),
            },
        )
        return self._to_answer(result)

    def _to_answer(self, state: PipelineState) -> PipelineAnswer:
        outcome = state.get("outcome")
        if not state.get("success") or outcome is None:
            return PipelineAnswer(
                success=False,
                answer=state.get("answer") or UNEXPECTED_ERROR_ANSWER,
                sql_query=state.get("sql"),
            )
        return PipelineAnswer(
            success=True,
            answer=state["answer"],
            sql_query=outcome.sql,
            query_result=QueryResultPayload(
                rows=outcome.rows[: self.config.pipeline.response_max_rows],
                columns=outcome.columns,
                row_count=outcome.row_count,
            ),
        )

    @staticmethod
    def _track(state: PipelineState, agent, start_time: float) -> None:
        state["agent_timings"][agent.name] = (time.time() - start_time) * 1000
        state["llm_calls"] = state.get("llm_calls", 0) + agent.metadata.llm_calls


def create_pipeline(
    settings: Settings | None = None,
    connector: BaseConnector | None = None,
    llm_provider: BaseLLMProvider | None = None,
) -> SQLChatPipeline:
    """
    Build a pipeline from settings.

    Raises:
        ConfigurationError: No database URL or no usable LLM configuration
    """
    config = settings or get_settings()
    if connector is None:
        connector = create_connector_from_settings(config.database)
    return SQLChatPipeline(connector, llm_provider=llm_provider, settings=config)

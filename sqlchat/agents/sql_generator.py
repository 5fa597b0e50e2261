"""
SQL Generator Agent

Turns a question plus the detailed schema of the identified tables into one
read-only SELECT statement.

The prompt carries four context sections, each under its own character
budget: detailed schema, the authoritative column list, the global table
index and recent history. Configured database instructions and the
application context document (under its own budget) follow them.

When the assembled prompt is over the hard ceiling, a compact prompt with
tighter schema and column budgets is tried, then the same without history;
if that is still too large nothing is sent.
"""

import json
import logging

from sqlchat.agents.base import BaseAgent
from sqlchat.llm.base import LLMGatewayError
from sqlchat.llm.models import LLMMessage
from sqlchat.models.agent import Message, SQLGenerationError
from sqlchat.schema.models import TableDetail, TableSummary
from sqlchat.utils.llm_output import strip_code_fence

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "system/sql_generator.md"
DIALECT_LABELS = {"postgresql": "PostgreSQL", "mysql": "MySQL"}


def truncate_text(text: str, max_chars: int) -> str:
    """Cut ``text`` to ``max_chars`` including a trailing ellipsis."""
    if len(text) <= max_chars:
        return text
    if max_chars <= 3:
        return text[:max_chars]
    return text[: max_chars - 3] + "..."


class SQLGeneratorAgent(BaseAgent):
    """Generates a SELECT statement for the identified tables."""

    def __init__(self, llm_provider=None, **kwargs):
        super().__init__(name="SQLGeneratorAgent", llm_provider=llm_provider, **kwargs)

    async def execute(
        self,
        *,
        question: str,
        tables: list[TableDetail],
        schema_summary: list[TableSummary],
        chat_history: list[Message | dict] | None = None,
        dialect: str = "postgresql",
    ) -> str:
        return await self.generate(
            question, tables, chat_history or [], schema_summary, dialect=dialect
        )

    async def generate(
        self,
        question: str,
        tables: list[TableDetail],
        chat_history: list[Message | dict],
        schema_summary: list[TableSummary],
        dialect: str = "postgresql",
    ) -> str:
        """
        Generate one SELECT statement.

        Args:
            question: User question
            tables: Detailed schema of the identified tables
            chat_history: Prior conversation turns
            schema_summary: Summary of every table (for the global table index)
            dialect: Target SQL dialect

        Returns:
            SQL text with any Markdown fence removed

        Raises:
            SQLGenerationError: Prompt over budget, gateway failure or empty reply
        """
        messages = self.build_messages(question, tables, chat_history, schema_summary, dialect)
        try:
            reply = await self._send(messages, self.config.llm.generate_temperature)
        except LLMGatewayError as e:
            raise SQLGenerationError(
                self.name,
                f"Completion failed: {e}",
                context={"error_type": type(e).__name__},
            ) from e

        sql = strip_code_fence(reply)
        if not sql:
            raise SQLGenerationError(self.name, "Model returned an empty query")
        logger.info("Generated SQL", extra={"sql": sql[:500], "tables": [t.name for t in tables]})
        return sql

    def build_messages(
        self,
        question: str,
        tables: list[TableDetail],
        chat_history: list[Message | dict],
        schema_summary: list[TableSummary],
        dialect: str = "postgresql",
    ) -> list[LLMMessage]:
        """Assemble the generation prompt within the configured budgets."""
        budgets = self.config.pipeline
        ceiling = budgets.generation_prompt_max_chars
        system = self.prompts.load(SYSTEM_PROMPT)

        schema_json = json.dumps(
            [
                {
                    "name": table.name,
                    "columns": [
                        {"name": c.name, "type": c.type, "nullable": c.nullable}
                        for c in table.columns
                    ],
                    "primary_keys": table.primary_keys,
                    "indexes": table.indexes[: budgets.generation_max_indexes],
                    "row_count": table.row_count,
                }
                for table in tables
            ],
            indent=2,
            default=str,
        )
        columns_json = json.dumps(
            [{"table": table.name, "columns": [c.name for c in table.columns]} for table in tables],
            indent=2,
        )
        history = self._recent_history(chat_history)
        history_json = truncate_text(
            json.dumps(history, indent=2, ensure_ascii=False),
            budgets.generation_history_max_chars,
        )
        common = {
            "question": question,
            "dialect_label": DIALECT_LABELS.get(dialect, dialect),
            "max_rows": budgets.max_result_rows,
            "instructions": budgets.instructions or "",
            "context": truncate_text(
                self._context_document(), budgets.generation_context_max_chars
            ),
        }

        prompt = self.prompts.render(
            "agents/sql_generation.md",
            schema_json=truncate_text(schema_json, budgets.generation_schema_max_chars),
            columns_json=truncate_text(columns_json, budgets.generation_columns_max_chars),
            table_names=", ".join(
                table.name for table in schema_summary[: budgets.generation_table_list_limit]
            ),
            table_list_limit=budgets.generation_table_list_limit,
            history_json=history_json,
            **common,
        )
        if len(system) + len(prompt) <= ceiling:
            return self._messages(system, prompt)

        logger.warning(
            f"Generation prompt too long ({len(prompt)} chars), using compact prompt",
            extra={"prompt_chars": len(prompt), "ceiling": ceiling},
        )
        compact_schema = truncate_text(schema_json, budgets.generation_compact_schema_max_chars)
        compact_columns = truncate_text(columns_json, budgets.generation_compact_columns_max_chars)
        for compact_history in (history_json if history else "", ""):
            prompt = self.prompts.render(
                "agents/sql_generation_compact.md",
                schema_json=compact_schema,
                columns_json=compact_columns,
                history_json=compact_history,
                **common,
            )
            if len(system) + len(prompt) <= ceiling:
                return self._messages(system, prompt)

        raise SQLGenerationError(
            self.name,
            f"Prompt still too long after truncation: {len(prompt)} chars",
            context={"prompt_chars": len(prompt), "ceiling": ceiling},
        )

    @staticmethod
    def _messages(system: str, prompt: str) -> list[LLMMessage]:
        return [
            LLMMessage(role="system", content=system),
            LLMMessage(role="user", content=prompt),
        ]

"""
Table Identifier Agent

Asks the LLM which tables a question needs, given the schema summary.
Returns a set of table names; any failure yields an empty set so the
pipeline can answer with guidance instead of an error.
"""

import json
import logging
from typing import Any

from sqlchat.agents.base import BaseAgent
from sqlchat.agents.sql_generator import truncate_text
from sqlchat.llm.base import LLMGatewayError
from sqlchat.models.agent import Message
from sqlchat.schema.models import TableSummary
from sqlchat.utils.llm_output import Unparseable, json_value, parse_json_output

logger = logging.getLogger(__name__)

TRUNCATED_MARKER = "[TRUNCATED SCHEMA SUMMARY - partial text for reasoning only, not valid JSON]"
PROMPT_PATH = "agents/table_identification.md"


class TableIdentifierAgent(BaseAgent):
    """Selects the tables relevant to a question."""

    def __init__(self, llm_provider=None, **kwargs):
        super().__init__(name="TableIdentifierAgent", llm_provider=llm_provider, **kwargs)

    async def execute(
        self,
        *,
        question: str,
        schema_summary: list[TableSummary],
        chat_history: list[Message | dict] | None = None,
    ) -> set[str]:
        return await self.identify(question, chat_history or [], schema_summary)

    async def identify(
        self,
        question: str,
        chat_history: list[Message | dict],
        schema_summary: list[TableSummary],
    ) -> set[str]:
        """
        Identify the tables needed for ``question``.

        Args:
            question: User question
            chat_history: Prior conversation turns
            schema_summary: Catalog summary of every table

        Returns:
            Table names present in the summary; empty on any failure
        """
        if not schema_summary:
            logger.warning("Empty schema summary, skipping table identification")
            return set()

        metadata = self.prompts.get_metadata(PROMPT_PATH)
        suffix = self.config.schema_cache.detail_suffix
        budgets = self.config.pipeline
        try:
            reply = await self._complete(
                system="system/table_identifier.md",
                prompt=PROMPT_PATH,
                temperature=self.config.llm.identify_temperature,
                question=question,
                history=self._recent_history(chat_history),
                table_count=len(schema_summary),
                schema_summary=self.fit_summary(schema_summary, budgets.identify_schema_max_chars),
                naming_patterns=[
                    pattern.replace("{detail_suffix}", suffix)
                    for pattern in metadata.get("naming_patterns", [])
                ],
                business_terms=metadata.get("business_terms", {}),
                instructions=budgets.instructions or "",
                context=truncate_text(self._context_document(), budgets.identify_context_max_chars),
            )
        except LLMGatewayError as e:
            logger.error(f"Table identification failed: {e}", extra={"error_type": type(e).__name__})
            return set()

        tables = self._parse_tables(reply, schema_summary)
        logger.info(
            f"Identified {len(tables)} tables",
            extra={"tables": sorted(tables)},
        )
        return tables

    @staticmethod
    def fit_summary(schema_summary: list[TableSummary], max_chars: int) -> str:
        """
        Serialize the summary as a JSON array of at most ``max_chars``.

        Entries are dropped from the end so the array stays valid JSON. When
        not even one entry fits, a clearly marked text fragment is returned.
        """
        entries = [
            json.dumps(table.model_dump(), ensure_ascii=False) for table in schema_summary
        ]
        full = "[\n  " + ",\n  ".join(entries) + "\n]"
        if len(full) <= max_chars:
            return full

        kept: list[str] = []
        size = len("[\n\n]")
        for entry in entries:
            added = len(entry) + (len(",\n  ") if kept else len("  "))
            if size + added > max_chars:
                break
            kept.append(entry)
            size += added

        if not kept:
            budget = max(max_chars - len(TRUNCATED_MARKER) - 1, 0)
            return f"{TRUNCATED_MARKER}\n{full[:budget]}"

        logger.warning(
            f"Schema summary truncated to {len(kept)} of {len(entries)} tables",
            extra={"max_chars": max_chars},
        )
        return "[\n  " + ",\n  ".join(kept) + "\n]"

    def _parse_tables(self, reply: str, schema_summary: list[TableSummary]) -> set[str]:
        output = parse_json_output(reply)
        if isinstance(output, Unparseable):
            logger.warning(f"Unparseable table identification reply: {output.error}")
            return set()

        value: Any = json_value(output)
        if isinstance(value, dict):
            value = value.get("tables")
        if not isinstance(value, list):
            logger.warning("Table identification reply has no 'tables' list")
            return set()

        known = {table.name.lower(): table.name for table in schema_summary}
        tables: set[str] = set()
        for item in value:
            if not isinstance(item, str):
                continue
            name = known.get(item.strip().lower())
            if name is None:
                logger.debug(f"Dropping unknown table from identification: {item}")
                continue
            tables.add(name)
        return tables

"""Starter-question suggestions derived from the populated tables."""

from __future__ import annotations

import json
import logging

from sqlchat.agents.base import BaseAgent
from sqlchat.llm.base import LLMGatewayError
from sqlchat.schema.catalog import SchemaCatalog
from sqlchat.schema.models import TableSnapshot
from sqlchat.utils.llm_output import json_value, parse_json_output

logger = logging.getLogger(__name__)

DEFAULT_SUGGESTIONS = [
    "What was the revenue last month?",
    "Show me top 10 outlets by sales",
    "Compare sales this year and last year",
    "What are the best selling products?",
    "Show me recent transactions",
    "What is the total inventory value?",
]

MAX_SUGGESTIONS = 6
MAX_TABLES = 20
MAX_COLUMNS = 10
MEASURE_HINTS = (
    "date",
    "time",
    "amount",
    "total",
    "revenue",
    "sales",
    "price",
    "quantity",
    "count",
)
MEASURE_TYPES = ("int", "numeric", "decimal", "float", "double", "real", "money", "date", "time")


class SuggestionAgent(BaseAgent):
    """Proposes questions a user could ask about the current database."""

    def __init__(self, llm_provider=None, **kwargs):
        super().__init__(name="SuggestionAgent", llm_provider=llm_provider, **kwargs)

    async def execute(self, *, catalog: SchemaCatalog, instructions: str | None = None) -> list[str]:
        return await self.suggest(catalog, instructions)

    async def suggest(self, catalog: SchemaCatalog, instructions: str | None = None) -> list[str]:
        snapshot = catalog.snapshot
        tables = [t for t in snapshot.tables if t.has_data and t.row_count > 0] if snapshot else []
        if not tables:
            logger.info("No populated tables, returning default suggestions")
            return list(DEFAULT_SUGGESTIONS)

        summary = [self._summarize(table) for table in tables[:MAX_TABLES]]
        try:
            reply = await self._complete(
                system="system/suggestions.md",
                prompt="agents/question_suggestions.md",
                temperature=self.config.llm.suggest_temperature,
                tables_json=json.dumps(summary, indent=2),
                instructions=instructions or self.config.pipeline.instructions or "",
                count="5-6",
            )
        except LLMGatewayError as e:
            logger.warning(f"Suggestion generation failed: {e}")
            return list(DEFAULT_SUGGESTIONS)

        value = json_value(parse_json_output(reply))
        if not isinstance(value, list):
            logger.warning("Suggestion reply was not a JSON array")
            return list(DEFAULT_SUGGESTIONS)

        suggestions = [q.strip() for q in value if isinstance(q, str) and q.strip()]
        return suggestions[:MAX_SUGGESTIONS] or list(DEFAULT_SUGGESTIONS)

    @staticmethod
    def _summarize(table: TableSnapshot) -> dict:
        columns = [
            {"name": column.name, "type": column.type}
            for column in table.columns
            if any(hint in column.name.lower() for hint in MEASURE_HINTS)
            or any(kind in column.type.lower() for kind in MEASURE_TYPES)
        ]
        return {
            "name": table.name,
            "row_count": table.row_count,
            "key_columns": columns[:MAX_COLUMNS],
        }

"""SQL repair agent: rewrite a statement that failed on an unknown identifier."""

from __future__ import annotations

import json
import logging

from sqlchat.agents.base import BaseAgent
from sqlchat.agents.sql_generator import DIALECT_LABELS, truncate_text
from sqlchat.llm.base import LLMGatewayError
from sqlchat.schema.models import TableDetail
from sqlchat.utils.llm_output import json_value, parse_json_output, strip_code_fence

logger = logging.getLogger(__name__)


class SQLRepairAgent(BaseAgent):
    """Asks the LLM for a corrected statement using only known column names."""

    def __init__(self, llm_provider=None, **kwargs) -> None:
        super().__init__(name="SQLRepairAgent", llm_provider=llm_provider, **kwargs)

    async def execute(
        self,
        *,
        sql: str,
        tables: list[TableDetail],
        error: str,
        dialect: str = "postgresql",
    ) -> str | None:
        return await self.repair(sql, tables, error, dialect=dialect)

    async def repair(
        self,
        sql: str,
        tables: list[TableDetail],
        error: str,
        dialect: str = "postgresql",
    ) -> str | None:
        """
        Return a new statement, or None when no usable correction came back.

        The failing statement is never edited in place.
        """
        columns_json = truncate_text(
            json.dumps(
                [{"table": t.name, "columns": [c.name for c in t.columns]} for t in tables],
                indent=2,
            ),
            self.config.pipeline.generation_columns_max_chars,
        )
        try:
            reply = await self._complete(
                system="system/sql_repair.md",
                prompt="agents/sql_repair.md",
                temperature=self.config.llm.repair_temperature,
                dialect_label=DIALECT_LABELS.get(dialect, dialect),
                error=error,
                sql=sql,
                columns_json=columns_json,
            )
        except LLMGatewayError as e:
            logger.error(f"SQL repair failed: {e}", extra={"error_type": type(e).__name__})
            return None

        fixed = self._parse_correction(reply)
        if not fixed:
            logger.warning("SQL repair returned no statement")
            return None
        if fixed.strip() == sql.strip():
            logger.warning("SQL repair returned the failing statement unchanged")
            return None
        logger.info("Repaired SQL", extra={"original_sql": sql[:300], "repaired_sql": fixed[:300]})
        return fixed

    @staticmethod
    def _parse_correction(reply: str) -> str | None:
        # Some models answer {"sql": "..."} despite the instructions
        payload = json_value(parse_json_output(reply))
        if isinstance(payload, dict):
            candidate = payload.get("sql")
            if isinstance(candidate, str) and candidate.strip():
                return strip_code_fence(candidate)
        return strip_code_fence(reply) or None

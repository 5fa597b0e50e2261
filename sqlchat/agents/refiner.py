"""
Result Refiner Agent

Narrates query results as a natural-language answer. Empty results and
gateway failures are answered deterministically so a successful query
always gets an answer.
"""

import json
import logging

from sqlchat.agents.base import BaseAgent
from sqlchat.llm.base import LLMGatewayError
from sqlchat.models.agent import QueryOutcome

logger = logging.getLogger(__name__)

NO_RESULTS_ANSWER = "No results found matching your query."


def format_results_simple(outcome: QueryOutcome, max_rows: int = 10) -> str:
    """Enumerated JSON listing of the first ``max_rows`` rows."""
    if outcome.row_count == 0:
        return NO_RESULTS_ANSWER

    lines = [f"Found {outcome.row_count} result(s):", ""]
    if outcome.row_count > max_rows:
        lines += [f"Showing first {max_rows} of {outcome.row_count} results:", ""]
    for i, row in enumerate(outcome.rows[:max_rows], start=1):
        lines.append(f"{i}. {json.dumps(row, default=str, ensure_ascii=False)}")
    if outcome.row_count > max_rows:
        lines += ["", f"... and {outcome.row_count - max_rows} more results."]
    return "\n".join(lines)


class ResultRefinerAgent(BaseAgent):
    """Turns rows into an answer to the original question."""

    def __init__(self, llm_provider=None, **kwargs):
        super().__init__(name="ResultRefinerAgent", llm_provider=llm_provider, **kwargs)

    async def execute(self, *, question: str, sql: str, outcome: QueryOutcome) -> str:
        return await self.refine(question, sql, outcome)

    async def refine(self, question: str, sql: str, outcome: QueryOutcome) -> str:
        if outcome.row_count == 0:
            return NO_RESULTS_ANSWER

        limit = self.config.pipeline.refine_max_rows
        shown = outcome.rows[:limit]
        try:
            answer = await self._complete(
                system="system/result_refiner.md",
                prompt="agents/result_refinement.md",
                temperature=self.config.llm.refine_temperature,
                question=question,
                sql=sql,
                row_count=outcome.row_count,
                truncated=outcome.row_count > len(shown),
                shown_rows=len(shown),
                results_json=json.dumps(shown, indent=2, default=str, ensure_ascii=False),
            )
        except LLMGatewayError as e:
            logger.warning(
                f"Result refinement failed, using simple formatting: {e}",
                extra={"error_type": type(e).__name__},
            )
            return format_results_simple(outcome, self.config.pipeline.refine_fallback_rows)

        answer = answer.strip()
        if not answer:
            logger.warning("Result refinement returned an empty answer")
            return format_results_simple(outcome, self.config.pipeline.refine_fallback_rows)
        return answer

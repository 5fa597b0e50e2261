"""
Unit tests for SQLRepairAgent.
"""

import pytest

from sqlchat.agents.repair import SQLRepairAgent
from sqlchat.llm.base import LLMTimeoutError

FAILED_SQL = "SELECT SUM(revenue) FROM orders LIMIT 1000"
ERROR = 'column "revenue" does not exist'


@pytest.fixture
def repairer(mock_llm_provider):
    return SQLRepairAgent(mock_llm_provider)


class TestRepair:
    """Test the single repair attempt."""

    @pytest.mark.asyncio
    async def test_returns_corrected_sql(self, repairer, mock_llm_provider, sample_catalog):
        mock_llm_provider.complete.return_value = "SELECT SUM(total_amount) FROM orders LIMIT 1000"

        fixed = await repairer.repair(FAILED_SQL, sample_catalog.detail(["orders"]), ERROR)

        assert fixed == "SELECT SUM(total_amount) FROM orders LIMIT 1000"

    @pytest.mark.asyncio
    async def test_prompt_carries_error_sql_and_columns(
        self, repairer, mock_llm_provider, sample_catalog
    ):
        mock_llm_provider.complete.return_value = "SELECT 1"

        await repairer.repair(FAILED_SQL, sample_catalog.detail(["orders"]), ERROR)

        prompt = mock_llm_provider.complete.call_args.args[0][1].content
        assert ERROR in prompt
        assert FAILED_SQL in prompt
        assert '"total_amount"' in prompt
        assert "PostgreSQL" in prompt

    @pytest.mark.asyncio
    async def test_fenced_reply(self, repairer, mock_llm_provider, sample_catalog):
        mock_llm_provider.complete.return_value = (
            "```sql\nSELECT SUM(total_amount) FROM orders LIMIT 1000\n```"
        )

        fixed = await repairer.repair(FAILED_SQL, sample_catalog.detail(["orders"]), ERROR)

        assert fixed == "SELECT SUM(total_amount) FROM orders LIMIT 1000"

    @pytest.mark.asyncio
    async def test_json_reply(self, repairer, mock_llm_provider, sample_catalog):
        mock_llm_provider.complete.return_value = (
            '{"sql": "SELECT SUM(total_amount) FROM orders LIMIT 1000"}'
        )

        fixed = await repairer.repair(FAILED_SQL, sample_catalog.detail(["orders"]), ERROR)

        assert fixed == "SELECT SUM(total_amount) FROM orders LIMIT 1000"

    @pytest.mark.asyncio
    async def test_unchanged_statement_is_no_repair(
        self, repairer, mock_llm_provider, sample_catalog
    ):
        mock_llm_provider.complete.return_value = f"  {FAILED_SQL}\n"

        assert await repairer.repair(FAILED_SQL, sample_catalog.detail(["orders"]), ERROR) is None

    @pytest.mark.asyncio
    async def test_empty_reply_is_no_repair(self, repairer, mock_llm_provider, sample_catalog):
        mock_llm_provider.complete.return_value = ""

        assert await repairer.repair(FAILED_SQL, sample_catalog.detail(["orders"]), ERROR) is None

    @pytest.mark.asyncio
    async def test_gateway_error_is_no_repair(self, repairer, mock_llm_provider, sample_catalog):
        mock_llm_provider.complete.side_effect = LLMTimeoutError("timed out", phase="body")

        assert await repairer.repair(FAILED_SQL, sample_catalog.detail(["orders"]), ERROR) is None

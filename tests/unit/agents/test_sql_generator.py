"""
Unit tests for SQLGeneratorAgent.

Tests SQL generation including:
- Markdown fence removal
- Failure mapping onto SQLGenerationError
- Prompt assembly and the compact fallback
"""

import pytest

from sqlchat.agents.sql_generator import SQLGeneratorAgent, truncate_text
from sqlchat.config import PipelineSettings, Settings
from sqlchat.llm.base import LLMTransportError
from sqlchat.models.agent import SQLGenerationError
from sqlchat.schema.models import ColumnDetail, TableDetail


@pytest.fixture
def generator(mock_llm_provider):
    return SQLGeneratorAgent(mock_llm_provider)


def wide_table(columns: int) -> TableDetail:
    return TableDetail(
        name="wide_events",
        columns=[
            ColumnDetail(name=f"measurement_column_number_{i:05d}", type="numeric", nullable=True)
            for i in range(columns)
        ],
        row_count=10,
    )


def tight_settings(**overrides) -> Settings:
    budgets = {
        "generation_prompt_max_chars": 10_000,
        "generation_compact_schema_max_chars": 1_000,
        "generation_compact_columns_max_chars": 500,
    }
    budgets.update(overrides)
    return Settings(pipeline=PipelineSettings(**budgets))


class TestGenerate:
    """Test the generate() call."""

    @pytest.mark.asyncio
    async def test_returns_plain_sql(self, generator, mock_llm_provider, sample_catalog):
        mock_llm_provider.complete.return_value = "SELECT COUNT(*) FROM orders LIMIT 1000"

        sql = await generator.generate(
            "How many orders?", sample_catalog.detail(["orders"]), [], sample_catalog.summary()
        )

        assert sql == "SELECT COUNT(*) FROM orders LIMIT 1000"

    @pytest.mark.asyncio
    async def test_strips_code_fence(self, generator, mock_llm_provider, sample_catalog):
        mock_llm_provider.complete.return_value = "```sql\nSELECT id FROM orders LIMIT 10\n```"

        sql = await generator.generate(
            "List orders", sample_catalog.detail(["orders"]), [], sample_catalog.summary()
        )

        assert sql == "SELECT id FROM orders LIMIT 10"

    @pytest.mark.asyncio
    async def test_single_line_fence_keeps_select(
        self, generator, mock_llm_provider, sample_catalog
    ):
        mock_llm_provider.complete.return_value = "```SELECT COUNT(*) FROM orders LIMIT 1```"

        sql = await generator.generate(
            "How many orders?", sample_catalog.detail(["orders"]), [], sample_catalog.summary()
        )

        assert sql == "SELECT COUNT(*) FROM orders LIMIT 1"

    @pytest.mark.asyncio
    async def test_empty_reply_is_error(self, generator, mock_llm_provider, sample_catalog):
        mock_llm_provider.complete.return_value = "   "

        with pytest.raises(SQLGenerationError, match="empty query"):
            await generator.generate(
                "List orders", sample_catalog.detail(["orders"]), [], sample_catalog.summary()
            )

    @pytest.mark.asyncio
    async def test_gateway_error_is_generation_error(
        self, generator, mock_llm_provider, sample_catalog
    ):
        mock_llm_provider.complete.side_effect = LLMTransportError("connection reset")

        with pytest.raises(SQLGenerationError) as exc_info:
            await generator.generate(
                "List orders", sample_catalog.detail(["orders"]), [], sample_catalog.summary()
            )

        assert isinstance(exc_info.value.__cause__, LLMTransportError)
        assert exc_info.value.context["error_type"] == "LLMTransportError"


class TestPromptAssembly:
    """Test the generation prompt."""

    def test_full_prompt_sections(self, generator, sample_catalog):
        messages = generator.build_messages(
            "Revenue by customer?",
            sample_catalog.detail(["orders", "customers"]),
            [{"role": "user", "content": "Show me customers"}],
            sample_catalog.summary(),
            dialect="mysql",
        )

        system, prompt = messages[0].content, messages[1].content
        assert system
        assert "MySQL database" in prompt
        assert "Revenue by customer?" in prompt
        assert "total_amount" in prompt
        assert "All Available Tables" in prompt
        assert "orders_y2023" in prompt
        assert "Show me customers" in prompt
        assert "at most 1000 rows" in prompt

    def test_no_context_sections_by_default(self, generator, sample_catalog):
        messages = generator.build_messages(
            "How many orders?", sample_catalog.detail(["orders"]), [], sample_catalog.summary()
        )

        prompt = messages[1].content
        assert "Database Instructions" not in prompt
        assert "Application Context" not in prompt

    def test_context_and_instructions(self, mock_llm_provider, sample_catalog, tmp_path):
        manual = tmp_path / "manual.txt"
        manual.write_text("Outlet codes start with OUT-. " + "x" * 1000, encoding="utf-8")
        settings = Settings(
            pipeline=PipelineSettings(
                context_path=manual,
                generation_context_max_chars=200,
                instructions="Amounts are in EUR",
            )
        )
        generator = SQLGeneratorAgent(mock_llm_provider, settings=settings)

        messages = generator.build_messages(
            "Revenue by outlet?", sample_catalog.detail(["orders"]), [], sample_catalog.summary()
        )

        prompt = messages[1].content
        assert "Database Instructions:\nAmounts are in EUR" in prompt
        assert "Outlet codes start with OUT-." in prompt
        assert "x" * 200 not in prompt
        assert "x" * 150 + "..." in prompt

    def test_compact_prompt_keeps_instructions(self, mock_llm_provider):
        settings = tight_settings(instructions="Amounts are in EUR")
        generator = SQLGeneratorAgent(mock_llm_provider, settings=settings)

        messages = generator.build_messages("Average measurement?", [wide_table(300)], [], [])

        prompt = messages[1].content
        assert "Available Columns:" in prompt
        assert "Amounts are in EUR" in prompt

    def test_compact_prompt_when_over_ceiling(self, mock_llm_provider):
        generator = SQLGeneratorAgent(mock_llm_provider, settings=tight_settings())

        messages = generator.build_messages("Average measurement?", [wide_table(300)], [], [])

        prompt = messages[1].content
        assert "All Available Tables" not in prompt
        assert "Available Columns:" in prompt
        assert len(messages[0].content) + len(prompt) <= 10_000

    @pytest.mark.asyncio
    async def test_over_ceiling_is_never_sent(self, mock_llm_provider):
        settings = tight_settings(
            generation_compact_schema_max_chars=60_000,
            generation_compact_columns_max_chars=20_000,
        )
        generator = SQLGeneratorAgent(mock_llm_provider, settings=settings)

        with pytest.raises(SQLGenerationError, match="too long"):
            await generator.generate("Average measurement?", [wide_table(2000)], [], [])

        mock_llm_provider.complete.assert_not_called()


class TestTruncateText:
    def test_short_text_unchanged(self):
        assert truncate_text("abc", 10) == "abc"

    def test_cut_with_ellipsis(self):
        assert truncate_text("abcdefghij", 6) == "abc..."

import pytest
from jinja2 import UndefinedError

from sqlchat.prompts.loader import PromptLoader, split_front_matter


def test_prompt_loader_strips_front_matter():
    loader = PromptLoader()
    content = loader.load("system/sql_generator.md")
    assert not content.startswith("---")
    assert "SQL query generator" in content


def test_prompt_loader_reads_metadata():
    metadata = PromptLoader().get_metadata("agents/table_identification.md")
    assert metadata["name"] == "table_identification"
    assert any("{detail_suffix}" in pattern for pattern in metadata["naming_patterns"])
    assert "revenue" in metadata["business_terms"]


def test_prompt_loader_renders_template():
    rendered = PromptLoader().render(
        "agents/sql_repair.md",
        dialect_label="MySQL",
        error="Unknown column 'revenue'",
        sql="SELECT revenue FROM orders",
        columns_json='[{"table": "orders", "columns": ["id", "total_amount"]}]',
    )
    assert not rendered.startswith("---")
    assert "A MySQL query failed" in rendered
    assert "SELECT revenue FROM orders" in rendered


def test_missing_variable_is_an_error():
    with pytest.raises(UndefinedError):
        PromptLoader().render("agents/sql_repair.md", dialect_label="MySQL")


def test_missing_prompt():
    loader = PromptLoader()
    with pytest.raises(FileNotFoundError):
        loader.load("agents/nope.md")
    with pytest.raises(FileNotFoundError):
        loader.render("agents/nope.md")


@pytest.mark.parametrize(
    "path",
    [
        "agents/question_suggestions.md",
        "agents/result_refinement.md",
        "agents/sql_generation.md",
        "agents/sql_generation_compact.md",
        "agents/sql_repair.md",
        "agents/table_identification.md",
        "system/result_refiner.md",
        "system/sql_generator.md",
        "system/sql_repair.md",
        "system/suggestions.md",
        "system/table_identifier.md",
    ],
)
def test_shipped_prompts_have_front_matter(path):
    metadata = PromptLoader().get_metadata(path)
    assert metadata.get("name")


def test_split_front_matter_without_header():
    assert split_front_matter("plain text") == ({}, "plain text")

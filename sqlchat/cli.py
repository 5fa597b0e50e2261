"""
SQLChat CLI

Command-line interface for asking questions about a database.

Usage:
    sqlchat ask "What was the revenue last month?"   # Single question
    sqlchat chat                                     # Interactive REPL mode
    sqlchat schema extract                           # Extract and cache the schema
    sqlchat schema show [--table orders]             # Print the cached summary
    sqlchat suggest                                  # Suggested starter questions
"""

import asyncio
import json
import logging
import sys
from typing import Any

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from sqlchat import __version__
from sqlchat.agents.suggestions import SuggestionAgent
from sqlchat.config import Settings, get_settings
from sqlchat.connectors.base import BaseConnector, ConnectorError
from sqlchat.connectors.factory import create_connector_from_settings
from sqlchat.llm.factory import LLMProviderFactory
from sqlchat.models.agent import ConfigurationError, PipelineAnswer
from sqlchat.pipeline.orchestrator import create_pipeline
from sqlchat.schema.catalog import SchemaCatalog
from sqlchat.schema.extractor import SchemaExtractor
from sqlchat.schema.store import SnapshotStore

console = Console()

EXIT_COMMANDS = {"exit", "quit", "bye", "q", ":q"}


def configure_cli_logging(verbose: bool) -> None:
    if verbose:
        logging.getLogger("sqlchat").setLevel(logging.DEBUG)
        return
    for logger_name in ("sqlchat", "httpx", "openai", "asyncio"):
        logging.getLogger(logger_name).setLevel(logging.CRITICAL)


# ============================================================================
# Wiring
# ============================================================================


def build_catalog(connector: BaseConnector, settings: Settings) -> SchemaCatalog:
    return SchemaCatalog(
        connector.database_id,
        store=SnapshotStore(
            cache_dir=settings.schema_cache.cache_dir,
            path=settings.schema_cache.cache_path,
        ),
        detail_suffix=settings.schema_cache.detail_suffix,
        key_column_limit=settings.schema_cache.key_column_limit,
    )


# ============================================================================
# Output
# ============================================================================


def format_answer(result: PipelineAnswer) -> None:
    """Format and display a pipeline answer."""
    style = "green" if result.success else "yellow"
    console.print(Panel(Markdown(result.answer), title=f"[bold {style}]Answer[/bold {style}]"))

    if result.sql_query:
        console.print(Panel(result.sql_query, title="SQL", border_style="cyan", highlight=True))

    if result.query_result and result.query_result.columns:
        payload = result.query_result
        table = Table(show_header=True, header_style="bold cyan")
        for column in payload.columns:
            table.add_column(column)
        for row in payload.rows:
            table.add_row(*[_cell(row.get(column)) for column in payload.columns])
        console.print(table)
        if payload.row_count > len(payload.rows):
            console.print(f"[dim]Showing {len(payload.rows)} of {payload.row_count} rows[/dim]")


def _cell(value: Any) -> str:
    return "" if value is None else str(value)


def _fail(message: str) -> None:
    console.print(f"[red]Error: {message}[/red]")
    sys.exit(1)


# ============================================================================
# Commands
# ============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="SQLChat")
@click.option("--verbose", "-v", is_flag=True, help="Show log output.")
def cli(verbose: bool):
    """SQLChat - ask questions about your database in natural language."""
    configure_cli_logging(verbose)


@cli.command()
@click.argument("question")
def ask(question: str):
    """Ask a single question and exit."""

    async def run_query() -> None:
        pipeline = create_pipeline(get_settings())
        try:
            await pipeline.connector.connect()
            with console.status("[cyan]Processing question...[/cyan]", spinner="dots"):
                result = await pipeline.process_question(question)
            format_answer(result)
        finally:
            await pipeline.connector.close()
            await pipeline.llm.aclose()

    try:
        asyncio.run(run_query())
    except (ConfigurationError, ConnectorError) as e:
        _fail(str(e))


@cli.command()
def chat():
    """Interactive REPL mode for conversations."""
    console.print(
        Panel.fit(
            "[bold green]SQLChat Interactive Mode[/bold green]\n"
            "Ask questions in natural language. Type 'exit' or 'quit' to leave.",
            border_style="green",
        )
    )

    async def run_chat() -> None:
        pipeline = create_pipeline(get_settings())
        history: list[dict[str, str]] = []
        try:
            await pipeline.connector.connect()
            while True:
                try:
                    question = console.input("[bold cyan]You:[/bold cyan] ").strip()
                except (EOFError, KeyboardInterrupt):
                    console.print("\n[yellow]Goodbye![/yellow]")
                    break
                if not question:
                    continue
                if question.lower() in EXIT_COMMANDS:
                    console.print("[yellow]Goodbye![/yellow]")
                    break

                with console.status("[cyan]Processing...[/cyan]", spinner="dots"):
                    result = await pipeline.process_question(question, history)
                format_answer(result)

                history.append({"role": "user", "content": question})
                history.append({"role": "assistant", "content": result.answer})
        finally:
            await pipeline.connector.close()
            await pipeline.llm.aclose()

    try:
        asyncio.run(run_chat())
    except (ConfigurationError, ConnectorError) as e:
        _fail(str(e))


@cli.group(name="schema")
def schema():
    """Schema snapshot commands."""


@schema.command(name="extract")
def schema_extract():
    """Connect, extract the schema and save the snapshot."""
    settings = get_settings()

    async def run_extract():
        connector = create_connector_from_settings(settings.database)
        catalog = build_catalog(connector, settings)
        extractor = SchemaExtractor(
            schema_name=settings.database.schema_name,
            sample_rows=settings.schema_cache.sample_rows,
        )
        try:
            await connector.connect()
            with console.status("[cyan]Extracting schema...[/cyan]", spinner="dots"):
                snapshot = await catalog.refresh(connector, extractor=extractor)
        finally:
            await connector.close()
        return snapshot, catalog.store.path_for(connector.database_id)

    try:
        snapshot, path = asyncio.run(run_extract())
    except (ConfigurationError, ConnectorError) as e:
        _fail(str(e))
        return

    stats = snapshot.statistics
    console.print(f"[green]✓ Extracted {snapshot.total_tables} tables[/green]")
    console.print(
        f"Columns: {stats.total_columns}  Foreign keys: {stats.total_foreign_keys}  "
        f"Indexes: {stats.total_indexes}  With data: {stats.tables_with_data}"
    )
    console.print(f"Saved to {path}")


@schema.command(name="show")
@click.option("--table", "table_name", help="Show the detail view of one table.")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON.")
def schema_show(table_name: str | None, as_json: bool):
    """Print the cached schema summary (or one table's detail)."""
    settings = get_settings()
    try:
        catalog = build_catalog(create_connector_from_settings(settings.database), settings)
    except ConfigurationError as e:
        _fail(str(e))
        return

    if not catalog.is_loaded:
        _fail("No schema snapshot found. Run 'sqlchat schema extract' first.")
        return

    if table_name:
        details = catalog.detail([table_name])
        if not details:
            _fail(f"Unknown table: {table_name}")
            return
        detail = details[0]
        if as_json:
            click.echo(detail.model_dump_json(indent=2))
            return
        table = Table(title=f"{detail.name} ({detail.row_count} rows)", header_style="bold cyan")
        table.add_column("Column")
        table.add_column("Type")
        table.add_column("Nullable")
        table.add_column("PK")
        for column in detail.columns:
            table.add_row(
                column.name,
                column.type,
                "yes" if column.nullable else "no",
                "✓" if column.is_primary_key else "",
            )
        console.print(table)
        if detail.indexes:
            console.print(f"Indexes: {', '.join(detail.indexes)}")
        return

    summary = catalog.summary()
    if as_json:
        click.echo(json.dumps([entry.model_dump() for entry in summary], indent=2))
        return
    table = Table(title=f"{len(summary)} tables", header_style="bold cyan")
    table.add_column("Table")
    table.add_column("Rows", justify="right")
    table.add_column("Key columns")
    table.add_column("Related")
    for entry in summary:
        table.add_row(
            entry.name,
            str(entry.row_count),
            ", ".join(entry.key_columns),
            ", ".join(entry.related_tables),
        )
    console.print(table)


@cli.command()
@click.option(
    "--instructions",
    help="Extra guidance about the database (overrides PIPELINE_INSTRUCTIONS).",
)
def suggest(instructions: str | None):
    """Print suggested starter questions."""
    settings = get_settings()

    async def run_suggest() -> list[str]:
        catalog = build_catalog(create_connector_from_settings(settings.database), settings)
        provider = LLMProviderFactory.create_default_provider(settings.llm)
        try:
            return await SuggestionAgent(provider, settings=settings).suggest(
                catalog, instructions
            )
        finally:
            await provider.aclose()

    try:
        suggestions = asyncio.run(run_suggest())
    except ConfigurationError as e:
        _fail(str(e))
        return

    for i, question in enumerate(suggestions, start=1):
        console.print(f"{i}. {question}")


# ============================================================================
# Entry Point
# ============================================================================


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()

"""
SQLChat Agents Module

The stages of the question pipeline.

Available Agents:
    - BaseAgent: Abstract base class for LLM-backed stages
    - TableIdentifierAgent: Picks the tables a question needs
    - SQLGeneratorAgent: Writes one SELECT statement within prompt budgets
    - SQLValidator: Rule-based SELECT-only gate (no LLM)
    - QueryExecutor: Runs statements and classifies failures (no LLM)
    - SQLRepairAgent: One-shot fix for unknown identifier errors
    - ResultRefinerAgent: Narrates rows as an answer
    - SuggestionAgent: Starter questions for a database

Usage:
    from sqlchat.agents import SQLValidator

    result = SQLValidator().validate("SELECT 1")
    assert result.ok
"""

from sqlchat.agents.base import BaseAgent
from sqlchat.agents.executor import QueryExecutor
from sqlchat.agents.refiner import ResultRefinerAgent, format_results_simple
from sqlchat.agents.repair import SQLRepairAgent
from sqlchat.agents.sql_generator import SQLGeneratorAgent
from sqlchat.agents.suggestions import DEFAULT_SUGGESTIONS, SuggestionAgent
from sqlchat.agents.table_identifier import TableIdentifierAgent
from sqlchat.agents.validator import DANGEROUS_KEYWORDS, SQLValidator, keyword_scan_view

__all__ = [
    "BaseAgent",
    "DANGEROUS_KEYWORDS",
    "DEFAULT_SUGGESTIONS",
    "QueryExecutor",
    "ResultRefinerAgent",
    "SQLGeneratorAgent",
    "SQLRepairAgent",
    "SQLValidator",
    "SuggestionAgent",
    "TableIdentifierAgent",
    "format_results_simple",
    "keyword_scan_view",
]

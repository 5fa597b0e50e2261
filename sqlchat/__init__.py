"""
SQLChat

Natural-language questions over a relational database: table identification,
SQL generation, validation, execution with one repair step, and answer
narration through an OpenAI-compatible completion service.
"""

__version__ = "0.1.0"

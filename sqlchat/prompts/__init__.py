"""Prompt templates and loader."""

from sqlchat.prompts.loader import PromptLoader

__all__ = ["PromptLoader"]

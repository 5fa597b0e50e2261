"""
Pipeline package for SQLChat.

Contains the LangGraph orchestrator that connects the stages into one
question-answering pipeline.
"""

from sqlchat.pipeline.orchestrator import PipelineState, SQLChatPipeline, create_pipeline

__all__ = ["PipelineState", "SQLChatPipeline", "create_pipeline"]

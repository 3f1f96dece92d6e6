"""
LangChain Memory: context-window management for long-running agents.
"""

from .processors import (
    ContextPipeline,
    EmbeddingCache,
    EmbeddingProvider,
    MemoryConfig,
    PipelineOptions,
    create_embedding_provider,
    run_pipeline,
)

__all__ = [
    "ContextPipeline",
    "EmbeddingCache",
    "EmbeddingProvider",
    "MemoryConfig",
    "PipelineOptions",
    "create_embedding_provider",
    "run_pipeline",
]

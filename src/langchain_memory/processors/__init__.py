"""
Context-window processor chain with embedding-informed relevance.

Reduces an unbounded conversation history to a bounded, budget-compliant
subset before it reaches the LLM, applying an ordered chain of processors:

- Structural volume filter: drop framing, cut the middle of huge histories
- Token budget enforcer: hard cap on estimated tokens (continuity floor of 50)
- Tool-trace filter: drop tool-call records except allow-listed tools
- Relevance segmenter: keep init + most relevant middle + recent messages
- Duplicate cluster collapser: drop repeated non-user content

Embeddings are optional: with no provider every processor uses its heuristic
path. A shared, thread-safe EmbeddingCache amortizes embedding cost across
conversations.
"""

from .clustering import DuplicateClusterCollapser
from .config import MemoryConfig
from .embeddings import (
    EmbeddingCache,
    EmbeddingError,
    EmbeddingProvider,
    cosine_similarity,
    create_embedding_provider,
)
from .messages import get_message_content, message_role, normalize_roles
from .observability import LoggingSink, RecordingSink, StageEvent
from .pipeline import (
    ContextPipeline,
    PipelineOptions,
    build_default_chain,
    run,
    run_pipeline,
    with_fallback,
)
from .relevance import RelevanceSegmenter
from .token_budget import (
    TokenBudgetEnforcer,
    estimate_message_tokens,
    estimate_tokens,
)
from .tool_filter import ToolTraceFilter
from .volume_filter import StructuralVolumeFilter

__all__ = [
    "ContextPipeline",
    "DuplicateClusterCollapser",
    "EmbeddingCache",
    "EmbeddingError",
    "EmbeddingProvider",
    "LoggingSink",
    "MemoryConfig",
    "PipelineOptions",
    "RecordingSink",
    "RelevanceSegmenter",
    "StageEvent",
    "StructuralVolumeFilter",
    "TokenBudgetEnforcer",
    "ToolTraceFilter",
    "build_default_chain",
    "cosine_similarity",
    "create_embedding_provider",
    "estimate_message_tokens",
    "estimate_tokens",
    "get_message_content",
    "message_role",
    "normalize_roles",
    "run",
    "run_pipeline",
    "with_fallback",
]

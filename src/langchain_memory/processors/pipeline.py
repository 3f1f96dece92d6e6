"""
Context pipeline.

Runs a conversation snapshot through an ordered chain of processors before it
is sent to the LLM:

1. StructuralVolumeFilter   - drop framing, cut the middle of huge histories
2. TokenBudgetEnforcer      - hard cap on estimated tokens
3. ToolTraceFilter          - drop verbose tool-call records
4. RelevanceSegmenter       - keep init + most relevant middle + recent
5. DuplicateClusterCollapser - drop repeated non-user content

Every stage is wrapped with with_fallback(): a stage that raises passes its
input through unchanged and the chain continues. The store still holds the
complete history; the pipeline only affects what the LLM sees.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence

from langchain_core.messages import BaseMessage

from .clustering import DuplicateClusterCollapser
from .config import MemoryConfig
from .embeddings import EmbeddingCache
from .messages import coerce_messages
from .observability import LoggingSink, ObservabilitySink, StageEvent, emit_event
from .relevance import RelevanceSegmenter
from .token_budget import TokenBudgetEnforcer, make_estimator
from .tool_filter import ToolTraceFilter
from .volume_filter import StructuralVolumeFilter

logger = logging.getLogger(__name__)


class Stage(Protocol):
    def process(self, messages: list) -> list: ...


def stage_name(stage) -> str:
    return getattr(stage, "name", None) or type(stage).__name__


class FailOpenStage:
    """Wraps a stage so that errors pass the stage's input through."""

    def __init__(self, stage: Stage, sink: Optional[ObservabilitySink] = None):
        self.stage = stage
        self.sink = sink
        self.name = stage_name(stage)

    def process(self, messages: list) -> list:
        start = time.perf_counter()
        details: dict = {}
        try:
            if hasattr(self.stage, "process_with_stats"):
                result, details = self.stage.process_with_stats(messages)
            else:
                result = self.stage.process(messages)
            result = list(result)
        except Exception as e:
            latency_ms = (time.perf_counter() - start) * 1000
            logger.warning(
                "Stage %s failed on %d messages, passing input through: %s",
                self.name, len(messages), e,
            )
            emit_event(
                self.sink,
                StageEvent(
                    stage_name=self.name,
                    input_count=len(messages),
                    output_count=len(messages),
                    latency_ms=latency_ms,
                    error=f"{type(e).__name__}: {e}",
                ),
            )
            return list(messages)

        emit_event(
            self.sink,
            StageEvent(
                stage_name=self.name,
                input_count=len(messages),
                output_count=len(result),
                latency_ms=(time.perf_counter() - start) * 1000,
                details=details or {},
            ),
        )
        return result


def with_fallback(stage: Stage, sink: Optional[ObservabilitySink] = None) -> FailOpenStage:
    """Make a stage fail-open: on error its input becomes its output."""
    if isinstance(stage, FailOpenStage):
        return stage
    return FailOpenStage(stage, sink)


def build_default_chain(
    config: Optional[MemoryConfig] = None,
    token_budget: Optional[int] = None,
    provider=None,
    cache: Optional[EmbeddingCache] = None,
    excluded_tool_names: Optional[Sequence[str]] = None,
) -> list:
    """
    Build the default processor chain.

    Without an embedding provider every stage takes its heuristic path; in
    particular the budget enforcer caps by a flat per-message estimate.
    """
    config = config or MemoryConfig()
    if cache is None:
        cache = EmbeddingCache(config.embedding_cache_size)
    if excluded_tool_names is None:
        excluded_tool_names = config.excluded_tool_names

    return [
        StructuralVolumeFilter.from_config(config),
        TokenBudgetEnforcer.from_config(
            config,
            estimator=make_estimator(config),
            budget=token_budget,
            flat_estimate=provider is None,
        ),
        ToolTraceFilter(excluded_tool_names),
        RelevanceSegmenter.from_config(config, provider=provider, cache=cache),
        DuplicateClusterCollapser.from_config(config, provider=provider, cache=cache),
    ]


def run(
    messages: list,
    stages: Sequence[Stage],
    sink: Optional[ObservabilitySink] = None,
) -> list:
    """Feed messages through stages in order, each consuming the previous output."""
    current = list(messages)
    for stage in stages:
        current = with_fallback(stage, sink).process(current)
    return current


@dataclass
class PipelineOptions:
    excluded_tool_names: list[str] = field(default_factory=list)
    use_embeddings: bool = True
    # False skips processing entirely and returns the history as-is
    high_token_limits: bool = True


class ContextPipeline:
    """
    Context window manager for one deployment.

    Holds configuration, the optional embedding provider and the shared
    embedding cache. Each run() builds a fresh chain, so one instance can
    serve concurrent conversations.

    Usage:
        pipeline = ContextPipeline(config, provider=create_embedding_provider(config))
        trimmed = pipeline.run(messages, token_budget=200_000)
        # Send trimmed messages to LLM instead of full history
    """

    def __init__(
        self,
        config: Optional[MemoryConfig] = None,
        provider=None,
        cache: Optional[EmbeddingCache] = None,
        sink: Optional[ObservabilitySink] = None,
        stages: Optional[Sequence[Stage]] = None,
        model_name: str = "",
    ):
        self.config = config or MemoryConfig()
        self.provider = provider
        if cache is None:
            cache = EmbeddingCache(self.config.embedding_cache_size)
        self.cache = cache
        self.sink = sink if sink is not None else LoggingSink()
        self.stages = list(stages) if stages is not None else None
        self.model_name = model_name

    def build_chain(
        self,
        token_budget: Optional[int] = None,
        excluded_tool_names: Optional[Sequence[str]] = None,
        use_embeddings: bool = True,
    ) -> list:
        if self.stages is not None:
            return list(self.stages)
        use_provider = use_embeddings and self.config.use_embeddings
        if token_budget is None:
            token_budget = self.config.get_token_budget(self.model_name)
        return build_default_chain(
            self.config,
            token_budget=token_budget,
            provider=self.provider if use_provider else None,
            cache=self.cache,
            excluded_tool_names=excluded_tool_names,
        )

    def run(
        self,
        messages,
        token_budget: Optional[int] = None,
        options: Optional[PipelineOptions] = None,
    ) -> list[BaseMessage]:
        """
        Reduce a conversation snapshot to a budget-compliant history.

        Returns a new list; the input is not modified.
        """
        options = options or PipelineOptions(
            excluded_tool_names=list(self.config.excluded_tool_names)
        )
        messages = coerce_messages(messages)
        if not messages or not options.high_token_limits:
            return messages

        stages = self.build_chain(
            token_budget=token_budget,
            excluded_tool_names=options.excluded_tool_names,
            use_embeddings=options.use_embeddings,
        )
        result = run(messages, stages, self.sink)

        if len(result) < len(messages):
            logger.info(
                "Context pipeline: %d → %d messages (cache: %s)",
                len(messages), len(result), self.cache.stats(),
            )
        return result


def run_pipeline(
    messages,
    token_budget: int = 1_000_000,
    options: Optional[PipelineOptions] = None,
    provider=None,
    cache: Optional[EmbeddingCache] = None,
    sink: Optional[ObservabilitySink] = None,
    config: Optional[MemoryConfig] = None,
) -> list[BaseMessage]:
    """One-shot invocation surface around ContextPipeline."""
    pipeline = ContextPipeline(config=config, provider=provider, cache=cache, sink=sink)
    return pipeline.run(messages, token_budget=token_budget, options=options)

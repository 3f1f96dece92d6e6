"""
Relevance segmenter.

Splits a history into three segments and only reduces the middle one:

- init:   the opening messages (setup context), always kept
- middle: scored, and trimmed to a capacity that scales with the embedding
          model's input length
- recent: the latest messages, always kept

Middle messages are ranked by cosine similarity to a recency-weighted centroid
of the recent segment, so the survivors are the ones closest to what the
conversation is currently about. When embeddings are unavailable the ranking
falls back to "user turns first, then longest first".
"""

import logging
from typing import Optional

from .config import MemoryConfig
from .embeddings import EmbeddingCache, cosine_similarity, weighted_centroid
from .messages import get_message_content, is_conversational, message_role

logger = logging.getLogger(__name__)


class RelevanceSegmenter:
    name = "RelevanceSegmenter"

    def __init__(
        self,
        provider=None,
        cache: Optional[EmbeddingCache] = None,
        threshold: int = 50,
        init_count: int = 25,
        recent_count: int = 25,
        capacity_base: int = 150,
        fallback_recent: int = 75,
    ):
        self.provider = provider
        self.cache = cache if cache is not None else EmbeddingCache()
        self.threshold = threshold
        self.init_count = init_count
        self.recent_count = recent_count
        self.capacity_base = capacity_base
        self.fallback_recent = fallback_recent

    @classmethod
    def from_config(
        cls, config: MemoryConfig, provider=None, cache: Optional[EmbeddingCache] = None
    ) -> "RelevanceSegmenter":
        return cls(
            provider=provider,
            cache=cache,
            threshold=config.relevance_threshold,
            init_count=config.init_segment,
            recent_count=config.recent_segment,
            capacity_base=config.middle_capacity_base,
            fallback_recent=config.fallback_recent_messages,
        )

    @property
    def middle_capacity(self) -> int:
        """How many middle messages survive, scaled by the model's input length."""
        if self.provider is None:
            return 0
        return (self.capacity_base * self.provider.max_input_length) // 4096

    def process(self, messages: list) -> list:
        if len(messages) <= self.threshold:
            return list(messages)

        if self.provider is None:
            result = [m for m in messages if is_conversational(m)]
            result = result[-self.fallback_recent:] if self.fallback_recent > 0 else []
            logger.info(
                "No embeddings for relevance scoring, kept last %d of %d messages",
                len(result), len(messages),
            )
            return result

        n = len(messages)
        recent_count = min(self.recent_count, n)
        init_count = max(min(self.init_count, n - recent_count), 0)
        init = list(messages[:init_count])
        middle = list(messages[init_count : n - recent_count])
        recent = list(messages[n - recent_count :])

        kept_middle = self._reduce_middle(middle, recent)
        logger.info(
            "Relevance segmenter kept %d/%d messages: %d init + %d middle + %d recent",
            len(init) + len(kept_middle) + len(recent),
            n, len(init), len(kept_middle), len(recent),
        )
        return init + kept_middle + recent

    def _reduce_middle(self, middle: list, recent: list) -> list:
        candidates = [
            (index, msg) for index, msg in enumerate(middle) if is_conversational(msg)
        ]
        capacity = self.middle_capacity
        if len(candidates) <= capacity:
            return [msg for _, msg in candidates]
        if capacity <= 0:
            return []

        ranked = self._rank_by_similarity(candidates, recent)
        if ranked is None:
            logger.debug("Falling back to role/length ranking for middle segment")
            ranked = self._rank_by_heuristic(candidates)

        selected = sorted(ranked[:capacity], key=lambda item: item[0])
        return [msg for _, msg in selected]

    def _embed(self, msg) -> Optional[list[float]]:
        return self.cache.get_or_compute(get_message_content(msg), self.provider)

    def _rank_by_similarity(self, candidates: list, recent: list) -> Optional[list]:
        """Rank candidates by similarity to the recent-segment centroid."""
        anchors = [m for m in recent if is_conversational(m)] or recent
        vectors = []
        weights = []
        for position, msg in enumerate(anchors, start=1):
            vector = self._embed(msg)
            if vector is not None:
                vectors.append(vector)
                weights.append(float(position))  # newer messages weigh more
        if not vectors:
            return None

        try:
            centroid = weighted_centroid(vectors, weights)
            scored = []
            for index, msg in candidates:
                vector = self._embed(msg)
                if vector is None:
                    return None
                scored.append((cosine_similarity(vector, centroid), index, msg))
        except ValueError as e:
            logger.warning("Similarity ranking failed: %s", e)
            return None

        scored.sort(key=lambda item: (-item[0], item[1]))
        return [(index, msg) for _, index, msg in scored]

    @staticmethod
    def _rank_by_heuristic(candidates: list) -> list:
        """User turns first, then longer content first."""
        return sorted(
            candidates,
            key=lambda item: (
                0 if message_role(item[1]) == "user" else 1,
                -len(get_message_content(item[1])),
                item[0],
            ),
        )

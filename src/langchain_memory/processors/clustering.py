"""
Duplicate cluster collapser.

Final low-cost cleanup pass. User messages are ground truth and always kept.
Other messages are dropped when they repeat earlier content:

- Prefix heuristic: same 100-character prefix as an earlier message and a
  length within 20 characters of it.
- Semantic clustering (when an embedding provider is available): messages are
  grouped greedily by cosine similarity to each cluster's centroid into at
  most ``max_clusters`` groups; once a cluster reaches ``min_cluster_size``
  members only its first member (the representative) is kept.
"""

import logging
from typing import Optional

from .config import MemoryConfig
from .embeddings import EmbeddingCache, cosine_similarity, weighted_centroid
from .messages import get_message_content, message_role, normalize_roles

logger = logging.getLogger(__name__)


class _Cluster:
    def __init__(self, index: int, vector: list[float]):
        self.members = [index]
        self._vectors = [vector]
        self.centroid = vector

    def add(self, index: int, vector: list[float]):
        self.members.append(index)
        self._vectors.append(vector)
        self.centroid = weighted_centroid(self._vectors)


class DuplicateClusterCollapser:
    name = "DuplicateClusterCollapser"

    def __init__(
        self,
        provider=None,
        cache: Optional[EmbeddingCache] = None,
        cluster_threshold: float = 0.82,
        max_clusters: int = 12,
        min_cluster_size: int = 5,
        passthrough_below: int = 50,
        prefix_chars: int = 100,
        length_tolerance: int = 20,
    ):
        self.provider = provider
        self.cache = cache if cache is not None else EmbeddingCache()
        self.cluster_threshold = cluster_threshold
        self.max_clusters = max_clusters
        self.min_cluster_size = min_cluster_size
        self.passthrough_below = passthrough_below
        self.prefix_chars = prefix_chars
        self.length_tolerance = length_tolerance

    @classmethod
    def from_config(
        cls, config: MemoryConfig, provider=None, cache: Optional[EmbeddingCache] = None
    ) -> "DuplicateClusterCollapser":
        return cls(
            provider=provider,
            cache=cache,
            cluster_threshold=config.cluster_threshold,
            max_clusters=config.max_clusters,
            min_cluster_size=config.min_cluster_size,
            passthrough_below=config.dedup_passthrough_below,
            prefix_chars=config.dedup_prefix_chars,
            length_tolerance=config.dedup_length_tolerance,
        )

    def process(self, messages: list) -> list:
        if len(messages) < self.min_cluster_size or len(messages) < self.passthrough_below:
            return normalize_roles(messages)

        contents = [get_message_content(m) for m in messages]
        dropped = self._prefix_duplicates(messages, contents)

        if self.provider is not None:
            clustered = self._cluster_duplicates(messages, contents, dropped)
            if clustered is None:
                logger.debug("Embeddings unavailable, using prefix deduplication only")
            else:
                dropped |= clustered

        result = [m for i, m in enumerate(messages) if i not in dropped]
        if dropped:
            logger.info(
                "Duplicate collapsing: %d → %d messages", len(messages), len(result)
            )
        return normalize_roles(result)

    def _is_candidate(self, msg) -> bool:
        return message_role(msg) != "user"

    def _prefix_duplicates(self, messages: list, contents: list[str]) -> set[int]:
        """Indices of non-user messages repeating an earlier message's prefix."""
        dropped = set()
        # prefix -> lengths of earlier messages with that prefix
        seen: dict[str, list[int]] = {}
        for i, (msg, content) in enumerate(zip(messages, contents)):
            prefix = content[: self.prefix_chars]
            if self._is_candidate(msg) and self._matches_earlier(
                prefix, len(content), contents, i, seen
            ):
                dropped.add(i)
            seen.setdefault(prefix, []).append(len(content))
        return dropped

    def _matches_earlier(
        self, prefix: str, length: int, contents: list[str], i: int, seen: dict
    ) -> bool:
        if len(prefix) >= self.prefix_chars:
            return any(
                abs(other - length) < self.length_tolerance
                for other in seen.get(prefix, [])
            )
        # Short content: any earlier message starting with it counts
        return any(
            other.startswith(prefix) and abs(len(other) - length) < self.length_tolerance
            for other in contents[:i]
        )

    def _cluster_duplicates(
        self, messages: list, contents: list[str], already_dropped: set[int]
    ) -> Optional[set[int]]:
        clusters: list[_Cluster] = []
        for i, msg in enumerate(messages):
            if i in already_dropped or not self._is_candidate(msg):
                continue
            vector = self.cache.get_or_compute(contents[i], self.provider)
            if vector is None:
                return None

            best, best_score = None, -1.0
            for cluster in clusters:
                score = cosine_similarity(vector, cluster.centroid)
                if score > best_score:
                    best, best_score = cluster, score

            if best is not None and best_score >= self.cluster_threshold:
                best.add(i, vector)
            elif len(clusters) < self.max_clusters:
                clusters.append(_Cluster(i, vector))
            # else: no room for another cluster, the message stays unclustered

        dropped = set()
        for cluster in clusters:
            if len(cluster.members) >= self.min_cluster_size:
                dropped.update(cluster.members[1:])
        logger.debug(
            "Semantic clustering: %d clusters, %d messages collapsed",
            len(clusters), len(dropped),
        )
        return dropped

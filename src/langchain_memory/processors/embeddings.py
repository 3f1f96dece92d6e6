"""
Embedding provider port and a bounded, thread-safe embedding cache.

The provider wraps any LangChain ``Embeddings`` implementation (e.g.
``OpenAIEmbeddings``) and bounds each call with a timeout. The cache sits in
front of it so that repeated or overlapping conversations do not pay for the
same embedding twice.

Cache strategy:
  - Key = first 100 characters + total length, so near-identical long
    messages do not grow the key space without bound
  - FIFO eviction of the oldest quarter when full (no per-access bookkeeping)
  - Provider failures are logged and reported as "no embedding", never raised
"""

import logging
import threading
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Optional, Sequence

from langchain_core.embeddings import Embeddings

from .config import MemoryConfig
from .messages import truncate_text

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX_CHARS = 100


class EmbeddingError(Exception):
    """Raised by EmbeddingProvider.embed when the backend fails or times out."""


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1]; 0.0 when either vector has zero norm."""
    if len(vec_a) != len(vec_b):
        raise ValueError(
            f"Vector dimensions don't match: {len(vec_a)} vs {len(vec_b)}"
        )
    dot = sum(x * y for x, y in zip(vec_a, vec_b))
    norm_a = sum(x * x for x in vec_a) ** 0.5
    norm_b = sum(x * x for x in vec_b) ** 0.5
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def weighted_centroid(
    vectors: Sequence[Sequence[float]],
    weights: Optional[Sequence[float]] = None,
) -> Optional[list[float]]:
    """Weighted mean of equally sized vectors, or None if there are none."""
    if not vectors:
        return None
    if weights is None:
        weights = [1.0] * len(vectors)
    total = float(sum(weights))
    if total <= 0:
        return None
    dim = len(vectors[0])
    centroid = [0.0] * dim
    for vec, weight in zip(vectors, weights):
        if len(vec) != dim:
            raise ValueError(f"Vector dimensions don't match: {dim} vs {len(vec)}")
        for j, value in enumerate(vec):
            centroid[j] += value * weight
    return [value / total for value in centroid]


class EmbeddingProvider:
    """
    Pluggable embedding backend with advertised limits.

    Args:
        embeddings: Any LangChain Embeddings implementation.
        max_input_length: Token limit of the embedding model; also scales the
            relevance segmenter's middle-segment capacity.
        dimensions: Vector size, 0 if unknown.
        timeout: Seconds to wait for one embed call.
        model_id: Name used in logs.

    Timed-out calls are not interrupted: each one holds a worker of the
    4-thread pool until the backend returns, and later calls queue behind
    them. Use the provider as a context manager, or call close(), to shut
    the pool down and drop queued calls.
    """

    def __init__(
        self,
        embeddings: Embeddings,
        max_input_length: int = 8192,
        dimensions: int = 0,
        timeout: Optional[float] = 10.0,
        model_id: str = "",
    ):
        self._embeddings = embeddings
        self.max_input_length = max_input_length
        self.dimensions = dimensions
        self.timeout = timeout
        self.model_id = model_id or type(embeddings).__name__
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=4, thread_name_prefix="embed"
                )
            return self._executor

    def embed(self, text: str) -> list[float]:
        """Embed one text, raising EmbeddingError on failure or timeout."""
        # ~4 chars per token; the backend would reject longer input anyway
        text = text[: self.max_input_length * 4]
        try:
            if self.timeout is None:
                vector = self._embeddings.embed_query(text)
            else:
                future = self._get_executor().submit(
                    self._embeddings.embed_query, text
                )
                vector = future.result(timeout=self.timeout)
        except FutureTimeoutError as e:
            future.cancel()
            raise EmbeddingError(
                f"{self.model_id} timed out after {self.timeout}s"
            ) from e
        except Exception as e:
            raise EmbeddingError(f"{self.model_id} failed: {e}") from e

        vector = list(vector)
        if not self.dimensions:
            self.dimensions = len(vector)
        return vector

    def close(self) -> None:
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=False, cancel_futures=True)
                self._executor = None

    def __enter__(self) -> "EmbeddingProvider":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class EmbeddingCache:
    """
    Bounded key → vector store with hit/miss statistics.

    Safe to share between concurrent pipeline runs: lookups, counters,
    eviction and insertion happen under one lock. The provider call itself
    runs outside the lock so slow embeddings do not serialize readers.
    """

    def __init__(self, max_size: int = 1000):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._entries: "OrderedDict[str, list[float]]" = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    @staticmethod
    def make_key(text: str) -> str:
        return f"embed_{text[:CACHE_KEY_PREFIX_CHARS]}_{len(text)}"

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_or_compute(self, text: str, provider) -> Optional[list[float]]:
        """Return the cached vector for text, computing it on a miss."""
        if not isinstance(text, str):
            text = str(text)
        key = self.make_key(text)

        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                self._hits += 1
                return cached
            self._misses += 1

        if provider is None:
            return None

        try:
            vector = provider.embed(text)
        except Exception as e:
            logger.warning("Embedding failed for %r: %s", truncate_text(text, 60), e)
            return None
        if not vector:
            return None

        with self._lock:
            if key not in self._entries:
                if len(self._entries) >= self.max_size:
                    self._evict_oldest_quarter()
                self._entries[key] = vector
            return self._entries[key]

    def _evict_oldest_quarter(self) -> None:
        # Caller holds the lock
        count = max(1, self.max_size // 4)
        for _ in range(min(count, len(self._entries))):
            self._entries.popitem(last=False)
        logger.debug("Evicted %d embedding cache entries", count)

    def stats(self) -> dict:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total if total else 0.0,
            }

    def clear(self) -> None:
        """Drop all entries and reset statistics."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0


def create_embedding_provider(config: MemoryConfig) -> Optional[EmbeddingProvider]:
    """
    Build an OpenAI-compatible embedding provider from configuration.

    Returns None when embeddings are disabled, no model is configured, or the
    client cannot be created; processors then use their heuristic paths.
    """
    if not config.use_embeddings or not config.embedding_model:
        logger.info("No embedding model configured, processors use heuristics")
        return None
    try:
        from langchain_openai import OpenAIEmbeddings

        embed_kwargs = {}
        if config.embedding_api_key:
            embed_kwargs["api_key"] = config.embedding_api_key
        if config.embedding_base_url:
            embed_kwargs["base_url"] = config.embedding_base_url
        if config.embedding_dimensions:
            embed_kwargs["dimensions"] = config.embedding_dimensions
        embeddings = OpenAIEmbeddings(model=config.embedding_model, **embed_kwargs)
    except Exception as e:
        logger.warning("Failed to create embedding model: %s", e)
        return None

    logger.info(
        "Created embeddings with model %s (%d max input tokens)",
        config.embedding_model,
        config.embedding_max_input_length,
    )
    return EmbeddingProvider(
        embeddings,
        max_input_length=config.embedding_max_input_length,
        dimensions=config.embedding_dimensions,
        timeout=config.embedding_timeout,
        model_id=config.embedding_model,
    )

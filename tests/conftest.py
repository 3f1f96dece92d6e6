"""
Shared test setup.

Adds ``src`` to the module search path so the package can be imported without
installing it, and provides small deterministic embedding backends.
"""

import sys
import time
from pathlib import Path

import pytest
from langchain_core.embeddings import Embeddings
from langchain_core.messages import AIMessage, HumanMessage

# 添加 src 目录到 PYTHONPATH
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from langchain_memory.processors.embeddings import EmbeddingProvider  # noqa: E402

TOPICS = ["weather", "database", "python", "music", "travel", "budget"]


class KeywordEmbeddings(Embeddings):
    """One dimension per topic word, plus one for everything else."""

    def __init__(self):
        self.calls = 0

    def embed_query(self, text: str) -> list[float]:
        self.calls += 1
        lowered = text.lower()
        vector = [float(lowered.count(topic)) for topic in TOPICS]
        vector.append(0.0 if any(vector) else 1.0)
        return vector

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_query(t) for t in texts]


class FailingEmbeddings(Embeddings):
    def embed_query(self, text: str) -> list[float]:
        raise RuntimeError("embedding service unavailable")

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        raise RuntimeError("embedding service unavailable")


class SlowEmbeddings(Embeddings):
    def __init__(self, delay: float):
        self.delay = delay

    def embed_query(self, text: str) -> list[float]:
        time.sleep(self.delay)
        return [1.0, 0.0]

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_query(t) for t in texts]


def make_messages(count: int, start: int = 0) -> list:
    """Alternating human/AI messages with distinct content."""
    messages = []
    for i in range(start, start + count):
        if i % 2 == 0:
            messages.append(HumanMessage(content=f"User message {i}", id=f"msg-{i}"))
        else:
            messages.append(AIMessage(content=f"AI response {i}", id=f"msg-{i}"))
    return messages


def is_subsequence(result: list, original: list) -> bool:
    """True if result's items appear in original, by identity, in order."""
    it = iter(original)
    return all(any(item is candidate for candidate in it) for item in result)


@pytest.fixture
def keyword_provider():
    return EmbeddingProvider(KeywordEmbeddings(), max_input_length=8192, timeout=None)


@pytest.fixture
def failing_provider():
    return EmbeddingProvider(FailingEmbeddings(), max_input_length=8192, timeout=None)

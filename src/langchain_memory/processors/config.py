"""
Processor configuration and model context window mappings.
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

# Model → context window size (tokens)
MODEL_CONTEXT_WINDOWS: dict[str, int] = {
    # Google
    "gemini-2.5-pro": 1_000_000,
    "gemini-2.5-flash": 1_000_000,
    "gemini-2.0-flash": 1_000_000,
    "gemini-1.5-pro": 2_000_000,
    # Anthropic
    "claude-sonnet-4-5-20250929": 200_000,
    "claude-sonnet-4-20250514": 200_000,
    "claude-opus-4-20250514": 200_000,
    "claude-3-5-sonnet": 200_000,
    # OpenAI compatible
    "gpt-4.1": 1_000_000,
    "gpt-4o": 128_000,
    "gpt-4o-mini": 128_000,
    # DeepSeek
    "deepseek-chat": 64_000,
}

DEFAULT_TOKEN_BUDGET = 1_000_000


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class MemoryConfig:
    """Configuration for the context processor chain."""

    # Hard ceiling for a pipeline run (0 = resolve from model name)
    token_budget: int = DEFAULT_TOKEN_BUDGET

    # Token estimation
    tokens_per_char: float = 0.25
    token_overhead: int = 10

    # Structural volume filter
    volume_threshold: int = 100
    volume_max_messages: int = 750
    volume_keep_first: int = 50
    volume_keep_last: int = 500

    # Token budget enforcer
    continuity_floor: int = 50
    fallback_tokens_per_message: int = 750
    last_resort_messages: int = 500

    # Tool-trace filter: traces of these tools are always kept
    excluded_tool_names: list[str] = field(default_factory=list)

    # Relevance segmenter
    relevance_threshold: int = 50
    init_segment: int = 25
    recent_segment: int = 25
    middle_capacity_base: int = 150
    fallback_recent_messages: int = 75

    # Duplicate cluster collapser
    cluster_threshold: float = 0.82
    max_clusters: int = 12
    min_cluster_size: int = 5
    dedup_passthrough_below: int = 50
    dedup_prefix_chars: int = 100
    dedup_length_tolerance: int = 20

    # Embeddings
    use_embeddings: bool = True
    embedding_model: str = ""  # empty = no provider, heuristic paths only
    embedding_base_url: str = ""
    embedding_api_key: str = ""
    embedding_max_input_length: int = 8192
    embedding_dimensions: int = 0
    embedding_timeout: float = 10.0
    embedding_cache_size: int = 1000

    @classmethod
    def from_env(cls) -> "MemoryConfig":
        """Load configuration from environment variables (and a .env file)."""
        load_dotenv()
        excluded = os.getenv("MEMORY_EXCLUDED_TOOLS", "")
        return cls(
            token_budget=int(
                os.getenv("MEMORY_TOKEN_BUDGET", str(DEFAULT_TOKEN_BUDGET))
            ),
            continuity_floor=int(os.getenv("MEMORY_CONTINUITY_FLOOR", "50")),
            excluded_tool_names=[
                name.strip() for name in excluded.split(",") if name.strip()
            ],
            cluster_threshold=float(os.getenv("MEMORY_CLUSTER_THRESHOLD", "0.82")),
            max_clusters=int(os.getenv("MEMORY_MAX_CLUSTERS", "12")),
            min_cluster_size=int(os.getenv("MEMORY_MIN_CLUSTER_SIZE", "5")),
            use_embeddings=_env_bool("MEMORY_USE_EMBEDDINGS", "true"),
            embedding_model=os.getenv("MEMORY_EMBEDDING_MODEL", ""),
            embedding_base_url=os.getenv("MEMORY_EMBEDDING_BASE_URL", ""),
            embedding_api_key=os.getenv("MEMORY_EMBEDDING_API_KEY", ""),
            embedding_max_input_length=int(
                os.getenv("MEMORY_EMBEDDING_MAX_INPUT_LENGTH", "8192")
            ),
            embedding_dimensions=int(os.getenv("MEMORY_EMBEDDING_DIMENSIONS", "0")),
            embedding_timeout=float(os.getenv("MEMORY_EMBEDDING_TIMEOUT", "10")),
            embedding_cache_size=int(os.getenv("MEMORY_EMBEDDING_CACHE_SIZE", "1000")),
        )

    def get_token_budget(self, model_name: str = "") -> int:
        """Resolve the token budget from config or model name."""
        if self.token_budget > 0:
            return self.token_budget
        # Try exact match first, then prefix match
        if model_name in MODEL_CONTEXT_WINDOWS:
            return MODEL_CONTEXT_WINDOWS[model_name]
        if model_name:
            for key, size in MODEL_CONTEXT_WINDOWS.items():
                if model_name.startswith(key) or key.startswith(model_name):
                    return size
        return DEFAULT_TOKEN_BUDGET

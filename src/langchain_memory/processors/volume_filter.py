"""
Structural volume filter.

Cheap, non-semantic pruning that runs before the expensive processors: once a
history is long, drop system/tool framing and, if it is still very long, keep
only the opening and the most recent band of the conversation.
"""

import logging

from .config import MemoryConfig
from .messages import is_conversational

logger = logging.getLogger(__name__)


class StructuralVolumeFilter:
    name = "StructuralVolumeFilter"

    def __init__(
        self,
        threshold: int = 100,
        max_messages: int = 750,
        keep_first: int = 50,
        keep_last: int = 500,
    ):
        self.threshold = threshold
        self.max_messages = max_messages
        self.keep_first = keep_first
        self.keep_last = keep_last

    @classmethod
    def from_config(cls, config: MemoryConfig) -> "StructuralVolumeFilter":
        return cls(
            threshold=config.volume_threshold,
            max_messages=config.volume_max_messages,
            keep_first=config.volume_keep_first,
            keep_last=config.volume_keep_last,
        )

    def process(self, messages: list) -> list:
        if len(messages) <= self.threshold:
            return list(messages)

        filtered = [m for m in messages if is_conversational(m)]
        removed = len(messages) - len(filtered)
        if removed:
            logger.info("HighVolume: removed %d non-user/assistant messages", removed)

        if len(filtered) > self.max_messages:
            first = filtered[: self.keep_first]
            last = filtered[-self.keep_last:] if self.keep_last > 0 else []
            middle_removed = len(filtered) - len(first) - len(last)
            filtered = first + last
            logger.info(
                "HighVolume: kept %d first + %d last messages, removed %d middle",
                len(first), len(last), middle_removed,
            )

        return filtered

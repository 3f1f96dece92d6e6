"""
Token estimation and hard token budget enforcement.

Estimates token counts for messages and trims the oldest history so that the
estimated total stays under a fixed ceiling, while always keeping a floor of
recent messages for continuity.
"""

import json
import logging
import math
from typing import Callable, Optional

from .config import MemoryConfig
from .messages import get_message_content

logger = logging.getLogger(__name__)

TokenEstimator = Callable[[object], int]


def estimate_tokens(text, tokens_per_char: float = 0.25, overhead: int = 10) -> int:
    """Rough token estimate: ceil(chars * ratio) plus per-message overhead."""
    if text is None:
        text = ""
    elif not isinstance(text, str):
        try:
            text = str(text)
        except Exception:
            text = ""
    return math.ceil(len(text) * tokens_per_char) + overhead


def estimate_message_tokens(
    msg, tokens_per_char: float = 0.25, overhead: int = 10
) -> int:
    """Estimate tokens for a LangChain message, including tool call arguments."""
    total = estimate_tokens(get_message_content(msg), tokens_per_char, overhead)
    for call in getattr(msg, "tool_calls", None) or []:
        args = call.get("args") or {}
        total += estimate_tokens(
            json.dumps(args, ensure_ascii=False, default=str), tokens_per_char, 0
        )
    return total


def make_estimator(config: MemoryConfig) -> TokenEstimator:
    """Bind the configured ratio and overhead into a per-message estimator."""

    def estimator(msg) -> int:
        return estimate_message_tokens(
            msg, config.tokens_per_char, config.token_overhead
        )

    return estimator


class TokenBudgetEnforcer:
    """
    Hard cap on estimated tokens.

    With an estimator, walks the history newest → oldest and cuts at the first
    message that overflows the budget, never cutting inside the continuity
    floor. When no accurate estimator is available (``flat_estimate``, or no
    estimator at all) a flat per-message cost caps the message count first;
    the character estimate, if given, still runs afterwards as a safety net.

    Usage:
        enforcer = TokenBudgetEnforcer(budget=200_000, estimator=estimate_message_tokens)
        trimmed = enforcer.process(messages)
    """

    name = "TokenBudgetEnforcer"

    def __init__(
        self,
        budget: int = 1_000_000,
        estimator: Optional[TokenEstimator] = None,
        flat_estimate: bool = False,
        continuity_floor: int = 50,
        fallback_tokens_per_message: int = 750,
        last_resort_messages: int = 500,
    ):
        self.budget = budget
        self.estimator = estimator
        self.flat_estimate = flat_estimate
        self.continuity_floor = continuity_floor
        self.fallback_tokens_per_message = fallback_tokens_per_message
        self.last_resort_messages = last_resort_messages

    @classmethod
    def from_config(
        cls,
        config: MemoryConfig,
        estimator: Optional[TokenEstimator] = None,
        budget: Optional[int] = None,
        flat_estimate: bool = False,
    ) -> "TokenBudgetEnforcer":
        return cls(
            budget=budget if budget is not None else config.get_token_budget(),
            estimator=estimator,
            flat_estimate=flat_estimate,
            continuity_floor=config.continuity_floor,
            fallback_tokens_per_message=config.fallback_tokens_per_message,
            last_resort_messages=config.last_resort_messages,
        )

    def process(self, messages: list) -> list:
        result, _ = self.process_with_stats(messages)
        return result

    def process_with_stats(self, messages: list) -> tuple[list, dict]:
        """Trim messages and return (messages, stats) for observability."""
        if not messages:
            return list(messages), {"mode": "empty"}
        try:
            if not self.flat_estimate and self.estimator is not None:
                return self._trim_by_estimate(messages)

            messages, stats = self._trim_by_count(messages)
            if self.estimator is None:
                return messages, stats
            result, estimate_stats = self._trim_by_estimate(messages)
            return result, {**estimate_stats, **stats}
        except Exception as e:
            logger.warning(
                "Token budget enforcement failed on %d messages, keeping last %d: %s",
                len(messages),
                self.last_resort_messages,
                e,
            )
            return list(messages[-self.last_resort_messages:]), {"mode": "last_resort"}

    def _trim_by_estimate(self, messages: list) -> tuple[list, dict]:
        n = len(messages)
        counts: list[int] = []
        running = 0
        cut = 0

        # Walk backwards from the most recent message
        for i in range(n - 1, -1, -1):
            tokens = self.estimator(messages[i])
            counts.append(tokens)
            running += tokens
            if running > self.budget and i < n - self.continuity_floor:
                cut = i + 1
                break

        # The overflowing message (last one counted) is dropped with the rest
        kept_tokens = sum(counts[:-1]) if cut else running
        dropped_before_overflow = messages[: max(cut - 1, 0)]
        original_tokens = running + sum(self.estimator(m) for m in dropped_before_overflow)
        stats = {
            "mode": "estimate",
            "original_tokens": original_tokens,
            "kept_tokens": kept_tokens,
            "saved_tokens": original_tokens - kept_tokens,
            "dropped_messages": cut,
            "budget": self.budget,
        }

        if cut == 0:
            logger.debug(
                "All %d messages fit in budget (%d/%d tokens)",
                n, kept_tokens, self.budget,
            )
            return list(messages), stats

        result = list(messages[cut:])
        logger.info(
            "Token limiting: %d → %d messages, ~%d tokens kept (budget %d)",
            n, len(result), kept_tokens, self.budget,
        )
        return result, stats

    def _trim_by_count(self, messages: list) -> tuple[list, dict]:
        max_messages = self.budget // self.fallback_tokens_per_message
        stats = {"mode": "fallback", "max_messages": max_messages}
        # A budget below one flat message cost leaves the decision to the estimate
        if max_messages <= 0 or len(messages) <= max_messages:
            return list(messages), stats
        result = list(messages[-max_messages:])
        logger.info(
            "Token limiting with fallback: %d → %d messages",
            len(messages), len(result),
        )
        return result, stats

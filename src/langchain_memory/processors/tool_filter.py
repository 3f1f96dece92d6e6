"""
Tool-trace filter.

Removes assistant messages that only record tool invocations, reclaiming the
budget they use. Traces of tools listed in ``excluded_tool_names`` are kept.
"""

import logging
from typing import Iterable, Optional

from .messages import get_message_content, message_role

logger = logging.getLogger(__name__)

TOOL_CALL_MARKER = "tool_calls"


def tool_call_names(msg) -> list[str]:
    """Names of the tools a message invokes, from structured call data."""
    names = []
    for call in getattr(msg, "tool_calls", None) or []:
        name = call.get("name") if isinstance(call, dict) else None
        if name:
            names.append(name)

    additional = getattr(msg, "additional_kwargs", None) or {}
    for call in additional.get("tool_calls") or []:
        if isinstance(call, dict):
            name = call.get("name") or (call.get("function") or {}).get("name")
            if name:
                names.append(name)

    content = getattr(msg, "content", None)
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict) and block.get("type") in ("tool_use", "tool_call"):
                if block.get("name"):
                    names.append(block["name"])
    return names


def has_tool_trace(msg) -> bool:
    """True if a message carries a tool-invocation trace."""
    if getattr(msg, "tool_calls", None):
        return True
    additional = getattr(msg, "additional_kwargs", None) or {}
    if additional.get("tool_calls"):
        return True
    content = getattr(msg, "content", None)
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict) and block.get("type") in ("tool_use", "tool_call"):
                return True
    return TOOL_CALL_MARKER in get_message_content(msg)


class ToolTraceFilter:
    name = "ToolTraceFilter"

    def __init__(self, excluded_tool_names: Optional[Iterable[str]] = None):
        self.excluded_tool_names = [n for n in (excluded_tool_names or []) if n]

    def _is_excluded(self, msg) -> bool:
        if not self.excluded_tool_names:
            return False
        names = tool_call_names(msg)
        if any(name in self.excluded_tool_names for name in names):
            return True
        content = get_message_content(msg)
        return any(tool in content for tool in self.excluded_tool_names)

    def process(self, messages: list) -> list:
        result = [
            msg
            for msg in messages
            if message_role(msg) != "assistant"
            or not has_tool_trace(msg)
            or self._is_excluded(msg)
        ]
        removed = len(messages) - len(result)
        if removed:
            logger.info("ToolTraceFilter removed %d tool call messages", removed)
        return result

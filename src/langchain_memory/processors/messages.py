"""
Message helpers shared by every processor.

Processors see LangChain messages but reason in terms of four conversational
roles (user, assistant, system, tool) and flattened text content.
"""

import json
from typing import Iterable

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    ChatMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
    convert_to_messages,
)

ROLES = ("user", "assistant", "system", "tool")

# ChatMessage role aliases that map onto one of ROLES
_ROLE_ALIASES = {
    "human": "user",
    "ai": "assistant",
    "developer": "system",
}

_KNOWN_DICT_ROLES = (
    "human", "user", "ai", "assistant", "system", "developer", "tool", "function",
)


def message_role(msg) -> str:
    """Return the conversational role of a message, defaulting to assistant."""
    if isinstance(msg, HumanMessage):
        return "user"
    if isinstance(msg, AIMessage):
        return "assistant"
    if isinstance(msg, SystemMessage):
        return "system"
    if isinstance(msg, ToolMessage):
        return "tool"
    role = getattr(msg, "role", None)
    if isinstance(role, str):
        role = _ROLE_ALIASES.get(role.lower(), role.lower())
        if role in ROLES:
            return role
    return "assistant"


def is_conversational(msg) -> bool:
    """True for user and assistant turns."""
    return message_role(msg) in ("user", "assistant")


def get_message_content(msg) -> str:
    """
    Extract message content regardless of format.

    String content is returned as-is; structured content (content blocks,
    dicts) is flattened with JSON so it can be measured and compared.
    """
    content = getattr(msg, "content", msg)
    if isinstance(content, str):
        return content
    if content is None:
        return ""
    try:
        return json.dumps(content, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(content)


def truncate_text(text: str, max_length: int) -> str:
    """Truncate text to max_length characters with an ellipsis."""
    if len(text) <= max_length:
        return text
    return text[: max(max_length - 3, 0)] + "..."


def normalize_roles(messages: Iterable[BaseMessage]) -> list[BaseMessage]:
    """
    Map messages with an unrecognised role onto assistant messages.

    Messages whose role is already one of ROLES are returned unchanged
    (same object), so the result stays a subsequence of the input.
    """
    result = []
    for msg in messages:
        if isinstance(msg, ChatMessage):
            role = _ROLE_ALIASES.get(msg.role.lower(), msg.role.lower())
            if role not in ROLES:
                msg = AIMessage(
                    content=msg.content,
                    id=msg.id,
                    additional_kwargs=msg.additional_kwargs,
                    response_metadata=msg.response_metadata,
                )
        result.append(msg)
    return result


def coerce_messages(messages) -> list[BaseMessage]:
    """
    Convert caller input into a list of LangChain messages.

    Accepts BaseMessage instances, {"role": ..., "content": ...} dicts,
    (role, content) tuples and plain strings. BaseMessage instances pass
    through untouched.
    """
    if not messages:
        return []
    prepared = []
    for msg in messages:
        # convert_to_messages rejects roles it does not know; keep them as
        # ChatMessage so message_role() can normalise them later
        if isinstance(msg, dict) and msg.get("role") not in _KNOWN_DICT_ROLES:
            msg = ChatMessage(
                role=str(msg.get("role") or "assistant"),
                content=msg.get("content") or "",
                id=msg.get("id"),
            )
        prepared.append(msg)
    return list(convert_to_messages(prepared))

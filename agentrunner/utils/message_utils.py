"""Utilities for reading and rendering message histories."""

from __future__ import annotations

import json
from typing import Any, List, Sequence, Set, Union

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage


def message_text(message: BaseMessage) -> str:
    """Return the plain-text content of a message.

    Content may be a string or a list of content blocks; only text blocks are
    kept.
    """
    content = message.content
    if isinstance(content, str):
        return content
    parts: List[str] = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(str(block.get("text", "")))
    return "".join(parts)


def extract_user_query(input_value: Union[str, Sequence[BaseMessage]]) -> str:
    """Extract the user's goal from a run input.

    A string input is the goal itself; for a message list the last human
    message wins.
    """
    if isinstance(input_value, str):
        return input_value

    for message in reversed(list(input_value)):
        if isinstance(message, HumanMessage):
            return message_text(message)
    return ""


def render_tool_content(value: Any) -> str:
    """Serialize a tool return value into ToolMessage content."""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def find_orphaned_results(messages: List[BaseMessage]) -> List[str]:
    """Return tool_call_ids of ToolMessages with no matching request in the same turn.

    A turn is an AIMessage carrying tool_calls followed by its ToolMessages.
    """
    orphaned: List[str] = []
    open_ids: Set[str] = set()
    for msg in messages:
        if isinstance(msg, AIMessage):
            open_ids = {tc.get("id") for tc in (msg.tool_calls or []) if tc.get("id")}
        elif isinstance(msg, ToolMessage):
            if msg.tool_call_id in open_ids:
                open_ids.discard(msg.tool_call_id)
            else:
                orphaned.append(msg.tool_call_id)
        else:
            open_ids = set()
    return orphaned

"""History filters applied when a transfer shares the conversation.

A filter takes the message list at transfer time and returns the list the
target agent starts from. Filters are ignored for isolated transfers, which
always start from the original input.
"""

from __future__ import annotations

from typing import Callable, List, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage

from agentrunner.utils.message_utils import message_text

MessageFilter = Callable[[Sequence[BaseMessage]], List[BaseMessage]]


def _strip_tool_calls(message: BaseMessage) -> List[BaseMessage]:
    if isinstance(message, AIMessage) and message.tool_calls:
        text = message_text(message)
        return [AIMessage(content=text)] if text else []
    return [message]


def remove_all_tools(messages: Sequence[BaseMessage]) -> List[BaseMessage]:
    """Drop tool results and tool calls; assistant text that came with calls is kept."""
    filtered: List[BaseMessage] = []
    for message in messages:
        if isinstance(message, ToolMessage):
            continue
        filtered.extend(_strip_tool_calls(message))
    return filtered


def keep_last_messages(limit: int) -> MessageFilter:
    """Build a filter keeping the last ``limit`` messages.

    Tool results whose calls fall outside the window are dropped as well.
    """
    if limit < 1:
        raise ValueError(f"limit must be positive, got {limit}")

    def _filter(messages: Sequence[BaseMessage]) -> List[BaseMessage]:
        window = list(messages)[-limit:]
        while window and isinstance(window[0], ToolMessage):
            window.pop(0)
        return window

    return _filter


def keep_last_message(messages: Sequence[BaseMessage]) -> List[BaseMessage]:
    return keep_last_messages(1)(messages)


def keep_messages_only(messages: Sequence[BaseMessage]) -> List[BaseMessage]:
    """Keep user messages and plain assistant replies."""
    return [
        message
        for message in messages
        if isinstance(message, HumanMessage) or (isinstance(message, AIMessage) and not message.tool_calls)
    ]

"""Agent definitions and transfer tools."""

from .handoff_filters import MessageFilter, keep_last_message, keep_last_messages, keep_messages_only, remove_all_tools
from .handoff_tools import TransferRequest, create_transfer_tool, transfer_tool_name
from .schema import Agent, TransferTarget, collect_agents

__all__ = [
    "Agent",
    "MessageFilter",
    "TransferRequest",
    "TransferTarget",
    "collect_agents",
    "create_transfer_tool",
    "keep_last_message",
    "keep_last_messages",
    "keep_messages_only",
    "remove_all_tools",
    "transfer_tool_name",
]

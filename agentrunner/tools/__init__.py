"""Tool definitions, per-agent registry and concurrent dispatch."""

from .base import ApprovalPredicate, Tool
from .dispatcher import ToolDispatcher
from .registry import ToolRegistry

__all__ = ["ApprovalPredicate", "Tool", "ToolDispatcher", "ToolRegistry"]

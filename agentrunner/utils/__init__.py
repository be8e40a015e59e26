"""Shared helpers for logging and message handling."""

from .logging_utils import (
    log_error,
    log_tool_call,
    log_tool_result,
    log_transfer,
    preview,
    setup_logging,
    setup_logging_from_settings,
)
from .message_utils import (
    extract_user_query,
    find_orphaned_results,
    message_text,
    render_tool_content,
)

__all__ = [
    "extract_user_query",
    "find_orphaned_results",
    "log_error",
    "log_tool_call",
    "log_tool_result",
    "log_transfer",
    "message_text",
    "preview",
    "render_tool_content",
    "setup_logging",
    "setup_logging_from_settings",
]

"""Logging utilities for agentrunner."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from agentrunner.config import Settings, get_settings

DEFAULT_PREVIEW_LENGTH = 500

_preview_length = DEFAULT_PREVIEW_LENGTH


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[Union[str, Path]] = None,
    preview_length: Optional[int] = None,
) -> logging.Logger:
    """Setup logging configuration for agentrunner.

    Args:
        level: Console logging level (default: INFO)
        log_dir: Directory for a detailed, timestamped log file. No file
            handler is installed when omitted.
        preview_length: Default truncation for logged payloads; unchanged
            when omitted.

    Returns:
        Configured logger instance
    """
    global _preview_length

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    if preview_length is not None:
        _preview_length = preview_length

    logger = logging.getLogger("agentrunner")
    logger.setLevel(logging.DEBUG)  # Capture all child logs, handlers filter
    logger.propagate = False

    logger.handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(console_handler)

    if log_dir:
        logs_dir = Path(log_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)
        log_file = logs_dir / f"agentrunner_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)
        logger.info(f"Log file: {log_file}")

    return logger


def setup_logging_from_settings(settings: Optional[Settings] = None) -> logging.Logger:
    """Setup logging from ObservabilitySettings (LOG_LEVEL, LOG_DIR, LOG_PREVIEW_LENGTH)."""
    observability = (settings or get_settings()).observability
    return setup_logging(
        level=observability.log_level,
        log_dir=observability.log_dir,
        preview_length=observability.log_preview_length,
    )


def preview(value: Any, max_length: Optional[int] = None) -> str:
    """Render a value for logs, truncated to max_length characters.

    Without max_length the length configured by setup_logging applies.
    """
    if max_length is None:
        max_length = _preview_length
    if isinstance(value, str):
        text = value
    else:
        try:
            text = json.dumps(value, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            text = str(value)
    if len(text) > max_length:
        text = text[:max_length] + "... (truncated)"
    return text


def log_tool_call(logger: logging.Logger, tool_name: str, call_id: str, args: Dict[str, Any]) -> None:
    """Log tool invocation.

    Args:
        logger: Logger instance
        tool_name: Name of the tool being called
        call_id: Identifier of the tool call
        args: Tool arguments
    """
    logger.info(f"Tool call: {tool_name} ({call_id})")
    logger.debug(f"  Arguments: {preview(args)}")


def log_tool_result(
    logger: logging.Logger,
    tool_name: str,
    result: Any,
    success: bool = True,
    duration: Optional[float] = None,
) -> None:
    """Log tool execution result.

    Args:
        logger: Logger instance
        tool_name: Name of the tool
        result: Tool execution result or error text
        success: Whether the tool executed successfully
        duration: Wall-clock seconds spent waiting on the call
    """
    status = "✓ Success" if success else "✗ Failed"
    timing = f" in {duration:.3f}s" if duration is not None else ""
    logger.info(f"Tool result: {tool_name} - {status}{timing}")
    logger.debug(f"  Result: {preview(result)}")


def log_transfer(logger: logging.Logger, from_agent: str, to_agent: str, reason: str, isolated: bool) -> None:
    """Log an agent-to-agent transfer."""
    mode = "isolated" if isolated else "shared history"
    logger.info(f"Transfer: {from_agent} → {to_agent} ({mode})")
    if reason:
        logger.debug(f"  Reason: {reason}")


def log_error(logger: logging.Logger, error: BaseException, context: str = "") -> None:
    """Log error with context.

    Args:
        logger: Logger instance
        error: Exception instance
        context: Additional context about where the error occurred
    """
    logger.error(f"Error occurred: {type(error).__name__}: {error}")
    if context:
        logger.error(f"  Context: {context}")
    logger.debug("Full traceback:", exc_info=error)

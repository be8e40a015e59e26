"""Generate transfer tools for agent-to-agent delegation.

Each transfer target of an agent gets a ``transfer_to_{name}`` tool. The tool
does not switch agents itself; it returns a TransferRequest that the Runner
hands to the TransferManager once the turn's dispatch barrier has settled.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

from pydantic import BaseModel, Field

from agentrunner.tools.base import Tool

if TYPE_CHECKING:
    from .handoff_filters import MessageFilter
    from .schema import TransferTarget

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferRequest:
    """Tool return value meaning "delegate to another agent".

    Attributes:
        agent_name: Name of the target agent
        reason: Why the work is being handed over
        payload: Task text handed to the target; the reason is used when empty
        isolated: Per-transfer isolation override (None defers to the target/runner policy)
        input_filter: History filter for a shared-history transfer; overrides the target's
    """

    agent_name: str
    reason: str = ""
    payload: Optional[str] = None
    isolated: Optional[bool] = None
    input_filter: Optional["MessageFilter"] = None


class TransferArgs(BaseModel):
    reason: str = Field(description="Why the task is being handed over")
    payload: Optional[str] = Field(
        default=None,
        description="Complete task description for the target agent. It cannot see the current conversation.",
    )


def transfer_tool_name(agent_name: str) -> str:
    slug = re.sub(r"[^a-zA-Z0-9_-]+", "_", agent_name).strip("_").lower()
    return f"transfer_to_{slug or 'agent'}"


def create_transfer_tool(target: "TransferTarget") -> Tool:
    """Create the tool an agent calls to hand control to ``target``."""
    agent = target.agent
    tool_name = target.tool_name or transfer_tool_name(agent.name)
    summary = target.description or agent.transfer_description or f"Hand the task over to {agent.name}."

    description = (
        f"Transfer control to {agent.name}.\n\n"
        f"{summary}\n\n"
        "The target agent takes over the conversation until the task is done. "
        "Describe the task completely in `payload`; the target may not see the current history."
    )

    async def _execute(args: Dict[str, Any], context: Any) -> TransferRequest:
        LOGGER.debug(f"Transfer requested to {agent.name}: {args.get('reason', '')}")
        return TransferRequest(
            agent_name=agent.name,
            reason=args.get("reason", ""),
            payload=args.get("payload"),
            isolated=target.isolated,
            input_filter=target.input_filter,
        )

    return Tool(
        name=tool_name,
        description=description,
        execute=_execute,
        input_schema=TransferArgs,
        severity="low",
    )

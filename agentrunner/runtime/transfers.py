"""Agent-to-agent transfer handling."""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

from langchain_core.messages import HumanMessage

from agentrunner.agents.handoff_tools import TransferRequest
from agentrunner.agents.schema import Agent, TransferTarget
from agentrunner.guardrails.engine import GuardrailEngine
from agentrunner.utils.logging_utils import log_transfer

from .errors import UnknownTransferTarget
from .events import EventBus, EventType
from .state import RunState, ToolCallResult

LOGGER = logging.getLogger(__name__)


def find_transfer(results: Sequence[ToolCallResult]) -> Optional[Tuple[ToolCallResult, TransferRequest]]:
    """Return the first successful result (in request order) that asks for a transfer."""
    for result in results:
        if result.ok and isinstance(result.value, TransferRequest):
            return result, result.value
    return None


def transfer_payload(request: TransferRequest) -> str:
    return request.payload or request.reason or "Continue the task."


def transfer_note(from_agent: str, request: TransferRequest) -> HumanMessage:
    return HumanMessage(content=f"[Transfer from {from_agent}] {transfer_payload(request)}")


class TransferManager:
    """Swaps the active agent and rebuilds its message list.

    Isolation is decided per transfer: the request's own flag wins, then the
    source agent's TransferTarget, then ``isolate_by_default``. Shared-history
    transfers pass the history through the request's or target's input filter.
    """

    def __init__(
        self,
        isolate_by_default: bool = True,
        guardrail_engine: Optional[GuardrailEngine] = None,
        event_bus: Optional[EventBus] = None,
    ) -> None:
        self.isolate_by_default = isolate_by_default
        self.event_bus = event_bus or EventBus()
        self.guardrail_engine = guardrail_engine or GuardrailEngine(self.event_bus)

    def resolve_isolation(self, request: TransferRequest, target: TransferTarget) -> bool:
        if request.isolated is not None:
            return request.isolated
        if target.isolated is not None:
            return target.isolated
        return self.isolate_by_default

    async def apply(self, state: RunState, request: TransferRequest) -> Agent:
        """Hand the run to the requested agent.

        Raises:
            UnknownTransferTarget: The name is not among the active agent's targets
            InputGuardrailRejection: The new agent's input guardrails reject the payload
        """
        source = state.active_agent
        target = source.get_transfer_target(request.agent_name)
        if target is None:
            raise UnknownTransferTarget(request.agent_name, source.name)

        isolated = self.resolve_isolation(request, target)
        note = transfer_note(source.name, request)

        if isolated:
            state.replace_messages([HumanMessage(content=state.original_input), note])
        else:
            input_filter = request.input_filter or target.input_filter
            if input_filter is not None:
                kept = list(input_filter(list(state.messages)))
                LOGGER.debug(f"Transfer filter kept {len(kept)} of {len(state.messages)} message(s)")
                state.replace_messages(kept)
            state.append(note)

        state.active_agent = target.agent
        state.transfer_chain.append(target.agent.name)
        state.guardrail_failures.clear()

        log_transfer(LOGGER, source.name, target.agent.name, request.reason, isolated)
        await self.event_bus.publish(EventType.AGENT_ENDED, state.run_id, source.name, reason="transfer")
        await self.event_bus.publish(
            EventType.TRANSFER,
            state.run_id,
            source.name,
            to_agent=target.agent.name,
            reason=request.reason,
            isolated=isolated,
        )
        await self.event_bus.publish(EventType.AGENT_STARTED, state.run_id, target.agent.name)

        await self.guardrail_engine.check_input(
            target.agent.guardrails,
            transfer_payload(request),
            run_id=state.run_id,
            agent_name=target.agent.name,
        )
        return target.agent

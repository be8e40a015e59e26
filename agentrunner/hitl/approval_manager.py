"""Approval gating for tool calls."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Sequence

from agentrunner.runtime.errors import InvalidRunStateError
from agentrunner.runtime.events import EventBus, EventType
from agentrunner.runtime.state import ApprovalRecord, PendingApproval, RunState, ToolCallRequest, ToolCallResult
from agentrunner.tools.base import maybe_await
from agentrunner.utils.logging_utils import preview

from .approval_checker import ApprovalCheck

if TYPE_CHECKING:
    from agentrunner.agents.schema import Agent

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApprovalDecision:
    """A human decision on one pending tool call."""

    call_id: str
    approved: bool
    reason: Optional[str] = None


class ApprovalManager:
    """Classifies tool calls that need a human decision and applies decisions on resume.

    Approval is transparent to the model: a pending call simply waits, and
    its eventual result (or rejection) is appended like any other tool result.
    """

    def __init__(self, event_bus: Optional[EventBus] = None) -> None:
        self.event_bus = event_bus or EventBus()

    async def classify(
        self,
        agent: "Agent",
        requests: Sequence[ToolCallRequest],
        context: Any,
        run_id: str = "",
    ) -> List[PendingApproval]:
        """Return the requests of this turn that need approval.

        Predicates run in request order. A predicate that raises requires approval.
        """
        pending: List[PendingApproval] = []
        for request in requests:
            if request.error is not None:
                continue
            tool = agent.registry.get_optional(request.tool_name)
            if tool is None or tool.needs_approval is None:
                continue

            reason = tool.approval_reason
            severity = tool.severity
            try:
                verdict = await maybe_await(tool.needs_approval(context, request.args, request.call_id))
            except Exception as e:  # noqa: BLE001
                LOGGER.warning(f"Approval predicate for {tool.name} raised {type(e).__name__}: {e}; requiring approval")
                verdict = True
                reason = reason or f"Approval check failed: {e}"

            if isinstance(verdict, ApprovalCheck):
                reason = verdict.reason or reason
                if verdict.needs_approval:
                    severity = verdict.risk_level

            if not verdict:
                continue

            pending.append(
                PendingApproval(
                    call_id=request.call_id,
                    tool_name=request.tool_name,
                    args=dict(request.args),
                    requesting_agent=agent.name,
                    severity=severity,
                    reason=reason,
                )
            )

        for item in pending:
            LOGGER.info(f"Approval required: {item.tool_name} ({item.call_id}) severity={item.severity}")
            await self.event_bus.publish(
                EventType.APPROVAL_REQUESTED,
                run_id,
                agent.name,
                call_id=item.call_id,
                tool_name=item.tool_name,
                args=item.args,
                severity=item.severity,
                reason=item.reason,
            )
        return pending

    async def apply_decisions(self, state: RunState, decisions: Iterable[ApprovalDecision]) -> None:
        """Record decisions against the state's pending approvals.

        Decided entries leave ``pending_approvals`` and join ``approval_history``.

        Raises:
            InvalidRunStateError: A decision names a call that is not pending
        """
        by_id: Dict[str, ApprovalDecision] = {}
        for decision in decisions:
            by_id[decision.call_id] = decision

        pending_ids = {p.call_id for p in state.pending_approvals}
        unknown = [call_id for call_id in by_id if call_id not in pending_ids]
        if unknown:
            raise InvalidRunStateError(f"No pending approval for call id(s): {', '.join(unknown)}")

        remaining: List[PendingApproval] = []
        for item in state.pending_approvals:
            decision = by_id.get(item.call_id)
            if decision is None:
                remaining.append(item)
                continue

            state.approval_history.append(
                ApprovalRecord(
                    call_id=item.call_id,
                    tool_name=item.tool_name,
                    requesting_agent=item.requesting_agent,
                    approved=decision.approved,
                    reason=decision.reason,
                )
            )
            verdict = "approved" if decision.approved else "rejected"
            LOGGER.info(f"Tool call {item.tool_name} ({item.call_id}) {verdict}")
            await self.event_bus.publish(
                EventType.APPROVAL_RESOLVED,
                state.run_id,
                item.requesting_agent,
                call_id=item.call_id,
                tool_name=item.tool_name,
                approved=decision.approved,
                reason=decision.reason,
            )

        state.pending_approvals = remaining

    @staticmethod
    def rejections(state: RunState) -> Dict[str, ToolCallResult]:
        """Synthetic results for rejected calls of the suspended turn, by call id."""
        turn_ids = {r.call_id for r in state.pending_tool_calls}
        results: Dict[str, ToolCallResult] = {}
        for record in state.approval_history:
            if record.call_id not in turn_ids:
                continue
            if record.approved:
                results.pop(record.call_id, None)
                continue
            results[record.call_id] = ToolCallResult(
                call_id=record.call_id,
                tool_name=record.tool_name,
                error=f"rejected: {record.reason or 'no reason given'}",
                error_kind="rejected",
            )
        return results


def format_approval_request(pending: PendingApproval, max_length: int = 200) -> str:
    """Render a pending approval for a reviewer."""
    lines = [
        f"Tool approval required [{pending.severity}]",
        f"  Agent: {pending.requesting_agent}",
        f"  Tool:  {pending.tool_name} ({pending.call_id})",
        f"  Args:  {preview(pending.args, max_length)}",
    ]
    if pending.reason:
        lines.append(f"  Reason: {pending.reason}")
    return "\n".join(lines)

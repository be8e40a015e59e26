"""Run state tracked across a single workflow execution."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence

from langchain_core.messages import BaseMessage, messages_from_dict, messages_to_dict
from pydantic_core import to_jsonable_python

if TYPE_CHECKING:
    from agentrunner.agents.schema import Agent

    from .errors import RunFailedError

LOGGER = logging.getLogger(__name__)


class RunStatus(str, Enum):
    """Execution states of a run."""

    RUNNING = "running"
    AWAITING_APPROVAL = "awaiting_approval"
    FINAL_OUTPUT = "final_output"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.FINAL_OUTPUT, RunStatus.FAILED)


def new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:24]}"


def _context_fallback(value: Any) -> str:
    LOGGER.warning(
        f"Run context value of type {type(value).__name__} is not JSON-serializable; it is stored as str() "
        "and a resumed run sees the string unless a context is passed to from_dict"
    )
    return str(value)


@dataclass(frozen=True)
class ToolCallRequest:
    """A tool invocation requested by the model in one turn.

    ``error`` is set when the model emitted the call but its arguments could
    not be parsed; such a call is answered with an error and never executed.
    """

    tool_name: str
    args: Dict[str, Any] = field(default_factory=dict)
    call_id: str = field(default_factory=new_call_id)
    error: Optional[str] = None

    def to_langchain(self) -> Dict[str, Any]:
        """Render as a LangChain ToolCall dict for AIMessage.tool_calls."""
        return {"name": self.tool_name, "args": dict(self.args), "id": self.call_id, "type": "tool_call"}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ToolCallRequest":
        return cls(
            tool_name=data["tool_name"],
            args=dict(data.get("args") or {}),
            call_id=data["call_id"],
            error=data.get("error"),
        )


def dedupe_call_ids(requests: Sequence[ToolCallRequest]) -> List[ToolCallRequest]:
    """Give every request of a turn a distinct call id.

    Some backends repeat or omit ids; repeats after the first get a fresh id.
    """
    seen = set()
    unique: List[ToolCallRequest] = []
    for request in requests:
        if not request.call_id or request.call_id in seen:
            fresh = new_call_id()
            LOGGER.warning(f"Duplicate or empty tool call id '{request.call_id}' for {request.tool_name}; using {fresh}")
            request = replace(request, call_id=fresh)
        seen.add(request.call_id)
        unique.append(request)
    return unique


@dataclass(frozen=True)
class ToolCallResult:
    """Outcome of one tool call, matched to its request by call_id."""

    call_id: str
    tool_name: str
    value: Any = None
    error: Optional[str] = None
    error_kind: Optional[str] = None  # execution | timeout | rejected | unknown_tool | invalid_arguments
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class TokenUsage:
    """Token counts reported by the model gateway."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, other: "TokenUsage") -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens


@dataclass
class AgentMetrics:
    """Per-agent counters. Accumulated across the whole run, never reset."""

    turns_taken: int = 0
    tokens_in: int = 0
    tokens_out: int = 0
    tool_call_count: int = 0

    def record_turn(self, usage: TokenUsage, tool_calls: int) -> None:
        self.turns_taken += 1
        self.tokens_in += usage.input_tokens
        self.tokens_out += usage.output_tokens
        self.tool_call_count += tool_calls


@dataclass(frozen=True)
class PendingApproval:
    """A tool call waiting for a human decision."""

    call_id: str
    tool_name: str
    args: Dict[str, Any]
    requesting_agent: str
    severity: str = "medium"
    reason: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PendingApproval":
        return cls(
            call_id=data["call_id"],
            tool_name=data["tool_name"],
            args=dict(data.get("args") or {}),
            requesting_agent=data["requesting_agent"],
            severity=data.get("severity", "medium"),
            reason=data.get("reason"),
        )


@dataclass(frozen=True)
class ApprovalRecord:
    """A resolved approval kept for audit."""

    call_id: str
    tool_name: str
    requesting_agent: str
    approved: bool
    reason: Optional[str] = None


@dataclass
class RunState:
    """Mutable record of one workflow execution.

    Exactly one coroutine mutates a RunState at a time: the Runner merges
    tool results only after the dispatch barrier has settled.
    """

    active_agent: "Agent"
    original_input: str
    messages: List[BaseMessage]
    step_limit: int
    context: Any = None
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    step_number: int = 0
    status: RunStatus = RunStatus.RUNNING
    agent_metrics: Dict[str, AgentMetrics] = field(default_factory=dict)
    transfer_chain: List[str] = field(default_factory=list)
    pending_approvals: List[PendingApproval] = field(default_factory=list)
    pending_tool_calls: List[ToolCallRequest] = field(default_factory=list)
    approval_history: List[ApprovalRecord] = field(default_factory=list)
    guardrail_failures: Dict[str, int] = field(default_factory=dict)
    usage: TokenUsage = field(default_factory=TokenUsage)
    session_id: Optional[str] = None
    failure: Optional["RunFailedError"] = None
    started_at: float = field(default_factory=time.time)

    # ========== Counters ==========

    @property
    def steps_remaining(self) -> int:
        return self.step_limit - self.step_number

    def metrics_for(self, agent_name: str) -> AgentMetrics:
        if agent_name not in self.agent_metrics:
            self.agent_metrics[agent_name] = AgentMetrics()
        return self.agent_metrics[agent_name]

    def record_turn(self, agent_name: str, usage: TokenUsage, tool_calls: int) -> None:
        self.metrics_for(agent_name).record_turn(usage, tool_calls)
        self.usage.add(usage)

    @property
    def duration(self) -> float:
        return time.time() - self.started_at

    # ========== Messages ==========

    def append(self, *messages: BaseMessage) -> None:
        self.messages.extend(messages)

    def replace_messages(self, messages: List[BaseMessage]) -> None:
        self.messages = list(messages)

    # ========== Approvals ==========

    @property
    def is_suspended(self) -> bool:
        return bool(self.pending_approvals)

    def suspend(self, requests: List[ToolCallRequest], pending: List[PendingApproval]) -> None:
        self.pending_tool_calls = list(requests)
        self.pending_approvals = list(pending)
        self.status = RunStatus.AWAITING_APPROVAL

    # ========== Terminal transitions ==========

    def fail(self, error: "RunFailedError") -> None:
        self.status = RunStatus.FAILED
        self.failure = error
        error.state = self

    # ========== Serialization ==========

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-compatible dict. Agents are stored by name."""
        return {
            "run_id": self.run_id,
            "active_agent": self.active_agent.name,
            "original_input": self.original_input,
            "messages": messages_to_dict(self.messages),
            "step_number": self.step_number,
            "step_limit": self.step_limit,
            "status": self.status.value,
            "context": to_jsonable_python(self.context, fallback=_context_fallback),
            "agent_metrics": {name: asdict(m) for name, m in self.agent_metrics.items()},
            "transfer_chain": list(self.transfer_chain),
            "pending_approvals": [asdict(p) for p in self.pending_approvals],
            "pending_tool_calls": [asdict(r) for r in self.pending_tool_calls],
            "approval_history": [asdict(r) for r in self.approval_history],
            "guardrail_failures": dict(self.guardrail_failures),
            "usage": asdict(self.usage),
            "session_id": self.session_id,
            "started_at": self.started_at,
        }

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        agents: Mapping[str, "Agent"],
        context: Any = None,
    ) -> "RunState":
        """Rebuild a RunState from to_dict() output.

        Args:
            data: Serialized state
            agents: Agents by name; must contain the active agent
            context: Replacement context. The serialized context is used when None.

        Raises:
            KeyError: The active agent is missing from ``agents``
        """
        agent_name = data["active_agent"]
        if agent_name not in agents:
            raise KeyError(f"Agent not found while restoring run state: {agent_name}")

        return cls(
            active_agent=agents[agent_name],
            original_input=data["original_input"],
            messages=messages_from_dict(data.get("messages", [])),
            step_limit=data["step_limit"],
            context=context if context is not None else data.get("context"),
            run_id=data["run_id"],
            step_number=data.get("step_number", 0),
            status=RunStatus(data.get("status", RunStatus.RUNNING.value)),
            agent_metrics={
                name: AgentMetrics(**metrics) for name, metrics in (data.get("agent_metrics") or {}).items()
            },
            transfer_chain=list(data.get("transfer_chain", [])),
            pending_approvals=[PendingApproval.from_dict(p) for p in data.get("pending_approvals", [])],
            pending_tool_calls=[ToolCallRequest.from_dict(r) for r in data.get("pending_tool_calls", [])],
            approval_history=[ApprovalRecord(**r) for r in data.get("approval_history", [])],
            guardrail_failures=dict(data.get("guardrail_failures", {})),
            usage=TokenUsage(**(data.get("usage") or {})),
            session_id=data.get("session_id"),
            started_at=data.get("started_at", time.time()),
        )

"""Agent definitions.

An Agent is immutable configuration: instructions, tools, transfer targets and
guardrails. Its name→tool map is resolved once at construction so dispatch
never consults a global registry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Type, Union

from pydantic import BaseModel

from agentrunner.guardrails.base import Guardrail, GuardrailDirection
from agentrunner.tools.base import Tool, maybe_await
from agentrunner.tools.registry import ToolRegistry

from .handoff_filters import MessageFilter
from .handoff_tools import create_transfer_tool

Instructions = Union[str, Callable[[Any, "Agent"], Union[str, Awaitable[str]]]]


@dataclass(frozen=True)
class TransferTarget:
    """A transfer edge from one agent to another.

    Attributes:
        agent: Target agent
        isolated: Isolation override for transfers along this edge (None = runner default)
        tool_name: Name of the generated tool (default ``transfer_to_<name>``)
        description: Text shown to the model in the generated tool
        input_filter: History filter for shared-history transfers along this edge
    """

    agent: "Agent"
    isolated: Optional[bool] = None
    tool_name: Optional[str] = None
    description: Optional[str] = None
    input_filter: Optional[MessageFilter] = None


@dataclass(frozen=True, eq=False)
class Agent:
    """A named instruction set with bound tools.

    Attributes:
        name: Unique agent name within a run's agent graph
        instructions: System prompt, or ``callable(context, agent)`` returning one
        tools: User tools available to the agent
        transfer_targets: Agents (or TransferTargets) this agent may hand control to
        guardrails: Ordered input and output checks
        output_schema: Pydantic model the final output must validate against
        step_limit: Default step limit when this agent starts a run
        model: Model identifier forwarded to the gateway
        transfer_description: How other agents' transfer tools describe this agent
    """

    name: str
    instructions: Instructions = ""
    tools: Sequence[Tool] = field(default_factory=list)
    transfer_targets: List[Union["Agent", TransferTarget]] = field(default_factory=list)
    guardrails: Sequence[Guardrail] = field(default_factory=list)
    output_schema: Optional[Type[BaseModel]] = None
    step_limit: Optional[int] = None
    model: Optional[str] = None
    transfer_description: Optional[str] = None
    registry: ToolRegistry = field(init=False, repr=False)
    _targets: Dict[str, TransferTarget] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Agent name must not be empty")
        if self.step_limit is not None and self.step_limit < 1:
            raise ValueError(f"step_limit must be positive, got {self.step_limit}")
        object.__setattr__(self, "tools", list(self.tools))
        object.__setattr__(self, "guardrails", list(self.guardrails))
        object.__setattr__(
            self,
            "transfer_targets",
            [t if isinstance(t, TransferTarget) else TransferTarget(agent=t) for t in self.transfer_targets],
        )
        self._rebuild()

    def _rebuild(self) -> None:
        targets: Dict[str, TransferTarget] = {}
        for target in self.transfer_targets:
            if target.agent.name in targets:
                raise ValueError(f"Duplicate transfer target: {target.agent.name}")
            targets[target.agent.name] = target

        registry = ToolRegistry(self.tools)
        for target in targets.values():
            registry.register_tool(create_transfer_tool(target))

        object.__setattr__(self, "_targets", targets)
        object.__setattr__(self, "registry", registry)

    def add_transfer_target(
        self,
        agent: "Agent",
        *,
        isolated: Optional[bool] = None,
        tool_name: Optional[str] = None,
        description: Optional[str] = None,
        input_filter: Optional[MessageFilter] = None,
    ) -> None:
        """Wire a transfer target after construction (needed for cycles)."""
        target = TransferTarget(
            agent=agent,
            isolated=isolated,
            tool_name=tool_name,
            description=description,
            input_filter=input_filter,
        )
        self.transfer_targets.append(target)
        try:
            self._rebuild()
        except ValueError:
            self.transfer_targets.pop()
            raise

    def get_transfer_target(self, agent_name: str) -> Optional[TransferTarget]:
        return self._targets.get(agent_name)

    async def resolve_instructions(self, context: Any) -> str:
        if callable(self.instructions):
            return str(await maybe_await(self.instructions(context, self)) or "")
        return self.instructions or ""

    def tool_schemas(self) -> List[Dict[str, Any]]:
        return self.registry.schemas()

    def input_guardrails(self) -> List[Guardrail]:
        return [g for g in self.guardrails if g.direction == GuardrailDirection.INPUT]

    def output_guardrails(self) -> List[Guardrail]:
        return [g for g in self.guardrails if g.direction == GuardrailDirection.OUTPUT]


def collect_agents(root: Agent) -> Dict[str, Agent]:
    """Walk the transfer graph from ``root`` and index every reachable agent by name.

    Raises:
        ValueError: Two distinct agents share a name
    """
    agents: Dict[str, Agent] = {}
    pending = [root]
    while pending:
        agent = pending.pop()
        existing = agents.get(agent.name)
        if existing is not None:
            if existing is not agent:
                raise ValueError(f"Two different agents are named '{agent.name}'")
            continue
        agents[agent.name] = agent
        pending.extend(target.agent for target in agent.transfer_targets)
    return agents

"""Suspended runs awaiting human approval."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Union

from agentrunner.agents.schema import Agent, collect_agents

from .errors import InvalidRunStateError
from .state import PendingApproval, RunState, RunStatus

SERIALIZATION_VERSION = 1


@dataclass
class Interruption:
    """A run paused until every pending tool call has a decision.

    Serializable so a different process can resume it: agents are stored by
    name and re-resolved from the agent graph passed to ``from_dict``.
    """

    state: RunState

    @property
    def pending_approvals(self) -> List[PendingApproval]:
        return list(self.state.pending_approvals)

    @property
    def run_id(self) -> str:
        return self.state.run_id

    def to_dict(self) -> Dict[str, Any]:
        return {"version": SERIALIZATION_VERSION, "state": self.state.to_dict()}

    def to_json(self, **kwargs: Any) -> str:
        kwargs.setdefault("ensure_ascii", False)
        return json.dumps(self.to_dict(), **kwargs)

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        agents: Union[Agent, Mapping[str, Agent]],
        context: Any = None,
    ) -> "Interruption":
        """Rebuild an Interruption.

        Args:
            data: Output of to_dict()
            agents: The root agent (its transfer graph is walked) or agents by name
            context: Replacement context; the serialized one is used when None

        Raises:
            InvalidRunStateError: Unsupported version or nothing pending
            KeyError: The active agent cannot be found
        """
        version = data.get("version")
        if version != SERIALIZATION_VERSION:
            raise InvalidRunStateError(f"Unsupported interruption format version: {version}")

        by_name = collect_agents(agents) if isinstance(agents, Agent) else dict(agents)
        state = RunState.from_dict(data["state"], by_name, context=context)
        if state.status != RunStatus.AWAITING_APPROVAL or not state.pending_approvals:
            raise InvalidRunStateError(f"Run {state.run_id} is not awaiting approval")
        return cls(state=state)

    @classmethod
    def from_json(
        cls,
        text: str,
        agents: Union[Agent, Mapping[str, Agent]],
        context: Any = None,
    ) -> "Interruption":
        return cls.from_dict(json.loads(text), agents, context=context)

"""Guardrail evaluation for agent input and output."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.messages import SystemMessage

from agentrunner.runtime.errors import InputGuardrailRejection
from agentrunner.runtime.events import EventBus, EventType
from agentrunner.tools.base import maybe_await

from .base import Guardrail, GuardrailDirection, GuardrailResult

LOGGER = logging.getLogger(__name__)

REVISION_DIRECTIVE = (
    "Your previous response failed the '{name}' check: {message}\n"
    "Revise your previous response to satisfy this check, without requesting new information."
)


@dataclass(frozen=True)
class GuardrailOutcome:
    """Result of running an ordered set of guardrails.

    Attributes:
        passed: True when every check passed
        guardrail_name: Name of the first failing check
        message: Its failure message
        metadata: Its failure metadata
        passed_names: Checks that ran and passed before evaluation stopped
    """

    passed: bool
    guardrail_name: Optional[str] = None
    message: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    passed_names: List[str] = field(default_factory=list)


def revision_directive(outcome: GuardrailOutcome) -> SystemMessage:
    """Build the message asking the model to revise a rejected answer."""
    return SystemMessage(content=REVISION_DIRECTIVE.format(name=outcome.guardrail_name, message=outcome.message))


class GuardrailEngine:
    """Runs guardrails in declaration order and stops at the first failure."""

    def __init__(self, event_bus: Optional[EventBus] = None) -> None:
        self.event_bus = event_bus or EventBus()

    async def validate(
        self,
        guardrails: Sequence[Guardrail],
        content: str,
        direction: GuardrailDirection,
        *,
        run_id: str = "",
        agent_name: Optional[str] = None,
    ) -> GuardrailOutcome:
        passed_names: List[str] = []
        for guardrail in guardrails:
            if guardrail.direction != direction:
                continue

            result = await self._evaluate(guardrail, content)
            await self.event_bus.publish(
                EventType.GUARDRAIL_RESULT,
                run_id,
                agent_name,
                guardrail=guardrail.name,
                direction=direction.value,
                passed=result.passed,
                message=result.message,
            )

            if not result.passed:
                LOGGER.info(f"{direction.value.capitalize()} guardrail '{guardrail.name}' failed: {result.message}")
                return GuardrailOutcome(
                    passed=False,
                    guardrail_name=guardrail.name,
                    message=result.message,
                    metadata=dict(result.metadata),
                    passed_names=passed_names,
                )
            if result.message:
                LOGGER.warning(f"Guardrail '{guardrail.name}': {result.message}")
            passed_names.append(guardrail.name)

        return GuardrailOutcome(passed=True, passed_names=passed_names)

    async def check_input(
        self,
        guardrails: Sequence[Guardrail],
        content: str,
        *,
        run_id: str = "",
        agent_name: Optional[str] = None,
    ) -> None:
        """Validate input content.

        Raises:
            InputGuardrailRejection: A check failed
        """
        outcome = await self.validate(
            guardrails, content, GuardrailDirection.INPUT, run_id=run_id, agent_name=agent_name
        )
        if not outcome.passed:
            raise InputGuardrailRejection(outcome.guardrail_name or "", outcome.message)

    @staticmethod
    async def _evaluate(guardrail: Guardrail, content: str) -> GuardrailResult:
        try:
            result = await maybe_await(guardrail.validate(content))
        except Exception as e:  # noqa: BLE001
            LOGGER.warning(f"Guardrail '{guardrail.name}' raised {type(e).__name__}: {e}")
            return GuardrailResult(passed=False, message=str(e) or type(e).__name__, metadata={"exception": type(e).__name__})

        if isinstance(result, GuardrailResult):
            return result
        return GuardrailResult(passed=bool(result))

"""Guardrail types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Union


class GuardrailDirection(str, Enum):
    INPUT = "input"
    OUTPUT = "output"


@dataclass(frozen=True)
class GuardrailResult:
    """Verdict of one guardrail check.

    ``message`` is shown to the model on an output retry, so it should say
    what to change.
    """

    passed: bool
    message: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


GuardrailValidate = Callable[[str], Union[GuardrailResult, bool, Awaitable[Union[GuardrailResult, bool]]]]


@dataclass(frozen=True)
class Guardrail:
    """A named content check applied to an agent's input or output.

    Attributes:
        name: Identifier; failure counters are kept per name
        direction: INPUT checks the content handed to an agent, OUTPUT its final answer
        validate: ``validate(content)``; sync or async, returning a GuardrailResult or a bool
    """

    name: str
    direction: GuardrailDirection
    validate: GuardrailValidate

    def __post_init__(self) -> None:
        object.__setattr__(self, "direction", GuardrailDirection(self.direction))

"""Error taxonomy for agent runs.

Recoverable errors (tool failures, timeouts) are captured per call and fed
back to the model as tool results. Fatal errors derive from RunFailedError,
stop the run, and carry the failed RunState on ``.state``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:
    from .state import RunState


class AgentRunnerError(Exception):
    """Base exception for agentrunner errors."""

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or message


class ToolExecutionError(AgentRunnerError):
    """A tool raised while executing. Surfaced to the model, never fatal."""

    kind = "execution"


class ToolTimeoutError(ToolExecutionError):
    """A tool did not settle within its wall-clock timeout."""

    kind = "timeout"


class InvalidRunStateError(AgentRunnerError, ValueError):
    """The caller asked for an operation the run's current state does not allow."""


class RunFailedError(AgentRunnerError):
    """Base for errors that move a run to the FAILED state."""

    cause = "failed"

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message, user_message)
        self.state: Optional["RunState"] = None


class InputGuardrailRejection(RunFailedError):
    """An input guardrail rejected the content handed to an agent."""

    cause = "input_guardrail_rejected"

    def __init__(self, guardrail_name: str, message: str = ""):
        super().__init__(
            f"Input guardrail '{guardrail_name}' failed: {message}",
            user_message=message or f"Input rejected by {guardrail_name}",
        )
        self.guardrail_name = guardrail_name


class OutputGuardrailExhausted(RunFailedError):
    """An output guardrail kept failing after its retry budget was spent."""

    cause = "output_guardrail_exhausted"

    def __init__(self, guardrail_name: str, failures: int, message: str = ""):
        super().__init__(
            f"Output guardrail '{guardrail_name}' failed {failures} time(s): {message}",
            user_message=message or f"Output rejected by {guardrail_name}",
        )
        self.guardrail_name = guardrail_name
        self.failures = failures


class UnknownTransferTarget(RunFailedError):
    """A transfer named an agent that is not among the active agent's targets."""

    cause = "unknown_transfer_target"

    def __init__(self, agent_name: str, from_agent: str):
        super().__init__(f"Agent '{from_agent}' cannot transfer to unknown agent '{agent_name}'")
        self.agent_name = agent_name
        self.from_agent = from_agent


class StepLimitExceeded(RunFailedError):
    """The run needed more steps than its step limit allows."""

    cause = "step_limit_exceeded"

    def __init__(self, step_limit: int):
        super().__init__(f"Step limit ({step_limit}) exceeded")
        self.step_limit = step_limit


class ModelGatewayError(RunFailedError):
    """The model gateway failed. Retry policy belongs to the gateway adapter."""

    cause = "model_gateway_error"


class RunCancelled(RunFailedError):
    """The caller cancelled the run."""

    cause = "cancelled"

    def __init__(self, message: str = "Run cancelled"):
        super().__init__(message)


class RaceFailed(AgentRunnerError):
    """Every agent in a race failed."""

    def __init__(self, errors: Dict[str, BaseException]):
        summary = "; ".join(f"{name}: {type(e).__name__}: {e}" for name, e in errors.items())
        super().__init__(f"All {len(errors)} raced agent(s) failed: {summary}")
        self.errors = errors


class RaceTimeout(AgentRunnerError, TimeoutError):
    """No raced agent finished within the race timeout."""

    def __init__(self, timeout: float):
        super().__init__(f"Race timeout after {timeout}s")
        self.timeout = timeout

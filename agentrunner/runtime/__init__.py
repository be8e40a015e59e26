"""Run state, errors, events and the execution engine.

Runner and Interruption live in their own modules (``agentrunner.runtime.runner``,
``agentrunner.runtime.interruption``) and are re-exported from ``agentrunner``.
"""

from .cancellation import CancellationToken
from .errors import (
    AgentRunnerError,
    InputGuardrailRejection,
    InvalidRunStateError,
    ModelGatewayError,
    OutputGuardrailExhausted,
    RaceFailed,
    RaceTimeout,
    RunCancelled,
    RunFailedError,
    StepLimitExceeded,
    ToolExecutionError,
    ToolTimeoutError,
    UnknownTransferTarget,
)
from .events import EventBus, EventType, LoggingEventSink, RunEvent
from .state import (
    AgentMetrics,
    ApprovalRecord,
    PendingApproval,
    RunState,
    RunStatus,
    TokenUsage,
    ToolCallRequest,
    ToolCallResult,
)

__all__ = [
    "CancellationToken",
    "AgentRunnerError",
    "InputGuardrailRejection",
    "InvalidRunStateError",
    "ModelGatewayError",
    "OutputGuardrailExhausted",
    "RaceFailed",
    "RaceTimeout",
    "RunCancelled",
    "RunFailedError",
    "StepLimitExceeded",
    "ToolExecutionError",
    "ToolTimeoutError",
    "UnknownTransferTarget",
    "EventBus",
    "EventType",
    "LoggingEventSink",
    "RunEvent",
    "AgentMetrics",
    "ApprovalRecord",
    "PendingApproval",
    "RunState",
    "RunStatus",
    "TokenUsage",
    "ToolCallRequest",
    "ToolCallResult",
]

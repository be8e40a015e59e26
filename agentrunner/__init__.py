"""agentrunner: an execution engine for multi-agent language-model workflows."""

from agentrunner.agents import Agent, TransferRequest, TransferTarget
from agentrunner.config import Settings, get_settings
from agentrunner.guardrails import Guardrail, GuardrailDirection, GuardrailResult
from agentrunner.hitl import ApprovalDecision
from agentrunner.models import ChatModelGateway, ModelGateway, ModelResponse
from agentrunner.persistence import InMemorySessionStore, SQLiteSessionStore
from agentrunner.runtime import (
    CancellationToken,
    EventBus,
    EventType,
    InputGuardrailRejection,
    InvalidRunStateError,
    ModelGatewayError,
    OutputGuardrailExhausted,
    RaceFailed,
    RaceTimeout,
    RunCancelled,
    RunFailedError,
    RunStatus,
    StepLimitExceeded,
    UnknownTransferTarget,
)
from agentrunner.runtime.interruption import Interruption
from agentrunner.runtime.runner import RaceResult, Runner, RunResult, race, run
from agentrunner.tools import Tool

__version__ = "0.1.0"

__all__ = [
    "Agent",
    "ApprovalDecision",
    "CancellationToken",
    "ChatModelGateway",
    "EventBus",
    "EventType",
    "Guardrail",
    "GuardrailDirection",
    "GuardrailResult",
    "InMemorySessionStore",
    "InputGuardrailRejection",
    "Interruption",
    "InvalidRunStateError",
    "ModelGateway",
    "ModelGatewayError",
    "ModelResponse",
    "OutputGuardrailExhausted",
    "RaceFailed",
    "RaceResult",
    "RaceTimeout",
    "RunCancelled",
    "RunFailedError",
    "RunResult",
    "RunStatus",
    "Runner",
    "SQLiteSessionStore",
    "Settings",
    "StepLimitExceeded",
    "Tool",
    "TransferRequest",
    "TransferTarget",
    "UnknownTransferTarget",
    "get_settings",
    "race",
    "run",
]

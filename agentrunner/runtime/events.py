"""Run lifecycle events and their subscribers."""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from agentrunner.utils.logging_utils import preview

LOGGER = logging.getLogger(__name__)


class EventType(str, Enum):
    RUN_STARTED = "run_started"
    AGENT_STARTED = "agent_started"
    AGENT_ENDED = "agent_ended"
    MODEL_CALL = "model_call"
    TOOL_CALL_STARTED = "tool_call_started"
    TOOL_CALL_ENDED = "tool_call_ended"
    TRANSFER = "transfer"
    GUARDRAIL_RESULT = "guardrail_result"
    APPROVAL_REQUESTED = "approval_requested"
    APPROVAL_RESOLVED = "approval_resolved"
    RUN_ENDED = "run_ended"


@dataclass(frozen=True)
class RunEvent:
    type: EventType
    run_id: str
    agent_name: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


EventCallback = Callable[[RunEvent], Union[None, Awaitable[None]]]


class EventBus:
    """Fan-out of run events to subscribers.

    Subscribers may be sync or async. A failing subscriber is logged and
    skipped; it never affects the run.
    """

    def __init__(self) -> None:
        self._subscribers: List[EventCallback] = []

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """Register a callback. Returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    async def emit(self, event: RunEvent) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:  # noqa: BLE001
                LOGGER.warning(f"Event subscriber {callback!r} failed on {event.type.value}: {e}")

    async def publish(
        self,
        event_type: EventType,
        run_id: str,
        agent_name: Optional[str] = None,
        **data: Any,
    ) -> None:
        if not self._subscribers:
            return
        await self.emit(RunEvent(type=event_type, run_id=run_id, agent_name=agent_name, data=data))


class LoggingEventSink:
    """Subscriber that writes every event to the ``agentrunner.events`` logger."""

    def __init__(self, level: int = logging.INFO, max_length: Optional[int] = None) -> None:
        self.logger = logging.getLogger("agentrunner.events")
        self.level = level
        self.max_length = max_length

    def __call__(self, event: RunEvent) -> None:
        agent = f" [{event.agent_name}]" if event.agent_name else ""
        payload = preview(event.data, self.max_length) if event.data else ""
        self.logger.log(self.level, f"{event.type.value}{agent} run={event.run_id} {payload}".rstrip())

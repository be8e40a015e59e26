"""Concurrent execution of one turn's tool calls."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, List, Optional, Sequence

from pydantic import ValidationError

from agentrunner.runtime.errors import ToolExecutionError, ToolTimeoutError
from agentrunner.runtime.events import EventBus, EventType
from agentrunner.runtime.state import ToolCallRequest, ToolCallResult
from agentrunner.utils.logging_utils import log_tool_call, log_tool_result

if TYPE_CHECKING:
    from agentrunner.agents.schema import Agent

LOGGER = logging.getLogger(__name__)


def _log_detached_outcome(task: "asyncio.Task[Any]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        LOGGER.warning(f"Timed-out tool task {task.get_name()} later failed: {type(exc).__name__}: {exc}")
    else:
        LOGGER.debug(f"Timed-out tool task {task.get_name()} finished after its timeout")


class ToolDispatcher:
    """Runs every tool call of a turn concurrently behind a single barrier.

    Results come back in request order regardless of completion order. A
    failure in one call never affects its siblings: errors are captured as
    ToolCallResult entries for the model to see.
    """

    def __init__(
        self,
        default_timeout: float = 30.0,
        event_bus: Optional[EventBus] = None,
    ) -> None:
        self.default_timeout = default_timeout
        self.event_bus = event_bus or EventBus()

    async def dispatch(
        self,
        agent: "Agent",
        requests: Sequence[ToolCallRequest],
        context: Any,
        run_id: str = "",
    ) -> List[ToolCallResult]:
        if not requests:
            return []
        LOGGER.info(f"Dispatching {len(requests)} tool call(s) for agent {agent.name}")
        tasks = [
            asyncio.create_task(self._run_one(agent, request, context, run_id), name=f"dispatch:{request.call_id}")
            for request in requests
        ]
        # _run_one never raises
        return list(await asyncio.gather(*tasks))

    async def _run_one(
        self,
        agent: "Agent",
        request: ToolCallRequest,
        context: Any,
        run_id: str,
    ) -> ToolCallResult:
        await self.event_bus.publish(
            EventType.TOOL_CALL_STARTED,
            run_id,
            agent.name,
            call_id=request.call_id,
            tool_name=request.tool_name,
            args=request.args,
        )
        log_tool_call(LOGGER, request.tool_name, request.call_id, request.args)
        started = time.perf_counter()
        result = await self._execute(agent, request, context)
        result = ToolCallResult(
            call_id=result.call_id,
            tool_name=result.tool_name,
            value=result.value,
            error=result.error,
            error_kind=result.error_kind,
            duration=time.perf_counter() - started,
        )
        log_tool_result(
            LOGGER,
            request.tool_name,
            result.value if result.ok else result.error,
            success=result.ok,
            duration=result.duration,
        )
        await self.event_bus.publish(
            EventType.TOOL_CALL_ENDED,
            run_id,
            agent.name,
            call_id=request.call_id,
            tool_name=request.tool_name,
            ok=result.ok,
            error_kind=result.error_kind,
            duration=result.duration,
        )
        return result

    async def _execute(self, agent: "Agent", request: ToolCallRequest, context: Any) -> ToolCallResult:
        if request.error is not None:
            return self._error(request, f"Invalid arguments for {request.tool_name}: {request.error}", "invalid_arguments")

        tool = agent.registry.get_optional(request.tool_name)
        if tool is None:
            available = ", ".join(agent.registry.names()) or "none"
            return self._error(
                request,
                f"Unknown tool: {request.tool_name}. Available tools: {available}",
                "unknown_tool",
            )

        try:
            args = tool.validate_args(request.args)
        except ValidationError as e:
            return self._error(request, f"Invalid arguments for {tool.name}: {e}", "invalid_arguments")

        timeout = tool.timeout if tool.timeout is not None else self.default_timeout
        task = asyncio.create_task(tool.run(args, context), name=f"tool:{tool.name}:{request.call_id}")
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task not in done:
            # Left running; only its outcome is observed from here on
            task.add_done_callback(_log_detached_outcome)
            error = ToolTimeoutError(f"Tool '{tool.name}' timed out after {timeout:g}s")
            return self._error(request, str(error), error.kind)

        if task.cancelled():
            error = ToolExecutionError(f"Tool '{tool.name}' was cancelled")
            return self._error(request, str(error), error.kind)

        exc = task.exception()
        if exc is not None:
            LOGGER.debug(f"Tool {tool.name} raised", exc_info=exc)
            error = ToolExecutionError(f"Tool '{tool.name}' failed: {type(exc).__name__}: {exc}")
            return self._error(request, str(error), error.kind)

        return ToolCallResult(call_id=request.call_id, tool_name=request.tool_name, value=task.result())

    @staticmethod
    def _error(request: ToolCallRequest, message: str, kind: str) -> ToolCallResult:
        return ToolCallResult(call_id=request.call_id, tool_name=request.tool_name, error=message, error_kind=kind)

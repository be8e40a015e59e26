"""Execution engine: the step loop driving one run.

Each iteration invokes the model for the active agent, then either
validates a final answer or executes the requested tools behind a single
dispatch barrier. Tool results may hand the run to another agent or suspend
it for human approval.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage
from pydantic import ValidationError

from agentrunner.agents.handoff_tools import TransferRequest
from agentrunner.agents.schema import Agent
from agentrunner.config import Settings, get_settings
from agentrunner.guardrails.base import GuardrailDirection
from agentrunner.guardrails.engine import GuardrailEngine, GuardrailOutcome, revision_directive
from agentrunner.hitl.approval_manager import ApprovalDecision, ApprovalManager
from agentrunner.models.gateway import ModelGateway, ModelResponse
from agentrunner.persistence.session_store import SessionStore
from agentrunner.tools.base import maybe_await
from agentrunner.tools.dispatcher import ToolDispatcher
from agentrunner.utils.logging_utils import log_error
from agentrunner.utils.message_utils import extract_user_query, render_tool_content

from .cancellation import CancellationToken
from .errors import (
    InvalidRunStateError,
    ModelGatewayError,
    OutputGuardrailExhausted,
    RaceFailed,
    RaceTimeout,
    RunFailedError,
    StepLimitExceeded,
    UnknownTransferTarget,
)
from .events import EventBus, EventType
from .interruption import Interruption
from .state import AgentMetrics, RunState, RunStatus, TokenUsage, ToolCallRequest, ToolCallResult, dedupe_call_ids
from .transfers import TransferManager, find_transfer

LOGGER = logging.getLogger(__name__)

OUTPUT_SCHEMA_CHECK = "output_schema"

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


@dataclass
class RunResult:
    """Outcome of a run that reached a final output."""

    final_output: Any
    messages: List[BaseMessage]
    agent_metrics: Dict[str, AgentMetrics]
    transfer_chain: List[str]
    step_count: int
    last_agent: Agent
    usage: TokenUsage
    duration: float
    run_id: str = ""


def _strip_code_fence(text: str) -> str:
    match = _CODE_FENCE.match(text.strip())
    return match.group(1) if match else text


class Runner:
    """Drives runs for a model gateway.

    Collaborators are injected; nothing is looked up globally except the
    default settings when none are given.
    """

    def __init__(
        self,
        gateway: ModelGateway,
        *,
        settings: Optional[Settings] = None,
        session_store: Optional[SessionStore] = None,
        event_bus: Optional[EventBus] = None,
        guardrail_retry_budget: Optional[int] = None,
        tool_timeout: Optional[float] = None,
        isolate_transfers: Optional[bool] = None,
    ) -> None:
        self.gateway = gateway
        self.settings = settings or get_settings()
        governance = self.settings.governance

        self.guardrail_retry_budget = (
            guardrail_retry_budget if guardrail_retry_budget is not None else governance.guardrail_retry_budget
        )
        if self.guardrail_retry_budget < 0:
            raise ValueError(f"guardrail_retry_budget must be >= 0, got {self.guardrail_retry_budget}")

        self.session_store = session_store
        self.event_bus = event_bus or EventBus()
        self.guardrails = GuardrailEngine(self.event_bus)
        self.dispatcher = ToolDispatcher(
            default_timeout=tool_timeout if tool_timeout is not None else governance.tool_timeout_seconds,
            event_bus=self.event_bus,
        )
        self.approvals = ApprovalManager(self.event_bus)
        self.transfers = TransferManager(
            isolate_by_default=isolate_transfers if isolate_transfers is not None else governance.isolate_transfers,
            guardrail_engine=self.guardrails,
            event_bus=self.event_bus,
        )

    # ========== Entry points ==========

    async def start(
        self,
        agent: Agent,
        input: Union[str, Sequence[BaseMessage]],
        context: Any = None,
        *,
        step_limit: Optional[int] = None,
        session_id: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Union[RunResult, Interruption]:
        """Run ``agent`` on ``input`` until a final output, a suspension, or a failure.

        Returns:
            RunResult on final output, Interruption when tool calls await approval

        Raises:
            RunFailedError: Any fatal failure; ``.state`` holds the failed RunState
        """
        limit = step_limit if step_limit is not None else agent.step_limit
        if limit is None:
            limit = self.settings.governance.max_steps
        if limit < 1:
            raise ValueError(f"step_limit must be positive, got {limit}")

        messages = [HumanMessage(content=input)] if isinstance(input, str) else list(input)
        state = RunState(
            active_agent=agent,
            original_input=extract_user_query(input),
            messages=[],
            step_limit=limit,
            context=context,
            session_id=session_id,
        )
        LOGGER.info(f"Run {state.run_id} started with agent {agent.name} (step limit {limit})")
        return await self._drive(state, self._start(state, messages, cancel_token))

    async def resume(
        self,
        interruption: Interruption,
        decisions: Iterable[ApprovalDecision],
        *,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Union[RunResult, Interruption]:
        """Apply approval decisions and continue a suspended run.

        Returns a new Interruption while some pending calls are still undecided.

        Raises:
            InvalidRunStateError: The run is not suspended or a decision names an unknown call
            RunFailedError: Any fatal failure after resuming
        """
        state = interruption.state
        if state.status != RunStatus.AWAITING_APPROVAL or not state.pending_approvals:
            raise InvalidRunStateError(f"Run {state.run_id} is not awaiting approval (status: {state.status.value})")

        await self.approvals.apply_decisions(state, decisions)
        if state.pending_approvals:
            LOGGER.info(f"Run {state.run_id} still waiting on {len(state.pending_approvals)} approval(s)")
            return Interruption(state)

        requests = list(state.pending_tool_calls)
        rejected = self.approvals.rejections(state)
        state.pending_tool_calls = []
        state.status = RunStatus.RUNNING
        LOGGER.info(f"Run {state.run_id} resumed: {len(requests) - len(rejected)} approved, {len(rejected)} rejected")
        return await self._drive(state, self._resume(state, requests, rejected, cancel_token))

    # ========== Run driver ==========

    async def _drive(self, state: RunState, body: Awaitable[Union[RunResult, Interruption]]) -> Union[RunResult, Interruption]:
        try:
            return await body
        except RunFailedError as e:
            state.fail(e)
            log_error(LOGGER, e, context=f"run {state.run_id}, agent {state.active_agent.name}, step {state.step_number}")
            await self.event_bus.publish(EventType.AGENT_ENDED, state.run_id, state.active_agent.name, reason=e.cause)
            await self.event_bus.publish(
                EventType.RUN_ENDED,
                state.run_id,
                state.active_agent.name,
                status=state.status.value,
                cause=e.cause,
                error=str(e),
            )
            raise

    async def _start(
        self,
        state: RunState,
        messages: List[BaseMessage],
        cancel_token: Optional[CancellationToken],
    ) -> Union[RunResult, Interruption]:
        agent = state.active_agent
        await self.event_bus.publish(EventType.RUN_STARTED, state.run_id, agent.name, input=state.original_input)
        self._check_cancelled(cancel_token)

        history = await self._load_history(state.session_id)
        state.replace_messages(history + messages)

        await self.event_bus.publish(EventType.AGENT_STARTED, state.run_id, agent.name)
        await self.guardrails.check_input(agent.guardrails, state.original_input, run_id=state.run_id, agent_name=agent.name)
        return await self._loop(state, cancel_token)

    async def _resume(
        self,
        state: RunState,
        requests: List[ToolCallRequest],
        rejected: Dict[str, ToolCallResult],
        cancel_token: Optional[CancellationToken],
    ) -> Union[RunResult, Interruption]:
        await self._dispatch_turn(state, requests, rejected, cancel_token)
        return await self._loop(state, cancel_token)

    async def _loop(self, state: RunState, cancel_token: Optional[CancellationToken]) -> Union[RunResult, Interruption]:
        while True:
            self._check_cancelled(cancel_token)
            if state.step_number >= state.step_limit:
                raise StepLimitExceeded(state.step_limit)

            response = await self._call_model(state)

            if response.tool_calls:
                state.append(response.to_message())
                pending = await self.approvals.classify(
                    state.active_agent, response.tool_calls, state.context, state.run_id
                )
                if pending:
                    state.suspend(response.tool_calls, pending)
                    LOGGER.info(f"Run {state.run_id} suspended for {len(pending)} approval(s)")
                    return Interruption(state)
                await self._dispatch_turn(state, response.tool_calls, {}, cancel_token)
                continue

            accepted, output = await self._check_output(state, response)
            if accepted:
                return await self._finish(state, response, output)

    # ========== Steps ==========

    async def _call_model(self, state: RunState) -> ModelResponse:
        agent = state.active_agent
        instructions = await agent.resolve_instructions(state.context)
        state.step_number += 1
        LOGGER.debug(f"Step {state.step_number}/{state.step_limit}: invoking model for {agent.name}")

        try:
            response = await self.gateway.invoke(
                instructions=instructions,
                messages=list(state.messages),
                tools=agent.tool_schemas(),
                output_schema=agent.output_schema,
                model=agent.model,
            )
        except RunFailedError:
            raise
        except Exception as e:  # noqa: BLE001
            raise ModelGatewayError(f"Model call failed for agent {agent.name}: {type(e).__name__}: {e}") from e

        response.tool_calls = dedupe_call_ids(response.tool_calls)
        state.record_turn(agent.name, response.usage, len(response.tool_calls))
        await self.event_bus.publish(
            EventType.MODEL_CALL,
            state.run_id,
            agent.name,
            step=state.step_number,
            tool_calls=[call.tool_name for call in response.tool_calls],
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return response

    async def _dispatch_turn(
        self,
        state: RunState,
        requests: Sequence[ToolCallRequest],
        precomputed: Dict[str, ToolCallResult],
        cancel_token: Optional[CancellationToken],
    ) -> None:
        self._check_cancelled(cancel_token)
        agent = state.active_agent

        to_run = [request for request in requests if request.call_id not in precomputed]
        executed = await self.dispatcher.dispatch(agent, to_run, state.context, state.run_id)

        by_id = {result.call_id: result for result in executed}
        by_id.update(precomputed)
        results = [by_id[request.call_id] for request in requests]

        transfer = find_transfer(results)
        unknown: Optional[UnknownTransferTarget] = None
        if transfer and agent.get_transfer_target(transfer[1].agent_name) is None:
            unknown = UnknownTransferTarget(transfer[1].agent_name, agent.name)
            chosen = transfer[0]
            failed = ToolCallResult(
                call_id=chosen.call_id,
                tool_name=chosen.tool_name,
                error=str(unknown),
                error_kind="unknown_transfer_target",
                duration=chosen.duration,
            )
            results = [failed if result.call_id == chosen.call_id else result for result in results]
            transfer = None

        chosen_id = transfer[0].call_id if transfer else None
        state.append(*[self._tool_message(result, chosen_id) for result in results])
        if unknown is not None:
            raise unknown

        self._check_cancelled(cancel_token)
        if transfer:
            await self.transfers.apply(state, transfer[1])

    async def _check_output(self, state: RunState, response: ModelResponse) -> Tuple[bool, Any]:
        agent = state.active_agent
        text = response.text
        output: Any = text

        if agent.output_schema is not None:
            try:
                output = agent.output_schema.model_validate_json(_strip_code_fence(text))
            except ValidationError as e:
                outcome = GuardrailOutcome(
                    passed=False,
                    guardrail_name=OUTPUT_SCHEMA_CHECK,
                    message=f"Response is not valid {agent.output_schema.__name__} JSON: {e.error_count()} error(s): {e.errors()[0]['msg']}",
                )
                return self._reject_output(state, response, outcome)
            state.guardrail_failures.pop(OUTPUT_SCHEMA_CHECK, None)

        outcome = await self.guardrails.validate(
            agent.guardrails,
            text,
            GuardrailDirection.OUTPUT,
            run_id=state.run_id,
            agent_name=agent.name,
        )
        for name in outcome.passed_names:
            state.guardrail_failures.pop(name, None)
        if not outcome.passed:
            return self._reject_output(state, response, outcome)
        return True, output

    def _reject_output(self, state: RunState, response: ModelResponse, outcome: GuardrailOutcome) -> Tuple[bool, Any]:
        name = outcome.guardrail_name or "output"
        failures = state.guardrail_failures.get(name, 0) + 1
        state.guardrail_failures[name] = failures
        if failures > self.guardrail_retry_budget:
            raise OutputGuardrailExhausted(name, failures, outcome.message)

        LOGGER.info(f"Output rejected by '{name}' ({failures}/{self.guardrail_retry_budget}); asking for a revision")
        state.append(response.to_message(), revision_directive(outcome))
        return False, None

    async def _finish(self, state: RunState, response: ModelResponse, output: Any) -> RunResult:
        agent = state.active_agent
        state.append(response.to_message())
        state.status = RunStatus.FINAL_OUTPUT

        if self.session_store is not None and state.session_id:
            history = await self._load_history(state.session_id)
            await maybe_await(
                self.session_store.save(
                    state.session_id,
                    history + [HumanMessage(content=state.original_input), AIMessage(content=response.text)],
                )
            )

        LOGGER.info(
            f"Run {state.run_id} finished with agent {agent.name} after {state.step_number} step(s), "
            f"{state.usage.total_tokens} token(s)"
        )
        await self.event_bus.publish(EventType.AGENT_ENDED, state.run_id, agent.name, reason="final_output")
        await self.event_bus.publish(
            EventType.RUN_ENDED,
            state.run_id,
            agent.name,
            status=state.status.value,
            steps=state.step_number,
        )
        return RunResult(
            final_output=output,
            messages=list(state.messages),
            agent_metrics=dict(state.agent_metrics),
            transfer_chain=list(state.transfer_chain),
            step_count=state.step_number,
            last_agent=agent,
            usage=state.usage,
            duration=state.duration,
            run_id=state.run_id,
        )

    # ========== Helpers ==========

    async def _load_history(self, session_id: Optional[str]) -> List[BaseMessage]:
        if self.session_store is None or not session_id:
            return []
        return list(await maybe_await(self.session_store.load(session_id)) or [])

    @staticmethod
    def _check_cancelled(cancel_token: Optional[CancellationToken]) -> None:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

    @staticmethod
    def _tool_message(result: ToolCallResult, transfer_call_id: Optional[str]) -> ToolMessage:
        if not result.ok:
            return ToolMessage(
                content=f"Error: {result.error}",
                tool_call_id=result.call_id,
                name=result.tool_name,
                status="error",
            )

        if isinstance(result.value, TransferRequest):
            if result.call_id == transfer_call_id:
                content = f"Transferred to {result.value.agent_name}."
            else:
                content = f"Transfer to {result.value.agent_name} not performed: another transfer in this turn was used."
            return ToolMessage(content=content, tool_call_id=result.call_id, name=result.tool_name)

        return ToolMessage(
            content=render_tool_content(result.value),
            tool_call_id=result.call_id,
            name=result.tool_name,
        )


async def run(
    agent: Agent,
    input: Union[str, Sequence[BaseMessage]],
    gateway: ModelGateway,
    context: Any = None,
    **kwargs: Any,
) -> Union[RunResult, Interruption]:
    """One-shot helper: build a Runner with default settings and start a run."""
    return await Runner(gateway).start(agent, input, context, **kwargs)


@dataclass
class RaceResult:
    """Outcome of a race: the agent whose run returned first and what it returned."""

    winner: Agent
    result: Union[RunResult, Interruption]
    participants: List[str]


async def race(
    agents: Sequence[Agent],
    input: Union[str, Sequence[BaseMessage]],
    gateway: ModelGateway,
    context: Any = None,
    *,
    timeout: Optional[float] = None,
    runner: Optional[Runner] = None,
    **kwargs: Any,
) -> RaceResult:
    """Start one run per agent on the same input; the first run to return wins.

    A run that fails does not end the race while others are still going. Once
    a winner is known the remaining runs are cancelled.

    Args:
        agents: Competing agents, with distinct names
        input: Input handed to every run
        gateway: Gateway used when no runner is given
        context: Shared run context
        timeout: Seconds to wait for a winner (None waits indefinitely)
        runner: Runner to start the runs with (default ``Runner(gateway)``)
        **kwargs: Forwarded to ``Runner.start``

    Raises:
        ValueError: No agents, or two agents share a name
        RaceFailed: Every run failed; ``.errors`` maps agent name to its error
        RaceTimeout: No run returned within ``timeout``
    """
    agents = list(agents)
    if not agents:
        raise ValueError("race needs at least one agent")
    names = [agent.name for agent in agents]
    if len(set(names)) != len(names):
        raise ValueError(f"Raced agents must have distinct names, got {names}")

    runner = runner or Runner(gateway)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout if timeout is not None else None

    tasks = {
        asyncio.create_task(runner.start(agent, input, context, **kwargs), name=f"race:{agent.name}"): agent
        for agent in agents
    }
    pending = set(tasks)
    errors: Dict[str, BaseException] = {}
    LOGGER.info(f"Race started between {', '.join(names)}")

    try:
        while pending:
            remaining = None if deadline is None else max(deadline - loop.time(), 0.0)
            done, pending = await asyncio.wait(pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
            if not done:
                LOGGER.warning(f"Race timed out after {timeout}s with {len(pending)} run(s) unfinished")
                raise RaceTimeout(timeout)

            # Ties go to the earlier agent
            for task in [task for task in tasks if task in done]:
                agent = tasks[task]
                error = task.exception()
                if error is None:
                    LOGGER.info(f"Race won by {agent.name}; cancelling {len(pending)} other run(s)")
                    return RaceResult(winner=agent, result=task.result(), participants=names)
                LOGGER.warning(f"Raced agent {agent.name} failed: {type(error).__name__}: {error}")
                errors[agent.name] = error

        raise RaceFailed(errors)
    finally:
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

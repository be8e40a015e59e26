"""Unit tests for transfer bookkeeping."""

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from agentrunner.agents import (
    Agent,
    TransferRequest,
    TransferTarget,
    keep_last_message,
    keep_last_messages,
    keep_messages_only,
    remove_all_tools,
)
from agentrunner.guardrails import regex_guardrail
from agentrunner.runtime.errors import InputGuardrailRejection, UnknownTransferTarget
from agentrunner.runtime.events import EventBus, EventType
from agentrunner.runtime.state import RunState, ToolCallResult
from agentrunner.runtime.transfers import TransferManager, find_transfer, transfer_payload


def _state(agent):
    return RunState(
        active_agent=agent,
        original_input="refund order 7",
        messages=[HumanMessage(content="refund order 7"), AIMessage(content="looking it up")],
        step_limit=10,
    )


class TestIsolation:
    def test_precedence(self):
        manager = TransferManager(isolate_by_default=True)
        target = TransferTarget(Agent(name="b"), isolated=False)

        assert manager.resolve_isolation(TransferRequest("b", isolated=True), target) is True
        assert manager.resolve_isolation(TransferRequest("b"), target) is False
        assert manager.resolve_isolation(TransferRequest("b"), TransferTarget(Agent(name="b"))) is True
        assert TransferManager(isolate_by_default=False).resolve_isolation(
            TransferRequest("b"), TransferTarget(Agent(name="b"))
        ) is False

    @pytest.mark.asyncio
    async def test_isolated_transfer_resets_history(self):
        billing = Agent(name="billing")
        state = _state(Agent(name="triage", transfer_targets=[billing]))
        state.guardrail_failures["length_check"] = 1

        new_agent = await TransferManager().apply(state, TransferRequest("billing", reason="refund", payload="Order 7"))

        assert new_agent is billing
        assert state.active_agent is billing
        assert state.transfer_chain == ["billing"]
        assert state.guardrail_failures == {}
        assert [m.content for m in state.messages] == ["refund order 7", "[Transfer from triage] Order 7"]

    @pytest.mark.asyncio
    async def test_shared_transfer_appends_note(self):
        billing = Agent(name="billing")
        state = _state(Agent(name="triage", transfer_targets=[TransferTarget(billing, isolated=False)]))

        await TransferManager().apply(state, TransferRequest("billing", reason="refund"))

        assert len(state.messages) == 3
        assert state.messages[-1].content == "[Transfer from triage] refund"

    @pytest.mark.asyncio
    async def test_unknown_target(self):
        state = _state(Agent(name="triage"))
        with pytest.raises(UnknownTransferTarget):
            await TransferManager().apply(state, TransferRequest("nobody"))

    @pytest.mark.asyncio
    async def test_target_input_guardrails_check_payload(self):
        guarded = Agent(name="billing", guardrails=[regex_guardrail([r"triage"], direction="input")])
        state = _state(Agent(name="triage", transfer_targets=[guarded]))

        with pytest.raises(InputGuardrailRejection):
            await TransferManager().apply(state, TransferRequest("billing", payload="escalated by triage"))

    @pytest.mark.asyncio
    async def test_preamble_is_not_checked(self):
        guarded = Agent(name="billing", guardrails=[regex_guardrail([r"Transfer from"], direction="input")])
        state = _state(Agent(name="triage", transfer_targets=[guarded]))

        await TransferManager().apply(state, TransferRequest("billing", payload="Order 7"))

        assert state.active_agent is guarded

    @pytest.mark.asyncio
    async def test_events(self):
        bus = EventBus()
        events = []
        bus.subscribe(events.append)
        state = _state(Agent(name="triage", transfer_targets=[Agent(name="billing")]))

        await TransferManager(event_bus=bus).apply(state, TransferRequest("billing"))

        assert [e.type for e in events] == [EventType.AGENT_ENDED, EventType.TRANSFER, EventType.AGENT_STARTED]
        assert events[1].data["to_agent"] == "billing"


class TestHelpers:
    def test_find_transfer_takes_first_successful(self):
        results = [
            ToolCallResult("c1", "search", value="x"),
            ToolCallResult("c2", "transfer_to_a", error="boom"),
            ToolCallResult("c3", "transfer_to_b", value=TransferRequest("b")),
            ToolCallResult("c4", "transfer_to_c", value=TransferRequest("c")),
        ]

        result, request = find_transfer(results)

        assert result.call_id == "c3"
        assert request.agent_name == "b"
        assert find_transfer(results[:2]) is None

    def test_payload_fallbacks(self):
        assert transfer_payload(TransferRequest("b", reason="r", payload="p")) == "p"
        assert transfer_payload(TransferRequest("b", reason="r")) == "r"
        assert transfer_payload(TransferRequest("b")) == "Continue the task."


def _conversation():
    return [
        SystemMessage(content="be brief"),
        HumanMessage(content="refund order 7"),
        AIMessage(content="Checking.", tool_calls=[{"name": "lookup", "args": {"id": 7}, "id": "c1"}]),
        ToolMessage(content="paid", tool_call_id="c1", name="lookup"),
        AIMessage(content="", tool_calls=[{"name": "transfer_to_billing", "args": {}, "id": "c2"}]),
        ToolMessage(content="Transferred to billing.", tool_call_id="c2", name="transfer_to_billing"),
    ]


class TestInputFilters:
    def test_remove_all_tools_keeps_assistant_text(self):
        filtered = remove_all_tools(_conversation())

        assert [type(m).__name__ for m in filtered] == ["SystemMessage", "HumanMessage", "AIMessage"]
        assert filtered[2].content == "Checking."
        assert filtered[2].tool_calls == []

    def test_keep_last_messages_drops_orphaned_results(self):
        window = keep_last_messages(3)(_conversation())
        assert [type(m).__name__ for m in window] == ["AIMessage", "ToolMessage"]
        assert window[0].tool_calls[0]["id"] == "c2"

    def test_keep_last_messages_window(self):
        window = keep_last_messages(4)(_conversation())
        assert [type(m).__name__ for m in window] == ["AIMessage", "ToolMessage", "AIMessage", "ToolMessage"]
        assert keep_last_message([HumanMessage(content="a"), AIMessage(content="b")])[0].content == "b"

    def test_keep_last_messages_rejects_non_positive(self):
        with pytest.raises(ValueError):
            keep_last_messages(0)

    def test_keep_messages_only(self):
        filtered = keep_messages_only(_conversation() + [AIMessage(content="Refund queued.")])
        assert [m.content for m in filtered] == ["refund order 7", "Refund queued."]

    @pytest.mark.asyncio
    async def test_manager_filters_shared_history(self):
        billing = Agent(name="billing")
        target = TransferTarget(billing, isolated=False, input_filter=keep_messages_only)
        state = _state(Agent(name="triage", transfer_targets=[target]))
        state.replace_messages(_conversation())

        await TransferManager().apply(state, TransferRequest("billing", reason="refund"))

        assert [m.content for m in state.messages] == ["refund order 7", "[Transfer from triage] refund"]

    @pytest.mark.asyncio
    async def test_manager_ignores_filter_when_isolated(self):
        billing = Agent(name="billing")
        target = TransferTarget(billing, isolated=True, input_filter=keep_last_message)
        state = _state(Agent(name="triage", transfer_targets=[target]))

        await TransferManager().apply(state, TransferRequest("billing", reason="refund"))

        assert [m.content for m in state.messages] == ["refund order 7", "[Transfer from triage] refund"]

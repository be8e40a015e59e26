"""Unit tests for Agent construction, transfer tools and Tool wrappers."""

import pytest
from langchain_core.tools import tool as lc_tool
from pydantic import BaseModel

from agentrunner.agents import (
    Agent,
    TransferRequest,
    TransferTarget,
    collect_agents,
    remove_all_tools,
    transfer_tool_name,
)
from agentrunner.guardrails import GuardrailDirection, length_guardrail, regex_guardrail
from agentrunner.tools import Tool, ToolRegistry


class SearchArgs(BaseModel):
    query: str
    limit: int = 5


def _tool(name):
    return Tool(name=name, description=f"{name} tool", execute=lambda args, context: name)


class TestAgentToolMap:
    def test_user_tools_and_transfer_tools(self):
        billing = Agent(name="Billing", transfer_description="Handles invoices")
        agent = Agent(name="triage", tools=[_tool("search")], transfer_targets=[billing])

        assert agent.registry.names() == ["search", "transfer_to_billing"]
        assert isinstance(agent.transfer_targets[0], TransferTarget)
        assert agent.get_transfer_target("Billing").agent is billing
        assert agent.get_transfer_target("nobody") is None

    def test_duplicate_tool_names(self):
        with pytest.raises(ValueError, match="Duplicate tool name"):
            Agent(name="a", tools=[_tool("search"), _tool("search")])

    def test_user_tool_clashing_with_transfer_tool(self):
        with pytest.raises(ValueError):
            Agent(name="a", tools=[_tool("transfer_to_b")], transfer_targets=[Agent(name="b")])

    def test_cycle_via_add_transfer_target(self):
        a = Agent(name="a")
        b = Agent(name="b", transfer_targets=[a])
        a.add_transfer_target(b, isolated=False)

        assert "transfer_to_b" in a.registry
        assert a.get_transfer_target("b").isolated is False
        assert set(collect_agents(a)) == {"a", "b"}

    def test_add_transfer_target_rolls_back_on_conflict(self):
        a = Agent(name="a", transfer_targets=[Agent(name="b")])

        with pytest.raises(ValueError):
            a.add_transfer_target(Agent(name="b"))

        assert len(a.transfer_targets) == 1

    def test_collect_agents_rejects_name_clash(self):
        root = Agent(name="root", transfer_targets=[Agent(name="x"), TransferTarget(Agent(name="y", transfer_targets=[Agent(name="x")]))])
        with pytest.raises(ValueError, match="Two different agents"):
            collect_agents(root)

    def test_guardrails_split_by_direction(self):
        agent = Agent(
            name="a",
            guardrails=[regex_guardrail(["secret"], direction="input"), length_guardrail(max_length=10)],
        )
        assert [g.direction for g in agent.input_guardrails()] == [GuardrailDirection.INPUT]
        assert [g.direction for g in agent.output_guardrails()] == [GuardrailDirection.OUTPUT]

    def test_invalid_step_limit(self):
        with pytest.raises(ValueError):
            Agent(name="a", step_limit=0)

    @pytest.mark.asyncio
    async def test_instructions_callable(self):
        async def instructions(context, agent):
            return f"Help {context['user']} as {agent.name}"

        agent = Agent(name="helper", instructions=instructions)

        assert await agent.resolve_instructions({"user": "alice"}) == "Help alice as helper"
        assert await Agent(name="plain", instructions="Be brief").resolve_instructions(None) == "Be brief"


class TestTransferTools:
    def test_tool_name_slug(self):
        assert transfer_tool_name("Billing Agent") == "transfer_to_billing_agent"
        assert transfer_tool_name("research-v2") == "transfer_to_research-v2"

    @pytest.mark.asyncio
    async def test_transfer_tool_returns_request(self):
        target = Agent(name="b")
        agent = Agent(name="a", transfer_targets=[TransferTarget(target, isolated=False, tool_name="escalate")])
        tool = agent.registry.get_tool("escalate")

        result = await tool.run(tool.validate_args({"reason": "needs billing", "payload": "refund order 7"}), None)

        assert result == TransferRequest(agent_name="b", reason="needs billing", payload="refund order 7", isolated=False)

    @pytest.mark.asyncio
    async def test_transfer_tool_carries_target_filter(self):
        agent = Agent(name="a")
        agent.add_transfer_target(Agent(name="b"), input_filter=remove_all_tools)
        tool = agent.registry.get_tool("transfer_to_b")

        result = await tool.run(tool.validate_args({"reason": "r"}), None)

        assert result.input_filter is remove_all_tools
        assert agent.get_transfer_target("b").input_filter is remove_all_tools

    def test_transfer_tool_schema(self):
        agent = Agent(name="a", transfer_targets=[Agent(name="b", transfer_description="Knows billing")])
        schema = agent.registry.get_tool("transfer_to_b").schema()["function"]

        assert "Knows billing" in schema["description"]
        assert schema["parameters"]["required"] == ["reason"]


class TestTool:
    def test_schema_from_input_model(self):
        search = Tool(name="search", description="Search docs", execute=lambda a, c: [], input_schema=SearchArgs)
        schema = search.schema()

        assert schema["type"] == "function"
        assert schema["function"]["name"] == "search"
        assert set(schema["function"]["parameters"]["properties"]) == {"query", "limit"}

    def test_validate_args_applies_defaults(self):
        search = Tool(name="search", description="Search docs", execute=lambda a, c: [], input_schema=SearchArgs)
        assert search.validate_args({"query": "x"}) == {"query": "x", "limit": 5}

    def test_rejects_bad_severity(self):
        with pytest.raises(ValueError):
            Tool(name="x", description="x", execute=lambda a, c: None, severity="extreme")

    @pytest.mark.asyncio
    async def test_from_langchain(self):
        @lc_tool
        def add(a: int, b: int) -> int:
            """Add two integers."""
            return a + b

        wrapped = Tool.from_langchain(add, timeout=2.0)

        assert wrapped.name == "add"
        assert wrapped.timeout == 2.0
        assert set(wrapped.schema()["function"]["parameters"]["properties"]) == {"a", "b"}
        assert await wrapped.run({"a": 2, "b": 3}, None) == 5

    def test_registry_lookup(self):
        registry = ToolRegistry([_tool("a")])
        assert registry.get_tool("a").name == "a"
        assert len(registry) == 1
        with pytest.raises(KeyError, match="Unknown tool: b"):
            registry.get_tool("b")

"""Tests for the in-process agent registry and the budget manager."""

import asyncio

import pytest
from agentgraph.budget import InMemoryBudgetManager
from agentgraph.errors import BudgetError, InvocationError
from agentgraph.protocols import AgentInvoker, AgentLookup, BudgetManager, InvocationResult
from agentgraph.registry import AgentRegistry, LocalAgentInvoker, get_agent, register_agent, unregister_agent


def test_register_and_resolve():
    @register_agent("test-echo")
    def echo(message):
        return message

    try:
        assert get_agent("test-echo") is echo
        descriptor = AgentRegistry().resolve("test-echo")
        assert descriptor.endpoint_ref == "test-echo"
        assert AgentRegistry(include_registered=False).resolve("test-echo") is None
    finally:
        unregister_agent("test-echo")

    with pytest.raises(InvocationError, match="not registered"):
        get_agent("test-echo")


def test_added_descriptor_maps_endpoint():
    registry = AgentRegistry()
    registry.add("summarizer-v1", endpoint_ref="https://agents.example.com/sum", pricing={"perCall": "0.01"})

    descriptor = registry.resolve("summarizer-v1")

    assert descriptor.endpoint_ref == "https://agents.example.com/sum"
    assert descriptor.pricing == {"perCall": "0.01"}
    assert registry.resolve("unknown") is None


def test_local_invoker_handles_sync_and_async_agents():
    async def shout(message):
        return {"response": message.upper(), "cost": "0.2"}

    invoker = LocalAgentInvoker({"sync": lambda m: f"got {m}", "async": shout})

    sync_result = asyncio.run(invoker.invoke("sync", "hi"))
    async_result = asyncio.run(invoker.invoke("async", "hi"))

    assert sync_result == InvocationResult(response="got hi")
    assert async_result == InvocationResult(response="HI", cost="0.2")


def test_local_invoker_wraps_agent_errors():
    def broken(message):
        raise ValueError("bad input")

    invoker = LocalAgentInvoker({"broken": broken})

    with pytest.raises(InvocationError, match="bad input") as excinfo:
        asyncio.run(invoker.invoke("broken", "hi"))

    assert excinfo.value.agent_ref == "broken"


def test_collaborators_satisfy_protocols():
    assert isinstance(LocalAgentInvoker({}), AgentInvoker)
    assert isinstance(AgentRegistry(), AgentLookup)
    assert isinstance(InMemoryBudgetManager("1"), BudgetManager)


def test_budget_reserve_and_settle():
    budget = InMemoryBudgetManager("2.00")

    assert budget.reserve("run_1", "1.50") is True
    assert budget.reserve("run_2", "1.00") is False
    assert budget.balance == "0.50"

    refund = budget.settle("run_1", "0.25")

    assert refund == "1.25"
    assert budget.balance == "1.75"


def test_budget_rejects_malformed_amounts():
    budget = InMemoryBudgetManager("1")

    with pytest.raises(BudgetError):
        budget.reserve("run_1", "lots")

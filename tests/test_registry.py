"""
Unit tests for the agent registry.
"""
import sys

import pytest

from aics.services.ai.agents.base import AGENT_CATALOG, Agent, agent_name
from aics.services.ai.registry import AgentNotFoundError, AgentRegistry, build_default_registry
from aics.services.ai.schema import AgentId, AgentInput, AgentOutput

from conftest import FakeLLMClient, InMemoryRepository


class EchoAgent(Agent):
    agent_id = AgentId.FAQ

    async def run(self, agent_input: AgentInput) -> AgentOutput:
        return AgentOutput(agent_id=self.agent_id, content=agent_input.message, confidence=1.0)


def make_input(message="hello"):
    return AgentInput(conversation_id="c", message_id="m", original_message=message, user_id="u")


def test_default_registry_has_all_agents():
    registry = build_default_registry(FakeLLMClient(), InMemoryRepository())

    assert set(registry.list_registered()) == set(AgentId)
    assert all(registry.is_registered(agent_id) for agent_id in AgentId)


def test_catalog_covers_every_agent():
    assert set(AGENT_CATALOG) == set(AgentId)
    assert AGENT_CATALOG[AgentId.HARDWARE_DIAGNOSIS].max_tokens == 2000
    assert AGENT_CATALOG[AgentId.TICKET].name_en == "Ticket Agent"
    assert agent_name(AgentId.FAQ) == "FAQ 검색"


@pytest.mark.asyncio
async def test_loader_runs_once():
    registry = AgentRegistry()
    loads = []

    def loader():
        loads.append(1)
        return EchoAgent(FakeLLMClient())

    registry.register(AgentId.FAQ, loader)
    assert loads == []

    await registry.run(AgentId.FAQ, make_input("one"))
    output = await registry.run(AgentId.FAQ, make_input("two"))

    assert loads == [1]
    assert output.content == "two"


@pytest.mark.asyncio
async def test_unregistered_agent_raises():
    registry = AgentRegistry()

    assert not registry.is_registered(AgentId.REPORTING)
    with pytest.raises(AgentNotFoundError) as excinfo:
        await registry.run(AgentId.REPORTING, make_input())
    assert excinfo.value.agent_id == AgentId.REPORTING


def test_agent_modules_imported_lazily():
    sys.modules.pop("aics.services.ai.agents.ux_feedback", None)
    registry = build_default_registry(FakeLLMClient(), InMemoryRepository())

    assert "aics.services.ai.agents.ux_feedback" not in sys.modules

    agent = registry.get(AgentId.UX_FEEDBACK)

    assert "aics.services.ai.agents.ux_feedback" in sys.modules
    assert agent.agent_id == AgentId.UX_FEEDBACK


@pytest.mark.asyncio
async def test_agent_errors_propagate():
    class BrokenAgent(Agent):
        agent_id = AgentId.POLICY_COMPLIANCE

        async def run(self, agent_input):
            raise RuntimeError("boom")

    registry = AgentRegistry()
    registry.register(AgentId.POLICY_COMPLIANCE, lambda: BrokenAgent(FakeLLMClient()))

    with pytest.raises(RuntimeError, match="boom"):
        await registry.run(AgentId.POLICY_COMPLIANCE, make_input())

"""
Translation agent (team-1).

Detects the customer's language and translates the message. The raw JSON
response is returned as content; the orchestrator decodes it.
"""
import time

from aics.services.ai.agents.base import Agent
from aics.services.ai.schema import AgentId, AgentInput, AgentOutput


class TranslationAgent(Agent):
    agent_id = AgentId.TRANSLATION
    temperature = 0.1

    async def run(self, agent_input: AgentInput) -> AgentOutput:
        started = time.perf_counter()
        response = await self._complete(agent_input, agent_input.original_message)
        return self._output(response, started, confidence=0.9)

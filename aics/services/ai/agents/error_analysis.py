"""
Error analysis agent (team-4).

Explains reported software errors. High or critical urgency also requests a
repair ticket so the issue is tracked even when another agent's answer wins.
"""
import time

from aics.services.ai.agents.base import Agent
from aics.services.ai.schema import AgentAction, AgentId, AgentInput, AgentOutput

TICKET_URGENCIES = {"high", "critical"}


class ErrorAnalysisAgent(Agent):
    agent_id = AgentId.ERROR_ANALYSIS
    history_turns = 4

    async def run(self, agent_input: AgentInput) -> AgentOutput:
        started = time.perf_counter()
        message = agent_input.message
        response = await self._complete(agent_input, f"Error or technical problem reported by the customer:\n\n{message}")

        actions = []
        sentiment = agent_input.sentiment
        if sentiment is not None and sentiment.urgency in TICKET_URGENCIES:
            actions.append(
                AgentAction(
                    type="create_ticket",
                    payload={
                        "title": f"[Error analysis] {message[:50]}",
                        "description": response.content[:500],
                        "category": "repair",
                        "priority": sentiment.priority if sentiment.priority != "medium" else "high",
                        "customer_id": agent_input.customer_id,
                    },
                )
            )

        return self._output(response, started, confidence=0.8, actions=actions)

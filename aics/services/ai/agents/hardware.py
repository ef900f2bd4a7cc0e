"""
Hardware diagnosis agent (team-5).

Requests a repair ticket when the diagnosis calls for service (repair,
exchange, service-center visit) or the issue is critical.
"""
import time

from aics.services.ai.agents.base import Agent
from aics.services.ai.schema import AgentAction, AgentId, AgentInput, AgentOutput

SERVICE_KEYWORDS = ("service center", "repair", "exchange", "서비스센터", "수리", "교환")


def needs_service(diagnosis: str) -> bool:
    lowered = diagnosis.lower()
    return any(keyword in lowered for keyword in SERVICE_KEYWORDS)


class HardwareDiagnosisAgent(Agent):
    agent_id = AgentId.HARDWARE_DIAGNOSIS
    history_turns = 4

    async def run(self, agent_input: AgentInput) -> AgentOutput:
        started = time.perf_counter()
        message = agent_input.message
        response = await self._complete(agent_input, f"Product symptoms reported by the customer:\n\n{message}")

        sentiment = agent_input.sentiment
        critical = sentiment is not None and sentiment.urgency == "critical"

        actions = []
        if needs_service(response.content) or critical:
            actions.append(
                AgentAction(
                    type="create_ticket",
                    payload={
                        "title": f"[HW diagnosis] {message[:50]}",
                        "description": response.content[:500],
                        "category": "repair",
                        "priority": sentiment.priority if sentiment else "medium",
                        "customer_id": agent_input.customer_id,
                    },
                )
            )

        return self._output(response, started, confidence=0.8, actions=actions)

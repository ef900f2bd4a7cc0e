"""
Policy compliance agent (team-6).

Answers refund / exchange / compensation questions. Requests beyond policy
limits, or angry customers, are escalated and staff are notified.
"""
import time

from aics.services.ai.agents.base import Agent
from aics.services.ai.schema import AgentAction, AgentId, AgentInput, AgentOutput

ESCALATION_MARKERS = ("manager review", "escalat", "관리자 검토", "에스컬레이션")


class PolicyComplianceAgent(Agent):
    agent_id = AgentId.POLICY_COMPLIANCE
    history_turns = 4

    async def run(self, agent_input: AgentInput) -> AgentOutput:
        started = time.perf_counter()
        message = agent_input.message
        response = await self._complete(agent_input, f"Customer request:\n\n{message}")

        lowered = response.content.lower()
        angry = agent_input.sentiment is not None and agent_input.sentiment.sentiment == "angry"

        actions = []
        if angry or any(marker in lowered for marker in ESCALATION_MARKERS):
            actions.append(
                AgentAction(
                    type="escalate",
                    payload={"reason": "Outside policy limits or serious complaint"},
                )
            )
            actions.append(
                AgentAction(
                    type="notify",
                    payload={
                        "title": "Customer complaint escalated",
                        "message": f"Escalated by policy agent: {message[:100]}",
                    },
                )
            )

        return self._output(response, started, confidence=0.85, actions=actions)

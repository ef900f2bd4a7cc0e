"""
UX feedback agent (team-10).

Looks at the recent conversation as a whole and suggests improvements.
A well-formed JSON analysis scores higher than free text.
"""
import time

from aics.services.ai.agents.base import Agent
from aics.services.ai.schema import AgentId, AgentInput, AgentOutput, extract_json_object

HISTORY_WINDOW = 10


class UXFeedbackAgent(Agent):
    agent_id = AgentId.UX_FEEDBACK
    temperature = 0.3

    async def run(self, agent_input: AgentInput) -> AgentOutput:
        started = time.perf_counter()
        transcript = "\n".join(
            f"[{m.role}] {m.content}" for m in agent_input.conversation_history[-HISTORY_WINDOW:]
        )
        response = await self._complete(
            agent_input,
            f"Conversation to analyse:\n\n{transcript}\n\nLatest message: {agent_input.original_message}",
        )

        structured = extract_json_object(response.content) is not None
        return self._output(response, started, confidence=0.85 if structured else 0.75)

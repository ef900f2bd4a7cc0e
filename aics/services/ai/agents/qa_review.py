"""
QA review agent (team-8).

Reviews the response chosen by the orchestrator. The review target arrives
as a QAReviewContext, not as conversation history. Confidence is the model's
0-10 score scaled to [0, 1].
"""
import time

from aics.services.ai.agents.base import Agent
from aics.services.ai.schema import (
    AgentId,
    AgentInput,
    AgentOutput,
    QAReviewContext,
    ScorePayload,
    decode_or_none,
)

DEFAULT_SCORE = 9.0


class QAReviewAgent(Agent):
    agent_id = AgentId.QA_REVIEW
    temperature = 0.1

    async def run(self, agent_input: AgentInput) -> AgentOutput:
        context = agent_input.context
        if not isinstance(context, QAReviewContext):
            raise ValueError("QA review requires a QAReviewContext")

        started = time.perf_counter()
        user_message = (
            "[Response under review]\n"
            f"Agent: {context.agent_id.value}\n"
            f"Category: {context.category or 'unknown'}\n"
            f"Customer message: {agent_input.original_message}\n\n"
            f"AI response:\n{context.original_response}"
        )
        response = await self._complete(agent_input, user_message)

        scored = decode_or_none(response.content, ScorePayload, self.agent_id.value)
        score = scored.score if scored and scored.score is not None else DEFAULT_SCORE

        return self._output(response, started, confidence=score / 10.0)

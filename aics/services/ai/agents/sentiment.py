"""
Sentiment agent (team-2).

Returns the model's JSON verbatim; the self-reported confidence is lifted
onto the output when it can be decoded.
"""
import time

from aics.services.ai.agents.base import Agent
from aics.services.ai.schema import AgentId, AgentInput, AgentOutput, ScorePayload, decode_or_none

DEFAULT_CONFIDENCE = 0.8


class SentimentAgent(Agent):
    agent_id = AgentId.SENTIMENT
    temperature = 0.1

    async def run(self, agent_input: AgentInput) -> AgentOutput:
        started = time.perf_counter()
        response = await self._complete(agent_input, agent_input.message)

        scored = decode_or_none(response.content, ScorePayload, self.agent_id.value)
        confidence = scored.confidence if scored and scored.confidence is not None else DEFAULT_CONFIDENCE

        return self._output(response, started, confidence=confidence)

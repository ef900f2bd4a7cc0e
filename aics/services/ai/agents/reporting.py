"""
Reporting agent (team-9).

Summarises support statistics. Figures come from a ReportingContext when the
caller supplies one, otherwise from the repository for the last seven days.
"""
import json
import time
from typing import Any, Dict

from aics.core.logging import get_logger
from aics.services.ai.agents.base import Agent
from aics.services.ai.llm_client import LLMClient
from aics.services.ai.schema import AgentId, AgentInput, AgentOutput, ReportingContext
from aics.services.repository import Repository

logger = get_logger(__name__)

DEFAULT_PERIOD_DAYS = 7


class ReportingAgent(Agent):
    agent_id = AgentId.REPORTING
    temperature = 0.3

    def __init__(self, llm_client: LLMClient, repository: Repository):
        super().__init__(llm_client)
        self._repository = repository

    async def _load_stats(self, agent_input: AgentInput) -> Dict[str, Any]:
        if isinstance(agent_input.context, ReportingContext):
            return dict(agent_input.context.stats)
        try:
            return await self._repository.aggregate_stats(DEFAULT_PERIOD_DAYS)
        except Exception as exc:
            logger.warning(
                "reporting_stats_unavailable",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return {}

    async def run(self, agent_input: AgentInput) -> AgentOutput:
        started = time.perf_counter()
        stats = await self._load_stats(agent_input)

        user_message = f"Report request:\n\n{agent_input.message}"
        if stats:
            user_message += f"\n\n[Statistics]\n{json.dumps(stats, default=str)}"

        response = await self._complete(agent_input, user_message)
        return self._output(response, started, confidence=0.8 if stats else 0.7)

"""
FAQ search agent (team-3).

Looks up FAQ entries matching the start of the message and asks the model to
answer with them as grounding. A failed lookup degrades to a general answer.
"""
import time
from typing import Any, Dict, List

from aics.core.logging import get_logger
from aics.services.ai.agents.base import Agent
from aics.services.ai.llm_client import LLMClient
from aics.services.ai.schema import AgentId, AgentInput, AgentOutput
from aics.services.repository import Repository

logger = get_logger(__name__)

SEARCH_PREFIX_CHARS = 50
MAX_FAQ_ENTRIES = 5


def format_faq_context(faqs: List[Dict[str, Any]]) -> str:
    if not faqs:
        return "[No matching FAQ entries. Provide general help.]"
    lines = ["[Related FAQ]"]
    for i, faq in enumerate(faqs, start=1):
        lines.append(f"{i}. Q: {faq.get('question', '')}\n   A: {faq.get('answer', '')}")
    return "\n".join(lines)


class FAQSearchAgent(Agent):
    agent_id = AgentId.FAQ
    temperature = 0.3
    history_turns = 6

    def __init__(self, llm_client: LLMClient, repository: Repository):
        super().__init__(llm_client)
        self._repository = repository

    async def run(self, agent_input: AgentInput) -> AgentOutput:
        started = time.perf_counter()
        message = agent_input.message

        try:
            faqs = await self._repository.search_faqs(message[:SEARCH_PREFIX_CHARS], limit=MAX_FAQ_ENTRIES)
            faq_context = format_faq_context(faqs)
        except Exception as exc:
            faqs = []
            faq_context = "[FAQ lookup failed. Provide general help.]"
            logger.warning(
                "faq_lookup_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )

        response = await self._complete(agent_input, f"Customer question: {message}\n\n{faq_context}")
        return self._output(
            response,
            started,
            confidence=0.85,
            metadata={"faq_matches": len(faqs)},
        )

"""
Common agent capability.

Every agent takes an AgentInput and returns an AgentOutput. Concrete agents
only decide how to phrase the request, how confident they are and which side
effects to request; timing and token bookkeeping live here.
"""
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, NamedTuple, Optional

from aics.core.logging import get_logger
from aics.services.ai.llm_client import LLMClient, LLMRequest, LLMResponse
from aics.services.ai.prompts import AGENT_PROMPTS
from aics.services.ai.schema import AgentAction, AgentId, AgentInput, AgentOutput

logger = get_logger(__name__)


class AgentInfo(NamedTuple):
    name: str
    name_en: str
    description: str
    max_tokens: int


AGENT_CATALOG: Dict[AgentId, AgentInfo] = {
    AgentId.TRANSLATION: AgentInfo("언어 마스터", "Translation", "Language detection and translation", 500),
    AgentId.SENTIMENT: AgentInfo("감정 분석", "Sentiment", "Sentiment, urgency and priority analysis", 500),
    AgentId.FAQ: AgentInfo("FAQ 검색", "FAQ Search", "FAQ lookup and answer synthesis", 1500),
    AgentId.ERROR_ANALYSIS: AgentInfo("에러 분석", "Error Analysis", "Error code and stack trace analysis", 1500),
    AgentId.HARDWARE_DIAGNOSIS: AgentInfo("제품 진단", "HW Diagnosis", "Hardware symptom analysis and service triage", 2000),
    AgentId.POLICY_COMPLIANCE: AgentInfo("정책 결정", "Policy Compliance", "Refund, exchange and compensation policy", 1500),
    AgentId.TICKET: AgentInfo("티켓 관리", "Ticket Agent", "Service ticket creation and updates", 800),
    AgentId.QA_REVIEW: AgentInfo("품질 검수", "QA Review", "Tone, accuracy and policy review", 1500),
    AgentId.REPORTING: AgentInfo("보고서", "Reporting", "Aggregated trend reports", 1000),
    AgentId.UX_FEEDBACK: AgentInfo("UX 피드백", "UX Feedback", "Conversation pattern analysis", 1000),
}


def agent_name(agent_id: AgentId) -> str:
    info = AGENT_CATALOG.get(agent_id)
    return info.name if info else str(agent_id.value)


class Agent(ABC):
    """Base class for LLM-backed agents."""

    agent_id: AgentId
    temperature: float = 0.2
    history_turns: int = 0

    def __init__(self, llm_client: LLMClient):
        self._llm_client = llm_client

    @property
    def max_tokens(self) -> int:
        return AGENT_CATALOG[self.agent_id].max_tokens

    @abstractmethod
    async def run(self, agent_input: AgentInput) -> AgentOutput:
        """Handle one message. Errors propagate to the orchestrator."""

    async def _complete(self, agent_input: AgentInput, user_message: str) -> LLMResponse:
        request = LLMRequest(
            system_prompt=AGENT_PROMPTS[self.agent_id],
            user_message=user_message,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            conversation_history=agent_input.recent_history(self.history_turns),
        )
        return await self._llm_client.complete(request, agent=self.agent_id.value)

    def _output(
        self,
        response: LLMResponse,
        started: float,
        confidence: float,
        content: Optional[str] = None,
        actions: Iterable[AgentAction] = (),
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AgentOutput:
        return AgentOutput(
            agent_id=self.agent_id,
            content=response.content if content is None else content,
            confidence=min(max(confidence, 0.0), 1.0),
            actions=tuple(actions),
            token_input=response.token_input,
            token_output=response.token_output,
            duration_ms=int((time.perf_counter() - started) * 1000),
            metadata=metadata,
        )
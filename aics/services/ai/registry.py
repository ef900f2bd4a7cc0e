"""
Agent registry.

Maps agent ids to lazily constructed agent instances. A loader runs the first
time its id is requested; the instance is then reused for the process lifetime.
"""
from typing import Callable, Dict, List

from aics.core.logging import get_logger
from aics.services.ai.agents.base import Agent
from aics.services.ai.llm_client import LLMClient
from aics.services.ai.schema import AgentId, AgentInput, AgentOutput
from aics.services.repository import Repository

logger = get_logger(__name__)

AgentLoader = Callable[[], Agent]


class AgentNotFoundError(KeyError):
    """Raised when an unregistered agent id is invoked."""

    def __init__(self, agent_id: AgentId):
        super().__init__(f"Agent not registered: {agent_id.value}")
        self.agent_id = agent_id


class AgentRegistry:
    def __init__(self):
        self._loaders: Dict[AgentId, AgentLoader] = {}
        self._instances: Dict[AgentId, Agent] = {}

    def register(self, agent_id: AgentId, loader: AgentLoader) -> None:
        self._loaders[agent_id] = loader
        self._instances.pop(agent_id, None)

    def is_registered(self, agent_id: AgentId) -> bool:
        return agent_id in self._loaders

    def list_registered(self) -> List[AgentId]:
        return list(self._loaders)

    def get(self, agent_id: AgentId) -> Agent:
        agent = self._instances.get(agent_id)
        if agent is not None:
            return agent

        loader = self._loaders.get(agent_id)
        if loader is None:
            raise AgentNotFoundError(agent_id)

        agent = loader()
        self._instances[agent_id] = agent
        logger.debug("agent_loaded", agent_id=agent_id.value)
        return agent

    async def run(self, agent_id: AgentId, agent_input: AgentInput) -> AgentOutput:
        """Run one agent. Errors raised by the agent propagate to the caller."""
        return await self.get(agent_id).run(agent_input)


def build_default_registry(llm_client: LLMClient, repository: Repository) -> AgentRegistry:
    """Register all ten agents. Agent modules are imported on first use."""
    registry = AgentRegistry()

    def translation() -> Agent:
        from aics.services.ai.agents.translation import TranslationAgent
        return TranslationAgent(llm_client)

    def sentiment() -> Agent:
        from aics.services.ai.agents.sentiment import SentimentAgent
        return SentimentAgent(llm_client)

    def faq() -> Agent:
        from aics.services.ai.agents.faq import FAQSearchAgent
        return FAQSearchAgent(llm_client, repository)

    def error_analysis() -> Agent:
        from aics.services.ai.agents.error_analysis import ErrorAnalysisAgent
        return ErrorAnalysisAgent(llm_client)

    def hardware() -> Agent:
        from aics.services.ai.agents.hardware import HardwareDiagnosisAgent
        return HardwareDiagnosisAgent(llm_client)

    def policy() -> Agent:
        from aics.services.ai.agents.policy import PolicyComplianceAgent
        return PolicyComplianceAgent(llm_client)

    def ticket() -> Agent:
        from aics.services.ai.agents.ticket import TicketAgent
        return TicketAgent(llm_client)

    def qa_review() -> Agent:
        from aics.services.ai.agents.qa_review import QAReviewAgent
        return QAReviewAgent(llm_client)

    def reporting() -> Agent:
        from aics.services.ai.agents.reporting import ReportingAgent
        return ReportingAgent(llm_client, repository)

    def ux_feedback() -> Agent:
        from aics.services.ai.agents.ux_feedback import UXFeedbackAgent
        return UXFeedbackAgent(llm_client)

    registry.register(AgentId.TRANSLATION, translation)
    registry.register(AgentId.SENTIMENT, sentiment)
    registry.register(AgentId.FAQ, faq)
    registry.register(AgentId.ERROR_ANALYSIS, error_analysis)
    registry.register(AgentId.HARDWARE_DIAGNOSIS, hardware)
    registry.register(AgentId.POLICY_COMPLIANCE, policy)
    registry.register(AgentId.TICKET, ticket)
    registry.register(AgentId.QA_REVIEW, qa_review)
    registry.register(AgentId.REPORTING, reporting)
    registry.register(AgentId.UX_FEEDBACK, ux_feedback)
    return registry

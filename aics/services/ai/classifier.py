"""
Message classifier.

Asks the model for a category and an ordered list of specialists, then
applies the routing rules:
- unknown ids, structural stages (translation, sentiment, QA) and disabled
  agents are dropped, duplicates removed
- an empty selection falls back to FAQ search
- angry or critical customers always reach the ticket agent
- at most three specialists are returned

Gateway errors propagate; the orchestrator logs them and uses
``default_classification``.
"""
import json
from typing import Dict, Iterable, List, Optional

from aics.core.logging import get_logger
from aics.core.metrics import record_classification, record_escalation_override
from aics.services.ai.llm_client import LLMClient, LLMRequest
from aics.services.ai.prompts import CLASSIFIER_PROMPT
from aics.services.ai.schema import (
    CATEGORIES,
    AgentId,
    ClassificationResult,
    ClassifierPayload,
    SentimentResult,
    decode_or_none,
)

logger = get_logger(__name__)

MAX_AGENTS = 3
CLASSIFIER_MAX_TOKENS = 500
CLASSIFIER_TEMPERATURE = 0.1
DEFAULT_CONFIDENCE = 0.5
UNSPECIFIED_CONFIDENCE = 0.7

# Stages run by the orchestrator itself, never selectable as specialists.
STRUCTURAL_AGENTS = frozenset({AgentId.TRANSLATION, AgentId.SENTIMENT, AgentId.QA_REVIEW})


def is_enabled(agent_id: AgentId, enablement: Dict[str, bool]) -> bool:
    """Agents without a stored configuration are enabled."""
    return enablement.get(agent_id.value, True)


def apply_routing_rules(
    requested: Iterable[str],
    sentiment: Optional[SentimentResult],
    enablement: Dict[str, bool],
) -> List[AgentId]:
    agents: List[AgentId] = []
    for raw in requested:
        try:
            agent_id = AgentId(str(raw).strip())
        except ValueError:
            continue
        if agent_id in STRUCTURAL_AGENTS or agent_id in agents or not is_enabled(agent_id, enablement):
            continue
        agents.append(agent_id)

    if not agents and is_enabled(AgentId.FAQ, enablement):
        agents.append(AgentId.FAQ)

    if (
        sentiment is not None
        and sentiment.is_severe
        and AgentId.TICKET not in agents
        and is_enabled(AgentId.TICKET, enablement)
    ):
        # Forced agent survives the cap; the model's picks are trimmed instead.
        agents = agents[:MAX_AGENTS - 1] + [AgentId.TICKET]
        record_escalation_override()

    return agents[:MAX_AGENTS]


def default_classification(
    sentiment: Optional[SentimentResult],
    enablement: Dict[str, bool],
    reasoning: str = "Classification failed, using defaults",
    token_input: int = 0,
    token_output: int = 0,
) -> ClassificationResult:
    return ClassificationResult(
        category="general",
        agents=apply_routing_rules([AgentId.FAQ.value], sentiment, enablement),
        confidence=DEFAULT_CONFIDENCE,
        reasoning=reasoning,
        token_input=token_input,
        token_output=token_output,
    )


class MessageClassifier:
    def __init__(self, llm_client: LLMClient):
        self._llm_client = llm_client

    async def classify(
        self,
        message: str,
        sentiment: Optional[SentimentResult] = None,
        enablement: Optional[Dict[str, bool]] = None,
    ) -> ClassificationResult:
        enablement = enablement or {}
        user_message = f'Classify this customer message:\n\n"{message}"'
        if sentiment is not None:
            user_message += f"\n\nSentiment analysis: {json.dumps(sentiment.model_dump(mode='json'))}"

        response = await self._llm_client.complete(
            LLMRequest(
                system_prompt=CLASSIFIER_PROMPT,
                user_message=user_message,
                max_tokens=CLASSIFIER_MAX_TOKENS,
                temperature=CLASSIFIER_TEMPERATURE,
            ),
            agent="classifier",
        )

        payload = decode_or_none(response.content, ClassifierPayload, "classifier")
        if payload is None:
            result = default_classification(
                sentiment,
                enablement,
                token_input=response.token_input,
                token_output=response.token_output,
            )
        else:
            category = payload.category if payload.category in CATEGORIES else "general"
            result = ClassificationResult(
                category=category,
                agents=apply_routing_rules(payload.agents, sentiment, enablement),
                confidence=payload.confidence if payload.confidence is not None else UNSPECIFIED_CONFIDENCE,
                reasoning=payload.reasoning,
                token_input=response.token_input,
                token_output=response.token_output,
            )

        record_classification(result.category)
        logger.info(
            "message_classified",
            category=result.category,
            agents=[a.value for a in result.agents],
            confidence=result.confidence,
        )
        return result

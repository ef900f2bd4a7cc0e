"""
Pydantic models for the AI CS pipeline.

Three groups live here:
- pipeline contracts shared by every agent (AgentInput / AgentOutput / ...)
- payload schemas used to decode model responses (translation, classifier,
  QA review, ticket decision)
- the strict decode-with-fallback helpers used by every stage

Model responses are never trusted: a payload that is not a JSON object or
fails validation decodes to None and the calling stage applies its default.
"""
import json
import math
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from aics.core.logging import get_logger
from aics.core.metrics import record_llm_schema_validation_failure

logger = get_logger(__name__)


class AgentId(str, Enum):
    """Stable agent identifiers shared by registry, classifier output and logs."""

    TRANSLATION = "team-1"
    SENTIMENT = "team-2"
    FAQ = "team-3"
    ERROR_ANALYSIS = "team-4"
    HARDWARE_DIAGNOSIS = "team-5"
    POLICY_COMPLIANCE = "team-6"
    TICKET = "team-7"
    QA_REVIEW = "team-8"
    REPORTING = "team-9"
    UX_FEEDBACK = "team-10"


# Bucket key used for the all-agents usage aggregate.
TOTAL_USAGE_KEY = "__total__"

ActionType = Literal["create_ticket", "update_ticket", "escalate", "update_conversation", "notify"]
SentimentLabel = Literal["positive", "neutral", "negative", "angry"]
UrgencyLabel = Literal["low", "medium", "high", "critical"]
PriorityLabel = Literal["low", "medium", "high", "urgent"]

CATEGORIES = frozenset({"faq", "error", "hardware", "policy", "ticket", "report", "ux", "general"})


# ============================================================================
# PIPELINE CONTRACTS
# ============================================================================

class SentimentResult(BaseModel):
    """
    Structured output of the sentiment stage.

    Schema:
    {
      "sentiment": "positive | neutral | negative | angry",
      "urgency": "low | medium | high | critical",
      "priority": "low | medium | high | urgent",
      "confidence": 0.0-1.0,
      "keywords": ["refund", "broken"]
    }
    """

    model_config = ConfigDict(frozen=True)

    sentiment: SentimentLabel
    urgency: UrgencyLabel = "medium"
    priority: PriorityLabel = "medium"
    confidence: float = Field(0.8, ge=0.0, le=1.0)
    keywords: Tuple[str, ...] = ()

    @field_validator("sentiment", "urgency", "priority", mode="before")
    @classmethod
    def normalize_label(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("keywords", mode="before")
    @classmethod
    def dedupe_keywords(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple, set)):
            return tuple(dict.fromkeys(str(k) for k in value))
        return value

    @property
    def is_severe(self) -> bool:
        """Angry customers and critical issues always reach the ticketing agent."""
        return self.sentiment == "angry" or self.urgency == "critical"


class ConversationMessage(BaseModel):
    """One prior turn of the conversation."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant", "system"]
    content: str
    agent_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class QAReviewContext(BaseModel):
    """Context handed to the QA reviewer about the response under review."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["qa_review"] = "qa_review"
    original_response: str
    agent_id: AgentId
    sentiment: Optional[SentimentResult] = None
    category: Optional[str] = None


class ReportingContext(BaseModel):
    """Aggregated figures handed to the reporting agent."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["reporting"] = "reporting"
    period_days: int = 7
    stats: Dict[str, Any] = Field(default_factory=dict)


AgentContext = Annotated[Union[QAReviewContext, ReportingContext], Field(discriminator="kind")]


class AgentInput(BaseModel):
    """
    Common input contract for every agent.

    Immutable per pipeline run. Stages enrich it by producing a copy via
    ``enriched(...)``; concurrent specialists share one instance safely.
    """

    model_config = ConfigDict(frozen=True)

    conversation_id: str
    message_id: str
    original_message: str
    translated_message: Optional[str] = None
    detected_language: Optional[str] = None
    sentiment: Optional[SentimentResult] = None
    conversation_history: Tuple[ConversationMessage, ...] = ()
    user_id: str
    customer_id: Optional[str] = None
    context: Optional[AgentContext] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def message(self) -> str:
        """Translated text when available, otherwise the original."""
        return self.translated_message or self.original_message

    def enriched(self, **updates: Any) -> "AgentInput":
        return self.model_copy(update=updates)

    def recent_history(self, limit: int) -> List[Dict[str, str]]:
        """Last ``limit`` user/assistant turns in gateway format."""
        turns = [m for m in self.conversation_history if m.role in ("user", "assistant")]
        return [{"role": m.role, "content": m.content} for m in turns[-limit:]] if limit > 0 else []


class AgentAction(BaseModel):
    """Declarative side-effect request emitted by an agent."""

    model_config = ConfigDict(frozen=True)

    type: ActionType
    payload: Dict[str, Any] = Field(default_factory=dict)


class AgentOutput(BaseModel):
    """Common output contract for every agent; never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    agent_id: AgentId
    content: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    actions: Tuple[AgentAction, ...] = ()
    token_input: int = Field(0, ge=0)
    token_output: int = Field(0, ge=0)
    duration_ms: int = Field(0, ge=0)
    metadata: Optional[Dict[str, Any]] = None


class ClassificationResult(BaseModel):
    """Classifier decision: category plus the ordered specialists to call."""

    category: str = "general"
    agents: List[AgentId] = Field(default_factory=list, max_length=3)
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    reasoning: str = ""
    token_input: int = 0
    token_output: int = 0


class AgentLogEntry(BaseModel):
    """One entry per stage attempt, successful or failed."""

    model_config = ConfigDict(frozen=True)

    agent_id: AgentId
    agent_name: str
    action: str
    confidence: float = 0.0
    duration_ms: int = 0
    token_usage: int = 0
    output: Optional[str] = Field(None, max_length=200)
    error: Optional[str] = None


class TokenUsage(BaseModel):
    input: int = 0
    output: int = 0


class ActionResult(BaseModel):
    """Outcome of one executed action."""

    type: str
    status: Literal["success", "noop", "error"]
    data: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class ActionExecutionReport(BaseModel):
    """Executor result: always successful overall, per-action outcomes inside."""

    success: bool = True
    results: List[ActionResult] = Field(default_factory=list)


class OrchestratorResult(BaseModel):
    """Final result returned to the caller of the orchestrator."""

    response: str
    agent_id: AgentId
    agent_name: str
    sentiment: Optional[SentimentResult] = None
    language: Optional[str] = None
    category: Optional[str] = None
    actions: List[AgentAction] = Field(default_factory=list)
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    agent_logs: List[AgentLogEntry] = Field(default_factory=list)
    revised_by_qa: bool = False
    action_results: List[ActionResult] = Field(default_factory=list)


class UsageIncrement(BaseModel):
    """Counter deltas applied to one daily usage bucket."""

    calls: int = Field(1, ge=0)
    token_input: int = Field(0, ge=0)
    token_output: int = Field(0, ge=0)
    messages: int = Field(1, ge=0)
    conversations: int = Field(0, ge=0)
    cost_usd: float = Field(0.0, ge=0.0)


# ============================================================================
# MODEL RESPONSE PAYLOADS
# ============================================================================

class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TranslationPayload(_Payload):
    """{"translatedText": "...", "detectedLanguage": "en"}"""

    translated_text: Optional[str] = Field(None, alias="translatedText")
    detected_language: Optional[str] = Field(None, alias="detectedLanguage")


class ClassifierPayload(_Payload):
    """{"category": "faq", "agents": ["team-3"], "confidence": 0.8, "reasoning": "..."}"""

    category: Optional[str] = None
    agents: List[str] = Field(default_factory=list)
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    reasoning: str = ""

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower() or None
        return value

    @field_validator("agents", mode="before")
    @classmethod
    def normalize_agents(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            return []
        # Models sometimes answer with bare team numbers
        return [
            f"team-{item}" if isinstance(item, int) and not isinstance(item, bool) else str(item)
            for item in value
        ]

    @field_validator("confidence", mode="before")
    @classmethod
    def normalize_confidence(cls, value: Any) -> Optional[float]:
        try:
            confidence = float(value)
        except (TypeError, ValueError):
            return None
        if math.isnan(confidence):
            return None
        if 1.0 < confidence <= 100.0:
            confidence /= 100.0
        return min(max(confidence, 0.0), 1.0)


class QAReviewPayload(_Payload):
    """{"approved": false, "score": 6, "issues": [...], "revisedContent": "..."}"""

    approved: bool
    score: Optional[float] = Field(None, ge=0.0, le=10.0)
    issues: List[str] = Field(default_factory=list)
    revised_content: Optional[str] = Field(None, alias="revisedContent")


class TicketDraft(_Payload):
    title: str
    description: str = ""
    category: Optional[str] = None
    priority: Optional[str] = None
    product_name: Optional[str] = Field(None, alias="productName")


class TicketDecisionPayload(_Payload):
    """{"message": "...", "needsTicket": true, "ticket": {...}}"""

    message: Optional[str] = None
    needs_ticket: bool = Field(False, alias="needsTicket")
    ticket: Optional[TicketDraft] = None


class ScorePayload(_Payload):
    """Any response that self-reports a confidence or a 0-10 score."""

    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    score: Optional[float] = Field(None, ge=0.0, le=10.0)


# ============================================================================
# DECODING
# ============================================================================

class SchemaValidationError(Exception):
    """Raised when model output fails schema validation."""

    def __init__(self, agent: str, message: str, raw_output: Optional[str] = None):
        super().__init__(message)
        self.agent = agent
        self.raw_output = raw_output


_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")

ModelT = TypeVar("ModelT", bound=BaseModel)


def extract_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Decode the JSON object contained in a model response.

    The whole (fence-stripped) text is tried first, then the span between the
    first "{" and the last "}". Anything that does not decode to a JSON object
    yields None.
    """
    if not text:
        return None

    candidate = _FENCE_RE.sub("", text.strip())
    snippets = [candidate]
    start, end = candidate.find("{"), candidate.rfind("}")
    if 0 <= start < end:
        snippets.append(candidate[start:end + 1])

    for snippet in snippets:
        try:
            value = json.loads(snippet)
        except ValueError:
            continue
        if isinstance(value, dict):
            return value
    return None


def decode_json_model(text: Optional[str], model: Type[ModelT], agent: str) -> ModelT:
    """
    Decode a model response into ``model``.

    Raises:
        SchemaValidationError if no JSON object is present or validation fails.
    """
    payload = extract_json_object(text)
    if payload is None:
        raise SchemaValidationError(agent=agent, message="No JSON object in response", raw_output=text)
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise SchemaValidationError(
            agent=agent,
            message=f"Invalid {model.__name__} payload: {exc}",
            raw_output=text,
        ) from exc


def decode_or_none(text: Optional[str], model: Type[ModelT], agent: str) -> Optional[ModelT]:
    """Like decode_json_model but returns None (and records the failure) instead of raising."""
    try:
        return decode_json_model(text, model, agent)
    except SchemaValidationError as exc:
        record_llm_schema_validation_failure(agent)
        logger.warning(
            "llm_response_schema_invalid",
            agent=agent,
            schema=model.__name__,
            error=str(exc),
        )
        return None

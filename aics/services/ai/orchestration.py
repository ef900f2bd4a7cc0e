"""
AI CS orchestration pipeline.

One customer message flows through:
1. translation (team-1)        -> translated text + detected language
2. sentiment (team-2)          -> SentimentResult
3. classification              -> category + up to three specialists
4. specialists, concurrently   -> primary response (highest confidence)
5. QA review (team-8)          -> optional revision of the primary response
6. side effects                -> actions, conversation update, usage, logs

Every stage is its own failure boundary. A failed stage contributes an error
log entry and its default; the caller always receives a complete
OrchestratorResult.
"""
import asyncio
import time
from typing import Dict, List, Optional, Sequence, Tuple

from aics.core.config import Settings, get_settings
from aics.core.logging import get_logger, set_conversation_id
from aics.core.metrics import (
    record_agent_run,
    record_fallback_response,
    record_orchestration_duration,
    record_qa_outcome,
)
from aics.services.ai.actions import ActionExecutor
from aics.services.ai.agents.base import agent_name
from aics.services.ai.classifier import MessageClassifier, default_classification, is_enabled
from aics.services.ai.llm_client import LLMClient, get_llm_client
from aics.services.ai.registry import AgentRegistry, build_default_registry
from aics.services.ai.schema import (
    ActionResult,
    AgentAction,
    AgentId,
    AgentInput,
    AgentLogEntry,
    AgentOutput,
    ClassificationResult,
    ConversationMessage,
    OrchestratorResult,
    QAReviewContext,
    QAReviewPayload,
    SentimentResult,
    TokenUsage,
    TranslationPayload,
    decode_or_none,
)
from aics.services.ai.usage import UsageTracker
from aics.services.repository import Repository, get_repository

logger = get_logger(__name__)

FALLBACK_AGENT_ID = AgentId.FAQ
FALLBACK_RESPONSE = "죄송합니다. 현재 답변을 생성할 수 없습니다. 잠시 후 다시 시도해주세요."
CLASSIFIER_LOG_NAME = "분류기"
LOG_ENTRY_OUTPUT_CHARS = 200


def _log_entry(agent_id: AgentId, action: str, output: AgentOutput) -> AgentLogEntry:
    return AgentLogEntry(
        agent_id=agent_id,
        agent_name=agent_name(agent_id),
        action=action,
        confidence=output.confidence,
        duration_ms=output.duration_ms,
        token_usage=output.token_input + output.token_output,
        output=output.content[:LOG_ENTRY_OUTPUT_CHARS],
    )


def _error_entry(agent_id: AgentId, action: str, error: BaseException, name: Optional[str] = None) -> AgentLogEntry:
    return AgentLogEntry(
        agent_id=agent_id,
        agent_name=name or agent_name(agent_id),
        action=action,
        error=str(error) or type(error).__name__,
    )


def select_primary(outputs: Sequence[AgentOutput]) -> Optional[AgentOutput]:
    """Strictly greatest confidence wins; the earliest output wins ties."""
    primary: Optional[AgentOutput] = None
    for output in outputs:
        if primary is None or output.confidence > primary.confidence:
            primary = output
    return primary


class _RunState:
    """Per-message accumulator; owned by a single orchestrate() call."""

    def __init__(self):
        self.logs: List[AgentLogEntry] = []
        self.token_input = 0
        self.token_output = 0

    def add_tokens(self, token_input: int, token_output: int) -> None:
        self.token_input += token_input
        self.token_output += token_output


class Orchestrator:
    def __init__(
        self,
        llm_client: LLMClient,
        repository: Repository,
        registry: Optional[AgentRegistry] = None,
        classifier: Optional[MessageClassifier] = None,
        executor: Optional[ActionExecutor] = None,
        usage_tracker: Optional[UsageTracker] = None,
        settings: Optional[Settings] = None,
    ):
        self._repository = repository
        self._settings = settings or get_settings()
        self._registry = registry or build_default_registry(llm_client, repository)
        self._classifier = classifier or MessageClassifier(llm_client)
        self._executor = executor or ActionExecutor(repository)
        self._usage = usage_tracker or UsageTracker(repository)

    async def orchestrate(
        self,
        message: str,
        conversation_id: str,
        message_id: str,
        user_id: str,
        customer_id: Optional[str] = None,
        conversation_history: Sequence[ConversationMessage] = (),
    ) -> OrchestratorResult:
        started = time.perf_counter()
        set_conversation_id(conversation_id)
        state = _RunState()
        enablement = await self._load_enablement()

        base_input = AgentInput(
            conversation_id=conversation_id,
            message_id=message_id,
            original_message=message,
            conversation_history=tuple(conversation_history),
            user_id=user_id,
            customer_id=customer_id,
        )

        # Step 1: translation
        translated, language = await self._translate(base_input, enablement, state)

        # Step 2: sentiment
        sentiment = await self._analyze_sentiment(
            base_input.enriched(translated_message=translated, detected_language=language),
            enablement,
            state,
        )

        # Step 3: classification
        classification = await self._classify(translated, sentiment, enablement, state)

        # Step 4: specialists
        specialist_input = base_input.enriched(
            translated_message=translated,
            detected_language=language,
            sentiment=sentiment,
        )
        outputs = await self._run_specialists(classification.agents, specialist_input, state)

        primary = select_primary(outputs)
        actions: List[AgentAction] = [action for output in outputs for action in output.actions]
        if primary is None:
            record_fallback_response()
            logger.warning(
                "orchestrator_all_specialists_failed",
                agents=[a.value for a in classification.agents],
            )
            response, final_agent_id = FALLBACK_RESPONSE, FALLBACK_AGENT_ID
        else:
            response, final_agent_id = primary.content, primary.agent_id

        # Step 5: QA review
        revised = False
        if primary is not None and is_enabled(AgentId.QA_REVIEW, enablement):
            revision = await self._review(
                base_input.enriched(
                    translated_message=translated,
                    detected_language=language,
                    sentiment=sentiment,
                    context=QAReviewContext(
                        original_response=response,
                        agent_id=final_agent_id,
                        sentiment=sentiment,
                        category=classification.category,
                    ),
                ),
                state,
            )
            if revision is not None:
                response, revised = revision, True

        # Step 6: side effects. Agent actions run last and override pipeline fields
        await self._update_conversation(conversation_id, language, sentiment, classification.category)
        action_results = await self._execute_actions(actions, conversation_id, user_id)
        await self._track_usage(final_agent_id, state)
        await self._persist_logs(conversation_id, state.logs)

        duration = time.perf_counter() - started
        record_orchestration_duration(duration)
        logger.info(
            "orchestration_completed",
            agent_id=final_agent_id.value,
            category=classification.category,
            language=language,
            revised_by_qa=revised,
            action_count=len(actions),
            token_input=state.token_input,
            token_output=state.token_output,
            duration_ms=round(duration * 1000, 2),
        )

        return OrchestratorResult(
            response=response,
            agent_id=final_agent_id,
            agent_name=agent_name(final_agent_id),
            sentiment=sentiment,
            language=language,
            category=classification.category,
            actions=actions,
            token_usage=TokenUsage(input=state.token_input, output=state.token_output),
            agent_logs=state.logs,
            revised_by_qa=revised,
            action_results=action_results,
        )

    async def _load_enablement(self) -> Dict[str, bool]:
        try:
            return await self._repository.get_agent_enablement()
        except Exception as exc:
            logger.warning(
                "agent_enablement_unavailable",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return {}

    async def _run_agent(self, agent_id: AgentId, agent_input: AgentInput) -> AgentOutput:
        try:
            return await asyncio.wait_for(
                self._registry.run(agent_id, agent_input),
                timeout=self._settings.agent_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            record_agent_run(agent_id.value, "timeout")
            raise TimeoutError(
                f"{agent_id.value} timed out after {self._settings.agent_timeout_seconds}s"
            ) from exc
        except Exception:
            record_agent_run(agent_id.value, "error")
            raise

    async def _run_stage(
        self,
        agent_id: AgentId,
        action: str,
        agent_input: AgentInput,
        state: _RunState,
    ) -> Optional[AgentOutput]:
        """Run one sequential stage; failures become an error log entry."""
        try:
            output = await self._run_agent(agent_id, agent_input)
        except Exception as exc:
            logger.warning(
                "orchestrator_stage_failed",
                agent_id=agent_id.value,
                stage=action,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            state.logs.append(_error_entry(agent_id, action, exc))
            return None

        self._record_success(agent_id, action, output, state)
        return output

    def _record_success(self, agent_id: AgentId, action: str, output: AgentOutput, state: _RunState) -> None:
        record_agent_run(agent_id.value, "success", output.duration_ms)
        state.add_tokens(output.token_input, output.token_output)
        state.logs.append(_log_entry(agent_id, action, output))

    async def _translate(
        self,
        agent_input: AgentInput,
        enablement: Dict[str, bool],
        state: _RunState,
    ) -> Tuple[str, str]:
        message = agent_input.original_message
        language = self._settings.default_language
        if not is_enabled(AgentId.TRANSLATION, enablement):
            return message, language

        output = await self._run_stage(AgentId.TRANSLATION, "translate", agent_input, state)
        if output is None:
            return message, language

        payload = decode_or_none(output.content, TranslationPayload, AgentId.TRANSLATION.value)
        if payload is None:
            return message, language
        return payload.translated_text or message, payload.detected_language or language

    async def _analyze_sentiment(
        self,
        agent_input: AgentInput,
        enablement: Dict[str, bool],
        state: _RunState,
    ) -> Optional[SentimentResult]:
        if not is_enabled(AgentId.SENTIMENT, enablement):
            return None

        output = await self._run_stage(AgentId.SENTIMENT, "analyze_sentiment", agent_input, state)
        if output is None:
            return None
        return decode_or_none(output.content, SentimentResult, AgentId.SENTIMENT.value)

    async def _classify(
        self,
        message: str,
        sentiment: Optional[SentimentResult],
        enablement: Dict[str, bool],
        state: _RunState,
    ) -> ClassificationResult:
        started = time.perf_counter()
        try:
            classification = await self._classifier.classify(message, sentiment, enablement)
        except Exception as exc:
            logger.warning(
                "orchestrator_stage_failed",
                stage="classify",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            state.logs.append(_error_entry(FALLBACK_AGENT_ID, "classify", exc, name=CLASSIFIER_LOG_NAME))
            return default_classification(sentiment, enablement)

        state.add_tokens(classification.token_input, classification.token_output)
        # Classifier entries are attributed to the default agent id.
        state.logs.append(
            AgentLogEntry(
                agent_id=FALLBACK_AGENT_ID,
                agent_name=CLASSIFIER_LOG_NAME,
                action="classify",
                confidence=classification.confidence,
                duration_ms=int((time.perf_counter() - started) * 1000),
                token_usage=classification.token_input + classification.token_output,
                output=classification.reasoning[:LOG_ENTRY_OUTPUT_CHARS],
            )
        )
        return classification

    async def _run_specialists(
        self,
        agents: Sequence[AgentId],
        agent_input: AgentInput,
        state: _RunState,
    ) -> List[AgentOutput]:
        if not agents:
            return []

        settled = await asyncio.gather(
            *(self._run_agent(agent_id, agent_input) for agent_id in agents),
            return_exceptions=True,
        )

        outputs: List[AgentOutput] = []
        for agent_id, result in zip(agents, settled):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning(
                    "orchestrator_specialist_failed",
                    agent_id=agent_id.value,
                    error=str(result),
                    error_type=type(result).__name__,
                )
                state.logs.append(_error_entry(agent_id, "respond", result))
                continue
            self._record_success(agent_id, "respond", result, state)
            outputs.append(result)
        return outputs

    async def _review(self, agent_input: AgentInput, state: _RunState) -> Optional[str]:
        """Return the QA revision, or None to keep the primary response."""
        output = await self._run_stage(AgentId.QA_REVIEW, "qa_review", agent_input, state)
        if output is None:
            record_qa_outcome("error")
            return None

        review = decode_or_none(output.content, QAReviewPayload, AgentId.QA_REVIEW.value)
        if review is None:
            record_qa_outcome("invalid")
            return None
        if not review.approved and review.revised_content and review.revised_content.strip():
            record_qa_outcome("revised")
            return review.revised_content

        record_qa_outcome("approved" if review.approved else "rejected_without_revision")
        return None

    async def _execute_actions(
        self,
        actions: Sequence[AgentAction],
        conversation_id: str,
        user_id: str,
    ) -> List[ActionResult]:
        if not actions:
            return []
        try:
            report = await self._executor.execute(actions, conversation_id, user_id)
            return report.results
        except Exception as exc:
            logger.error(
                "orchestrator_actions_failed",
                action_count=len(actions),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return []

    async def _update_conversation(
        self,
        conversation_id: str,
        language: str,
        sentiment: Optional[SentimentResult],
        category: str,
    ) -> None:
        try:
            await self._repository.update_conversation(
                conversation_id,
                {
                    "language": language,
                    "sentiment": sentiment.sentiment if sentiment else None,
                    "priority": sentiment.priority if sentiment else "medium",
                    "category": category,
                },
            )
        except Exception as exc:
            logger.error(
                "orchestrator_conversation_update_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def _track_usage(self, agent_id: AgentId, state: _RunState) -> None:
        try:
            await self._usage.track(agent_id, state.token_input, state.token_output)
        except Exception as exc:
            logger.error(
                "orchestrator_usage_tracking_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def _persist_logs(self, conversation_id: str, entries: Sequence[AgentLogEntry]) -> None:
        try:
            await self._repository.append_agent_logs(conversation_id, entries)
        except Exception as exc:
            logger.error(
                "orchestrator_log_persistence_failed",
                entry_count=len(entries),
                error=str(exc),
                error_type=type(exc).__name__,
            )


_orchestrator: Optional[Orchestrator] = None


def get_orchestrator() -> Orchestrator:
    """Global singleton accessor for the orchestrator."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = Orchestrator(get_llm_client(), get_repository())
    return _orchestrator

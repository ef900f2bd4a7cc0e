"""
Chat session service.

Wraps the orchestrator with conversation bookkeeping: validation, loading or
creating the conversation, storing both sides of the exchange and recording
new conversations in usage.
"""
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from aics.core.config import Settings, get_settings
from aics.core.logging import get_logger, set_conversation_id
from aics.services.ai.orchestration import Orchestrator, get_orchestrator
from aics.services.ai.schema import ConversationMessage, OrchestratorResult
from aics.services.ai.usage import UsageTracker
from aics.services.repository import Repository, get_repository

logger = get_logger(__name__)


class ChatError(Exception):
    """Base class for request-level chat failures."""


class InvalidMessageError(ChatError):
    pass


class ConversationNotFoundError(ChatError):
    pass


class ConversationClosedError(ChatError):
    pass


class ChatTurnResult(BaseModel):
    conversation_id: str
    message: Dict[str, Any]
    result: OrchestratorResult


def _history_from_rows(rows: List[Dict[str, Any]]) -> List[ConversationMessage]:
    history = []
    for row in rows:
        fields = {"role": row["role"], "content": row["content"], "agent_id": row.get("agent_id")}
        if row.get("created_at") is not None:
            fields["created_at"] = row["created_at"]
        history.append(ConversationMessage(**fields))
    return history


class ChatService:
    def __init__(
        self,
        repository: Repository,
        orchestrator: Orchestrator,
        usage_tracker: Optional[UsageTracker] = None,
        settings: Optional[Settings] = None,
    ):
        self._repository = repository
        self._orchestrator = orchestrator
        self._usage = usage_tracker or UsageTracker(repository)
        self._settings = settings or get_settings()

    def validate_message(self, message: Optional[str]) -> str:
        if not message or not message.strip():
            raise InvalidMessageError("Message must not be empty")
        if len(message) > self._settings.max_message_length:
            raise InvalidMessageError(
                f"Message must be at most {self._settings.max_message_length} characters"
            )
        return message

    async def _open_conversation(
        self,
        user_id: str,
        conversation_id: Optional[str],
        customer_id: Optional[str],
    ) -> Tuple[str, bool]:
        """Return (conversation_id, is_new)."""
        if conversation_id:
            existing = await self._repository.get_conversation(conversation_id)
            if existing is None or existing.get("user_id") != user_id:
                raise ConversationNotFoundError(f"Conversation not found: {conversation_id}")
            if existing.get("status") == "closed":
                raise ConversationClosedError(f"Conversation is closed: {conversation_id}")
            return conversation_id, False

        created = await self._repository.create_conversation(
            {
                "user_id": user_id,
                "customer_id": customer_id,
                "status": "active",
                "language": self._settings.default_language,
                "priority": "medium",
            }
        )
        return created["id"], True

    async def handle_message(
        self,
        user_id: str,
        message: Optional[str],
        conversation_id: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> ChatTurnResult:
        message = self.validate_message(message)
        conversation_id, is_new = await self._open_conversation(user_id, conversation_id, customer_id)
        set_conversation_id(conversation_id)

        user_message = await self._repository.add_message(
            {"conversation_id": conversation_id, "role": "user", "content": message}
        )

        # Newest row is the message just stored.
        rows = await self._repository.list_messages(conversation_id, self._settings.history_limit + 1)
        history = _history_from_rows([r for r in rows if r.get("id") != user_message["id"]])

        result = await self._orchestrator.orchestrate(
            message=message,
            conversation_id=conversation_id,
            message_id=user_message["id"],
            user_id=user_id,
            customer_id=customer_id,
            conversation_history=history[-self._settings.history_limit:],
        )

        metadata = {
            "sentiment": result.sentiment.model_dump(mode="json") if result.sentiment else None,
            "category": result.category,
            "language": result.language,
        }
        assistant_message = await self._repository.add_message(
            {
                "conversation_id": conversation_id,
                "role": "assistant",
                "content": result.response,
                "agent_id": result.agent_id.value,
                "agent_name": result.agent_name,
                "token_input": result.token_usage.input,
                "token_output": result.token_usage.output,
                "metadata": metadata,
            }
        )

        if is_new:
            try:
                await self._usage.track_new_conversation()
            except Exception as exc:
                logger.error(
                    "chat_usage_tracking_failed",
                    error=str(exc),
                    error_type=type(exc).__name__,
                )

        logger.info(
            "chat_message_handled",
            is_new_conversation=is_new,
            agent_id=result.agent_id.value,
            category=result.category,
        )

        return ChatTurnResult(
            conversation_id=conversation_id,
            message={
                "id": assistant_message["id"],
                "role": "assistant",
                "content": result.response,
                "agent_id": result.agent_id.value,
                "agent_name": result.agent_name,
                "metadata": metadata,
                "created_at": assistant_message.get("created_at"),
            },
            result=result,
        )


_chat_service: Optional[ChatService] = None


def get_chat_service() -> ChatService:
    """Global singleton accessor for the chat service."""
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService(get_repository(), get_orchestrator())
    return _chat_service

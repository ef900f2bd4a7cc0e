"""
AI CS chat endpoint.

POST /chat
Headers: X-User-ID (set by the authenticating gateway in front of the service)
Body: {"message": "...", "conversationId": "...?", "customerId": "...?"}
"""
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from aics.core.config import get_settings
from aics.core.logging import get_logger, set_user_id
from aics.services.ai.schema import SentimentResult
from aics.services.chat import (
    ConversationClosedError,
    ConversationNotFoundError,
    InvalidMessageError,
    get_chat_service,
)

logger = get_logger(__name__)
router = APIRouter()


def _format_timestamp(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = None
    conversation_id: Optional[str] = Field(None, alias="conversationId")
    customer_id: Optional[str] = Field(None, alias="customerId")


class ChatMessageOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    role: str = "assistant"
    content: str
    agent_id: str = Field(..., serialization_alias="agentId")
    agent_name: str = Field(..., serialization_alias="agentName")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = Field(None, serialization_alias="createdAt")


class ChatResponse(BaseModel):
    conversation_id: str = Field(..., serialization_alias="conversationId")
    message: ChatMessageOut
    sentiment: Optional[SentimentResult] = None
    category: Optional[str] = None
    language: Optional[str] = None


@router.post("", response_model=ChatResponse, response_model_by_alias=True)
async def chat(request: Request, body: ChatRequest):
    """
    Send one customer message through the AI CS pipeline.

    Returns the assistant's reply together with the detected sentiment,
    category and language.
    """
    user_id = request.headers.get("X-User-ID")
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    set_user_id(user_id)

    if not get_settings().llm_configured:
        raise HTTPException(status_code=503, detail="AI features are disabled. Contact an administrator.")

    try:
        turn = await get_chat_service().handle_message(
            user_id=user_id,
            message=body.message,
            conversation_id=body.conversation_id,
            customer_id=body.customer_id,
        )
    except InvalidMessageError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ConversationNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ConversationClosedError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    created_at = turn.message.get("created_at")
    return ChatResponse(
        conversation_id=turn.conversation_id,
        message=ChatMessageOut(
            id=str(turn.message["id"]),
            content=turn.message["content"],
            agent_id=turn.message["agent_id"],
            agent_name=turn.message["agent_name"],
            metadata=turn.message["metadata"],
            created_at=_format_timestamp(created_at),
        ),
        sentiment=turn.result.sentiment,
        category=turn.result.category,
        language=turn.result.language,
    )

"""
Action executor.

Runs the side effects requested by agents, one at a time and in order. Each
action is validated and executed in isolation: a failure is recorded as an
error result and the remaining actions still run. The overall report is
always successful.
"""
from typing import Any, Callable, Dict, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from aics.core.logging import get_logger
from aics.core.metrics import record_action_result
from aics.services.ai.schema import ActionExecutionReport, ActionResult, AgentAction
from aics.services.repository import Repository

logger = get_logger(__name__)

TICKET_NUMBER_PREFIX = "AS-"
NOTIFICATION_LINK = "/ai-cs"


class _ActionPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CreateTicketPayload(_ActionPayload):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[str] = None
    customer_id: Optional[str] = Field(None, alias="customerId")
    product_name: Optional[str] = Field(None, alias="productName")


class UpdateTicketPayload(_ActionPayload):
    ticket_id: Optional[str] = Field(None, alias="ticketId")
    status: Optional[str] = None
    priority: Optional[str] = None
    memo: Optional[str] = None


class UpdateConversationPayload(_ActionPayload):
    status: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[str] = None
    sentiment: Optional[str] = None
    summary: Optional[str] = None


class NotifyPayload(_ActionPayload):
    title: Optional[str] = None
    message: Optional[str] = None
    target_user_id: Optional[str] = Field(None, alias="targetUserId")


def format_ticket_number(existing_count: int) -> str:
    return f"{TICKET_NUMBER_PREFIX}{existing_count + 1:06d}"


def _present(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in fields.items() if v}


class ActionExecutor:
    def __init__(self, repository: Repository):
        self._repository = repository
        self._handlers: Dict[str, Callable[..., Any]] = {
            "create_ticket": self._create_ticket,
            "update_ticket": self._update_ticket,
            "escalate": self._escalate,
            "update_conversation": self._update_conversation,
            "notify": self._notify,
        }

    async def execute(
        self,
        actions: Iterable[AgentAction],
        conversation_id: str,
        user_id: str,
    ) -> ActionExecutionReport:
        report = ActionExecutionReport()
        for action in actions:
            result = await self._execute_one(action, conversation_id, user_id)
            record_action_result(result.type, result.status)
            report.results.append(result)
        return report

    async def _execute_one(self, action: AgentAction, conversation_id: str, user_id: str) -> ActionResult:
        handler = self._handlers.get(action.type)
        if handler is None:
            return ActionResult(type=action.type, status="error", error=f"Unknown action type: {action.type}")

        try:
            return await handler(action.payload, conversation_id, user_id)
        except ValidationError as exc:
            logger.warning(
                "action_payload_invalid",
                action_type=action.type,
                conversation_id=conversation_id,
                error=str(exc),
            )
            return ActionResult(type=action.type, status="error", error=f"Invalid payload: {exc}")
        except Exception as exc:
            logger.error(
                "action_execution_failed",
                action_type=action.type,
                conversation_id=conversation_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return ActionResult(type=action.type, status="error", error=str(exc))

    async def _create_ticket(self, raw: Dict[str, Any], conversation_id: str, user_id: str) -> ActionResult:
        payload = CreateTicketPayload.model_validate(raw)
        ticket_number = format_ticket_number(await self._repository.count_tickets())

        ticket = await self._repository.create_ticket(
            {
                "ticket_number": ticket_number,
                "title": payload.title or "AI generated ticket",
                "description": payload.description or "",
                "category": payload.category or "general",
                "priority": payload.priority or "medium",
                "customer_id": payload.customer_id,
                "product_name": payload.product_name,
                "assigned_to_id": user_id,
                "status": "received",
                "memo": f"Created automatically from AI CS conversation {conversation_id}",
            }
        )
        await self._repository.update_conversation(conversation_id, {"ticket_id": ticket["id"]})

        logger.info(
            "ticket_created",
            ticket_id=ticket["id"],
            ticket_number=ticket_number,
            conversation_id=conversation_id,
        )
        return ActionResult(
            type="create_ticket",
            status="success",
            data={"ticket_id": ticket["id"], "ticket_number": ticket_number},
        )

    async def _update_ticket(self, raw: Dict[str, Any], conversation_id: str, user_id: str) -> ActionResult:
        payload = UpdateTicketPayload.model_validate(raw)
        if not payload.ticket_id:
            return ActionResult(type="update_ticket", status="error", error="ticketId is required")

        fields = _present({"status": payload.status, "priority": payload.priority, "memo": payload.memo})
        if not fields:
            return ActionResult(type="update_ticket", status="noop", data={"ticket_id": payload.ticket_id})

        await self._repository.update_ticket(payload.ticket_id, fields)
        return ActionResult(
            type="update_ticket",
            status="success",
            data={"ticket_id": payload.ticket_id, "fields": sorted(fields)},
        )

    async def _escalate(self, raw: Dict[str, Any], conversation_id: str, user_id: str) -> ActionResult:
        await self._repository.update_conversation(conversation_id, {"status": "escalated", "priority": "urgent"})
        logger.info("conversation_escalated", conversation_id=conversation_id, reason=raw.get("reason"))
        return ActionResult(type="escalate", status="success", data={"conversation_id": conversation_id})

    async def _update_conversation(self, raw: Dict[str, Any], conversation_id: str, user_id: str) -> ActionResult:
        payload = UpdateConversationPayload.model_validate(raw)
        fields = _present(payload.model_dump())
        if not fields:
            return ActionResult(type="update_conversation", status="noop", data={"conversation_id": conversation_id})

        await self._repository.update_conversation(conversation_id, fields)
        return ActionResult(
            type="update_conversation",
            status="success",
            data={"conversation_id": conversation_id, "fields": sorted(fields)},
        )

    async def _notify(self, raw: Dict[str, Any], conversation_id: str, user_id: str) -> ActionResult:
        payload = NotifyPayload.model_validate(raw)
        target = payload.target_user_id or user_id
        await self._repository.create_notification(
            {
                "user_id": target,
                "type": "system",
                "title": payload.title or "AI CS notification",
                "message": payload.message or "",
                "link": NOTIFICATION_LINK,
            }
        )
        return ActionResult(type="notify", status="success", data={"user_id": target})

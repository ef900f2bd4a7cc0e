"""
Persistence operations consumed by the AI CS core.

The orchestrator, agents, action executor and usage tracker only see the
``Repository`` protocol. ``SupabaseRepository`` is the production backend.

Tables:
- ai_agent_configs (agent_id, is_enabled)
- faqs (question, answer, view_count)
- service_tickets
- ai_conversations / ai_messages
- notifications
- ai_usage_daily (date, agent_id, total_* counters, estimated_cost_usd)
- ai_agent_logs
"""
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Protocol, Sequence

from supabase import Client

from aics.core.database import get_supabase_client
from aics.core.logging import get_logger
from aics.services.ai.schema import TOTAL_USAGE_KEY, AgentLogEntry, UsageIncrement

logger = get_logger(__name__)

# Stored agent-log output is truncated to this length.
LOG_OUTPUT_MAX_CHARS = 500

_FILTER_UNSAFE_RE = re.compile(r"[,()%*\\]")


class RepositoryUnavailableError(RuntimeError):
    """Raised when the persistence backend is not configured."""


class Repository(Protocol):
    async def get_agent_enablement(self) -> Dict[str, bool]: ...

    async def search_faqs(self, text: str, limit: int = 5) -> List[Dict[str, Any]]: ...

    async def count_tickets(self) -> int: ...

    async def create_ticket(self, data: Dict[str, Any]) -> Dict[str, Any]: ...

    async def update_ticket(self, ticket_id: str, fields: Dict[str, Any]) -> None: ...

    async def update_conversation(self, conversation_id: str, fields: Dict[str, Any]) -> None: ...

    async def create_notification(self, data: Dict[str, Any]) -> Dict[str, Any]: ...

    async def upsert_usage_bucket(self, day: date, agent_key: str, increment: UsageIncrement) -> None: ...

    async def append_agent_logs(self, conversation_id: str, entries: Sequence[AgentLogEntry]) -> None: ...

    async def get_conversation(self, conversation_id: str) -> Optional[Dict[str, Any]]: ...

    async def create_conversation(self, data: Dict[str, Any]) -> Dict[str, Any]: ...

    async def add_message(self, data: Dict[str, Any]) -> Dict[str, Any]: ...

    async def list_messages(self, conversation_id: str, limit: int) -> List[Dict[str, Any]]: ...

    async def aggregate_stats(self, period_days: int) -> Dict[str, Any]: ...


def agent_log_rows(conversation_id: str, entries: Sequence[AgentLogEntry]) -> List[Dict[str, Any]]:
    """Row dicts for ai_agent_logs, shared by every backend."""
    return [
        {
            "conversation_id": conversation_id,
            "agent_id": entry.agent_id.value,
            "agent_name": entry.agent_name,
            "action": entry.action,
            "confidence": entry.confidence,
            "duration_ms": entry.duration_ms,
            "token_usage": entry.token_usage,
            "output": entry.output[:LOG_OUTPUT_MAX_CHARS] if entry.output else None,
            "error": entry.error,
        }
        for entry in entries
    ]


class SupabaseRepository:
    """Repository backed by Supabase tables."""

    def __init__(self, client: Optional[Client]):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            raise RepositoryUnavailableError("Supabase client not configured")
        return self._client

    @staticmethod
    def _first(response: Any) -> Dict[str, Any]:
        data = response.data or []
        if not data:
            raise RuntimeError("Supabase returned no rows")
        return data[0]

    async def get_agent_enablement(self) -> Dict[str, bool]:
        response = self.client.table("ai_agent_configs").select("agent_id, is_enabled").execute()
        return {row["agent_id"]: bool(row["is_enabled"]) for row in response.data or []}

    async def search_faqs(self, text: str, limit: int = 5) -> List[Dict[str, Any]]:
        term = _FILTER_UNSAFE_RE.sub(" ", text).strip()
        if not term:
            return []
        response = (
            self.client.table("faqs")
            .select("question, answer")
            .or_(f"question.ilike.%{term}%,answer.ilike.%{term}%")
            .order("view_count", desc=True)
            .limit(limit)
            .execute()
        )
        return list(response.data or [])

    async def count_tickets(self) -> int:
        response = self.client.table("service_tickets").select("id", count="exact").limit(1).execute()
        return int(response.count or 0)

    async def create_ticket(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._first(self.client.table("service_tickets").insert(data).execute())

    async def update_ticket(self, ticket_id: str, fields: Dict[str, Any]) -> None:
        response = self.client.table("service_tickets").update(fields).eq("id", ticket_id).execute()
        if not response.data:
            raise LookupError(f"Ticket not found: {ticket_id}")

    async def update_conversation(self, conversation_id: str, fields: Dict[str, Any]) -> None:
        if not fields:
            return
        self.client.table("ai_conversations").update(fields).eq("id", conversation_id).execute()

    async def create_notification(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._first(self.client.table("notifications").insert(data).execute())

    async def upsert_usage_bucket(self, day: date, agent_key: str, increment: UsageIncrement) -> None:
        # Read-modify-write; concurrent writers on the same key can lose an increment.
        table = self.client.table("ai_usage_daily")
        existing = (
            table.select("*")
            .eq("date", day.isoformat())
            .eq("agent_id", agent_key)
            .limit(1)
            .execute()
        )
        if existing.data:
            row = existing.data[0]
            table.update(
                {
                    "total_calls": row["total_calls"] + increment.calls,
                    "total_token_input": row["total_token_input"] + increment.token_input,
                    "total_token_output": row["total_token_output"] + increment.token_output,
                    "total_messages": row["total_messages"] + increment.messages,
                    "total_conversations": row["total_conversations"] + increment.conversations,
                    "estimated_cost_usd": round(
                        float(row["estimated_cost_usd"]) + increment.cost_usd, 6
                    ),
                }
            ).eq("id", row["id"]).execute()
            return

        table.insert(
            {
                "date": day.isoformat(),
                "agent_id": agent_key,
                "total_calls": increment.calls,
                "total_token_input": increment.token_input,
                "total_token_output": increment.token_output,
                "total_messages": increment.messages,
                "total_conversations": increment.conversations,
                "estimated_cost_usd": increment.cost_usd,
            }
        ).execute()

    async def append_agent_logs(self, conversation_id: str, entries: Sequence[AgentLogEntry]) -> None:
        if not entries:
            return
        self.client.table("ai_agent_logs").insert(agent_log_rows(conversation_id, entries)).execute()

    async def get_conversation(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        response = (
            self.client.table("ai_conversations").select("*").eq("id", conversation_id).limit(1).execute()
        )
        return response.data[0] if response.data else None

    async def create_conversation(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._first(self.client.table("ai_conversations").insert(data).execute())

    async def add_message(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._first(self.client.table("ai_messages").insert(data).execute())

    async def list_messages(self, conversation_id: str, limit: int) -> List[Dict[str, Any]]:
        response = (
            self.client.table("ai_messages")
            .select("id, role, content, agent_id, created_at")
            .eq("conversation_id", conversation_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return list(reversed(response.data or []))

    async def aggregate_stats(self, period_days: int) -> Dict[str, Any]:
        since = (datetime.now(timezone.utc) - timedelta(days=period_days)).date().isoformat()
        usage = (
            self.client.table("ai_usage_daily")
            .select("*")
            .eq("agent_id", TOTAL_USAGE_KEY)
            .gte("date", since)
            .execute()
        )
        escalated = (
            self.client.table("ai_conversations")
            .select("id", count="exact")
            .eq("status", "escalated")
            .gte("created_at", since)
            .execute()
        )
        rows = usage.data or []
        return {
            "since": since,
            "messages": sum(r["total_messages"] for r in rows),
            "conversations": sum(r["total_conversations"] for r in rows),
            "token_input": sum(r["total_token_input"] for r in rows),
            "token_output": sum(r["total_token_output"] for r in rows),
            "estimated_cost_usd": round(sum(float(r["estimated_cost_usd"]) for r in rows), 6),
            "escalated_conversations": int(escalated.count or 0),
        }


_repository: Optional[SupabaseRepository] = None


def get_repository() -> SupabaseRepository:
    """Global repository bound to the shared Supabase client."""
    global _repository
    if _repository is None:
        _repository = SupabaseRepository(get_supabase_client())
    return _repository

"""
Shared fixtures: an in-memory repository and a scripted LLM client.

Neither performs I/O; tests script model responses per caller ("team-3",
"classifier", ...) and inspect the rows written to the repository.
"""
import asyncio
import json
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pytest

from aics.core.config import Settings
from aics.services.ai.llm_client import LLMRequest, LLMResponse
from aics.services.ai.schema import AgentLogEntry, UsageIncrement
from aics.services.repository import agent_log_rows

ScriptedReply = Union[str, Exception, Callable[[LLMRequest], str]]


class FakeLLMClient:
    """
    Stand-in for LLMClient.

    ``replies`` maps the ``agent`` argument of complete() to a string, an
    exception to raise, or a callable producing the text from the request.
    ``delays`` holds per-agent sleeps, used for timeout tests.
    """

    def __init__(
        self,
        replies: Optional[Dict[str, ScriptedReply]] = None,
        delays: Optional[Dict[str, float]] = None,
        token_input: int = 10,
        token_output: int = 20,
    ):
        self.replies: Dict[str, ScriptedReply] = dict(replies or {})
        self.delays: Dict[str, float] = dict(delays or {})
        self.token_input = token_input
        self.token_output = token_output
        self.calls: List[Dict[str, Any]] = []

    def called_agents(self) -> List[str]:
        return [call["agent"] for call in self.calls]

    async def complete(self, request: LLMRequest, agent: str = "unknown") -> LLMResponse:
        self.calls.append({"agent": agent, "request": request})
        delay = self.delays.get(agent)
        if delay:
            await asyncio.sleep(delay)

        reply = self.replies.get(agent, f"reply from {agent}")
        if isinstance(reply, Exception):
            raise reply
        content = reply(request) if callable(reply) else reply
        return LLMResponse(
            content=content,
            token_input=self.token_input,
            token_output=self.token_output,
            model="fake-model",
        )


class InMemoryRepository:
    """Repository protocol over plain dicts and lists."""

    def __init__(self):
        self.enablement: Dict[str, bool] = {}
        self.faqs: List[Dict[str, Any]] = []
        self.tickets: Dict[str, Dict[str, Any]] = {}
        self.conversations: Dict[str, Dict[str, Any]] = {}
        self.notifications: List[Dict[str, Any]] = []
        self.usage: Dict[tuple, Dict[str, Any]] = {}
        self.agent_logs: List[Dict[str, Any]] = []
        self.messages: List[Dict[str, Any]] = []
        self.stats: Dict[str, Any] = {}
        self.fail_on: Dict[str, Exception] = {}
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _maybe_fail(self, operation: str) -> None:
        error = self.fail_on.get(operation)
        if error is not None:
            raise error

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    async def get_agent_enablement(self) -> Dict[str, bool]:
        self._maybe_fail("get_agent_enablement")
        return dict(self.enablement)

    async def search_faqs(self, text: str, limit: int = 5) -> List[Dict[str, Any]]:
        self._maybe_fail("search_faqs")
        words = [w for w in text.lower().split() if w]
        matches = [
            faq for faq in self.faqs
            if any(w in (faq["question"] + " " + faq["answer"]).lower() for w in words)
        ]
        return matches[:limit]

    async def count_tickets(self) -> int:
        self._maybe_fail("count_tickets")
        return len(self.tickets)

    async def create_ticket(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self._maybe_fail("create_ticket")
        row = dict(data, id=f"ticket-{len(self.tickets) + 1}")
        self.tickets[row["id"]] = row
        return dict(row)

    async def update_ticket(self, ticket_id: str, fields: Dict[str, Any]) -> None:
        self._maybe_fail("update_ticket")
        if ticket_id not in self.tickets:
            raise LookupError(f"Ticket not found: {ticket_id}")
        self.tickets[ticket_id].update(fields)

    async def update_conversation(self, conversation_id: str, fields: Dict[str, Any]) -> None:
        self._maybe_fail("update_conversation")
        self.conversations.setdefault(conversation_id, {"id": conversation_id}).update(fields)

    async def create_notification(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self._maybe_fail("create_notification")
        row = dict(data, id=f"notification-{len(self.notifications) + 1}")
        self.notifications.append(row)
        return dict(row)

    async def upsert_usage_bucket(self, day: date, agent_key: str, increment: UsageIncrement) -> None:
        self._maybe_fail("upsert_usage_bucket")
        bucket = self.usage.setdefault(
            (day, agent_key),
            {
                "total_calls": 0,
                "total_token_input": 0,
                "total_token_output": 0,
                "total_messages": 0,
                "total_conversations": 0,
                "estimated_cost_usd": 0.0,
            },
        )
        bucket["total_calls"] += increment.calls
        bucket["total_token_input"] += increment.token_input
        bucket["total_token_output"] += increment.token_output
        bucket["total_messages"] += increment.messages
        bucket["total_conversations"] += increment.conversations
        bucket["estimated_cost_usd"] = round(bucket["estimated_cost_usd"] + increment.cost_usd, 6)

    async def append_agent_logs(self, conversation_id: str, entries: Sequence[AgentLogEntry]) -> None:
        self._maybe_fail("append_agent_logs")
        self.agent_logs.extend(agent_log_rows(conversation_id, entries))

    async def get_conversation(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        row = self.conversations.get(conversation_id)
        return dict(row) if row else None

    async def create_conversation(self, data: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(data, id=f"conv-{len(self.conversations) + 1}")
        self.conversations[row["id"]] = row
        return dict(row)

    async def add_message(self, data: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(data, id=f"msg-{len(self.messages) + 1}", created_at=self._tick())
        self.messages.append(row)
        return dict(row)

    async def list_messages(self, conversation_id: str, limit: int) -> List[Dict[str, Any]]:
        rows = [m for m in self.messages if m["conversation_id"] == conversation_id]
        return [dict(m) for m in rows[-limit:]]

    async def aggregate_stats(self, period_days: int) -> Dict[str, Any]:
        self._maybe_fail("aggregate_stats")
        return dict(self.stats, period_days=period_days)


def sentiment_json(sentiment="neutral", urgency="medium", priority="medium", confidence=0.8):
    return json.dumps(
        {
            "sentiment": sentiment,
            "urgency": urgency,
            "priority": priority,
            "confidence": confidence,
            "keywords": ["order"],
        }
    )


def classifier_json(agents, category="faq", confidence=0.9, reasoning="routing"):
    return json.dumps(
        {"category": category, "agents": agents, "confidence": confidence, "reasoning": reasoning}
    )


def default_replies() -> Dict[str, ScriptedReply]:
    """A well-behaved pipeline: English message, neutral sentiment, FAQ routing, QA approves."""
    return {
        "team-1": json.dumps({"translatedText": "배송은 언제 되나요?", "detectedLanguage": "en"}),
        "team-2": sentiment_json(),
        "classifier": classifier_json(["team-3"]),
        "team-3": "Orders ship within two business days.",
        "team-8": json.dumps({"approved": True, "score": 9, "issues": []}),
    }


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def llm():
    return FakeLLMClient(default_replies())


@pytest.fixture
def settings():
    return Settings(
        llm_api_key="test-key",
        agent_timeout_seconds=1.0,
        supabase_url=None,
        supabase_key=None,
    )

"""
Integration tests for the /chat endpoint.

The chat service is replaced with one wired to the in-memory fakes, so the
full request path runs without network or database access.
"""
from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient

import aics.routes.chat as chat_routes
from aics.core.config import Settings
from aics.main import app
from aics.services.ai.orchestration import Orchestrator
from aics.services.ai.usage import UsageTracker
from aics.services.chat import ChatService


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def chat_service(llm, repository, settings, monkeypatch):
    usage = UsageTracker(repository, today=lambda: date(2026, 1, 1))
    service = ChatService(
        repository,
        Orchestrator(llm, repository, usage_tracker=usage, settings=settings),
        usage_tracker=usage,
        settings=settings,
    )
    monkeypatch.setattr(chat_routes, "get_chat_service", lambda: service)
    monkeypatch.setattr(chat_routes, "get_settings", lambda: settings)
    return service


def post_chat(client, body, user_id="user-1"):
    headers = {"X-User-ID": user_id} if user_id else {}
    return client.post("/chat", json=body, headers=headers)


def test_chat_new_conversation(client, chat_service):
    response = post_chat(client, {"message": "Where is my order?", "customerId": "cust-1"})

    assert response.status_code == 200
    data = response.json()
    assert data["conversationId"] == "conv-1"
    assert data["message"]["content"] == "Orders ship within two business days."
    assert data["message"]["agentId"] == "team-3"
    assert data["message"]["agentName"] == "FAQ 검색"
    assert data["message"]["role"] == "assistant"
    assert data["message"]["createdAt"]
    assert data["sentiment"]["sentiment"] == "neutral"
    assert data["category"] == "faq"
    assert data["language"] == "en"


def test_chat_timestamp_is_iso8601(client, chat_service, repository):
    data = post_chat(client, {"message": "Where is my order?"}).json()

    created_at = data["message"]["createdAt"]
    assert "T" in created_at
    assert datetime.fromisoformat(created_at) == repository.messages[-1]["created_at"]


def test_chat_continues_conversation(client, chat_service, repository):
    first = post_chat(client, {"message": "Hello"}).json()

    response = post_chat(client, {"message": "And returns?", "conversationId": first["conversationId"]})

    assert response.status_code == 200
    assert response.json()["conversationId"] == first["conversationId"]
    assert len(repository.messages) == 4


def test_chat_requires_user(client, chat_service):
    response = post_chat(client, {"message": "Hello"}, user_id=None)

    assert response.status_code == 401
    assert response.json()["detail"] == "Authentication required"


def test_chat_empty_message(client, chat_service):
    response = post_chat(client, {"message": "   "})

    assert response.status_code == 400


def test_chat_missing_message(client, chat_service):
    response = post_chat(client, {})

    assert response.status_code == 400


def test_chat_unknown_conversation(client, chat_service):
    response = post_chat(client, {"message": "Hello", "conversationId": "conv-404"})

    assert response.status_code == 404


def test_chat_other_users_conversation(client, chat_service, repository):
    repository.conversations["conv-7"] = {"id": "conv-7", "user_id": "user-2", "status": "active"}

    response = post_chat(client, {"message": "Hello", "conversationId": "conv-7"})

    assert response.status_code == 404


def test_chat_closed_conversation(client, chat_service, repository):
    repository.conversations["conv-7"] = {"id": "conv-7", "user_id": "user-1", "status": "closed"}

    response = post_chat(client, {"message": "Hello", "conversationId": "conv-7"})

    assert response.status_code == 400


def test_chat_ai_not_configured(client, chat_service, monkeypatch, llm):
    monkeypatch.setattr(chat_routes, "get_settings", lambda: Settings(llm_api_key=None))

    response = post_chat(client, {"message": "Hello"})

    assert response.status_code == 503
    assert llm.calls == []


def test_chat_all_agents_failing_still_answers(client, chat_service, llm):
    llm.replies["team-3"] = RuntimeError("gateway down")

    response = post_chat(client, {"message": "Hello"})

    assert response.status_code == 200
    assert response.json()["message"]["content"].startswith("죄송합니다")


def test_chat_response_carries_trace_id(client, chat_service):
    response = client.post(
        "/chat",
        json={"message": "Hello"},
        headers={"X-User-ID": "user-1", "X-Trace-ID": "trace-abc"},
    )

    assert response.headers["X-Trace-ID"] == "trace-abc"

from __future__ import annotations

import json
from datetime import date, timedelta
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.security import create_access_token
from app.db.deps import get_db
from app.db.models.agent_action_log import AgentActionLog
from app.db.models.plan import Plan
from app.db.models.task import PlanTask
from app.db.models.user import User
from app.main import app
from app.services import chat_service
from app.services.ai_client import LLMError

TOMORROW = (date.today() + timedelta(days=1)).isoformat()


@pytest.fixture()
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_fk(conn, record):  # pragma: no cover
        cursor = conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    User.__table__.create(bind=engine)
    Plan.__table__.create(bind=engine)
    PlanTask.__table__.create(bind=engine)
    AgentActionLog.__table__.create(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client, TestingSessionLocal
    app.dependency_overrides.clear()


def _seed_user(session_factory):
    session = session_factory()
    try:
        user_id = uuid4()
        session.add(User(id=user_id, name="Sam", email=f"{user_id.hex}@example.com", password_hash="x"))
        session.commit()
        return user_id
    finally:
        session.close()


def _model_replies(monkeypatch, reply):
    prompts = []

    def fake_generate(prompt, *, purpose="chat"):
        prompts.append(prompt)
        if isinstance(reply, Exception):
            raise reply
        return reply

    monkeypatch.setattr(chat_service, "generate_text", fake_generate)
    return prompts


def test_chat_requires_message(client, monkeypatch):
    test_client, session_factory = client
    headers = {"x-auth-token": create_access_token(_seed_user(session_factory))}
    _model_replies(monkeypatch, "unused")

    for body in ({}, {"message": "   "}):
        response = test_client.post("/api/chat", json=body, headers=headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Message is required."


def test_chat_requires_auth(client):
    test_client, _ = client
    assert test_client.post("/api/chat", json={"message": "hi"}).status_code == 401


def test_plain_reply_is_returned_verbatim(client, monkeypatch):
    test_client, session_factory = client
    headers = {"x-auth-token": create_access_token(_seed_user(session_factory))}
    prompts = _model_replies(monkeypatch, "Hello! Ready to plan your day?")

    response = test_client.post(
        "/api/chat",
        json={
            "message": "hi",
            "history": [{"sender": "user", "text": "earlier"}, {"sender": "ai", "text": "sure"}],
        },
        headers=headers,
    )

    assert response.status_code == 200
    assert response.json() == {"reply": "Hello! Ready to plan your day?"}
    assert "User: earlier" in prompts[0]
    assert "Aura: sure" in prompts[0]
    assert "User request: hi" in prompts[0]


def test_schedule_action_creates_plan(client, monkeypatch):
    test_client, session_factory = client
    headers = {"x-auth-token": create_access_token(_seed_user(session_factory))}
    _model_replies(
        monkeypatch,
        "```json\n"
        + json.dumps(
            {
                "response_type": "schedule",
                "data": {"title": "Gym day", "date": TOMORROW, "tasks": [{"description": "Run", "time": "7am"}]},
                "confirmation_message": "Scheduled your gym day!",
            }
        )
        + "\n```",
    )

    response = test_client.post("/api/chat", json={"message": "plan a gym day tomorrow"}, headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["reply"] == "Scheduled your gym day!"
    assert body["action"] == "plan_created"
    assert body["plan"]["title"] == "Gym day"
    assert body["plan"]["tasks"][0]["time"] == "07:00"
    listed = test_client.get(f"/api/plans/by-date/{TOMORROW}", headers=headers).json()
    assert [plan["id"] for plan in listed] == [body["plan"]["id"]]


def test_llm_failure_gets_apology(client, monkeypatch):
    test_client, session_factory = client
    headers = {"x-auth-token": create_access_token(_seed_user(session_factory))}
    _model_replies(monkeypatch, LLMError("quota exceeded"))

    response = test_client.post("/api/chat", json={"message": "hi"}, headers=headers)

    assert response.status_code == 200
    assert response.json() == {"reply": chat_service.REPLY_LLM_UNAVAILABLE}


def test_unexpected_failure_is_500_with_apology(client, monkeypatch):
    test_client, session_factory = client
    headers = {"x-auth-token": create_access_token(_seed_user(session_factory))}
    _model_replies(monkeypatch, RuntimeError("boom"))

    response = test_client.post("/api/chat", json={"message": "hi"}, headers=headers)

    assert response.status_code == 500
    assert response.json() == {"detail": chat_service.REPLY_LLM_UNAVAILABLE}


def test_malformed_action_gets_formatting_reply(client, monkeypatch):
    test_client, session_factory = client
    headers = {"x-auth-token": create_access_token(_seed_user(session_factory))}
    _model_replies(monkeypatch, '{"response_type": "schedule", "data": {"title": "x"}}')

    response = test_client.post("/api/chat", json={"message": "plan"}, headers=headers)

    assert response.status_code == 200
    assert response.json()["reply"] == "I had a little trouble formatting my thoughts."
    session = session_factory()
    assert session.query(Plan).count() == 0
    session.close()


def test_push_token_in_chat_is_stored(client, monkeypatch):
    test_client, session_factory = client
    user_id = _seed_user(session_factory)
    headers = {"x-auth-token": create_access_token(user_id)}
    _model_replies(monkeypatch, "Noted.")

    response = test_client.post(
        "/api/chat",
        json={"message": "hi", "pushToken": "ExponentPushToken[xyz]"},
        headers=headers,
    )

    assert response.status_code == 200
    session = session_factory()
    assert session.get(User, user_id).push_token == "ExponentPushToken[xyz]"
    session.close()

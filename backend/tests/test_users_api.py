from __future__ import annotations

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.security import create_access_token, decode_access_token, hash_password, verify_password
from app.db.deps import get_db
from app.db.models.user import User
from app.main import app


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


def _register(test_client, email="ana@example.com", password="s3cret-pass"):
    return test_client.post(
        "/api/users/register",
        json={"name": "Ana", "email": email, "password": password},
    )


def test_password_hash_round_trip() -> None:
    encoded = hash_password("hunter2")
    assert encoded != "hunter2"
    assert verify_password("hunter2", encoded)
    assert not verify_password("hunter3", encoded)
    assert not verify_password("hunter2", "not-a-hash")


def test_password_hash_is_bcrypt_and_accepts_long_input() -> None:
    long_password = "correct horse battery staple " * 4
    encoded = hash_password(long_password)

    assert encoded.startswith("$2")
    assert verify_password(long_password, encoded)
    assert not verify_password("correct horse", encoded)


def test_token_carries_user_id() -> None:
    user_id = uuid4()
    assert decode_access_token(create_access_token(user_id)) == user_id
    with pytest.raises(ValueError):
        decode_access_token(create_access_token(user_id, expires_in=-10))
    with pytest.raises(ValueError):
        decode_access_token("garbage")


def test_register_returns_token_and_stores_hash(client):
    test_client, session_factory = client
    response = _register(test_client, email="Ana@Example.com")

    assert response.status_code == 200
    token = response.json()["token"]
    session = session_factory()
    user = session.query(User).one()
    session.close()
    assert decode_access_token(token) == user.id
    assert user.email == "ana@example.com"
    assert user.password_hash != "s3cret-pass"


def test_register_duplicate_email_rejected(client):
    test_client, _ = client
    assert _register(test_client).status_code == 200

    duplicate = _register(test_client, email="ANA@example.com")
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "User already exists"


def test_register_validation_errors_are_400(client):
    test_client, _ = client
    response = test_client.post("/api/users/register", json={"name": "Ana", "email": "not-an-email", "password": "x"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Validation failed"
    assert response.json()["errors"]


def test_login_with_valid_and_invalid_credentials(client):
    test_client, _ = client
    _register(test_client)

    ok = test_client.post("/api/users/login", json={"email": "ana@example.com", "password": "s3cret-pass"})
    bad = test_client.post("/api/users/login", json={"email": "ana@example.com", "password": "wrong"})
    unknown = test_client.post("/api/users/login", json={"email": "bob@example.com", "password": "s3cret-pass"})

    assert ok.status_code == 200
    assert ok.json()["token"]
    assert bad.status_code == 400
    assert bad.json()["detail"] == "Invalid Credentials"
    assert unknown.status_code == 400


def test_push_token_saved(client):
    test_client, session_factory = client
    token = _register(test_client).json()["token"]

    response = test_client.put(
        "/api/users/pushtoken",
        json={"pushToken": "ExponentPushToken[abc123]"},
        headers={"x-auth-token": token},
    )

    assert response.status_code == 200
    assert response.json() == {"message": "Push token saved successfully."}
    session = session_factory()
    assert session.query(User).one().push_token == "ExponentPushToken[abc123]"
    session.close()


def test_push_token_required(client):
    test_client, _ = client
    token = _register(test_client).json()["token"]

    response = test_client.put("/api/users/pushtoken", json={}, headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Push token is required."


def test_push_token_needs_auth(client):
    test_client, _ = client
    missing = test_client.put("/api/users/pushtoken", json={"pushToken": "x"})
    invalid = test_client.put("/api/users/pushtoken", json={"pushToken": "x"}, headers={"x-auth-token": "nope"})

    assert missing.status_code == 401
    assert missing.json()["detail"] == "No token, authorization denied"
    assert invalid.status_code == 401
    assert invalid.json()["detail"] == "Token is not valid"

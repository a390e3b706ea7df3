from __future__ import annotations

import time

import pytest
from jose import jwt

from src.shared.forms.unsubscribe import create_unsubscribe_token, verify_unsubscribe_token

SECRET = "unsubscribe-secret"


@pytest.fixture
def unsubscribe_secret(monkeypatch):
    monkeypatch.setenv("UNSUBSCRIBE_JWT_SECRET", SECRET)


def test_verify_valid_token() -> None:
    token = create_unsubscribe_token("reader@example.com", SECRET, expires_at=int(time.time()) + 3600)

    result = verify_unsubscribe_token(token, SECRET)

    assert result.valid
    assert result.claims["email"] == "reader@example.com"
    assert result.claims["sub"] == "unsubscribe"


def test_verify_rejects_wrong_secret() -> None:
    token = create_unsubscribe_token("reader@example.com", "other-secret")

    result = verify_unsubscribe_token(token, SECRET)

    assert not result.valid
    assert result.reason == "Invalid signature"


def test_verify_rejects_expired_token() -> None:
    token = create_unsubscribe_token("reader@example.com", SECRET, expires_at=int(time.time()) - 60)

    result = verify_unsubscribe_token(token, SECRET)

    assert not result.valid
    assert result.reason == "Token expired"


def test_verify_rejects_other_algorithms() -> None:
    token = jwt.encode({"sub": "unsubscribe", "email": "reader@example.com"}, SECRET, algorithm="HS512")

    result = verify_unsubscribe_token(token, SECRET)

    assert not result.valid
    assert result.reason == "Unsupported algorithm or type"


def test_verify_rejects_garbage() -> None:
    result = verify_unsubscribe_token("not-a-token", SECRET)

    assert not result.valid
    assert result.reason == "Malformed token"


def test_unsubscribe_route_success(client, harness, unsubscribe_secret) -> None:
    token = create_unsubscribe_token("reader@example.com", SECRET)

    response = client.post(
        "/api/unsubscribe",
        json={"token": token},
        headers={"User-Agent": "MailClient/1.0", "CF-Connecting-IP": "198.51.100.4"},
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "You have been unsubscribed"}
    text = harness.dispatcher.sent[0].text
    assert "reader@example.com" in text
    assert "198.51.100.4" in text
    assert "MailClient/1.0" in text


def test_unsubscribe_route_bad_signature(client, harness, unsubscribe_secret) -> None:
    token = create_unsubscribe_token("reader@example.com", "forged")

    response = client.post("/api/unsubscribe", json={"token": token})

    assert response.status_code == 401
    assert response.json()["reason"] == "Invalid signature"
    assert harness.dispatcher.sent == []


def test_unsubscribe_route_expired(client, harness, unsubscribe_secret) -> None:
    token = create_unsubscribe_token("reader@example.com", SECRET, expires_at=int(time.time()) - 1)

    response = client.post("/api/unsubscribe", json={"token": token})

    assert response.status_code == 401
    assert response.json()["reason"] == "Token expired"


def test_unsubscribe_route_wrong_subject(client, harness, unsubscribe_secret) -> None:
    token = jwt.encode({"sub": "newsletter", "email": "reader@example.com"}, SECRET, algorithm="HS256")

    response = client.post("/api/unsubscribe", json={"token": token})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid claims"


def test_unsubscribe_route_missing_token(client, harness, unsubscribe_secret) -> None:
    response = client.post("/api/unsubscribe", json={})

    assert response.status_code == 400
    assert response.json()["error"] == "Missing token"


def test_unsubscribe_route_without_secret(client, harness) -> None:
    token = create_unsubscribe_token("reader@example.com", SECRET)

    response = client.post("/api/unsubscribe", json={"token": token})

    assert response.status_code == 500
    assert response.json()["code"] == "CONFIG_ERROR"


def test_unsubscribe_route_dispatch_failure(client, harness, unsubscribe_secret) -> None:
    harness.dispatcher.fail = True
    token = create_unsubscribe_token("reader@example.com", SECRET)

    response = client.post("/api/unsubscribe", json={"token": token})

    assert response.status_code == 502
    assert response.json()["code"] == "API_ERROR"

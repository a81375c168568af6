"""Tests for GET /api/chat/recover."""

import asyncio

from fastapi.testclient import TestClient

from ra_companion.routes.recover import is_valid_response_id

RESPONSE_ID = "0b7e4a52-5a0e-4b8e-9f53-0f1c1f7c9b11"


def _seed(cache, events):
    async def append_all():
        for event, data in events:
            await cache.append_event(RESPONSE_ID, event, data)

    asyncio.run(append_all())


def test_invalid_id_is_rejected_without_lookup(client, cache):
    response = client.get("/api/chat/recover", params={"id": "not-a-uuid"})
    assert response.status_code == 400
    assert "error" in response.json()
    assert cache.lookups == 0


def test_missing_id_is_rejected(client, cache):
    response = client.get("/api/chat/recover")
    assert response.status_code == 400
    assert cache.lookups == 0


def test_unknown_id_returns_404(client, cache):
    response = client.get("/api/chat/recover", params={"id": RESPONSE_ID})
    assert response.status_code == 404
    assert response.json() == {"error": "Response not found"}
    assert cache.lookups == 1


def test_cached_response_is_replayed(client, cache):
    _seed(cache, [
        ("session", {"responseId": RESPONSE_ID}),
        ("chunk", {"type": "text", "content": "Hello"}),
        ("done", {}),
    ])
    response = client.get("/api/chat/recover", params={"id": RESPONSE_ID})
    assert response.status_code == 200
    body = response.json()
    assert body["complete"] is True
    assert body["events"] == [
        {"type": "session", "data": {"responseId": RESPONSE_ID}},
        {"type": "chunk", "data": {"type": "text", "content": "Hello"}},
        {"type": "done", "data": {}},
    ]


def test_incomplete_response_is_reported(client, cache):
    _seed(cache, [("chunk", {"type": "text", "content": "Hel"})])
    body = client.get("/api/chat/recover", params={"id": RESPONSE_ID}).json()
    assert body["complete"] is False
    assert len(body["events"]) == 1


def test_over_budget_returns_429_with_retry_after(make_app, cache):
    app = make_app(cache=cache, recovery_rate_limit_max_requests=1)
    with TestClient(app) as client:
        assert client.get("/api/chat/recover", params={"id": RESPONSE_ID}).status_code == 404

        response = client.get("/api/chat/recover", params={"id": "not-a-uuid"})
        assert response.status_code == 429
        retry_after = int(response.headers["Retry-After"])
        assert retry_after > 0
        assert response.json()["retryAfter"] == retry_after
        assert cache.lookups == 1


def test_rate_limit_uses_forwarded_client_ip(make_app):
    app = make_app(recovery_rate_limit_max_requests=1)
    with TestClient(app) as client:
        first = client.get("/api/chat/recover", params={"id": RESPONSE_ID}, headers={"X-Forwarded-For": "203.0.113.1"})
        other = client.get("/api/chat/recover", params={"id": RESPONSE_ID}, headers={"X-Forwarded-For": "203.0.113.2"})
        again = client.get("/api/chat/recover", params={"id": RESPONSE_ID}, headers={"X-Forwarded-For": "203.0.113.1"})
    assert first.status_code == 404
    assert other.status_code == 404
    assert again.status_code == 429


def test_response_id_format():
    assert is_valid_response_id(RESPONSE_ID)
    assert is_valid_response_id(RESPONSE_ID.upper())
    assert not is_valid_response_id("")
    assert not is_valid_response_id(None)
    assert not is_valid_response_id(RESPONSE_ID + "0")
    assert not is_valid_response_id("chat:" + RESPONSE_ID)

"""Tests for idempotency behavior."""

from unittest.mock import patch

import pytest

from wa_mailbox.core.idempotency import build_cache_key, is_exempt_path
from wa_mailbox.infrastructure.redis import response_cache


def test_cache_key_is_stable():
    """Same inputs should generate the same key."""
    key1 = build_cache_key("POST", "/api/v1/contacts", "abc-123")
    key2 = build_cache_key("POST", "/api/v1/contacts", "abc-123")

    assert key1 == key2
    assert key1.startswith("idempotency:")


def test_cache_key_differs_by_request_and_scope():
    base = build_cache_key("POST", "/api/v1/contacts", "abc-123")

    assert build_cache_key("POST", "/api/v1/broadcasts", "abc-123") != base
    assert build_cache_key("PUT", "/api/v1/contacts", "abc-123") != base
    assert build_cache_key("POST", "/api/v1/contacts", "abc-124") != base
    # Two tenants reusing a key never share a cached response
    assert build_cache_key("POST", "/api/v1/contacts", "abc-123", "Bearer tenant-a") != build_cache_key(
        "POST", "/api/v1/contacts", "abc-123", "Bearer tenant-b"
    )


@pytest.mark.parametrize(
    "path,exempt",
    [
        ("/api/v1/webhooks/whatsapp", True),
        ("/api/v1/webhooks/whatsapp-web", True),
        ("/api/v1/contacts", False),
        ("/api/v1/broadcasts/1/send", False),
    ],
)
def test_webhooks_are_exempt(path, exempt):
    assert is_exempt_path(path) is exempt


class FakeRedis:
    """In-memory stand-in for the async Redis client."""

    def __init__(self):
        self.store = {}
        self.expiry = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.expiry[key] = ex
        return True


@pytest.fixture
def fake_redis():
    redis = FakeRedis()
    with patch.object(response_cache, "_client", redis), patch.object(response_cache, "_enabled", True):
        yield redis


@pytest.mark.asyncio
async def test_response_cache_store_and_get(fake_redis):
    assert await response_cache.store_response("idempotency:k", 201, {"id": 1}, ttl=60) is True
    assert fake_redis.expiry["idempotency:k"] == 60

    assert await response_cache.get_response("idempotency:k") == {"status_code": 201, "body": {"id": 1}}
    assert await response_cache.get_response("idempotency:missing") is None


@pytest.mark.asyncio
async def test_retry_with_same_key_is_replayed(client, auth_headers, fake_redis):
    headers = {**auth_headers, "Idempotency-Key": "tag-create-1"}

    first = await client.post("/api/v1/tags", json={"name": "VIP"}, headers=headers)
    second = await client.post("/api/v1/tags", json={"name": "VIP"}, headers=headers)

    assert first.status_code == 201
    assert "Idempotent-Replay" not in first.headers
    assert second.status_code == 201
    assert second.headers["Idempotent-Replay"] == "true"
    assert second.json() == first.json()
    assert len(fake_redis.store) == 1

    tags = await client.get("/api/v1/tags", headers=auth_headers)
    assert len(tags.json()) == 1


@pytest.mark.asyncio
async def test_errors_and_unkeyed_requests_are_not_cached(client, auth_headers, fake_redis):
    await client.post("/api/v1/tags", json={"name": "VIP"}, headers=auth_headers)
    assert fake_redis.store == {}

    conflict = await client.post(
        "/api/v1/tags", json={"name": "VIP"}, headers={**auth_headers, "Idempotency-Key": "dup-1"}
    )
    assert conflict.status_code == 409
    assert fake_redis.store == {}


@pytest.mark.asyncio
async def test_passes_through_when_redis_disabled(client, auth_headers):
    headers = {**auth_headers, "Idempotency-Key": "tag-create-2"}

    with patch.object(response_cache, "_enabled", False):
        first = await client.post("/api/v1/tags", json={"name": "VIP"}, headers=headers)
        second = await client.post("/api/v1/tags", json={"name": "VIP"}, headers=headers)

    assert first.status_code == 201
    # The retry runs again and hits the unique name
    assert second.status_code == 409
    assert "Idempotent-Replay" not in second.headers

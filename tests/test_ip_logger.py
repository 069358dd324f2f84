"""Tests for the IP event collector client."""

import json
import logging
from unittest.mock import patch

import httpx
import pytest

from wa_mailbox.infrastructure.ip_logger import log_ip
from wa_mailbox.settings import settings

COLLECTOR_URL = "https://collector.example.test/ip-events"


@pytest.mark.asyncio
async def test_posts_event_to_collector():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request)
        return httpx.Response(204)

    with patch.object(settings, "ip_logging_url", COLLECTOR_URL):
        result = await log_ip("203.0.113.7", "login", tenant_id=3, user_id=9, transport=httpx.MockTransport(handler))

    assert result is True
    assert len(received) == 1
    assert str(received[0].url) == COLLECTOR_URL
    body = json.loads(received[0].content)
    assert body["ip"] == "203.0.113.7"
    assert body["event"] == "login"
    assert body["tenant_id"] == 3
    assert body["user_id"] == 9
    assert body["timestamp"].endswith("Z")


@pytest.mark.asyncio
async def test_no_collector_configured_is_a_no_op():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("collector must not be called")

    with patch.object(settings, "ip_logging_url", None):
        result = await log_ip("203.0.113.7", "register", transport=httpx.MockTransport(handler))

    assert result is False


@pytest.mark.asyncio
async def test_collector_error_is_logged_not_raised(caplog):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": "unavailable"})

    with patch.object(settings, "ip_logging_url", COLLECTOR_URL), caplog.at_level(logging.WARNING):
        result = await log_ip("203.0.113.7", "login", transport=httpx.MockTransport(handler))

    assert result is False
    assert any("IP logging failed" in record.getMessage() for record in caplog.records)

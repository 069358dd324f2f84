"""Tests for credential management and the WhatsApp Web bridge endpoints."""

import httpx
import pytest

from wa_mailbox.api.routes.whatsapp_web import get_bridge_client
from wa_mailbox.domain.services.credential_service import mask_token
from wa_mailbox.infrastructure.whatsapp_web_bridge import WhatsAppWebBridgeClient
from wa_mailbox.main import app

API = "/api/v1"


def test_mask_token():
    assert mask_token(None) is None
    assert mask_token("short") == "*****"
    assert mask_token("EAAG-very-long-token-1234") == "********1234"


@pytest.mark.asyncio
async def test_credentials_are_masked(client, auth_headers, credential):
    response = await client.get(f"{API}/credentials", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["access_token"] != "EAAG-test-token"
    assert data["access_token"].endswith("oken")
    assert data["phone_number_id"] == credential.phone_number_id
    assert data["is_configured"] is True


@pytest.mark.asyncio
async def test_activation_requires_token_and_phone_number_id(client, auth_headers):
    response = await client.put(f"{API}/credentials", json={"is_active": True}, headers=auth_headers)
    assert response.status_code == 400

    response = await client.put(
        f"{API}/credentials",
        json={"access_token": "EAAG-new-token", "phone_number_id": "333333333333333", "is_active": True},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["is_active"] is True


@pytest.mark.asyncio
async def test_update_rejects_null_api_version(client, auth_headers, credential):
    response = await client.put(f"{API}/credentials", json={"api_version": None}, headers=auth_headers)
    assert response.status_code == 422

    response = await client.put(f"{API}/credentials", json={"is_active": None}, headers=auth_headers)
    assert response.status_code == 422

    cleared = await client.put(f"{API}/credentials", json={"business_name": None}, headers=auth_headers)
    assert cleared.status_code == 200
    assert cleared.json()["api_version"] == credential.api_version


@pytest.mark.asyncio
async def test_rotate_verify_token(client, auth_headers, credential):
    before = credential.webhook_verify_token

    response = await client.post(f"{API}/credentials/rotate-verify-token", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["webhook_verify_token"] != before


@pytest.fixture
def bridge_responses():
    return {}


@pytest.fixture
def bridge_override(bridge_responses):
    def handler(request: httpx.Request) -> httpx.Response:
        status_code, body = bridge_responses.get(request.url.path, (404, {"error": "not found"}))
        return httpx.Response(status_code, json=body)

    client = WhatsAppWebBridgeClient(base_url="http://bridge.test", transport=httpx.MockTransport(handler))
    app.dependency_overrides[get_bridge_client] = lambda: client
    yield client
    app.dependency_overrides.pop(get_bridge_client, None)


@pytest.mark.asyncio
async def test_bridge_status_and_qr(client, auth_headers, tenant, bridge_override, bridge_responses):
    bridge_responses[f"/session/{tenant.id}/status"] = (200, {"status": "qr_pending"})
    bridge_responses[f"/session/{tenant.id}/qr"] = (200, {"qr": "data:image/png;base64,AAA"})
    bridge_responses["/session/start"] = (200, {"started": True})

    assert (await client.get(f"{API}/whatsapp-web/status", headers=auth_headers)).json() == {"status": "qr_pending"}
    assert (await client.get(f"{API}/whatsapp-web/qr", headers=auth_headers)).json()["qr"].startswith("data:")
    assert (await client.post(f"{API}/whatsapp-web/session", headers=auth_headers)).json() == {"started": True}


@pytest.mark.asyncio
async def test_bridge_failure_is_bad_gateway(client, auth_headers, bridge_override):
    response = await client.get(f"{API}/whatsapp-web/status", headers=auth_headers)
    assert response.status_code == 502

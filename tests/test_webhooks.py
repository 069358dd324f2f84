"""Tests for the WhatsApp webhook endpoints."""

import hashlib
import hmac
import json
from unittest.mock import AsyncMock, patch

from sqlalchemy import func, select

from payloads import PHONE_NUMBER_ID, VERIFY_TOKEN, change, status_payload, text_message_payload
from wa_mailbox.domain.services.credential_service import CredentialService
from wa_mailbox.persistence.models.contact import Contact
from wa_mailbox.persistence.models.message import Message

WEBHOOK_URL = "/api/v1/webhooks/whatsapp"


async def _message_count(db_session) -> int:
    result = await db_session.execute(select(func.count(Message.id)))
    return result.scalar_one()


async def _contact_count(db_session) -> int:
    result = await db_session.execute(select(func.count(Contact.id)))
    return result.scalar_one()


# ============== Verification ==============

async def test_verify_echoes_challenge_for_active_tenant(client, credential):
    response = await client.get(
        WEBHOOK_URL,
        params={"hub.mode": "subscribe", "hub.verify_token": VERIFY_TOKEN, "hub.challenge": "1158201444"},
    )

    assert response.status_code == 200
    assert response.text == "1158201444"
    assert response.headers["content-type"].startswith("text/plain")


async def test_verify_accepts_underscore_parameter_names(client, credential):
    response = await client.get(
        WEBHOOK_URL,
        params={"hub_mode": "subscribe", "hub_verify_token": VERIFY_TOKEN, "hub_challenge": "42"},
    )

    assert response.status_code == 200
    assert response.text == "42"


async def test_verify_rejects_unknown_token(client, credential):
    response = await client.get(
        WEBHOOK_URL,
        params={"hub.mode": "subscribe", "hub.verify_token": "not-a-tenant-token", "hub.challenge": "42"},
    )

    assert response.status_code == 403
    assert response.json() == {"error": "Verification failed"}


async def test_verify_rejects_token_of_inactive_tenant(client, db_session, tenant):
    # Registration leaves the credentials inactive
    inactive = await CredentialService(db_session).get_for_tenant(tenant.id)
    assert inactive.is_active is False

    response = await client.get(
        WEBHOOK_URL,
        params={
            "hub.mode": "subscribe",
            "hub.verify_token": inactive.webhook_verify_token,
            "hub.challenge": "42",
        },
    )

    assert response.status_code == 403


async def test_verify_rejects_wrong_mode(client, credential):
    response = await client.get(
        WEBHOOK_URL,
        params={"hub.mode": "unsubscribe", "hub.verify_token": VERIFY_TOKEN, "hub.challenge": "42"},
    )

    assert response.status_code == 403


# ============== Delivery ==============

async def test_malformed_json_returns_400(client, credential):
    response = await client.post(
        WEBHOOK_URL,
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON"}


async def test_non_object_json_returns_400(client, credential):
    response = await client.post(WEBHOOK_URL, content=b"[1, 2, 3]")

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON"}


async def test_wrong_object_type_returns_400(client, credential):
    payload = text_message_payload("wamid.A1")
    payload["object"] = "instagram"

    response = await client.post(WEBHOOK_URL, json=payload)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid object type"}


async def test_inbound_text_creates_contact_and_message(client, db_session, credential):
    response = await client.post(
        WEBHOOK_URL, json=text_message_payload("wamid.A1", body="Salam, price?", profile_name="Ayesha")
    )

    assert response.status_code == 200
    assert response.json() == {"status": "received"}

    message = (await db_session.execute(select(Message))).scalar_one()
    assert message.tenant_id == credential.tenant_id
    assert message.message_id == "wamid.A1"
    assert message.direction == "incoming"
    assert message.message_body == "Salam, price?"
    assert message.is_read is False

    contact = (await db_session.execute(select(Contact))).scalar_one()
    assert contact.phone_number == "923001234567"
    assert contact.name == "Ayesha"
    assert contact.unread_count == 1
    assert message.contact_id == contact.id
    assert credential.last_webhook_at is not None


async def test_duplicate_delivery_stores_one_message(client, db_session, credential):
    payload = text_message_payload("wamid.DUP1", body="first")

    first = await client.post(WEBHOOK_URL, json=payload)
    second = await client.post(WEBHOOK_URL, json=payload)

    assert first.status_code == 200
    assert second.status_code == 200
    assert await _message_count(db_session) == 1

    contact = (await db_session.execute(select(Contact))).scalar_one()
    assert contact.unread_count == 1


async def test_redelivery_updates_existing_row(client, db_session, credential):
    await client.post(WEBHOOK_URL, json=text_message_payload("wamid.EDIT", body="before"))
    await client.post(WEBHOOK_URL, json=text_message_payload("wamid.EDIT", body="after"))

    message = (await db_session.execute(select(Message))).scalar_one()
    assert message.message_body == "after"


async def test_unknown_phone_number_id_is_acknowledged_and_ignored(client, db_session, credential):
    response = await client.post(
        WEBHOOK_URL, json=text_message_payload("wamid.X1", phone_number_id="999999999999999")
    )

    assert response.status_code == 200
    assert response.json() == {"status": "received"}
    assert await _message_count(db_session) == 0
    assert await _contact_count(db_session) == 0


async def test_inactive_credentials_do_not_receive_messages(client, db_session, credential):
    credential.is_active = False
    await db_session.commit()

    response = await client.post(WEBHOOK_URL, json=text_message_payload("wamid.X2"))

    assert response.status_code == 200
    assert await _message_count(db_session) == 0


async def test_missing_phone_number_id_is_acknowledged(client, db_session, credential):
    payload = text_message_payload("wamid.X3")
    del payload["entry"][0]["changes"][0]["value"]["metadata"]["phone_number_id"]

    response = await client.post(WEBHOOK_URL, json=payload)

    assert response.status_code == 200
    assert await _message_count(db_session) == 0


async def test_message_without_sender_is_acknowledged(client, db_session, credential):
    payload = text_message_payload("wamid.X4")
    del payload["entry"][0]["changes"][0]["value"]["messages"][0]["from"]

    response = await client.post(WEBHOOK_URL, json=payload)

    assert response.status_code == 200
    assert await _message_count(db_session) == 0


async def test_status_update_sets_message_status(client, db_session, credential):
    await client.post(WEBHOOK_URL, json=text_message_payload("wamid.S1"))

    response = await client.post(WEBHOOK_URL, json=status_payload("wamid.S1", "read"))

    assert response.status_code == 200
    message = (await db_session.execute(select(Message))).scalar_one()
    assert message.status == "read"


async def test_messages_status_field_is_routed(client, db_session, credential):
    await client.post(WEBHOOK_URL, json=text_message_payload("wamid.S2"))
    payload = status_payload("wamid.S2", "delivered")
    payload["entry"][0]["changes"][0]["field"] = "messages_status"

    await client.post(WEBHOOK_URL, json=payload)

    message = (await db_session.execute(select(Message))).scalar_one()
    assert message.status == "delivered"


async def test_history_threads_are_imported(client, db_session, credential):
    value = {
        "messaging_product": "whatsapp",
        "metadata": {"phone_number_id": PHONE_NUMBER_ID},
        "history": [
            {
                "threads": [
                    {
                        "id": "923001112233",
                        "messages": [
                            {
                                "from": "923001112233",
                                "id": "wamid.H1",
                                "timestamp": "1690000000",
                                "type": "text",
                                "text": {"body": "old message"},
                            }
                        ],
                    },
                    {
                        "id": "923004445566",
                        "messages": [
                            {
                                "from": "923004445566",
                                "id": "wamid.H2",
                                "timestamp": "1690000001",
                                "type": "text",
                                "text": {"body": "another old message"},
                            }
                        ],
                    },
                ]
            }
        ],
    }

    response = await client.post(WEBHOOK_URL, json=change(value, field="history"))

    assert response.status_code == 200
    assert await _message_count(db_session) == 2
    assert await _contact_count(db_session) == 2


async def test_unhandled_field_is_acknowledged(client, db_session, credential):
    value = {"metadata": {"phone_number_id": PHONE_NUMBER_ID}, "event": "FLAGGED"}

    response = await client.post(WEBHOOK_URL, json=change(value, field="phone_number_quality_update"))

    assert response.status_code == 200
    assert await _message_count(db_session) == 0


async def test_processing_failure_still_returns_200(client, credential):
    with patch(
        "wa_mailbox.api.routes.webhooks.WebhookRouter.route_payload",
        new=AsyncMock(side_effect=RuntimeError("database unavailable")),
    ):
        response = await client.post(WEBHOOK_URL, json=text_message_payload("wamid.F1"))

    assert response.status_code == 200
    assert response.json() == {"status": "received"}


# ============== Signature ==============

def _sign(body: bytes, secret: str) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


async def test_bad_signature_rejected_in_production(client, db_session, credential):
    body = json.dumps(text_message_payload("wamid.SIG1")).encode()

    with patch("wa_mailbox.api.routes.webhooks.settings") as mock_settings:
        mock_settings.whatsapp_app_secret = "app-secret"
        mock_settings.environment = "production"
        response = await client.post(
            WEBHOOK_URL, content=body, headers={"X-Hub-Signature-256": _sign(body, "wrong-secret")}
        )

    assert response.status_code == 403
    assert await _message_count(db_session) == 0


async def test_valid_signature_accepted_in_production(client, db_session, credential):
    body = json.dumps(text_message_payload("wamid.SIG2")).encode()

    with patch("wa_mailbox.api.routes.webhooks.settings") as mock_settings:
        mock_settings.whatsapp_app_secret = "app-secret"
        mock_settings.environment = "production"
        response = await client.post(
            WEBHOOK_URL, content=body, headers={"X-Hub-Signature-256": _sign(body, "app-secret")}
        )

    assert response.status_code == 200
    assert await _message_count(db_session) == 1


async def test_bad_signature_tolerated_outside_production(client, db_session, credential):
    body = json.dumps(text_message_payload("wamid.SIG3")).encode()

    with patch("wa_mailbox.api.routes.webhooks.settings") as mock_settings:
        mock_settings.whatsapp_app_secret = "app-secret"
        mock_settings.environment = "development"
        response = await client.post(WEBHOOK_URL, content=body)

    assert response.status_code == 200
    assert await _message_count(db_session) == 1


# ============== WhatsApp Web bridge ==============

async def test_bridge_message_is_stored(client, db_session, tenant):
    response = await client.post(
        "/api/v1/webhooks/whatsapp-web",
        json={
            "user_id": tenant.id,
            "phone_number": "923007654321",
            "name": "Bilal",
            "message": {"message_id": "web-1", "message_body": "via QR session", "timestamp": 1700000000},
        },
    )

    assert response.status_code == 200
    assert response.json()["success"] is True

    message = (await db_session.execute(select(Message))).scalar_one()
    assert message.tenant_id == tenant.id
    assert message.message_body == "via QR session"


async def test_bridge_unknown_tenant_returns_404(client, db_session, tenant):
    response = await client.post(
        "/api/v1/webhooks/whatsapp-web",
        json={"user_id": tenant.id + 100, "phone_number": "923007654321", "message": {"message_body": "hi"}},
    )

    assert response.status_code == 404
    assert response.json() == {"error": "User not found"}


async def test_bridge_missing_fields_returns_400(client, tenant):
    response = await client.post("/api/v1/webhooks/whatsapp-web", json={"user_id": tenant.id})

    assert response.status_code == 400

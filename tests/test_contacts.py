"""Tests for contact, thread, tag and note endpoints."""

from unittest.mock import AsyncMock, patch

import pytest

from payloads import text_message_value
from wa_mailbox.domain.services.subscription_service import SubscriptionService
from wa_mailbox.domain.services.tag_service import TagService
from wa_mailbox.domain.services.whatsapp_service import WhatsAppService
from wa_mailbox.domain.services.workflow_service import WorkflowService
from wa_mailbox.infrastructure.whatsapp_client import SendResult

API = "/api/v1"


async def _create(client, auth_headers, phone, **extra) -> dict:
    response = await client.post(
        f"{API}/contacts", json={"phone_number": phone, **extra}, headers=auth_headers
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_list_and_search(client, auth_headers):
    await _create(client, auth_headers, "923001111111", name="Ayesha")
    await _create(client, auth_headers, "923002222222", name="Bilal", stage="qualified")

    everyone = await client.get(f"{API}/contacts", headers=auth_headers)
    assert len(everyone.json()) == 2

    search = await client.get(f"{API}/contacts", params={"search": "ayes"}, headers=auth_headers)
    assert [c["name"] for c in search.json()] == ["Ayesha"]

    by_stage = await client.get(f"{API}/contacts", params={"stage": "qualified"}, headers=auth_headers)
    assert [c["name"] for c in by_stage.json()] == ["Bilal"]


@pytest.mark.asyncio
async def test_duplicate_phone_conflicts(client, auth_headers):
    await _create(client, auth_headers, "923001111111")
    response = await client.post(
        f"{API}/contacts", json={"phone_number": "923001111111"}, headers=auth_headers
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_contact_limit(client, auth_headers, db_session, tenant):
    await SubscriptionService(db_session).update_subscription(tenant.id, contact_limit=1)
    await _create(client, auth_headers, "923001111111")

    response = await client.post(
        f"{API}/contacts", json={"phone_number": "923002222222"}, headers=auth_headers
    )
    assert response.status_code == 402


@pytest.mark.asyncio
async def test_unknown_stage_rejected(client, auth_headers):
    contact = await _create(client, auth_headers, "923001111111")
    response = await client.put(
        f"{API}/contacts/{contact['id']}", json={"stage": "Qualified Lead"}, headers=auth_headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_update_rejects_null_for_required_fields(client, auth_headers):
    contact = await _create(client, auth_headers, "923001111111", name="Ayesha", email="a@example.test")

    for field in ("lead_score", "stage"):
        response = await client.put(
            f"{API}/contacts/{contact['id']}", json={field: None}, headers=auth_headers
        )
        assert response.status_code == 422, field

    cleared = await client.put(
        f"{API}/contacts/{contact['id']}", json={"email": None}, headers=auth_headers
    )
    assert cleared.status_code == 200
    assert cleared.json()["email"] is None
    assert cleared.json()["lead_score"] == 0


@pytest.mark.asyncio
async def test_stage_change_fires_workflow(client, auth_headers, db_session, tenant):
    workflow = await WorkflowService(db_session).create_workflow(
        tenant.id,
        name="Qualified follow-up",
        trigger_type="stage_change",
        trigger_conditions={"to_stage": "qualified"},
        actions=[{"type": "create_note", "note": "Send the price list", "note_type": "follow_up"}],
    )
    contact = await _create(client, auth_headers, "923001111111")

    response = await client.put(
        f"{API}/contacts/{contact['id']}", json={"stage": "qualified"}, headers=auth_headers
    )

    assert response.status_code == 200
    assert response.json()["stage"] == "qualified"
    notes = await client.get(f"{API}/contacts/{contact['id']}/notes", headers=auth_headers)
    assert [n["content"] for n in notes.json()] == ["Send the price list"]
    await db_session.refresh(workflow)
    assert workflow.execution_count == 1


@pytest.mark.asyncio
async def test_soft_delete_hides_contact(client, auth_headers):
    contact = await _create(client, auth_headers, "923001111111")

    deleted = await client.delete(f"{API}/contacts/{contact['id']}", headers=auth_headers)
    assert deleted.status_code == 204
    assert (await client.get(f"{API}/contacts/{contact['id']}", headers=auth_headers)).status_code == 404
    assert (await client.get(f"{API}/contacts", headers=auth_headers)).json() == []


@pytest.mark.asyncio
async def test_thread_and_mark_read(client, auth_headers, db_session, credential):
    service = WhatsAppService(db_session, credential)
    for n in (1, 2):
        value = text_message_value(f"wamid.TH{n}", body=f"message {n}", timestamp=str(1700000000 + n))
        message, _ = await service.save_incoming_message(value["messages"][0], value)
    contact_id = message.contact_id

    thread = await client.get(f"{API}/contacts/{contact_id}/messages", headers=auth_headers)
    assert [m["message_body"] for m in thread.json()] == ["message 1", "message 2"]

    read = await client.post(f"{API}/contacts/{contact_id}/read", headers=auth_headers)
    assert read.json() == {"marked_read": 2}
    contact = await client.get(f"{API}/contacts/{contact_id}", headers=auth_headers)
    assert contact.json()["unread_count"] == 0


@pytest.mark.asyncio
async def test_send_message(client, auth_headers, credential):
    contact = await _create(client, auth_headers, "923001111111")

    with patch(
        "wa_mailbox.domain.services.whatsapp_service.WhatsAppCloudClient.send_text",
        new=AsyncMock(return_value=SendResult(success=True, message_id="wamid.SENT1")),
    ) as send_text:
        response = await client.post(
            f"{API}/contacts/{contact['id']}/messages", json={"message": "Your order shipped"}, headers=auth_headers
        )

    assert response.status_code == 200
    assert response.json() == {"success": True, "message_id": "wamid.SENT1"}
    send_text.assert_awaited_once_with("923001111111", "Your order shipped")

    thread = await client.get(f"{API}/contacts/{contact['id']}/messages", headers=auth_headers)
    assert thread.json()[0]["direction"] == "outgoing"


@pytest.mark.asyncio
async def test_send_message_without_credentials(client, auth_headers):
    contact = await _create(client, auth_headers, "923001111111")
    response = await client.post(
        f"{API}/contacts/{contact['id']}/messages", json={"message": "hi"}, headers=auth_headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_send_message_over_limit(client, auth_headers, credential, db_session, tenant):
    await SubscriptionService(db_session).update_subscription(tenant.id, message_limit=0)
    contact = await _create(client, auth_headers, "923001111111")

    response = await client.post(
        f"{API}/contacts/{contact['id']}/messages", json={"message": "hi"}, headers=auth_headers
    )
    assert response.status_code == 402


@pytest.mark.asyncio
async def test_send_message_provider_failure(client, auth_headers, credential):
    contact = await _create(client, auth_headers, "923001111111")

    with patch(
        "wa_mailbox.domain.services.whatsapp_service.WhatsAppCloudClient.send_text",
        new=AsyncMock(return_value=SendResult(success=False, error="Recipient not on WhatsApp")),
    ):
        response = await client.post(
            f"{API}/contacts/{contact['id']}/messages", json={"message": "hi"}, headers=auth_headers
        )

    assert response.status_code == 502


@pytest.mark.asyncio
async def test_tags_on_contact(client, auth_headers, db_session, tenant):
    tag = await TagService(db_session).create_tag(tenant.id, "VIP")
    contact = await _create(client, auth_headers, "923001111111")

    first = await client.post(f"{API}/contacts/{contact['id']}/tags/{tag.id}", headers=auth_headers)
    again = await client.post(f"{API}/contacts/{contact['id']}/tags/{tag.id}", headers=auth_headers)
    assert first.json() == {"attached": True}
    assert again.json() == {"attached": False}

    tagged = await client.get(f"{API}/contacts", params={"tag_id": tag.id}, headers=auth_headers)
    assert [t["name"] for t in tagged.json()[0]["tags"]] == ["VIP"]

    removed = await client.delete(f"{API}/contacts/{contact['id']}/tags/{tag.id}", headers=auth_headers)
    assert removed.json() == {"removed": True}

    missing = await client.post(f"{API}/contacts/{contact['id']}/tags/9999", headers=auth_headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_bulk_operations(client, auth_headers, db_session, tenant):
    tag = await TagService(db_session).create_tag(tenant.id, "Wholesale")
    ids = [(await _create(client, auth_headers, f"92300111111{n}"))["id"] for n in range(3)]

    stage = await client.post(
        f"{API}/contacts/bulk-stage", json={"contact_ids": ids, "stage": "contacted"}, headers=auth_headers
    )
    tagged = await client.post(
        f"{API}/contacts/bulk-tag", json={"contact_ids": ids[:2], "tag_id": tag.id}, headers=auth_headers
    )

    assert stage.json() == {"updated": 3}
    assert tagged.json() == {"updated": 2}


@pytest.mark.asyncio
async def test_notes(client, auth_headers, admin_user):
    contact = await _create(client, auth_headers, "923001111111")

    created = await client.post(
        f"{API}/contacts/{contact['id']}/notes",
        json={"content": "Called, wants a quote", "note_type": "call"},
        headers=auth_headers,
    )
    assert created.status_code == 201
    assert created.json()["created_by"] == admin_user.id

    bad_type = await client.post(
        f"{API}/contacts/{contact['id']}/notes",
        json={"content": "x", "note_type": "sms"},
        headers=auth_headers,
    )
    assert bad_type.status_code == 400


@pytest.mark.asyncio
async def test_message_search(client, auth_headers, db_session, credential):
    service = WhatsAppService(db_session, credential)
    value = text_message_value("wamid.S1", body="Do you deliver to Multan?")
    await service.save_incoming_message(value["messages"][0], value)

    response = await client.get(f"{API}/messages/search", params={"q": "multan"}, headers=auth_headers)

    assert [m["message_id"] for m in response.json()] == ["wamid.S1"]


@pytest.mark.asyncio
async def test_send_media_by_link(client, auth_headers, credential):
    contact = await _create(client, auth_headers, "923001111111")

    with patch(
        "wa_mailbox.domain.services.whatsapp_service.WhatsAppCloudClient.send_media",
        new=AsyncMock(return_value=SendResult(success=True, message_id="wamid.MEDIA1")),
    ) as send_media:
        response = await client.post(
            f"{API}/contacts/{contact['id']}/media",
            json={"media_type": "image", "link": "https://cdn.example.test/catalog.jpg", "caption": "New stock"},
            headers=auth_headers,
        )

    assert response.status_code == 200
    assert response.json()["message_id"] == "wamid.MEDIA1"
    send_media.assert_awaited_once_with(
        "923001111111", "image", media_id=None, link="https://cdn.example.test/catalog.jpg",
        caption="New stock", filename=None,
    )

    thread = await client.get(f"{API}/contacts/{contact['id']}/messages", headers=auth_headers)
    stored = thread.json()[0]
    assert stored["message_type"] == "image"
    assert stored["media_url"] == "https://cdn.example.test/catalog.jpg"

    media = await client.get(f"{API}/messages/{stored['id']}/media", headers=auth_headers)
    assert media.status_code == 200
    assert media.json()["url"] == "https://cdn.example.test/catalog.jpg"


@pytest.mark.asyncio
async def test_send_media_validation(client, auth_headers, credential):
    contact = await _create(client, auth_headers, "923001111111")

    for body in (
        {"media_type": "image"},
        {"media_type": "image", "media_id": "123", "link": "https://cdn.example.test/a.jpg"},
        {"media_type": "pdf", "link": "https://cdn.example.test/a.pdf"},
    ):
        response = await client.post(f"{API}/contacts/{contact['id']}/media", json=body, headers=auth_headers)
        assert response.status_code == 422, body


@pytest.mark.asyncio
async def test_inbound_media_url(client, auth_headers, db_session, credential):
    value = text_message_value("wamid.IMG1")
    value["messages"][0].update(
        type="image", image={"id": "media-778", "mime_type": "image/jpeg", "caption": "Is this in stock?"}
    )
    del value["messages"][0]["text"]
    message, _ = await WhatsAppService(db_session, credential).save_incoming_message(value["messages"][0], value)

    with patch(
        "wa_mailbox.domain.services.whatsapp_service.WhatsAppCloudClient.get_media_url",
        new=AsyncMock(return_value="https://lookaside.example.test/media-778"),
    ) as get_media_url:
        response = await client.get(f"{API}/messages/{message.id}/media", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {
        "url": "https://lookaside.example.test/media-778",
        "mime_type": "image/jpeg",
        "filename": None,
    }
    get_media_url.assert_awaited_once_with("media-778")


@pytest.mark.asyncio
async def test_media_url_for_text_message(client, auth_headers, db_session, credential):
    value = text_message_value("wamid.TXT1")
    message, _ = await WhatsAppService(db_session, credential).save_incoming_message(value["messages"][0], value)

    response = await client.get(f"{API}/messages/{message.id}/media", headers=auth_headers)
    missing = await client.get(f"{API}/messages/9999/media", headers=auth_headers)

    assert response.status_code == 404
    assert missing.status_code == 404

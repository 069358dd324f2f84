"""Tests for quick replies, tags, auto-tag rules, broadcasts, workflows and deals."""

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from wa_mailbox.domain.services.broadcast_service import BroadcastService
from wa_mailbox.domain.services.contact_service import ContactService
from wa_mailbox.infrastructure.whatsapp_client import SendResult

API = "/api/v1"


async def _contact(client, auth_headers, phone="923001111111") -> int:
    response = await client.post(f"{API}/contacts", json={"phone_number": phone}, headers=auth_headers)
    return response.json()["id"]


async def _tag(client, auth_headers, name="VIP") -> int:
    response = await client.post(f"{API}/tags", json={"name": name}, headers=auth_headers)
    return response.json()["id"]


# ============== Plan features ==============

@pytest.mark.asyncio
@pytest.mark.parametrize(
    "path",
    ["/quick-replies", "/broadcasts", "/workflows", "/templates", "/scheduled-messages", "/segments", "/drip-campaigns"],
)
async def test_free_plan_lacks_paid_features(client, auth_headers, path):
    response = await client.get(f"{API}{path}", headers=auth_headers)

    assert response.status_code == 403
    assert "upgrade" in response.json()["detail"]


@pytest.mark.asyncio
async def test_free_plan_keeps_tags_and_deals(client, auth_headers):
    assert (await client.get(f"{API}/tags", headers=auth_headers)).status_code == 200
    assert (await client.get(f"{API}/deals", headers=auth_headers)).status_code == 200


# ============== Quick replies ==============

@pytest.mark.asyncio
async def test_quick_reply_crud(client, auth_headers, professional_plan):
    created = await client.post(
        f"{API}/quick-replies",
        json={"shortcut": "/hours", "title": "Opening hours", "message": "9am to 6pm"},
        headers=auth_headers,
    )
    assert created.status_code == 201
    reply_id = created.json()["id"]

    duplicate = await client.post(
        f"{API}/quick-replies",
        json={"shortcut": "/hours", "title": "Again", "message": "x"},
        headers=auth_headers,
    )
    assert duplicate.status_code == 409

    updated = await client.put(
        f"{API}/quick-replies/{reply_id}", json={"message": "10am to 7pm"}, headers=auth_headers
    )
    assert updated.json()["message"] == "10am to 7pm"

    nulled = await client.put(
        f"{API}/quick-replies/{reply_id}", json={"message": None}, headers=auth_headers
    )
    assert nulled.status_code == 422

    assert (await client.delete(f"{API}/quick-replies/{reply_id}", headers=auth_headers)).status_code == 204
    assert (await client.get(f"{API}/quick-replies", headers=auth_headers)).json() == []


# ============== Tags and rules ==============

@pytest.mark.asyncio
async def test_tags_with_contact_counts(client, auth_headers):
    tag_id = await _tag(client, auth_headers)
    contact_id = await _contact(client, auth_headers)
    await client.post(f"{API}/contacts/{contact_id}/tags/{tag_id}", headers=auth_headers)

    tags = await client.get(f"{API}/tags", headers=auth_headers)
    assert tags.json()[0]["contact_count"] == 1

    duplicate = await client.post(f"{API}/tags", json={"name": "VIP"}, headers=auth_headers)
    assert duplicate.status_code == 409

    no_color = await client.put(f"{API}/tags/{tag_id}", json={"color": None}, headers=auth_headers)
    assert no_color.status_code == 422


@pytest.mark.asyncio
async def test_auto_tag_rule_validation(client, auth_headers):
    tag_id = await _tag(client, auth_headers)

    created = await client.post(
        f"{API}/auto-tag-rules",
        json={"name": "Pricing", "keywords": ["price", " rate "], "tag_id": tag_id},
        headers=auth_headers,
    )
    assert created.status_code == 201
    assert created.json()["keywords"] == ["price", "rate"]

    bad_type = await client.post(
        f"{API}/auto-tag-rules",
        json={"name": "Bad", "keywords": ["x"], "tag_id": tag_id, "match_type": "regex"},
        headers=auth_headers,
    )
    no_keywords = await client.post(
        f"{API}/auto-tag-rules", json={"name": "Empty", "keywords": [], "tag_id": tag_id}, headers=auth_headers
    )
    foreign_tag = await client.post(
        f"{API}/auto-tag-rules", json={"name": "Ghost", "keywords": ["x"], "tag_id": 9999}, headers=auth_headers
    )
    assert bad_type.status_code == 400
    assert no_keywords.status_code == 400
    assert foreign_tag.status_code == 400

    rule_id = created.json()["id"]
    null_priority = await client.put(
        f"{API}/auto-tag-rules/{rule_id}", json={"priority": None}, headers=auth_headers
    )
    assert null_priority.status_code == 422


# ============== Broadcasts ==============

@pytest.mark.asyncio
async def test_broadcast_send(client, auth_headers, professional_plan, credential):
    tag_id = await _tag(client, auth_headers, "Eid")
    first = await _contact(client, auth_headers, "923001111111")
    second = await _contact(client, auth_headers, "923002222222")
    await client.post(f"{API}/contacts/{second}/tags/{tag_id}", headers=auth_headers)

    created = await client.post(
        f"{API}/broadcasts",
        json={"name": "Eid sale", "message": "20% off", "contact_ids": [first, second], "tag_ids": [tag_id]},
        headers=auth_headers,
    )
    assert created.status_code == 201
    broadcast = created.json()
    assert broadcast["total_recipients"] == 2
    assert broadcast["status"] == "draft"

    with patch(
        "wa_mailbox.domain.services.whatsapp_service.WhatsAppCloudClient.send_text",
        new=AsyncMock(
            side_effect=[
                SendResult(success=True, message_id="wamid.B1"),
                SendResult(success=False, error="Recipient not on WhatsApp"),
            ]
        ),
    ):
        sent = await client.post(f"{API}/broadcasts/{broadcast['id']}/send", headers=auth_headers)

    assert sent.status_code == 200
    assert sent.json()["status"] == "completed"
    assert sent.json()["sent_count"] == 1
    assert sent.json()["failed_count"] == 1

    detail = await client.get(f"{API}/broadcasts/{broadcast['id']}", headers=auth_headers)
    statuses = sorted(r["status"] for r in detail.json()["recipients"])
    assert statuses == ["failed", "sent"]

    again = await client.post(f"{API}/broadcasts/{broadcast['id']}/send", headers=auth_headers)
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_interrupted_broadcast_does_not_stay_sending(db_session, tenant):
    contacts = ContactService(db_session)
    first = await contacts.create_contact(tenant.id, "923001111111")
    second = await contacts.create_contact(tenant.id, "923002222222")
    service = BroadcastService(db_session)
    broadcast = await service.create_broadcast(
        tenant.id, name="Eid sale", message="20% off", contact_ids=[first.id, second.id]
    )

    whatsapp = AsyncMock()
    whatsapp.send_text_message.side_effect = [
        SendResult(success=True, message_id="wamid.B1"),
        RuntimeError("connection reset"),
    ]
    with pytest.raises(RuntimeError):
        await service.send_broadcast(tenant.id, broadcast.id, whatsapp)

    await db_session.refresh(broadcast)
    assert broadcast.status == "completed"
    assert broadcast.sent_count == 1
    assert broadcast.completed_at is not None
    statuses = sorted(r.status for r in await service.list_recipients(broadcast.id))
    assert statuses == ["pending", "sent"]


@pytest.mark.asyncio
async def test_broadcast_failing_before_any_send_ends_failed(db_session, tenant):
    contact = await ContactService(db_session).create_contact(tenant.id, "923001111111")
    service = BroadcastService(db_session)
    broadcast = await service.create_broadcast(tenant.id, name="B", message="hi", contact_ids=[contact.id])

    whatsapp = AsyncMock()
    whatsapp.send_text_message.side_effect = RuntimeError("connection reset")
    with pytest.raises(RuntimeError):
        await service.send_broadcast(tenant.id, broadcast.id, whatsapp)

    await db_session.refresh(broadcast)
    assert broadcast.status == "failed"


@pytest.mark.asyncio
async def test_broadcast_without_recipients(client, auth_headers, professional_plan):
    response = await client.post(
        f"{API}/broadcasts", json={"name": "Empty", "message": "hi"}, headers=auth_headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_broadcast_send_needs_credentials(client, auth_headers, professional_plan):
    contact_id = await _contact(client, auth_headers)
    created = await client.post(
        f"{API}/broadcasts", json={"name": "B", "message": "hi", "contact_ids": [contact_id]}, headers=auth_headers
    )

    response = await client.post(f"{API}/broadcasts/{created.json()['id']}/send", headers=auth_headers)
    assert response.status_code == 400


# ============== Workflows ==============

@pytest.mark.asyncio
async def test_workflow_lifecycle(client, auth_headers, professional_plan):
    contact_id = await _contact(client, auth_headers)
    created = await client.post(
        f"{API}/workflows",
        json={
            "name": "Warm lead",
            "trigger_type": "lead_score_change",
            "trigger_conditions": {"min_score": 50},
            "actions": [{"type": "change_stage", "stage": "qualified"}],
        },
        headers=auth_headers,
    )
    assert created.status_code == 201
    workflow_id = created.json()["id"]

    await client.put(f"{API}/contacts/{contact_id}", json={"lead_score": 20}, headers=auth_headers)
    assert (await client.get(f"{API}/contacts/{contact_id}", headers=auth_headers)).json()["stage"] == "new"

    await client.put(f"{API}/contacts/{contact_id}", json={"lead_score": 60}, headers=auth_headers)
    assert (await client.get(f"{API}/contacts/{contact_id}", headers=auth_headers)).json()["stage"] == "qualified"

    toggled = await client.post(f"{API}/workflows/{workflow_id}/toggle", headers=auth_headers)
    assert toggled.json()["is_active"] is False

    run = await client.post(
        f"{API}/workflows/{workflow_id}/run", json={"contact_id": contact_id}, headers=auth_headers
    )
    assert run.status_code == 200
    assert run.json()["status"] == "success"

    executions = await client.get(f"{API}/workflows/{workflow_id}/executions", headers=auth_headers)
    assert len(executions.json()) == 2


@pytest.mark.asyncio
async def test_workflow_validation(client, auth_headers, professional_plan):
    bad_trigger = await client.post(
        f"{API}/workflows",
        json={"name": "W", "trigger_type": "on_birthday", "actions": []},
        headers=auth_headers,
    )
    bad_action = await client.post(
        f"{API}/workflows",
        json={"name": "W", "trigger_type": "new_message", "actions": [{"type": "add_tag"}]},
        headers=auth_headers,
    )
    assert bad_trigger.status_code == 400
    assert bad_action.status_code == 400

    created = await client.post(
        f"{API}/workflows",
        json={"name": "W", "trigger_type": "new_message", "actions": [{"type": "change_stage", "stage": "contacted"}]},
        headers=auth_headers,
    )
    null_actions = await client.put(
        f"{API}/workflows/{created.json()['id']}", json={"actions": None}, headers=auth_headers
    )
    assert null_actions.status_code == 422

    missing = await client.post(f"{API}/workflows/9999/run", json={"contact_id": 1}, headers=auth_headers)
    assert missing.status_code == 404


# ============== Deals ==============

@pytest.mark.asyncio
async def test_deals(client, auth_headers):
    contact_id = await _contact(client, auth_headers)

    created = await client.post(
        f"{API}/deals",
        json={"contact_id": contact_id, "deal_name": "Bulk order", "amount": "1500"},
        headers=auth_headers,
    )
    assert created.status_code == 201
    deal = created.json()
    assert deal["status"] == "pending"
    assert deal["actual_close_date"] is None

    won = await client.put(f"{API}/deals/{deal['id']}", json={"status": "won"}, headers=auth_headers)
    assert won.json()["actual_close_date"] is not None

    no_amount = await client.put(f"{API}/deals/{deal['id']}", json={"amount": None}, headers=auth_headers)
    assert no_amount.status_code == 422

    summary = (await client.get(f"{API}/deals/summary", headers=auth_headers)).json()
    assert summary["won"]["count"] == 1
    assert Decimal(str(summary["won"]["amount"])) == Decimal("1500")
    assert summary["pending"]["count"] == 0

    filtered = await client.get(f"{API}/deals", params={"status": "won"}, headers=auth_headers)
    assert [d["id"] for d in filtered.json()] == [deal["id"]]

    bad = await client.post(
        f"{API}/deals", json={"contact_id": 9999, "deal_name": "Ghost"}, headers=auth_headers
    )
    assert bad.status_code == 400

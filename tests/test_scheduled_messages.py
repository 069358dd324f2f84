"""Tests for scheduled messages and the job runner endpoint."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from wa_mailbox.domain.services.contact_service import ContactService
from wa_mailbox.domain.services.scheduled_message_service import (
    NO_CREDENTIALS_ERROR,
    ScheduledMessageService,
    next_occurrence,
)
from wa_mailbox.domain.services.template_service import TemplateService
from wa_mailbox.infrastructure.whatsapp_client import SendResult
from wa_mailbox.persistence.models.scheduled_message import ScheduledMessage
from wa_mailbox.settings import settings

API = "/api/v1"
SEND_TEXT = "wa_mailbox.domain.services.whatsapp_service.WhatsAppCloudClient.send_text"
SEND_TEMPLATE = "wa_mailbox.domain.services.whatsapp_service.WhatsAppCloudClient.send_template"
NOW = datetime(2026, 3, 10, 9, 0)


class TestNextOccurrence:
    """Recurrence arithmetic."""

    def test_daily_and_weekly(self):
        assert next_occurrence(NOW, "daily") == datetime(2026, 3, 11, 9, 0)
        assert next_occurrence(NOW, "weekly") == datetime(2026, 3, 17, 9, 0)

    def test_monthly_clamps_to_month_end(self):
        assert next_occurrence(datetime(2026, 1, 31, 8, 30), "monthly") == datetime(2026, 2, 28, 8, 30)
        assert next_occurrence(datetime(2028, 1, 31), "monthly") == datetime(2028, 2, 29)

    def test_monthly_rolls_over_the_year(self):
        assert next_occurrence(datetime(2026, 12, 15), "monthly") == datetime(2027, 1, 15)

    def test_unknown_pattern(self):
        with pytest.raises(ValueError):
            next_occurrence(NOW, "hourly")


@pytest.fixture
async def contact(db_session, tenant):
    return await ContactService(db_session).create_contact(tenant.id, "923001111111", name="Ayesha")


@pytest.mark.asyncio
async def test_schedule_validation(db_session, tenant, contact):
    service = ScheduledMessageService(db_session)

    with pytest.raises(ValueError):
        await service.schedule(tenant.id, contact.id, NOW, message="  ")
    with pytest.raises(ValueError):
        await service.schedule(tenant.id, contact.id, NOW, message_type="template", template_id=9999)
    with pytest.raises(ValueError):
        await service.schedule(tenant.id, contact.id, NOW, message="hi", is_recurring=True)

    assert await service.schedule(tenant.id, 9999, NOW, message="hi") is None


@pytest.mark.asyncio
async def test_process_due_sends_text(db_session, tenant, contact, credential):
    service = ScheduledMessageService(db_session)
    due = await service.schedule(tenant.id, contact.id, NOW - timedelta(minutes=5), message="Reminder: pay invoice")
    later = await service.schedule(tenant.id, contact.id, NOW + timedelta(hours=1), message="Not yet")

    with patch(SEND_TEXT, new=AsyncMock(return_value=SendResult(success=True, message_id="wamid.SCH1"))) as send_text:
        counts = await service.process_due(now=NOW)

    assert counts == {"sent": 1, "failed": 0}
    send_text.assert_awaited_once_with("923001111111", "Reminder: pay invoice")
    await db_session.refresh(due)
    await db_session.refresh(later)
    assert due.status == "sent"
    assert due.sent_at == NOW
    assert due.whatsapp_message_id == "wamid.SCH1"
    assert later.status == "pending"


@pytest.mark.asyncio
async def test_recurring_message_schedules_next_occurrence(db_session, tenant, contact, credential):
    service = ScheduledMessageService(db_session)
    first = await service.schedule(
        tenant.id, contact.id, datetime(2026, 1, 31, 9, 0), message="Monthly statement",
        is_recurring=True, recurrence_pattern="monthly",
    )

    with patch(SEND_TEXT, new=AsyncMock(return_value=SendResult(success=True, message_id="wamid.SCH2"))):
        await service.process_due(now=datetime(2026, 1, 31, 9, 1))

    rows = (
        await db_session.execute(select(ScheduledMessage).order_by(ScheduledMessage.id))
    ).scalars().all()
    assert [r.status for r in rows] == ["sent", "pending"]
    assert rows[0].id == first.id
    assert rows[1].scheduled_at == datetime(2026, 2, 28, 9, 0)
    assert rows[1].is_recurring is True
    assert rows[1].message == "Monthly statement"


@pytest.mark.asyncio
async def test_process_due_without_credentials_marks_failed(db_session, tenant, contact):
    service = ScheduledMessageService(db_session)
    scheduled = await service.schedule(tenant.id, contact.id, NOW - timedelta(minutes=1), message="hi")

    counts = await service.process_due(now=NOW)

    assert counts == {"sent": 0, "failed": 1}
    await db_session.refresh(scheduled)
    assert scheduled.status == "failed"
    assert scheduled.error_message == NO_CREDENTIALS_ERROR


@pytest.mark.asyncio
async def test_send_error_does_not_stop_the_run(db_session, tenant, contact, credential):
    service = ScheduledMessageService(db_session)
    first = await service.schedule(tenant.id, contact.id, NOW - timedelta(minutes=2), message="first")
    second = await service.schedule(tenant.id, contact.id, NOW - timedelta(minutes=1), message="second")

    send_text = AsyncMock(
        side_effect=[RuntimeError("connection reset"), SendResult(success=True, message_id="wamid.SCH3")]
    )
    with patch(SEND_TEXT, new=send_text):
        counts = await service.process_due(now=NOW)

    assert counts == {"sent": 1, "failed": 1}
    await db_session.refresh(first)
    await db_session.refresh(second)
    assert first.status == "failed"
    assert first.error_message == "connection reset"
    assert second.status == "sent"


@pytest.mark.asyncio
async def test_scheduled_template_send(db_session, tenant, contact, credential):
    template = await TemplateService(db_session).create_template(
        tenant.id, "Renewal", "renewal_notice", "Hi {{1}}, renew by {{2}}", status="approved"
    )
    service = ScheduledMessageService(db_session)
    scheduled = await service.schedule(
        tenant.id, contact.id, NOW, message_type="template",
        template_id=template.id, template_parameters=["Ayesha", "March 31"],
    )

    with patch(
        SEND_TEMPLATE, new=AsyncMock(return_value=SendResult(success=True, message_id="wamid.SCH4"))
    ) as send_template:
        counts = await service.process_due(now=NOW)

    assert counts == {"sent": 1, "failed": 0}
    send_template.assert_awaited_once_with(
        "923001111111", "renewal_notice", language="en", parameters=["Ayesha", "March 31"]
    )
    await db_session.refresh(template)
    await db_session.refresh(scheduled)
    assert template.usage_count == 1
    assert scheduled.status == "sent"


@pytest.mark.asyncio
async def test_schedule_and_cancel_endpoints(client, auth_headers, professional_plan, contact):
    created = await client.post(
        f"{API}/scheduled-messages",
        json={"contact_id": contact.id, "scheduled_at": "2026-03-10T14:00:00+05:00", "message": "See you at 2"},
        headers=auth_headers,
    )
    assert created.status_code == 201, created.text
    body = created.json()
    assert body["status"] == "pending"
    assert body["scheduled_at"].startswith("2026-03-10T09:00:00")

    listed = await client.get(f"{API}/scheduled-messages", params={"status": "pending"}, headers=auth_headers)
    assert [s["id"] for s in listed.json()] == [body["id"]]

    cancelled = await client.post(f"{API}/scheduled-messages/{body['id']}/cancel", headers=auth_headers)
    again = await client.post(f"{API}/scheduled-messages/{body['id']}/cancel", headers=auth_headers)
    assert cancelled.json()["status"] == "cancelled"
    assert again.status_code == 409

    missing_contact = await client.post(
        f"{API}/scheduled-messages",
        json={"contact_id": 9999, "scheduled_at": "2026-03-10T09:00:00", "message": "hi"},
        headers=auth_headers,
    )
    no_body = await client.post(
        f"{API}/scheduled-messages",
        json={"contact_id": contact.id, "scheduled_at": "2026-03-10T09:00:00"},
        headers=auth_headers,
    )
    assert missing_contact.status_code == 404
    assert no_body.status_code == 400


@pytest.mark.asyncio
async def test_worker_endpoint_processes_due_messages(client, db_session, tenant, contact, credential):
    scheduled = await ScheduledMessageService(db_session).schedule(
        tenant.id, contact.id, datetime.utcnow() - timedelta(minutes=1), message="Your table is ready"
    )

    with patch(SEND_TEXT, new=AsyncMock(return_value=SendResult(success=True, message_id="wamid.JOB1"))):
        response = await client.post("/workers/process-jobs")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "success"
    assert data["scheduled_messages"] == {"sent": 1, "failed": 0}
    assert data["drip_campaigns"]["sent"] == 0
    await db_session.refresh(scheduled)
    assert scheduled.status == "sent"


@pytest.mark.asyncio
async def test_worker_endpoint_checks_secret(client):
    with patch.object(settings, "worker_secret", "cron-secret"):
        rejected = await client.post("/workers/process-jobs", headers={"X-Worker-Secret": "wrong"})
        missing = await client.post("/workers/process-jobs")
        accepted = await client.post("/workers/process-jobs", headers={"X-Worker-Secret": "cron-secret"})

    assert rejected.status_code == 401
    assert missing.status_code == 401
    assert accepted.status_code == 200

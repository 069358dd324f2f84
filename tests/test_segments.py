"""Tests for contact segments."""

from datetime import datetime, timedelta

import pytest

from wa_mailbox.domain.services.contact_service import ContactService
from wa_mailbox.domain.services.segment_service import SegmentService, validate_conditions

API = "/api/v1"


class TestValidateConditions:
    """Condition normalization and rejection."""

    def test_bare_value_means_equality(self):
        assert validate_conditions({"stage": "qualified"}) == {"stage": {"operator": "=", "value": "qualified"}}

    def test_numbers_are_coerced(self):
        normalized = validate_conditions({"lead_score": {"operator": ">=", "value": "40"}})
        assert normalized == {"lead_score": {"operator": ">=", "value": 40}}

    @pytest.mark.parametrize(
        "conditions",
        [
            {},
            {"city": "Lahore"},
            {"stage": "Qualified Lead"},
            {"stage": {"operator": "in", "value": "qualified"}},
            {"stage": {"operator": "~", "value": "new"}},
            {"lead_score": {"operator": "in", "value": [1, 2]}},
            {"lead_score": {"operator": ">", "value": "high"}},
            {"last_message_days": {"operator": ">", "value": -3}},
        ],
    )
    def test_rejected(self, conditions):
        with pytest.raises(ValueError):
            validate_conditions(conditions)


@pytest.fixture
async def contacts(db_session, tenant):
    """Three contacts with different stages, scores and last activity."""
    service = ContactService(db_session)
    now = datetime.utcnow()
    ayesha = await service.create_contact(tenant.id, "923001111111", name="Ayesha", stage="qualified")
    bilal = await service.create_contact(tenant.id, "923002222222", name="Bilal", stage="proposal")
    chand = await service.create_contact(tenant.id, "923003333333", name="Chand")
    ayesha.lead_score, ayesha.last_message_time = 70, now - timedelta(days=1)
    bilal.lead_score, bilal.last_message_time = 30, now - timedelta(days=45)
    chand.lead_score = 90
    await db_session.commit()
    return ayesha, bilal, chand


@pytest.mark.asyncio
async def test_membership(db_session, tenant, contacts):
    ayesha, bilal, chand = contacts
    service = SegmentService(db_session)

    async def members(conditions):
        segment = await service.create_segment(tenant.id, f"seg-{len(await service.list_segments(tenant.id))}", conditions)
        return {c.id for c in await service.get_contacts(tenant.id, segment)}

    assert await members({"stage": {"operator": "in", "value": ["qualified", "proposal"]}}) == {ayesha.id, bilal.id}
    assert await members({"stage": {"operator": "!=", "value": "new"}}) == {ayesha.id, bilal.id}
    assert await members({"lead_score": {"operator": ">=", "value": 70}}) == {ayesha.id, chand.id}
    # Quiet for over 30 days includes contacts who never messaged
    assert await members({"last_message_days": {"operator": ">", "value": 30}}) == {bilal.id, chand.id}
    assert await members({"last_message_days": {"operator": "<=", "value": 7}}) == {ayesha.id}
    assert await members(
        {"stage": {"operator": "in", "value": ["qualified", "proposal"]}, "lead_score": {"operator": "<", "value": 50}}
    ) == {bilal.id}


@pytest.mark.asyncio
async def test_soft_deleted_contacts_are_excluded(db_session, tenant, contacts):
    ayesha, _, _ = contacts
    await ContactService(db_session).delete_contact(tenant.id, ayesha.id)

    segment = await SegmentService(db_session).create_segment(tenant.id, "Qualified", {"stage": "qualified"})

    assert segment.contact_count == 0


@pytest.mark.asyncio
async def test_segment_endpoints(client, auth_headers, professional_plan, contacts):
    ayesha, bilal, _ = contacts

    created = await client.post(
        f"{API}/segments",
        json={"name": "Warm leads", "conditions": {"lead_score": {"operator": ">=", "value": 50}, "stage": "qualified"}},
        headers=auth_headers,
    )
    assert created.status_code == 201, created.text
    segment = created.json()
    assert segment["contact_count"] == 1

    members = await client.get(f"{API}/segments/{segment['id']}/contacts", headers=auth_headers)
    assert [c["name"] for c in members.json()] == ["Ayesha"]

    updated = await client.put(
        f"{API}/segments/{segment['id']}",
        json={"conditions": {"stage": {"operator": "in", "value": ["qualified", "proposal"]}}},
        headers=auth_headers,
    )
    assert updated.json()["contact_count"] == 2

    bad = await client.put(f"{API}/segments/{segment['id']}", json={"conditions": {"city": "Lahore"}}, headers=auth_headers)
    duplicate = await client.post(
        f"{API}/segments", json={"name": "Warm leads", "conditions": {"stage": "new"}}, headers=auth_headers
    )
    assert bad.status_code == 400
    assert duplicate.status_code == 400

    deleted = await client.delete(f"{API}/segments/{segment['id']}", headers=auth_headers)
    assert deleted.status_code == 204
    assert (await client.get(f"{API}/segments/{segment['id']}", headers=auth_headers)).status_code == 404


@pytest.mark.asyncio
async def test_refresh_count(client, auth_headers, professional_plan, db_session, contacts):
    ayesha, bilal, _ = contacts
    created = await client.post(
        f"{API}/segments", json={"name": "Qualified", "conditions": {"stage": "qualified"}}, headers=auth_headers
    )
    assert created.json()["contact_count"] == 1

    bilal.stage = "qualified"
    await db_session.commit()

    refreshed = await client.post(f"{API}/segments/{created.json()['id']}/refresh", headers=auth_headers)
    assert refreshed.json()["contact_count"] == 2


@pytest.mark.asyncio
async def test_broadcast_to_segment(client, auth_headers, professional_plan, db_session, tenant, contacts):
    ayesha, bilal, chand = contacts
    segment = await SegmentService(db_session).create_segment(
        tenant.id, "High score", {"lead_score": {"operator": ">", "value": 60}}
    )

    response = await client.post(
        f"{API}/broadcasts",
        json={"name": "Eid sale", "message": "20% off this week", "contact_ids": [bilal.id], "segment_ids": [segment.id]},
        headers=auth_headers,
    )

    assert response.status_code == 201, response.text
    assert response.json()["total_recipients"] == 3

"""Tests for subscription limits, plan changes and the admin endpoints."""

from datetime import datetime, timedelta

import pytest

from wa_mailbox.core.auth import create_user_token
from wa_mailbox.domain.services.subscription_service import SubscriptionService
from wa_mailbox.domain.services.tenant_service import TenantService
from wa_mailbox.persistence.models.subscription import PLANS, TenantSubscription

API = "/api/v1"


class TestSubscriptionModel:
    def _subscription(self, **overrides) -> TenantSubscription:
        data = {
            "plan": "free",
            "status": "active",
            "message_limit": 100,
            "messages_used": 0,
            "contact_limit": 50,
            "features": dict(PLANS["free"]["features"]),
        }
        data.update(overrides)
        return TenantSubscription(**data)

    def test_can_send_until_limit(self):
        assert self._subscription(messages_used=99).can_send_message() is True
        assert self._subscription(messages_used=100).can_send_message() is False

    def test_inactive_status_cannot_send(self):
        assert self._subscription(status="suspended").can_send_message() is False
        assert self._subscription(status="cancelled").can_send_message() is False

    def test_remaining_never_negative(self):
        assert self._subscription(messages_used=150).remaining_messages() == 0

    def test_features(self):
        subscription = self._subscription()
        assert subscription.has_feature("tags") is True
        assert subscription.has_feature("workflows") is False
        assert subscription.has_feature("unknown") is False
        assert "broadcasts" not in subscription.enabled_features()

    def test_period_and_trial(self):
        now = datetime(2026, 1, 15)
        subscription = self._subscription(
            current_period_end=now - timedelta(days=1), trial_ends_at=now + timedelta(days=3)
        )
        assert subscription.is_expired(now) is True
        assert subscription.is_on_trial(now) is True


@pytest.mark.asyncio
async def test_plan_switch_resets_limits_and_features(db_session, tenant):
    service = SubscriptionService(db_session)

    subscription = await service.update_subscription(tenant.id, plan="starter")
    assert subscription.message_limit == PLANS["starter"]["message_limit"]
    assert subscription.has_feature("broadcasts") is True
    assert subscription.has_feature("workflows") is False
    assert subscription.has_feature("message_templates") is True
    assert subscription.has_feature("scheduled_messages") is True
    assert subscription.has_feature("drip_campaigns") is False

    subscription = await service.update_subscription(
        tenant.id, plan="professional", message_limit=20000, features={"broadcasts": False}
    )
    assert subscription.message_limit == 20000
    assert subscription.has_feature("workflows") is True
    assert subscription.has_feature("broadcasts") is False


@pytest.mark.asyncio
async def test_unknown_plan_or_status(db_session, tenant):
    service = SubscriptionService(db_session)
    with pytest.raises(ValueError):
        await service.update_subscription(tenant.id, plan="platinum")
    with pytest.raises(ValueError):
        await service.update_subscription(tenant.id, status="paused")


@pytest.mark.asyncio
async def test_reset_usage(db_session, tenant):
    service = SubscriptionService(db_session)
    subscription = await service.get_for_tenant(tenant.id)
    subscription.messages_used = 42
    await db_session.commit()

    subscription = await service.update_subscription(tenant.id, reset_usage=True)
    assert subscription.messages_used == 0
    assert subscription.current_period_end > subscription.current_period_start


@pytest.mark.asyncio
async def test_subscription_endpoint(client, auth_headers):
    response = await client.get(f"{API}/subscription", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["plan"] == "free"
    assert data["remaining_messages"] == data["message_limit"]
    assert data["can_send_message"] is True
    assert "mailbox" in data["enabled_features"]


# ============== Global admin ==============

@pytest.fixture
async def global_admin_headers(db_session):
    admin = await TenantService(db_session).create_user(None, "root@platform.test", "root-password", role="admin")
    token = create_user_token(admin.id, None, "admin")
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.asyncio
async def test_admin_health_report(client, global_admin_headers, credential):
    response = await client.get(f"{API}/admin/tenants", headers=global_admin_headers)

    assert response.status_code == 200
    row = response.json()[0]
    assert row["tenant_id"] == credential.tenant_id
    assert row["credential_active"] is True
    assert row["credential_configured"] is True
    assert row["plan"] == "free"
    assert row["failed_scheduled_messages"] == 0
    assert row["failed_drip_subscribers"] == 0


@pytest.mark.asyncio
async def test_admin_updates_subscription(client, global_admin_headers, tenant):
    response = await client.put(
        f"{API}/admin/tenants/{tenant.id}/subscription",
        json={"plan": "enterprise"},
        headers=global_admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["plan"] == "enterprise"

    bad_plan = await client.put(
        f"{API}/admin/tenants/{tenant.id}/subscription", json={"plan": "platinum"}, headers=global_admin_headers
    )
    missing = await client.put(
        f"{API}/admin/tenants/9999/subscription", json={"plan": "starter"}, headers=global_admin_headers
    )
    assert bad_plan.status_code == 400
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_tenant_admin_is_not_global_admin(client, auth_headers):
    response = await client.get(f"{API}/admin/tenants", headers=auth_headers)
    assert response.status_code == 403

"""Tests for registration, login and role checks."""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from wa_mailbox.core.auth import create_access_token, create_user_token, decode_access_token
from wa_mailbox.core.password import hash_password, verify_password
from wa_mailbox.domain.services.credential_service import CredentialService
from wa_mailbox.domain.services.subscription_service import SubscriptionService
from wa_mailbox.domain.services.tenant_service import TenantService

API = "/api/v1"


def _bearer(user) -> dict:
    token = create_user_token(user.id, user.tenant_id, user.role)
    return {"Authorization": f"Bearer {token}"}


def test_password_hashing():
    hashed = hash_password("s3cret-password")
    assert hashed != "s3cret-password"
    assert verify_password("s3cret-password", hashed) is True
    assert verify_password("wrong-password", hashed) is False


def test_token_round_trip_and_expiry():
    token = create_access_token({"sub": "5"})
    assert decode_access_token(token)["sub"] == "5"

    expired = create_access_token({"sub": "5"}, expires_delta=timedelta(seconds=-10))
    assert decode_access_token(expired) is None
    assert decode_access_token("not-a-jwt") is None


@pytest.mark.asyncio
async def test_register_provisions_tenant(client, db_session):
    response = await client.post(
        f"{API}/auth/register",
        json={"business_name": "Lahore Fabrics", "email": "Owner@Lahore.test", "password": "long-enough"},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["role"] == "tenant_admin"
    assert data["email"] == "owner@lahore.test"
    assert data["access_token"]

    credential = await CredentialService(db_session).get_for_tenant(data["tenant_id"])
    assert credential.is_active is False
    assert credential.webhook_verify_token
    subscription = await SubscriptionService(db_session).get_for_tenant(data["tenant_id"])
    assert subscription.plan == "free"


@pytest.mark.asyncio
async def test_register_rejects_duplicate_email_and_short_password(client, admin_user):
    duplicate = await client.post(
        f"{API}/auth/register",
        json={"business_name": "Other", "email": admin_user.email, "password": "long-enough"},
    )
    short = await client.post(
        f"{API}/auth/register",
        json={"business_name": "Other", "email": "new@other.test", "password": "short"},
    )

    assert duplicate.status_code == 400
    assert short.status_code == 400


@pytest.mark.asyncio
async def test_login_and_me(client, admin_user):
    response = await client.post(
        f"{API}/auth/login", json={"email": admin_user.email, "password": "s3cret-password"}
    )
    assert response.status_code == 200
    token = response.json()["access_token"]

    me = await client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["id"] == admin_user.id
    assert me.json()["is_global_admin"] is False


@pytest.mark.asyncio
async def test_login_logs_client_ip_in_background(client, admin_user):
    with patch("wa_mailbox.api.routes.auth.log_ip", new_callable=AsyncMock) as mock_log_ip:
        response = await client.post(
            f"{API}/auth/login",
            json={"email": admin_user.email, "password": "s3cret-password"},
            headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
        )
        failed = await client.post(
            f"{API}/auth/login", json={"email": admin_user.email, "password": "nope-nope"}
        )

    assert response.status_code == 200
    assert failed.status_code == 401
    mock_log_ip.assert_called_once_with(
        "203.0.113.7", "login", tenant_id=admin_user.tenant_id, user_id=admin_user.id
    )


@pytest.mark.asyncio
async def test_login_wrong_password(client, admin_user):
    response = await client.post(
        f"{API}/auth/login", json={"email": admin_user.email, "password": "nope-nope"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_missing_or_invalid_token(client):
    assert (await client.get(f"{API}/contacts")).status_code in (401, 403)
    bad = await client.get(f"{API}/contacts", headers={"Authorization": "Bearer garbage"})
    assert bad.status_code == 401


@pytest.mark.asyncio
async def test_viewer_is_read_only(client, db_session, tenant):
    viewer = await TenantService(db_session).create_user(tenant.id, "viewer@karachi-traders.test", "viewer-pass", role="viewer")
    headers = _bearer(viewer)

    assert (await client.get(f"{API}/contacts", headers=headers)).status_code == 200
    created = await client.post(f"{API}/contacts", json={"phone_number": "923001112222"}, headers=headers)
    assert created.status_code == 403


@pytest.mark.asyncio
async def test_agent_cannot_manage_credentials(client, db_session, tenant):
    agent = await TenantService(db_session).create_user(tenant.id, "agent@karachi-traders.test", "agent-pass")

    response = await client.get(f"{API}/credentials", headers=_bearer(agent))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_global_admin_impersonates_tenant(client, db_session, tenant):
    admin = await TenantService(db_session).create_user(None, "root@platform.test", "root-password", role="admin")
    headers = {**_bearer(admin), "X-Tenant-Id": str(tenant.id)}

    response = await client.get(f"{API}/credentials", headers=headers)
    assert response.status_code == 200
    assert response.json()["tenant_id"] == tenant.id

    no_tenant = await client.get(f"{API}/contacts", headers=_bearer(admin))
    assert no_tenant.status_code == 403

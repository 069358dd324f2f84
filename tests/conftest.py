"""Pytest configuration and fixtures."""

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from wa_mailbox.core.auth import create_user_token
from wa_mailbox.domain.services.credential_service import CredentialService
from wa_mailbox.domain.services.subscription_service import SubscriptionService
from wa_mailbox.domain.services.tenant_service import TenantService
from wa_mailbox.infrastructure.whatsapp_client import WhatsAppCloudClient
from wa_mailbox.persistence.database import Base, get_db
from wa_mailbox.persistence.models import *  # noqa: F401, F403

from payloads import PHONE_NUMBER_ID, VERIFY_TOKEN


@pytest.fixture
async def db_session():
    """Create a test database session."""
    # In-memory SQLite shared by every connection of the engine
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )

    async with async_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def client(db_session):
    """Create a test HTTP client bound to the app."""
    from wa_mailbox.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
async def tenant_with_user(db_session):
    """A registered tenant (free plan) and its tenant admin."""
    return await TenantService(db_session).register(
        business_name="Karachi Traders",
        email="owner@karachi-traders.test",
        password="s3cret-password",
    )


@pytest.fixture
async def tenant(tenant_with_user):
    return tenant_with_user[0]


@pytest.fixture
async def admin_user(tenant_with_user):
    return tenant_with_user[1]


@pytest.fixture
async def credential(db_session, tenant):
    """Active, configured WhatsApp credentials for the tenant."""
    service = CredentialService(db_session)
    credential = await service.upsert(
        tenant.id,
        access_token="EAAG-test-token",
        phone_number_id=PHONE_NUMBER_ID,
        is_active=True,
    )
    credential.webhook_verify_token = VERIFY_TOKEN
    await db_session.commit()
    return credential


@pytest.fixture
async def professional_plan(db_session, tenant):
    """Upgrade the tenant so every feature is available."""
    return await SubscriptionService(db_session).update_subscription(tenant.id, plan="professional")


@pytest.fixture
def auth_headers(admin_user):
    token = create_user_token(admin_user.id, admin_user.tenant_id, admin_user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def graph_requests():
    """Requests captured by the mocked Graph API."""
    return []


@pytest.fixture
def graph_client(graph_requests):
    """A Cloud API client whose transport answers every send with a new wamid."""

    def handler(request: httpx.Request) -> httpx.Response:
        graph_requests.append(request)
        return httpx.Response(200, json={"messages": [{"id": f"wamid.OUT{len(graph_requests)}"}]})

    return WhatsAppCloudClient(
        access_token="EAAG-test-token",
        phone_number_id=PHONE_NUMBER_ID,
        transport=httpx.MockTransport(handler),
    )


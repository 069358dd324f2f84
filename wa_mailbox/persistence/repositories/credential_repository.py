"""API credential and subscription repositories."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.models.api_credential import TenantApiCredential
from wa_mailbox.persistence.models.subscription import TenantSubscription
from wa_mailbox.persistence.repositories.base import BaseRepository


class CredentialRepository(BaseRepository[TenantApiCredential]):
    """Repository for TenantApiCredential entities."""

    def __init__(self, session: AsyncSession):
        super().__init__(TenantApiCredential, session)

    async def get_by_tenant(self, tenant_id: int) -> TenantApiCredential | None:
        stmt = select(TenantApiCredential).where(TenantApiCredential.tenant_id == tenant_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_phone_number_id(self, phone_number_id: str) -> TenantApiCredential | None:
        """Get the credential owning a phone number id, regardless of state."""
        stmt = select(TenantApiCredential).where(
            TenantApiCredential.phone_number_id == phone_number_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active_by_phone_number_id(self, phone_number_id: str) -> TenantApiCredential | None:
        """Resolve the tenant for an inbound webhook.

        Args:
            phone_number_id: ``metadata.phone_number_id`` from the payload

        Returns:
            The active credential or None
        """
        stmt = select(TenantApiCredential).where(
            TenantApiCredential.phone_number_id == phone_number_id,
            TenantApiCredential.is_active.is_(True),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active_by_verify_token(self, verify_token: str) -> TenantApiCredential | None:
        stmt = (
            select(TenantApiCredential)
            .where(
                TenantApiCredential.webhook_verify_token == verify_token,
                TenantApiCredential.is_active.is_(True),
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class SubscriptionRepository(BaseRepository[TenantSubscription]):
    """Repository for TenantSubscription entities."""

    def __init__(self, session: AsyncSession):
        super().__init__(TenantSubscription, session)

    async def get_by_tenant(self, tenant_id: int) -> TenantSubscription | None:
        stmt = select(TenantSubscription).where(TenantSubscription.tenant_id == tenant_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

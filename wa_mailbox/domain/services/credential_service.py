"""API credential service."""

import logging
import secrets

from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.models.api_credential import TenantApiCredential
from wa_mailbox.persistence.repositories.credential_repository import CredentialRepository

logger = logging.getLogger(__name__)


class CredentialConflictError(ValueError):
    """Raised when a phone number id already belongs to another tenant."""


def generate_verify_token() -> str:
    return secrets.token_urlsafe(32)


def mask_token(token: str | None) -> str | None:
    """Show only the last four characters of a secret."""
    if not token:
        return None
    if len(token) <= 8:
        return "*" * len(token)
    return f"{'*' * 8}{token[-4:]}"


class CredentialService:
    """Service for a tenant's WhatsApp Cloud API credentials."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.credential_repo = CredentialRepository(session)

    async def get_for_tenant(self, tenant_id: int) -> TenantApiCredential | None:
        return await self.credential_repo.get_by_tenant(tenant_id)

    async def create_inactive(self, tenant_id: int, commit: bool = True) -> TenantApiCredential:
        """Create the placeholder credential a new tenant starts with."""
        return await self.credential_repo.create(
            tenant_id,
            commit=commit,
            webhook_verify_token=generate_verify_token(),
            is_active=False,
        )

    async def upsert(self, tenant_id: int, **data) -> TenantApiCredential:
        """Create or update a tenant's credentials.

        Raises:
            CredentialConflictError: If the phone number id belongs to another tenant
            ValueError: If activating without a token or phone number id
        """
        phone_number_id = data.get("phone_number_id")
        if phone_number_id:
            owner = await self.credential_repo.get_by_phone_number_id(phone_number_id)
            if owner is not None and owner.tenant_id != tenant_id:
                raise CredentialConflictError("phone_number_id is already registered to another account")

        credential = await self.credential_repo.get_by_tenant(tenant_id)
        if credential is None:
            credential = await self.create_inactive(tenant_id, commit=False)

        for key, value in data.items():
            setattr(credential, key, value)

        if credential.is_active and not credential.is_configured:
            raise ValueError("access_token and phone_number_id are required to activate")

        await self.session.commit()
        await self.session.refresh(credential)
        logger.info(
            "API credentials updated",
            extra={"tenant_id": tenant_id, "is_active": credential.is_active},
        )
        return credential

    async def rotate_verify_token(self, tenant_id: int) -> TenantApiCredential:
        credential = await self.credential_repo.get_by_tenant(tenant_id)
        if credential is None:
            credential = await self.create_inactive(tenant_id, commit=False)
        else:
            credential.webhook_verify_token = generate_verify_token()
        await self.session.commit()
        await self.session.refresh(credential)
        return credential


def credential_to_dict(credential: TenantApiCredential) -> dict:
    """Serialize credentials with the access token masked."""
    return {
        "tenant_id": credential.tenant_id,
        "api_version": credential.api_version,
        "access_token": mask_token(credential.access_token),
        "phone_number_id": credential.phone_number_id,
        "business_account_id": credential.business_account_id,
        "webhook_verify_token": credential.webhook_verify_token,
        "business_name": credential.business_name,
        "business_phone_number": credential.business_phone_number,
        "is_active": credential.is_active,
        "is_configured": credential.is_configured,
        "last_webhook_at": credential.last_webhook_at,
    }

"""Tenant registration, authentication and health reporting."""

import logging
import re
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.core.password import hash_password, verify_password
from wa_mailbox.domain.services.credential_service import CredentialService
from wa_mailbox.domain.services.subscription_service import SubscriptionService
from wa_mailbox.persistence.models.api_credential import TenantApiCredential
from wa_mailbox.persistence.models.contact import Contact
from wa_mailbox.persistence.models.drip_campaign import DripSubscriber
from wa_mailbox.persistence.models.message import Message
from wa_mailbox.persistence.models.scheduled_message import ScheduledMessage
from wa_mailbox.persistence.models.subscription import TenantSubscription
from wa_mailbox.persistence.models.tenant import Tenant, User
from wa_mailbox.persistence.repositories.tenant_repository import TenantRepository, UserRepository

logger = logging.getLogger(__name__)

USER_ROLES = ("admin", "tenant_admin", "agent", "viewer")


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug[:80] or "tenant"


class TenantService:
    """Service for tenants and their users."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.tenant_repo = TenantRepository(session)
        self.user_repo = UserRepository(session)

    async def _unique_subdomain(self, name: str) -> str:
        base = slugify(name)
        candidate = base
        suffix = 1
        while await self.tenant_repo.get_by_subdomain(candidate) is not None:
            suffix += 1
            candidate = f"{base}-{suffix}"
        return candidate

    async def register(
        self,
        business_name: str,
        email: str,
        password: str,
        subdomain: str | None = None,
    ) -> tuple[Tenant, User]:
        """Create a tenant with its admin user, inactive credentials and free plan.

        Args:
            business_name: Tenant display name
            email: Admin login
            password: Admin password
            subdomain: Optional explicit subdomain

        Returns:
            (tenant, user)

        Raises:
            ValueError: If the email or subdomain is taken, or the password is too short
        """
        email = email.strip().lower()
        if len(password) < 8:
            raise ValueError("Password must be at least 8 characters")
        if await self.user_repo.get_by_email(email) is not None:
            raise ValueError("Email is already registered")
        if subdomain:
            subdomain = slugify(subdomain)
            if await self.tenant_repo.get_by_subdomain(subdomain) is not None:
                raise ValueError("Subdomain is already taken")
        else:
            subdomain = await self._unique_subdomain(business_name)

        tenant = await self.tenant_repo.create(
            None, commit=False, name=business_name, subdomain=subdomain, is_active=True
        )
        user = await self.user_repo.create(
            tenant.id,
            commit=False,
            email=email,
            hashed_password=hash_password(password),
            role="tenant_admin",
        )
        await CredentialService(self.session).create_inactive(tenant.id, commit=False)
        await SubscriptionService(self.session).create_default(tenant.id, "free", commit=False)
        await self.session.commit()
        await self.session.refresh(tenant)
        await self.session.refresh(user)

        logger.info("Tenant registered", extra={"tenant_id": tenant.id, "user_id": user.id})
        return tenant, user

    async def authenticate(self, email: str, password: str) -> User | None:
        """Check credentials and stamp the login time.

        Returns:
            The user, or None if the credentials are wrong or the user is inactive
        """
        user = await self.user_repo.get_by_email(email.strip().lower())
        if user is None or not user.is_active:
            return None
        if not verify_password(password, user.hashed_password):
            return None
        user.last_login_at = datetime.utcnow()
        await self.session.commit()
        return user

    async def create_user(
        self, tenant_id: int | None, email: str, password: str, role: str = "agent"
    ) -> User:
        """Create a login.

        Raises:
            ValueError: On unknown role or duplicate email
        """
        if role not in USER_ROLES:
            raise ValueError(f"Unknown role: {role}")
        email = email.strip().lower()
        if await self.user_repo.get_by_email(email) is not None:
            raise ValueError("Email is already registered")
        return await self.user_repo.create(
            tenant_id, email=email, hashed_password=hash_password(password), role=role
        )

    async def health_report(self) -> list[dict]:
        """Per-tenant configuration and usage overview for administrators."""
        contact_counts = dict(
            (await self.session.execute(
                select(Contact.tenant_id, func.count(Contact.id))
                .where(Contact.deleted_at.is_(None))
                .group_by(Contact.tenant_id)
            )).all()
        )
        message_counts = dict(
            (await self.session.execute(
                select(Message.tenant_id, func.count(Message.id)).group_by(Message.tenant_id)
            )).all()
        )
        failed_scheduled = dict(
            (await self.session.execute(
                select(ScheduledMessage.tenant_id, func.count(ScheduledMessage.id))
                .where(ScheduledMessage.status == "failed")
                .group_by(ScheduledMessage.tenant_id)
            )).all()
        )
        failed_drips = dict(
            (await self.session.execute(
                select(DripSubscriber.tenant_id, func.count(DripSubscriber.id))
                .where(DripSubscriber.status == "failed")
                .group_by(DripSubscriber.tenant_id)
            )).all()
        )
        credentials = {
            c.tenant_id: c
            for c in (await self.session.execute(select(TenantApiCredential))).scalars().all()
        }
        subscriptions = {
            s.tenant_id: s
            for s in (await self.session.execute(select(TenantSubscription))).scalars().all()
        }

        report = []
        for tenant in await self.tenant_repo.list_all():
            credential = credentials.get(tenant.id)
            subscription = subscriptions.get(tenant.id)
            report.append(
                {
                    "tenant_id": tenant.id,
                    "name": tenant.name,
                    "subdomain": tenant.subdomain,
                    "is_active": tenant.is_active,
                    "credential_configured": bool(credential and credential.is_configured),
                    "credential_active": bool(credential and credential.is_active),
                    "phone_number_id": credential.phone_number_id if credential else None,
                    "last_webhook_at": credential.last_webhook_at if credential else None,
                    "contact_count": contact_counts.get(tenant.id, 0),
                    "message_count": message_counts.get(tenant.id, 0),
                    "failed_scheduled_messages": failed_scheduled.get(tenant.id, 0),
                    "failed_drip_subscribers": failed_drips.get(tenant.id, 0),
                    "plan": subscription.plan if subscription else None,
                    "subscription_status": subscription.status if subscription else None,
                    "messages_used": subscription.messages_used if subscription else 0,
                    "message_limit": subscription.message_limit if subscription else 0,
                }
            )
        return report

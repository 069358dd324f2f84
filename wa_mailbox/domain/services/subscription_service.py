"""Subscription service: plans, usage counters and feature checks."""

import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.models.subscription import PLANS, SUBSCRIPTION_STATUSES, TenantSubscription
from wa_mailbox.persistence.repositories.credential_repository import SubscriptionRepository

logger = logging.getLogger(__name__)

BILLING_PERIOD = timedelta(days=30)


class SubscriptionService:
    """Service for tenant subscriptions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.subscription_repo = SubscriptionRepository(session)

    async def get_for_tenant(self, tenant_id: int) -> TenantSubscription | None:
        return await self.subscription_repo.get_by_tenant(tenant_id)

    async def create_default(
        self, tenant_id: int, plan: str = "free", commit: bool = True
    ) -> TenantSubscription:
        """Create a subscription with the plan's default limits and features.

        Args:
            tenant_id: Tenant ID
            plan: Plan name
            commit: Commit immediately, or only flush

        Returns:
            The new subscription

        Raises:
            ValueError: If the plan is unknown
        """
        defaults = PLANS.get(plan)
        if defaults is None:
            raise ValueError(f"Unknown plan: {plan}")

        now = datetime.utcnow()
        return await self.subscription_repo.create(
            tenant_id,
            commit=commit,
            plan=plan,
            status="active",
            message_limit=defaults["message_limit"],
            messages_used=0,
            contact_limit=defaults["contact_limit"],
            features=dict(defaults["features"]),
            current_period_start=now,
            current_period_end=now + BILLING_PERIOD,
        )

    async def update_subscription(
        self,
        tenant_id: int,
        plan: str | None = None,
        status: str | None = None,
        message_limit: int | None = None,
        contact_limit: int | None = None,
        features: dict[str, bool] | None = None,
        reset_usage: bool = False,
    ) -> TenantSubscription:
        """Change a tenant's plan, status or limits (global admin operation).

        Switching plan resets limits and features to that plan's defaults;
        explicit limits/features given in the same call win over the defaults.

        Raises:
            ValueError: If the plan or status is unknown
        """
        if plan is not None and plan not in PLANS:
            raise ValueError(f"Unknown plan: {plan}")
        if status is not None and status not in SUBSCRIPTION_STATUSES:
            raise ValueError(f"Unknown status: {status}")

        subscription = await self.subscription_repo.get_by_tenant(tenant_id)
        if subscription is None:
            subscription = await self.create_default(tenant_id, plan or "free", commit=False)

        if plan is not None and plan != subscription.plan:
            defaults = PLANS[plan]
            subscription.plan = plan
            subscription.message_limit = defaults["message_limit"]
            subscription.contact_limit = defaults["contact_limit"]
            subscription.features = dict(defaults["features"])

        if status is not None:
            subscription.status = status
        if message_limit is not None:
            subscription.message_limit = message_limit
        if contact_limit is not None:
            subscription.contact_limit = contact_limit
        if features is not None:
            # Reassign so the JSON column is flagged dirty
            subscription.features = {**(subscription.features or {}), **features}
        if reset_usage:
            now = datetime.utcnow()
            subscription.messages_used = 0
            subscription.current_period_start = now
            subscription.current_period_end = now + BILLING_PERIOD

        await self.session.commit()
        await self.session.refresh(subscription)
        logger.info(
            "Subscription updated",
            extra={"tenant_id": tenant_id, "plan": subscription.plan, "status": subscription.status},
        )
        return subscription

    async def has_feature(self, tenant_id: int, feature: str) -> bool:
        subscription = await self.subscription_repo.get_by_tenant(tenant_id)
        return subscription is not None and subscription.has_feature(feature)

    async def can_add_contact(self, tenant_id: int, current_count: int) -> bool:
        subscription = await self.subscription_repo.get_by_tenant(tenant_id)
        if subscription is None:
            return True
        return current_count < subscription.contact_limit


def subscription_to_dict(subscription: TenantSubscription) -> dict:
    """Serialize a subscription with its derived usage fields."""
    return {
        "plan": subscription.plan,
        "status": subscription.status,
        "message_limit": subscription.message_limit,
        "messages_used": subscription.messages_used,
        "remaining_messages": subscription.remaining_messages(),
        "contact_limit": subscription.contact_limit,
        "features": subscription.features or {},
        "enabled_features": subscription.enabled_features(),
        "can_send_message": subscription.can_send_message(),
        "is_expired": subscription.is_expired(),
        "is_on_trial": subscription.is_on_trial(),
        "trial_ends_at": subscription.trial_ends_at,
        "current_period_start": subscription.current_period_start,
        "current_period_end": subscription.current_period_end,
    }

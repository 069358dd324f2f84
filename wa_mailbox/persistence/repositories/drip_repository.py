"""Drip campaign repository."""

from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.models.drip_campaign import DripCampaign, DripCampaignStep, DripSubscriber
from wa_mailbox.persistence.repositories.base import BaseRepository


class DripCampaignRepository(BaseRepository[DripCampaign]):
    """Repository for drip campaigns, their steps and subscribers."""

    def __init__(self, session: AsyncSession):
        super().__init__(DripCampaign, session)

    async def list_steps(self, campaign_id: int) -> list[DripCampaignStep]:
        stmt = (
            select(DripCampaignStep)
            .where(DripCampaignStep.campaign_id == campaign_id)
            .order_by(DripCampaignStep.step_number)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_step(self, campaign_id: int, step_number: int) -> DripCampaignStep | None:
        stmt = select(DripCampaignStep).where(
            DripCampaignStep.campaign_id == campaign_id,
            DripCampaignStep.step_number == step_number,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def replace_steps(self, campaign_id: int, steps: list[dict]) -> None:
        """Swap the campaign's steps for ``steps``, numbered from 1 in list order."""
        await self.session.execute(delete(DripCampaignStep).where(DripCampaignStep.campaign_id == campaign_id))
        for number, step in enumerate(steps, start=1):
            self.session.add(DripCampaignStep(campaign_id=campaign_id, step_number=number, **step))
        await self.session.flush()

    async def get_subscriber(self, campaign_id: int, contact_id: int) -> DripSubscriber | None:
        stmt = select(DripSubscriber).where(
            DripSubscriber.campaign_id == campaign_id,
            DripSubscriber.contact_id == contact_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_subscriber_by_id(self, tenant_id: int, subscriber_id: int) -> DripSubscriber | None:
        stmt = select(DripSubscriber).where(
            DripSubscriber.tenant_id == tenant_id,
            DripSubscriber.id == subscriber_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_subscribers(self, campaign_id: int, status: str | None = None) -> list[DripSubscriber]:
        stmt = select(DripSubscriber).where(DripSubscriber.campaign_id == campaign_id)
        if status:
            stmt = stmt.where(DripSubscriber.status == status)
        result = await self.session.execute(stmt.order_by(DripSubscriber.id))
        return list(result.scalars().all())

    async def list_active_subscriptions_for_contact(self, tenant_id: int, contact_id: int) -> list[DripSubscriber]:
        stmt = select(DripSubscriber).where(
            DripSubscriber.tenant_id == tenant_id,
            DripSubscriber.contact_id == contact_id,
            DripSubscriber.status == "active",
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_due_subscribers(self, now: datetime, limit: int = 50) -> list[DripSubscriber]:
        """Active subscribers of every tenant whose next step is due.

        Subscribers of inactive campaigns wait until the campaign is switched back on.
        """
        stmt = (
            select(DripSubscriber)
            .join(DripCampaign, DripCampaign.id == DripSubscriber.campaign_id)
            .where(
                DripCampaign.is_active.is_(True),
                DripSubscriber.status == "active",
                DripSubscriber.next_send_at.is_not(None),
                DripSubscriber.next_send_at <= now,
            )
            .order_by(DripSubscriber.next_send_at, DripSubscriber.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

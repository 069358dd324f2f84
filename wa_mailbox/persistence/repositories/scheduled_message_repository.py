"""Scheduled message repository."""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.models.scheduled_message import ScheduledMessage
from wa_mailbox.persistence.repositories.base import BaseRepository


class ScheduledMessageRepository(BaseRepository[ScheduledMessage]):
    """Repository for ScheduledMessage entities."""

    def __init__(self, session: AsyncSession):
        super().__init__(ScheduledMessage, session)

    async def list_by_schedule(
        self,
        tenant_id: int,
        status: str | None = None,
        contact_id: int | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[ScheduledMessage]:
        """Tenant's scheduled messages, soonest first."""
        stmt = select(ScheduledMessage).where(ScheduledMessage.tenant_id == tenant_id)
        if status:
            stmt = stmt.where(ScheduledMessage.status == status)
        if contact_id is not None:
            stmt = stmt.where(ScheduledMessage.contact_id == contact_id)
        stmt = stmt.order_by(ScheduledMessage.scheduled_at, ScheduledMessage.id).offset(skip).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_due(self, now: datetime, limit: int = 50) -> list[ScheduledMessage]:
        """Pending messages of every tenant whose time has come."""
        stmt = (
            select(ScheduledMessage)
            .where(ScheduledMessage.status == "pending", ScheduledMessage.scheduled_at <= now)
            .order_by(ScheduledMessage.scheduled_at, ScheduledMessage.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

"""Broadcast repository."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.models.broadcast import Broadcast, BroadcastRecipient
from wa_mailbox.persistence.repositories.base import BaseRepository


class BroadcastRepository(BaseRepository[Broadcast]):
    """Repository for Broadcast entities and their recipients."""

    def __init__(self, session: AsyncSession):
        super().__init__(Broadcast, session)

    async def list_recent(self, tenant_id: int, skip: int = 0, limit: int = 50) -> list[Broadcast]:
        stmt = (
            select(Broadcast)
            .where(Broadcast.tenant_id == tenant_id)
            .order_by(Broadcast.created_at.desc(), Broadcast.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def add_recipients(self, broadcast_id: int, contact_ids: list[int]) -> None:
        for contact_id in contact_ids:
            self.session.add(
                BroadcastRecipient(broadcast_id=broadcast_id, contact_id=contact_id, status="pending")
            )
        await self.session.flush()

    async def list_recipients(
        self, broadcast_id: int, status: str | None = None
    ) -> list[BroadcastRecipient]:
        stmt = select(BroadcastRecipient).where(BroadcastRecipient.broadcast_id == broadcast_id)
        if status:
            stmt = stmt.where(BroadcastRecipient.status == status)
        stmt = stmt.order_by(BroadcastRecipient.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_recipient_by_message_id(
        self, tenant_id: int, whatsapp_message_id: str
    ) -> tuple[BroadcastRecipient, Broadcast] | None:
        """Find the recipient row (and its broadcast) for a provider message id."""
        stmt = (
            select(BroadcastRecipient, Broadcast)
            .join(Broadcast, Broadcast.id == BroadcastRecipient.broadcast_id)
            .where(
                Broadcast.tenant_id == tenant_id,
                BroadcastRecipient.whatsapp_message_id == whatsapp_message_id,
            )
        )
        result = await self.session.execute(stmt)
        row = result.first()
        if row is None:
            return None
        return row[0], row[1]

"""Message repository."""

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.models.message import Message
from wa_mailbox.persistence.repositories.base import BaseRepository


class MessageRepository(BaseRepository[Message]):
    """Repository for Message entities."""

    def __init__(self, session: AsyncSession):
        super().__init__(Message, session)

    async def get_by_message_id(self, tenant_id: int, message_id: str) -> Message | None:
        """Get a message by the provider's message id.

        Args:
            tenant_id: Tenant ID
            message_id: Provider message id (``wamid...``)

        Returns:
            Message or None
        """
        stmt = select(Message).where(
            Message.tenant_id == tenant_id,
            Message.message_id == message_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_contact(
        self, tenant_id: int, contact_id: int, skip: int = 0, limit: int = 200
    ) -> list[Message]:
        """Conversation thread for a contact, oldest first."""
        stmt = (
            select(Message)
            .where(Message.tenant_id == tenant_id, Message.contact_id == contact_id)
            .order_by(Message.timestamp.asc(), Message.id.asc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def search(self, tenant_id: int, query: str, limit: int = 50) -> list[Message]:
        stmt = (
            select(Message)
            .where(
                Message.tenant_id == tenant_id,
                Message.message_body.ilike(f"%{query}%"),
            )
            .order_by(Message.timestamp.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_contact_read(self, tenant_id: int, contact_id: int) -> int:
        """Mark every unread incoming message of a contact as read.

        Returns:
            Number of messages updated
        """
        stmt = (
            update(Message)
            .where(
                Message.tenant_id == tenant_id,
                Message.contact_id == contact_id,
                Message.direction == "incoming",
                Message.is_read.is_(False),
            )
            .values(is_read=True)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def duplicate_message_ids(self, tenant_id: int | None = None) -> list[tuple[int, str, int]]:
        """Provider ids stored more than once, as (tenant_id, message_id, count)."""
        stmt = (
            select(Message.tenant_id, Message.message_id, func.count(Message.id))
            .where(Message.message_id.is_not(None))
            .group_by(Message.tenant_id, Message.message_id)
            .having(func.count(Message.id) > 1)
        )
        if tenant_id is not None:
            stmt = stmt.where(Message.tenant_id == tenant_id)
        result = await self.session.execute(stmt)
        return [tuple(row) for row in result.all()]

    async def count_missing_message_id(self, tenant_id: int | None = None) -> int:
        stmt = select(func.count(Message.id)).where(Message.message_id.is_(None))
        if tenant_id is not None:
            stmt = stmt.where(Message.tenant_id == tenant_id)
        result = await self.session.execute(stmt)
        return result.scalar_one()

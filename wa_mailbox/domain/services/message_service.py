"""Message search and read-state service."""

from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.models.message import Message
from wa_mailbox.persistence.repositories.contact_repository import ContactRepository
from wa_mailbox.persistence.repositories.message_repository import MessageRepository


class MessageService:
    """Service for tenant-scoped message queries."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.message_repo = MessageRepository(session)
        self.contact_repo = ContactRepository(session)

    async def search(self, tenant_id: int, query: str, limit: int = 50) -> list[Message]:
        query = query.strip()
        if not query:
            return []
        return await self.message_repo.search(tenant_id, query, limit=limit)

    async def get_message(self, tenant_id: int, message_id: int) -> Message | None:
        return await self.message_repo.get_by_id(tenant_id, message_id)

    async def mark_read(self, tenant_id: int, message_id: int) -> Message | None:
        """Mark one incoming message read, decrementing the contact's unread count.

        Returns:
            The message, or None if not found
        """
        message = await self.message_repo.get_by_id(tenant_id, message_id)
        if message is None:
            return None
        if message.direction == "incoming" and not message.is_read:
            message.is_read = True
            contact = await self.contact_repo.get_by_id(tenant_id, message.contact_id)
            if contact is not None:
                contact.unread_count = max(0, (contact.unread_count or 0) - 1)
            await self.session.commit()
        return message

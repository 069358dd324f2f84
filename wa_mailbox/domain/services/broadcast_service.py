"""Broadcast service: recipient resolution and sequential sending."""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.domain.services.segment_service import SegmentService
from wa_mailbox.persistence.models.broadcast import Broadcast, BroadcastRecipient
from wa_mailbox.persistence.repositories.broadcast_repository import BroadcastRepository
from wa_mailbox.persistence.repositories.contact_repository import ContactRepository
from wa_mailbox.persistence.repositories.tag_repository import TagRepository

logger = logging.getLogger(__name__)


class BroadcastStateError(Exception):
    """Raised when a broadcast is not in a state that allows the operation."""


class BroadcastService:
    """Service for broadcasts."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.broadcast_repo = BroadcastRepository(session)
        self.contact_repo = ContactRepository(session)
        self.tag_repo = TagRepository(session)

    async def list_broadcasts(self, tenant_id: int, skip: int = 0, limit: int = 50) -> list[Broadcast]:
        return await self.broadcast_repo.list_recent(tenant_id, skip=skip, limit=limit)

    async def get_broadcast(self, tenant_id: int, broadcast_id: int) -> Broadcast | None:
        return await self.broadcast_repo.get_by_id(tenant_id, broadcast_id)

    async def list_recipients(self, broadcast_id: int) -> list[BroadcastRecipient]:
        return await self.broadcast_repo.list_recipients(broadcast_id)

    async def resolve_recipients(
        self,
        tenant_id: int,
        contact_ids: list[int] | None,
        tag_ids: list[int] | None,
        segment_ids: list[int] | None = None,
    ) -> list[int]:
        """Union of explicit, tagged and segment contacts, active only, deduplicated."""
        explicit = [c.id for c in await self.contact_repo.get_many(tenant_id, list(contact_ids or []))]
        tagged = await self.tag_repo.contact_ids_for_tags(tenant_id, list(tag_ids or []))
        segmented = await SegmentService(self.session).contact_ids_for_segments(tenant_id, list(segment_ids or []))
        return sorted(set(explicit) | set(tagged) | set(segmented))

    async def create_broadcast(
        self,
        tenant_id: int,
        name: str,
        message: str,
        contact_ids: list[int] | None = None,
        tag_ids: list[int] | None = None,
        segment_ids: list[int] | None = None,
        created_by: int | None = None,
    ) -> Broadcast:
        """Create a draft broadcast with its recipient rows.

        Raises:
            ValueError: If the message is empty or no recipient resolves
        """
        if not message or not message.strip():
            raise ValueError("Message is required")
        recipient_ids = await self.resolve_recipients(tenant_id, contact_ids, tag_ids, segment_ids)
        if not recipient_ids:
            raise ValueError("No recipients selected")

        broadcast = await self.broadcast_repo.create(
            tenant_id,
            commit=False,
            name=name,
            message=message,
            status="draft",
            total_recipients=len(recipient_ids),
            created_by=created_by,
        )
        await self.broadcast_repo.add_recipients(broadcast.id, recipient_ids)
        await self.session.commit()
        await self.session.refresh(broadcast)
        return broadcast

    async def send_broadcast(self, tenant_id: int, broadcast_id: int, whatsapp_service) -> Broadcast | None:
        """Send a draft broadcast to its pending recipients, one by one.

        Args:
            tenant_id: Tenant ID
            broadcast_id: Broadcast ID
            whatsapp_service: The tenant's WhatsAppService

        Returns:
            The finished broadcast, or None if not found

        Raises:
            BroadcastStateError: If the broadcast is not a draft
        """
        broadcast = await self.broadcast_repo.get_by_id(tenant_id, broadcast_id)
        if broadcast is None:
            return None
        if broadcast.status != "draft":
            raise BroadcastStateError(f"Broadcast is already {broadcast.status}")

        broadcast.status = "sending"
        broadcast.started_at = datetime.utcnow()
        await self.session.commit()

        try:
            await self._deliver(tenant_id, broadcast, whatsapp_service)
        except Exception:
            logger.error("Broadcast interrupted", extra={"broadcast_id": broadcast_id}, exc_info=True)
            # Recipients committed before the error keep their status
            await self.session.rollback()
            await self.session.refresh(broadcast)
            raise
        finally:
            broadcast.status = "completed" if broadcast.sent_count else "failed"
            broadcast.completed_at = datetime.utcnow()
            await self.session.commit()

        await self.session.refresh(broadcast)
        logger.info(
            "Broadcast finished",
            extra={
                "broadcast_id": broadcast.id,
                "sent": broadcast.sent_count,
                "failed": broadcast.failed_count,
            },
        )
        return broadcast

    async def _deliver(self, tenant_id: int, broadcast: Broadcast, whatsapp_service) -> None:
        """Send to every pending recipient, committing after each one."""
        for recipient in await self.broadcast_repo.list_recipients(broadcast.id, status="pending"):
            contact = await self.contact_repo.get_by_id(tenant_id, recipient.contact_id)
            if contact is None:
                recipient.status = "failed"
                recipient.error_message = "Contact not found"
                broadcast.failed_count = (broadcast.failed_count or 0) + 1
                await self.session.commit()
                continue

            result = await whatsapp_service.send_text_message(
                contact.phone_number, broadcast.message, contact=contact, commit=False
            )
            if result.success:
                recipient.status = "sent"
                recipient.whatsapp_message_id = result.message_id
                recipient.sent_at = datetime.utcnow()
                broadcast.sent_count = (broadcast.sent_count or 0) + 1
            else:
                recipient.status = "failed"
                recipient.error_message = result.error
                broadcast.failed_count = (broadcast.failed_count or 0) + 1
            await self.session.commit()

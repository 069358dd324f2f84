"""Scheduled messages: creation, cancellation and the due-message run."""

import calendar
import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.domain.services.template_service import TemplateNotApprovedError, TemplateService
from wa_mailbox.domain.services.whatsapp_service import WhatsAppService
from wa_mailbox.infrastructure.whatsapp_client import SendResult
from wa_mailbox.persistence.models.scheduled_message import (
    RECURRENCE_PATTERNS,
    SCHEDULED_MESSAGE_TYPES,
    ScheduledMessage,
)
from wa_mailbox.persistence.repositories.contact_repository import ContactRepository
from wa_mailbox.persistence.repositories.scheduled_message_repository import ScheduledMessageRepository
from wa_mailbox.persistence.repositories.template_repository import TemplateRepository

logger = logging.getLogger(__name__)

NO_CREDENTIALS_ERROR = "WhatsApp API credentials are not configured"


class ScheduledMessageStateError(Exception):
    """Raised when a scheduled message is no longer pending."""


def next_occurrence(scheduled_at: datetime, pattern: str) -> datetime:
    """The next run of a recurring message.

    Monthly recurrence keeps the day of month, clamped to the month's last day
    (Jan 31 -> Feb 28 -> Mar 28).
    """
    if pattern == "daily":
        return scheduled_at + timedelta(days=1)
    if pattern == "weekly":
        return scheduled_at + timedelta(weeks=1)
    if pattern == "monthly":
        year = scheduled_at.year + scheduled_at.month // 12
        month = scheduled_at.month % 12 + 1
        day = min(scheduled_at.day, calendar.monthrange(year, month)[1])
        return scheduled_at.replace(year=year, month=month, day=day)
    raise ValueError(f"Unknown recurrence pattern '{pattern}'")


class ScheduledMessageService:
    """Service for scheduled messages."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.scheduled_repo = ScheduledMessageRepository(session)
        self.contact_repo = ContactRepository(session)
        self.template_repo = TemplateRepository(session)

    async def list_scheduled(
        self,
        tenant_id: int,
        status: str | None = None,
        contact_id: int | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[ScheduledMessage]:
        return await self.scheduled_repo.list_by_schedule(
            tenant_id, status=status, contact_id=contact_id, skip=skip, limit=limit
        )

    async def get_scheduled(self, tenant_id: int, scheduled_id: int) -> ScheduledMessage | None:
        return await self.scheduled_repo.get_by_id(tenant_id, scheduled_id)

    async def schedule(
        self,
        tenant_id: int,
        contact_id: int,
        scheduled_at: datetime,
        message: str | None = None,
        message_type: str = "text",
        template_id: int | None = None,
        template_parameters: list[str] | None = None,
        is_recurring: bool = False,
        recurrence_pattern: str | None = None,
        created_by: int | None = None,
    ) -> ScheduledMessage | None:
        """Schedule a text or template message for one contact.

        Returns:
            The pending row, or None if the contact does not exist

        Raises:
            ValueError: On an invalid type, missing body or template, or bad recurrence
        """
        if message_type not in SCHEDULED_MESSAGE_TYPES:
            raise ValueError(f"Unknown message type '{message_type}'")
        if message_type == "text" and not (message and message.strip()):
            raise ValueError("Message is required")
        if message_type == "template":
            if template_id is None or await self.template_repo.get_by_id(tenant_id, template_id) is None:
                raise ValueError("Template not found")
        if is_recurring and recurrence_pattern not in RECURRENCE_PATTERNS:
            raise ValueError(f"Recurrence must be one of: {', '.join(RECURRENCE_PATTERNS)}")

        if await self.contact_repo.get_by_id(tenant_id, contact_id) is None:
            return None

        return await self.scheduled_repo.create(
            tenant_id,
            contact_id=contact_id,
            scheduled_at=scheduled_at,
            message=message,
            message_type=message_type,
            template_id=template_id if message_type == "template" else None,
            template_parameters=template_parameters if message_type == "template" else None,
            status="pending",
            is_recurring=is_recurring,
            recurrence_pattern=recurrence_pattern if is_recurring else None,
            created_by=created_by,
        )

    async def cancel(self, tenant_id: int, scheduled_id: int) -> ScheduledMessage | None:
        """Cancel a pending message.

        Raises:
            ScheduledMessageStateError: If it was already sent, failed or cancelled
        """
        scheduled = await self.scheduled_repo.get_by_id(tenant_id, scheduled_id)
        if scheduled is None:
            return None
        if scheduled.status != "pending":
            raise ScheduledMessageStateError(f"Scheduled message is already {scheduled.status}")
        scheduled.status = "cancelled"
        await self.session.commit()
        await self.session.refresh(scheduled)
        return scheduled

    async def delete(self, tenant_id: int, scheduled_id: int) -> bool:
        return await self.scheduled_repo.delete(tenant_id, scheduled_id)

    async def process_due(self, now: datetime | None = None, limit: int = 50) -> dict[str, int]:
        """Send every due pending message, oldest first.

        Each message is committed on its own. A failed send marks that row
        failed with the error and the run moves on.

        Returns:
            Counts of ``sent`` and ``failed`` messages
        """
        now = now or datetime.utcnow()
        due = await self.scheduled_repo.list_due(now, limit=limit)
        counts = {"sent": 0, "failed": 0}
        if not due:
            logger.info("No scheduled messages due")
            return counts

        logger.info("Processing scheduled messages", extra={"due_count": len(due)})
        services: dict[int, WhatsAppService | None] = {}
        for scheduled_id in [s.id for s in due]:
            # A rollback below expires loaded rows; get() reloads them
            scheduled = await self.session.get(ScheduledMessage, scheduled_id)
            if scheduled.tenant_id not in services:
                services[scheduled.tenant_id] = await WhatsAppService.for_tenant(self.session, scheduled.tenant_id)
            try:
                result = await self._send(scheduled, services[scheduled.tenant_id])
            except Exception as e:
                logger.error(
                    f"Scheduled message {scheduled.id} raised: {e}",
                    exc_info=True,
                    extra={"tenant_id": scheduled.tenant_id},
                )
                await self.session.rollback()
                await self.session.refresh(scheduled)
                services.clear()
                result = SendResult(success=False, error=str(e))

            if result.success:
                scheduled.status = "sent"
                scheduled.sent_at = now
                scheduled.whatsapp_message_id = result.message_id
                scheduled.error_message = None
                counts["sent"] += 1
                if scheduled.is_recurring and scheduled.recurrence_pattern:
                    self._schedule_next(scheduled)
            else:
                scheduled.status = "failed"
                scheduled.error_message = result.error
                counts["failed"] += 1
                logger.warning(
                    "Scheduled message failed",
                    extra={"scheduled_id": scheduled.id, "error": result.error},
                )
            await self.session.commit()

        logger.info("Scheduled messages processed", extra=counts)
        return counts

    async def _send(self, scheduled: ScheduledMessage, whatsapp: WhatsAppService | None) -> SendResult:
        if whatsapp is None:
            return SendResult(success=False, error=NO_CREDENTIALS_ERROR)
        contact = await self.contact_repo.get_by_id(scheduled.tenant_id, scheduled.contact_id)
        if contact is None:
            return SendResult(success=False, error="Contact not found")

        if scheduled.message_type == "template":
            template = (
                await self.template_repo.get_by_id(scheduled.tenant_id, scheduled.template_id)
                if scheduled.template_id is not None
                else None
            )
            if template is None:
                return SendResult(success=False, error="Template not found")
            try:
                return await TemplateService(self.session).send_template(
                    template, contact, whatsapp, parameters=scheduled.template_parameters, commit=False
                )
            except (TemplateNotApprovedError, ValueError) as e:
                return SendResult(success=False, error=str(e))

        return await whatsapp.send_text_message(contact.phone_number, scheduled.message, contact=contact, commit=False)

    def _schedule_next(self, scheduled: ScheduledMessage) -> None:
        upcoming: dict[str, Any] = {
            "tenant_id": scheduled.tenant_id,
            "contact_id": scheduled.contact_id,
            "message": scheduled.message,
            "message_type": scheduled.message_type,
            "template_id": scheduled.template_id,
            "template_parameters": scheduled.template_parameters,
            "scheduled_at": next_occurrence(scheduled.scheduled_at, scheduled.recurrence_pattern),
            "status": "pending",
            "is_recurring": True,
            "recurrence_pattern": scheduled.recurrence_pattern,
            "created_by": scheduled.created_by,
        }
        self.session.add(ScheduledMessage(**upcoming))
        logger.info(
            "Next recurrence scheduled",
            extra={"scheduled_id": scheduled.id, "next_at": upcoming["scheduled_at"].isoformat()},
        )

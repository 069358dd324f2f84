"""Contact service: CRM contacts, conversation threads, tags and notes."""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.domain.services.subscription_service import SubscriptionService
from wa_mailbox.domain.services.workflow_service import WorkflowService
from wa_mailbox.persistence.models.contact import CONTACT_STAGES, Contact
from wa_mailbox.persistence.models.deal import NOTE_TYPES, Note
from wa_mailbox.persistence.models.message import Message
from wa_mailbox.persistence.models.tag import Tag
from wa_mailbox.persistence.repositories.contact_repository import ContactRepository
from wa_mailbox.persistence.repositories.deal_repository import NoteRepository
from wa_mailbox.persistence.repositories.message_repository import MessageRepository
from wa_mailbox.persistence.repositories.tag_repository import TagRepository

logger = logging.getLogger(__name__)


class ContactLimitError(ValueError):
    """Raised when the tenant's plan does not allow more contacts."""


class ContactService:
    """Service for contact management.

    Stage, lead score and tag changes made here fire the matching workflows.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize contact service."""
        self.session = session
        self.contact_repo = ContactRepository(session)
        self.message_repo = MessageRepository(session)
        self.tag_repo = TagRepository(session)
        self.note_repo = NoteRepository(session)

    async def list_contacts(
        self,
        tenant_id: int,
        search: str | None = None,
        stage: str | None = None,
        tag_id: int | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Contact]:
        """List contacts for a tenant.

        Args:
            tenant_id: Tenant ID
            search: Substring of name or phone number
            stage: CRM stage filter
            tag_id: Tag filter
            skip: Number of records to skip
            limit: Maximum number of records to return

        Returns:
            List of contacts
        """
        return await self.contact_repo.search(
            tenant_id, query=search, stage=stage, tag_id=tag_id, skip=skip, limit=limit
        )

    async def get_contact(self, tenant_id: int, contact_id: int) -> Contact | None:
        return await self.contact_repo.get_by_id(tenant_id, contact_id)

    async def get_contact_tags(self, contact_id: int) -> list[Tag]:
        return await self.tag_repo.list_for_contact(contact_id)

    async def create_contact(
        self,
        tenant_id: int,
        phone_number: str,
        name: str | None = None,
        stage: str = "new",
        email: str | None = None,
        company_name: str | None = None,
    ) -> Contact:
        """Create a contact manually.

        A soft-deleted contact with the same number is restored instead.

        Raises:
            ContactLimitError: If the plan's contact limit is reached
            ValueError: On a duplicate phone number or unknown stage
        """
        phone_number = phone_number.strip()
        if not phone_number:
            raise ValueError("Phone number is required")
        if stage not in CONTACT_STAGES:
            raise ValueError(f"Unknown stage: {stage}")

        existing = await self.contact_repo.get_by_phone(tenant_id, phone_number)
        if existing is not None and existing.deleted_at is None:
            raise ValueError(f"Contact {phone_number} already exists")

        current = await self.contact_repo.count_active(tenant_id)
        if not await SubscriptionService(self.session).can_add_contact(tenant_id, current):
            raise ContactLimitError("Contact limit reached. Please upgrade your plan.")

        if existing is not None:
            existing.deleted_at = None
            existing.name = name or existing.name
            existing.stage = stage
            existing.email = email
            existing.company_name = company_name
            await self.session.commit()
            await self.session.refresh(existing)
            return existing

        return await self.contact_repo.create(
            tenant_id,
            phone_number=phone_number,
            name=name or phone_number,
            stage=stage,
            email=email,
            company_name=company_name,
        )

    async def get_or_create_for_inbound(
        self, tenant_id: int, phone_number: str, name: str | None = None
    ) -> tuple[Contact, bool]:
        """Resolve the contact for an inbound message.

        Inbound messages are never dropped, so the plan's contact limit does
        not apply. A soft-deleted contact is restored. Changes are flushed only.

        Returns:
            (contact, created)
        """
        contact = await self.contact_repo.get_by_phone(tenant_id, phone_number)
        if contact is not None:
            if contact.deleted_at is not None:
                contact.deleted_at = None
                contact.unread_count = 0
                logger.info("Restored soft-deleted contact", extra={"contact_id": contact.id})
            return contact, False

        contact = await self.contact_repo.create(
            tenant_id,
            commit=False,
            phone_number=phone_number,
            name=name or phone_number,
            unread_count=0,
            last_message_time=datetime.utcnow(),
        )
        logger.info("Created contact from inbound message", extra={"contact_id": contact.id})
        return contact, True

    async def update_contact(self, tenant_id: int, contact_id: int, **data) -> Contact | None:
        """Update a contact's fields, firing stage and lead score workflows.

        Args:
            tenant_id: Tenant ID
            contact_id: Contact ID
            **data: Fields to change (name, stage, lead_score, email, company_name, ...)

        Returns:
            Updated contact or None if not found

        Raises:
            ValueError: On unknown stage
        """
        contact = await self.contact_repo.get_by_id(tenant_id, contact_id)
        if contact is None:
            return None

        if "stage" in data and data["stage"] not in CONTACT_STAGES:
            raise ValueError(f"Unknown stage: {data['stage']}")

        old_stage = contact.stage
        old_score = contact.lead_score
        for key, value in data.items():
            setattr(contact, key, value)

        workflows = WorkflowService(self.session)
        if "stage" in data and data["stage"] != old_stage:
            await workflows.trigger(
                tenant_id, "stage_change", contact, {"from_stage": old_stage, "to_stage": contact.stage}
            )
        if "lead_score" in data and data["lead_score"] != old_score:
            await workflows.trigger(
                tenant_id,
                "lead_score_change",
                contact,
                {"old_score": old_score, "new_score": contact.lead_score},
            )

        await self.session.commit()
        await self.session.refresh(contact)
        return contact

    async def delete_contact(self, tenant_id: int, contact_id: int) -> bool:
        """Soft delete a contact."""
        contact = await self.contact_repo.get_by_id(tenant_id, contact_id)
        if contact is None:
            return False
        contact.deleted_at = datetime.utcnow()
        await self.session.commit()
        return True

    async def get_thread(
        self, tenant_id: int, contact_id: int, skip: int = 0, limit: int = 200
    ) -> list[Message] | None:
        """Conversation with a contact, oldest first, or None if no such contact."""
        if await self.contact_repo.get_by_id(tenant_id, contact_id) is None:
            return None
        return await self.message_repo.list_for_contact(tenant_id, contact_id, skip=skip, limit=limit)

    async def mark_read(self, tenant_id: int, contact_id: int) -> int | None:
        """Mark a contact's incoming messages read and zero its unread count.

        Returns:
            Number of messages marked, or None if no such contact
        """
        contact = await self.contact_repo.get_by_id(tenant_id, contact_id)
        if contact is None:
            return None
        updated = await self.message_repo.mark_contact_read(tenant_id, contact_id)
        contact.unread_count = 0
        await self.session.commit()
        return updated

    async def add_tag(self, tenant_id: int, contact_id: int, tag_id: int) -> bool | None:
        """Attach a tag and fire ``tag_added`` workflows.

        Returns:
            True if attached, False if already present, None if contact or tag missing
        """
        contact = await self.contact_repo.get_by_id(tenant_id, contact_id)
        tag = await self.tag_repo.get_by_id(tenant_id, tag_id)
        if contact is None or tag is None:
            return None
        attached = await self.tag_repo.attach(contact.id, tag.id)
        if attached:
            await WorkflowService(self.session).trigger(
                tenant_id, "tag_added", contact, {"tag_id": tag.id}
            )
        await self.session.commit()
        return attached

    async def remove_tag(self, tenant_id: int, contact_id: int, tag_id: int) -> bool | None:
        contact = await self.contact_repo.get_by_id(tenant_id, contact_id)
        tag = await self.tag_repo.get_by_id(tenant_id, tag_id)
        if contact is None or tag is None:
            return None
        removed = await self.tag_repo.detach(contact.id, tag.id)
        if removed:
            await WorkflowService(self.session).trigger(
                tenant_id, "tag_removed", contact, {"tag_id": tag.id}
            )
        await self.session.commit()
        return removed

    async def bulk_update_stage(self, tenant_id: int, contact_ids: list[int], stage: str) -> int:
        """Move several contacts to a stage.

        Returns:
            Number of contacts whose stage changed
        """
        if stage not in CONTACT_STAGES:
            raise ValueError(f"Unknown stage: {stage}")
        workflows = WorkflowService(self.session)
        changed = 0
        for contact in await self.contact_repo.get_many(tenant_id, contact_ids):
            if contact.stage == stage:
                continue
            old_stage = contact.stage
            contact.stage = stage
            changed += 1
            await workflows.trigger(
                tenant_id, "stage_change", contact, {"from_stage": old_stage, "to_stage": stage}
            )
        await self.session.commit()
        return changed

    async def bulk_add_tag(self, tenant_id: int, contact_ids: list[int], tag_id: int) -> int | None:
        """Tag several contacts.

        Returns:
            Number of contacts newly tagged, or None if the tag does not exist
        """
        tag = await self.tag_repo.get_by_id(tenant_id, tag_id)
        if tag is None:
            return None
        workflows = WorkflowService(self.session)
        tagged = 0
        for contact in await self.contact_repo.get_many(tenant_id, contact_ids):
            if await self.tag_repo.attach(contact.id, tag.id):
                tagged += 1
                await workflows.trigger(tenant_id, "tag_added", contact, {"tag_id": tag.id})
        await self.session.commit()
        return tagged

    async def list_notes(self, tenant_id: int, contact_id: int) -> list[Note] | None:
        if await self.contact_repo.get_by_id(tenant_id, contact_id) is None:
            return None
        return await self.note_repo.list_for_contact(tenant_id, contact_id)

    async def create_note(
        self,
        tenant_id: int,
        contact_id: int,
        content: str,
        note_type: str = "general",
        created_by: int | None = None,
    ) -> Note | None:
        """Add a note to a contact.

        Raises:
            ValueError: On empty content or unknown note type
        """
        if not content or not content.strip():
            raise ValueError("Note content is required")
        if note_type not in NOTE_TYPES:
            raise ValueError(f"Unknown note type: {note_type}")
        if await self.contact_repo.get_by_id(tenant_id, contact_id) is None:
            return None
        return await self.note_repo.create(
            tenant_id,
            contact_id=contact_id,
            content=content.strip(),
            note_type=note_type,
            created_by=created_by,
        )

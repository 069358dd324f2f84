"""Contact repository."""

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.models.contact import Contact, contact_tags
from wa_mailbox.persistence.repositories.base import BaseRepository


class ContactRepository(BaseRepository[Contact]):
    """Repository for Contact entities."""

    def __init__(self, session: AsyncSession):
        """Initialize contact repository."""
        super().__init__(Contact, session)

    async def get_by_id(self, tenant_id: int, id: int) -> Contact | None:
        """Get contact by ID (excludes soft-deleted).

        Args:
            tenant_id: Tenant ID
            id: Contact ID

        Returns:
            Contact or None if not found or deleted
        """
        stmt = select(Contact).where(
            Contact.id == id,
            Contact.tenant_id == tenant_id,
            Contact.deleted_at.is_(None),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_phone(self, tenant_id: int, phone_number: str) -> Contact | None:
        """Get contact by phone number, including soft-deleted ones.

        Inbound messages from a deleted contact restore the row rather than
        inserting a duplicate, so callers need to see deleted rows here.
        """
        stmt = select(Contact).where(
            Contact.tenant_id == tenant_id,
            Contact.phone_number == phone_number,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_many(self, tenant_id: int, ids: list[int]) -> list[Contact]:
        if not ids:
            return []
        stmt = select(Contact).where(
            Contact.tenant_id == tenant_id,
            Contact.id.in_(ids),
            Contact.deleted_at.is_(None),
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def search(
        self,
        tenant_id: int,
        query: str | None = None,
        stage: str | None = None,
        tag_id: int | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Contact]:
        """List active contacts, most recent conversation first.

        Args:
            tenant_id: Tenant ID
            query: Substring matched against name and phone number
            stage: Exact CRM stage filter
            tag_id: Only contacts carrying this tag
            skip: Offset
            limit: Page size

        Returns:
            List of contacts
        """
        stmt = select(Contact).where(
            Contact.tenant_id == tenant_id,
            Contact.deleted_at.is_(None),
        )
        if query:
            pattern = f"%{query}%"
            stmt = stmt.where(
                or_(Contact.name.ilike(pattern), Contact.phone_number.ilike(pattern))
            )
        if stage:
            stmt = stmt.where(Contact.stage == stage)
        if tag_id is not None:
            stmt = stmt.join(contact_tags, contact_tags.c.contact_id == Contact.id).where(
                contact_tags.c.tag_id == tag_id
            )

        # NULL last_message_time sorts after contacts that have talked
        stmt = (
            stmt.order_by(
                Contact.last_message_time.is_(None),
                Contact.last_message_time.desc(),
                Contact.id.desc(),
            )
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_active(self, tenant_id: int) -> int:
        stmt = select(func.count(Contact.id)).where(
            Contact.tenant_id == tenant_id,
            Contact.deleted_at.is_(None),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

"""Tag and auto-tag rule repositories."""

from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.models.contact import Contact, contact_tags
from wa_mailbox.persistence.models.tag import AutoTagRule, Tag
from wa_mailbox.persistence.repositories.base import BaseRepository


class TagRepository(BaseRepository[Tag]):
    """Repository for Tag entities and the contact_tags association."""

    def __init__(self, session: AsyncSession):
        super().__init__(Tag, session)

    async def get_by_name(self, tenant_id: int, name: str) -> Tag | None:
        stmt = select(Tag).where(Tag.tenant_id == tenant_id, Tag.name == name)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_with_counts(self, tenant_id: int) -> list[tuple[Tag, int]]:
        """All tags of a tenant with the number of active contacts carrying each."""
        active_links = (
            select(contact_tags.c.tag_id, contact_tags.c.contact_id)
            .join(Contact, Contact.id == contact_tags.c.contact_id)
            .where(Contact.deleted_at.is_(None))
            .subquery()
        )
        stmt = (
            select(Tag, func.count(active_links.c.contact_id))
            .outerjoin(active_links, active_links.c.tag_id == Tag.id)
            .where(Tag.tenant_id == tenant_id)
            .group_by(Tag.id)
            .order_by(Tag.name)
        )
        result = await self.session.execute(stmt)
        return [(tag, count) for tag, count in result.all()]

    async def list_for_contact(self, contact_id: int) -> list[Tag]:
        stmt = (
            select(Tag)
            .join(contact_tags, contact_tags.c.tag_id == Tag.id)
            .where(contact_tags.c.contact_id == contact_id)
            .order_by(Tag.name)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def contact_has_tag(self, contact_id: int, tag_id: int) -> bool:
        stmt = select(contact_tags.c.contact_id).where(
            contact_tags.c.contact_id == contact_id,
            contact_tags.c.tag_id == tag_id,
        )
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def attach(self, contact_id: int, tag_id: int) -> bool:
        """Attach a tag to a contact.

        Returns:
            True if the tag was newly attached, False if already present
        """
        if await self.contact_has_tag(contact_id, tag_id):
            return False
        await self.session.execute(
            insert(contact_tags).values(contact_id=contact_id, tag_id=tag_id)
        )
        return True

    async def detach(self, contact_id: int, tag_id: int) -> bool:
        result = await self.session.execute(
            delete(contact_tags).where(
                contact_tags.c.contact_id == contact_id,
                contact_tags.c.tag_id == tag_id,
            )
        )
        return (result.rowcount or 0) > 0

    async def contact_ids_for_tags(self, tenant_id: int, tag_ids: list[int]) -> list[int]:
        """Active contacts carrying any of the given tags."""
        if not tag_ids:
            return []
        stmt = (
            select(Contact.id)
            .join(contact_tags, contact_tags.c.contact_id == Contact.id)
            .where(
                Contact.tenant_id == tenant_id,
                Contact.deleted_at.is_(None),
                contact_tags.c.tag_id.in_(tag_ids),
            )
            .distinct()
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class AutoTagRuleRepository(BaseRepository[AutoTagRule]):
    """Repository for AutoTagRule entities."""

    def __init__(self, session: AsyncSession):
        super().__init__(AutoTagRule, session)

    async def list_active_by_priority(self, tenant_id: int) -> list[AutoTagRule]:
        stmt = (
            select(AutoTagRule)
            .where(AutoTagRule.tenant_id == tenant_id, AutoTagRule.is_active.is_(True))
            .order_by(AutoTagRule.priority.desc(), AutoTagRule.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

"""Deal and note repositories."""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.models.deal import Deal, Note
from wa_mailbox.persistence.repositories.base import BaseRepository


class DealRepository(BaseRepository[Deal]):
    """Repository for Deal entities."""

    def __init__(self, session: AsyncSession):
        super().__init__(Deal, session)

    async def list_filtered(
        self,
        tenant_id: int,
        contact_id: int | None = None,
        status: str | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Deal]:
        stmt = select(Deal).where(Deal.tenant_id == tenant_id)
        if contact_id is not None:
            stmt = stmt.where(Deal.contact_id == contact_id)
        if status:
            stmt = stmt.where(Deal.status == status)
        stmt = stmt.order_by(Deal.created_at.desc(), Deal.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def summary(self, tenant_id: int) -> list[tuple[str, int, object]]:
        """Count and total amount per status, as (status, count, amount)."""
        stmt = (
            select(Deal.status, func.count(Deal.id), func.coalesce(func.sum(Deal.amount), 0))
            .where(Deal.tenant_id == tenant_id)
            .group_by(Deal.status)
        )
        result = await self.session.execute(stmt)
        return [tuple(row) for row in result.all()]


class NoteRepository(BaseRepository[Note]):
    """Repository for Note entities."""

    def __init__(self, session: AsyncSession):
        super().__init__(Note, session)

    async def list_for_contact(self, tenant_id: int, contact_id: int) -> list[Note]:
        stmt = (
            select(Note)
            .where(Note.tenant_id == tenant_id, Note.contact_id == contact_id)
            .order_by(Note.created_at.desc(), Note.id.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

"""Message template repository."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.models.template import MessageTemplate
from wa_mailbox.persistence.repositories.base import BaseRepository


class TemplateRepository(BaseRepository[MessageTemplate]):
    """Repository for MessageTemplate entities."""

    def __init__(self, session: AsyncSession):
        super().__init__(MessageTemplate, session)

    async def get_by_name(self, tenant_id: int, name: str) -> MessageTemplate | None:
        stmt = select(MessageTemplate).where(
            MessageTemplate.tenant_id == tenant_id,
            MessageTemplate.name == name,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_recent(self, tenant_id: int, status: str | None = None) -> list[MessageTemplate]:
        stmt = select(MessageTemplate).where(MessageTemplate.tenant_id == tenant_id)
        if status:
            stmt = stmt.where(MessageTemplate.status == status)
        stmt = stmt.order_by(MessageTemplate.created_at.desc(), MessageTemplate.id.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

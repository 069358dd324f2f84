"""Quick reply repository."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.models.quick_reply import QuickReply
from wa_mailbox.persistence.repositories.base import BaseRepository


class QuickReplyRepository(BaseRepository[QuickReply]):
    """Repository for QuickReply entities."""

    def __init__(self, session: AsyncSession):
        super().__init__(QuickReply, session)

    async def get_by_shortcut(self, tenant_id: int, shortcut: str) -> QuickReply | None:
        stmt = select(QuickReply).where(
            QuickReply.tenant_id == tenant_id,
            QuickReply.shortcut == shortcut,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_active_by_usage(self, tenant_id: int) -> list[QuickReply]:
        """Active replies, most used first."""
        stmt = (
            select(QuickReply)
            .where(QuickReply.tenant_id == tenant_id, QuickReply.is_active.is_(True))
            .order_by(QuickReply.usage_count.desc(), QuickReply.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

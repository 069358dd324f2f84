"""Quick reply service."""

from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.models.quick_reply import QuickReply
from wa_mailbox.persistence.repositories.quick_reply_repository import QuickReplyRepository

AUTO_REPLY_PREFIX = "[AUTO-REPLY] "


class QuickReplyService:
    """Service for quick reply management and shortcut matching."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.quick_reply_repo = QuickReplyRepository(session)

    async def list_quick_replies(self, tenant_id: int) -> list[QuickReply]:
        return await self.quick_reply_repo.list(tenant_id, limit=500)

    async def get_quick_reply(self, tenant_id: int, quick_reply_id: int) -> QuickReply | None:
        return await self.quick_reply_repo.get_by_id(tenant_id, quick_reply_id)

    async def create_quick_reply(
        self,
        tenant_id: int,
        shortcut: str,
        title: str,
        message: str,
        is_active: bool = True,
    ) -> QuickReply:
        """Create a quick reply.

        Raises:
            ValueError: If the shortcut is empty or already used by the tenant
        """
        shortcut = shortcut.strip()
        if not shortcut:
            raise ValueError("Shortcut is required")
        if await self.quick_reply_repo.get_by_shortcut(tenant_id, shortcut):
            raise ValueError(f"Shortcut '{shortcut}' already exists")
        return await self.quick_reply_repo.create(
            tenant_id, shortcut=shortcut, title=title, message=message, is_active=is_active
        )

    async def update_quick_reply(self, tenant_id: int, quick_reply_id: int, **data) -> QuickReply | None:
        shortcut = data.get("shortcut")
        if shortcut is not None:
            shortcut = shortcut.strip()
            existing = await self.quick_reply_repo.get_by_shortcut(tenant_id, shortcut)
            if existing is not None and existing.id != quick_reply_id:
                raise ValueError(f"Shortcut '{shortcut}' already exists")
            data["shortcut"] = shortcut
        return await self.quick_reply_repo.update(tenant_id, quick_reply_id, **data)

    async def delete_quick_reply(self, tenant_id: int, quick_reply_id: int) -> bool:
        return await self.quick_reply_repo.delete(tenant_id, quick_reply_id)

    async def find_match(self, tenant_id: int, text: str | None) -> QuickReply | None:
        """Find the active quick reply whose shortcut equals the inbound text.

        Candidates are checked most-used first; the first match wins.
        """
        if not text or not text.strip():
            return None
        for quick_reply in await self.quick_reply_repo.list_active_by_usage(tenant_id):
            if quick_reply.matches(text):
                return quick_reply
        return None

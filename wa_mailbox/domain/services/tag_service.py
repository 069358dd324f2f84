"""Tag and auto-tag rule services."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.models.tag import MATCH_TYPES, AutoTagRule, Tag
from wa_mailbox.persistence.repositories.tag_repository import AutoTagRuleRepository, TagRepository

logger = logging.getLogger(__name__)


class TagService:
    """Service for tag management."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.tag_repo = TagRepository(session)

    async def list_tags(self, tenant_id: int) -> list[tuple[Tag, int]]:
        """List tags with active contact counts."""
        return await self.tag_repo.list_with_counts(tenant_id)

    async def get_tag(self, tenant_id: int, tag_id: int) -> Tag | None:
        return await self.tag_repo.get_by_id(tenant_id, tag_id)

    async def create_tag(
        self,
        tenant_id: int,
        name: str,
        color: str | None = None,
        description: str | None = None,
    ) -> Tag:
        """Create a tag.

        Raises:
            ValueError: If the tenant already has a tag with this name
        """
        name = name.strip()
        if not name:
            raise ValueError("Tag name is required")
        if await self.tag_repo.get_by_name(tenant_id, name):
            raise ValueError(f"Tag '{name}' already exists")
        data = {"name": name, "description": description}
        if color:
            data["color"] = color
        return await self.tag_repo.create(tenant_id, **data)

    async def update_tag(self, tenant_id: int, tag_id: int, **data) -> Tag | None:
        """Update a tag.

        Raises:
            ValueError: If renaming onto an existing tag name
        """
        name = data.get("name")
        if name is not None:
            name = name.strip()
            existing = await self.tag_repo.get_by_name(tenant_id, name)
            if existing is not None and existing.id != tag_id:
                raise ValueError(f"Tag '{name}' already exists")
            data["name"] = name
        return await self.tag_repo.update(tenant_id, tag_id, **data)

    async def delete_tag(self, tenant_id: int, tag_id: int) -> bool:
        return await self.tag_repo.delete(tenant_id, tag_id)


class AutoTagService:
    """Applies keyword rules to inbound messages and manages the rules."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.rule_repo = AutoTagRuleRepository(session)
        self.tag_repo = TagRepository(session)

    async def list_rules(self, tenant_id: int) -> list[AutoTagRule]:
        return await self.rule_repo.list(tenant_id, limit=500)

    async def get_rule(self, tenant_id: int, rule_id: int) -> AutoTagRule | None:
        return await self.rule_repo.get_by_id(tenant_id, rule_id)

    async def _validate(self, tenant_id: int, data: dict) -> None:
        if "match_type" in data and data["match_type"] not in MATCH_TYPES:
            raise ValueError(f"match_type must be one of {', '.join(MATCH_TYPES)}")
        if "keywords" in data:
            keywords = [str(k).strip() for k in data["keywords"] or [] if str(k).strip()]
            if not keywords:
                raise ValueError("At least one keyword is required")
            data["keywords"] = keywords
        if "tag_id" in data and await self.tag_repo.get_by_id(tenant_id, data["tag_id"]) is None:
            raise ValueError("Tag not found")

    async def create_rule(self, tenant_id: int, **data) -> AutoTagRule:
        """Create an auto-tag rule.

        Raises:
            ValueError: On unknown match type, empty keywords or foreign tag
        """
        data.setdefault("keywords", [])
        await self._validate(tenant_id, data)
        return await self.rule_repo.create(tenant_id, **data)

    async def update_rule(self, tenant_id: int, rule_id: int, **data) -> AutoTagRule | None:
        await self._validate(tenant_id, data)
        return await self.rule_repo.update(tenant_id, rule_id, **data)

    async def delete_rule(self, tenant_id: int, rule_id: int) -> bool:
        return await self.rule_repo.delete(tenant_id, rule_id)

    async def apply_rules(self, tenant_id: int, contact_id: int, text: str | None) -> list[int]:
        """Tag a contact according to every matching rule.

        Rules run in priority order (highest first). Changes are flushed, not
        committed.

        Args:
            tenant_id: Tenant ID
            contact_id: Contact that sent the message
            text: Message body

        Returns:
            IDs of tags newly attached to the contact
        """
        if not text:
            return []

        applied: list[int] = []
        for rule in await self.rule_repo.list_active_by_priority(tenant_id):
            if not rule.matches(text):
                continue
            rule.usage_count = (rule.usage_count or 0) + 1
            if await self.tag_repo.attach(contact_id, rule.tag_id):
                applied.append(rule.tag_id)
            logger.info(
                "Auto-tag rule matched",
                extra={"rule_id": rule.id, "contact_id": contact_id, "tag_id": rule.tag_id},
            )

        await self.session.flush()
        return applied

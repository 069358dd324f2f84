"""Segment repository."""

import operator
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.models.contact import Contact
from wa_mailbox.persistence.models.segment import Segment
from wa_mailbox.persistence.repositories.base import BaseRepository

_COMPARATORS = {
    "=": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}


def _apply_conditions(stmt: Select, conditions: dict[str, Any], now: datetime) -> Select:
    """Narrow a Contact query by validated segment conditions."""
    for field, condition in conditions.items():
        op = condition.get("operator", "=")
        value = condition.get("value")

        if field == "stage":
            if op == "in":
                stmt = stmt.where(Contact.stage.in_(list(value)))
            else:
                stmt = stmt.where(_COMPARATORS[op](Contact.stage, value))
        elif field == "lead_score":
            stmt = stmt.where(_COMPARATORS[op](Contact.lead_score, int(value)))
        elif field == "last_message_days":
            cutoff = now - timedelta(days=int(value))
            if op in (">", ">="):
                # Quiet for more than N days, including contacts never messaged
                stmt = stmt.where(
                    (Contact.last_message_time.is_(None)) | (Contact.last_message_time < cutoff)
                )
            else:
                stmt = stmt.where(Contact.last_message_time >= cutoff)
    return stmt


class SegmentRepository(BaseRepository[Segment]):
    """Repository for Segment entities and segment membership queries."""

    def __init__(self, session: AsyncSession):
        super().__init__(Segment, session)

    async def get_by_name(self, tenant_id: int, name: str) -> Segment | None:
        stmt = select(Segment).where(Segment.tenant_id == tenant_id, Segment.name == name)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_many(self, tenant_id: int, ids: list[int]) -> list[Segment]:
        if not ids:
            return []
        stmt = select(Segment).where(Segment.tenant_id == tenant_id, Segment.id.in_(ids))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    def _members(self, tenant_id: int, conditions: dict[str, Any], now: datetime) -> Select:
        stmt = select(Contact).where(
            Contact.tenant_id == tenant_id,
            Contact.deleted_at.is_(None),
        )
        return _apply_conditions(stmt, conditions, now)

    async def find_contacts(
        self,
        tenant_id: int,
        conditions: dict[str, Any],
        now: datetime,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[Contact]:
        stmt = self._members(tenant_id, conditions, now).order_by(Contact.id).offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_contacts(self, tenant_id: int, conditions: dict[str, Any], now: datetime) -> int:
        members = self._members(tenant_id, conditions, now).subquery()
        result = await self.session.execute(select(func.count()).select_from(members))
        return result.scalar_one()

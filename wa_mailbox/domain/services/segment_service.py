"""Contact segments: saved filters over stage, lead score and recency."""

from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.models.contact import CONTACT_STAGES, Contact
from wa_mailbox.persistence.models.segment import SEGMENT_FIELDS, SEGMENT_OPERATORS, Segment
from wa_mailbox.persistence.repositories.segment_repository import SegmentRepository


def validate_conditions(conditions: dict[str, Any]) -> dict[str, Any]:
    """Normalize segment conditions to ``{field: {"operator", "value"}}``.

    A bare value is shorthand for equality (``{"stage": "qualified"}``).

    Raises:
        ValueError: On an unknown field, operator or stage, or a non-numeric number
    """
    if not isinstance(conditions, dict) or not conditions:
        raise ValueError("At least one condition is required")

    normalized: dict[str, Any] = {}
    for field, condition in conditions.items():
        if field not in SEGMENT_FIELDS:
            raise ValueError(f"Unknown segment field '{field}'")
        if not isinstance(condition, dict):
            condition = {"operator": "=", "value": condition}
        op = condition.get("operator", "=")
        value = condition.get("value")
        if op not in SEGMENT_OPERATORS:
            raise ValueError(f"Unknown operator '{op}'")

        if field == "stage":
            stages = value if op == "in" else [value]
            if not isinstance(stages, list) or not stages:
                raise ValueError("'in' needs a list of stages")
            unknown = [s for s in stages if s not in CONTACT_STAGES]
            if unknown:
                raise ValueError(f"Unknown stage '{unknown[0]}'")
        else:
            if op == "in":
                raise ValueError(f"'in' is only supported for stage, not {field}")
            try:
                value = int(value)
            except (TypeError, ValueError):
                raise ValueError(f"{field} needs a whole number")
            if field == "last_message_days" and value < 0:
                raise ValueError("last_message_days cannot be negative")
        normalized[field] = {"operator": op, "value": value}
    return normalized


class SegmentService:
    """Service for contact segments."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.segment_repo = SegmentRepository(session)

    async def list_segments(self, tenant_id: int) -> list[Segment]:
        return await self.segment_repo.list(tenant_id, limit=500)

    async def get_segment(self, tenant_id: int, segment_id: int) -> Segment | None:
        return await self.segment_repo.get_by_id(tenant_id, segment_id)

    async def create_segment(
        self,
        tenant_id: int,
        name: str,
        conditions: dict[str, Any],
        description: str | None = None,
        created_by: int | None = None,
    ) -> Segment:
        """Create a segment and record its current size.

        Raises:
            ValueError: On invalid conditions or a duplicate name
        """
        conditions = validate_conditions(conditions)
        if await self.segment_repo.get_by_name(tenant_id, name):
            raise ValueError(f"Segment '{name}' already exists")
        count = await self.segment_repo.count_contacts(tenant_id, conditions, datetime.utcnow())
        return await self.segment_repo.create(
            tenant_id,
            name=name,
            description=description,
            conditions=conditions,
            contact_count=count,
            created_by=created_by,
        )

    async def update_segment(self, tenant_id: int, segment_id: int, **data) -> Segment | None:
        name = data.get("name")
        if name is not None:
            existing = await self.segment_repo.get_by_name(tenant_id, name)
            if existing is not None and existing.id != segment_id:
                raise ValueError(f"Segment '{name}' already exists")
        if "conditions" in data:
            data["conditions"] = validate_conditions(data["conditions"])
            data["contact_count"] = await self.segment_repo.count_contacts(
                tenant_id, data["conditions"], datetime.utcnow()
            )
        return await self.segment_repo.update(tenant_id, segment_id, **data)

    async def delete_segment(self, tenant_id: int, segment_id: int) -> bool:
        return await self.segment_repo.delete(tenant_id, segment_id)

    async def get_contacts(
        self, tenant_id: int, segment: Segment, skip: int = 0, limit: int | None = None
    ) -> list[Contact]:
        """Current members, evaluated now."""
        return await self.segment_repo.find_contacts(
            tenant_id, segment.conditions or {}, datetime.utcnow(), skip=skip, limit=limit
        )

    async def refresh_count(self, tenant_id: int, segment: Segment) -> Segment:
        segment.contact_count = await self.segment_repo.count_contacts(
            tenant_id, segment.conditions or {}, datetime.utcnow()
        )
        await self.session.commit()
        await self.session.refresh(segment)
        return segment

    async def contact_ids_for_segments(self, tenant_id: int, segment_ids: list[int]) -> list[int]:
        """Union of the members of the given segments; unknown ids are ignored."""
        ids: set[int] = set()
        for segment in await self.segment_repo.get_many(tenant_id, list(segment_ids)):
            ids.update(c.id for c in await self.get_contacts(tenant_id, segment))
        return sorted(ids)

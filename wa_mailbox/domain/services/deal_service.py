"""Deal service."""

from datetime import date
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.persistence.models.deal import DEAL_STATUSES, Deal
from wa_mailbox.persistence.repositories.contact_repository import ContactRepository
from wa_mailbox.persistence.repositories.deal_repository import DealRepository


class DealService:
    """Service for deals attached to contacts."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.deal_repo = DealRepository(session)
        self.contact_repo = ContactRepository(session)

    async def list_deals(
        self,
        tenant_id: int,
        contact_id: int | None = None,
        status: str | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Deal]:
        return await self.deal_repo.list_filtered(
            tenant_id, contact_id=contact_id, status=status, skip=skip, limit=limit
        )

    async def get_deal(self, tenant_id: int, deal_id: int) -> Deal | None:
        return await self.deal_repo.get_by_id(tenant_id, deal_id)

    def _apply_close_date(self, data: dict) -> None:
        if data.get("status") in ("won", "lost") and not data.get("actual_close_date"):
            data["actual_close_date"] = date.today()

    async def create_deal(self, tenant_id: int, contact_id: int, **data) -> Deal:
        """Create a deal for one of the tenant's contacts.

        Raises:
            ValueError: If the contact does not exist or the status is unknown
        """
        if await self.contact_repo.get_by_id(tenant_id, contact_id) is None:
            raise ValueError("Contact not found")
        status = data.setdefault("status", "pending")
        if status not in DEAL_STATUSES:
            raise ValueError(f"Unknown deal status: {status}")
        if data.get("amount") is not None and Decimal(str(data["amount"])) < 0:
            raise ValueError("Amount cannot be negative")
        self._apply_close_date(data)
        return await self.deal_repo.create(tenant_id, contact_id=contact_id, **data)

    async def update_deal(self, tenant_id: int, deal_id: int, **data) -> Deal | None:
        """Update a deal. Closing it as won/lost stamps the close date.

        Raises:
            ValueError: On unknown status or negative amount
        """
        deal = await self.deal_repo.get_by_id(tenant_id, deal_id)
        if deal is None:
            return None
        status = data.get("status")
        if status is not None and status not in DEAL_STATUSES:
            raise ValueError(f"Unknown deal status: {status}")
        if data.get("amount") is not None and Decimal(str(data["amount"])) < 0:
            raise ValueError("Amount cannot be negative")
        if status in ("won", "lost") and deal.actual_close_date is None:
            self._apply_close_date(data)
        return await self.deal_repo.update(tenant_id, deal_id, **data)

    async def delete_deal(self, tenant_id: int, deal_id: int) -> bool:
        return await self.deal_repo.delete(tenant_id, deal_id)

    async def summary(self, tenant_id: int) -> dict[str, dict]:
        """Deal count and total amount per status, every status present."""
        result = {status: {"count": 0, "amount": Decimal("0")} for status in DEAL_STATUSES}
        for status, count, amount in await self.deal_repo.summary(tenant_id):
            result[status] = {"count": count, "amount": Decimal(str(amount or 0))}
        return result

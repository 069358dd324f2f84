"""Deal endpoints."""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.api.deps import require_tenant_context, require_write_access
from wa_mailbox.api.schemas import PartialUpdate
from wa_mailbox.domain.services.deal_service import DealService
from wa_mailbox.persistence.database import get_db
from wa_mailbox.persistence.models.tenant import User

router = APIRouter()


class DealCreate(BaseModel):
    contact_id: int
    deal_name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    amount: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = "PKR"
    status: str = "pending"
    deal_date: date | None = None
    expected_close_date: date | None = None
    notes: str | None = None


class DealUpdate(PartialUpdate):
    not_null = ("deal_name", "amount", "currency", "status")

    deal_name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    status: str | None = None
    deal_date: date | None = None
    expected_close_date: date | None = None
    actual_close_date: date | None = None
    notes: str | None = None


class DealResponse(BaseModel):
    id: int
    contact_id: int
    deal_name: str
    description: str | None
    amount: Decimal
    currency: str
    status: str
    deal_date: date | None
    expected_close_date: date | None
    actual_close_date: date | None
    notes: str | None
    created_by: int | None
    created_at: datetime

    class Config:
        from_attributes = True


class StatusSummary(BaseModel):
    count: int
    amount: Decimal


@router.get("", response_model=list[DealResponse])
async def list_deals(
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
    contact_id: int | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> list[DealResponse]:
    deals = await DealService(db).list_deals(
        tenant_id, contact_id=contact_id, status=status_filter, skip=skip, limit=limit
    )
    return [DealResponse.model_validate(d) for d in deals]


@router.get("/summary", response_model=dict[str, StatusSummary])
async def deal_summary(
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict[str, StatusSummary]:
    """Deal count and amount per status."""
    summary = await DealService(db).summary(tenant_id)
    return {key: StatusSummary(**value) for key, value in summary.items()}


@router.post("", response_model=DealResponse, status_code=status.HTTP_201_CREATED)
async def create_deal(
    body: DealCreate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DealResponse:
    user, tenant_id = access
    data = body.model_dump()
    contact_id = data.pop("contact_id")
    try:
        deal = await DealService(db).create_deal(tenant_id, contact_id, created_by=user.id, **data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return DealResponse.model_validate(deal)


@router.get("/{deal_id}", response_model=DealResponse)
async def get_deal(
    deal_id: int,
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DealResponse:
    deal = await DealService(db).get_deal(tenant_id, deal_id)
    if deal is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Deal not found")
    return DealResponse.model_validate(deal)


@router.put("/{deal_id}", response_model=DealResponse)
async def update_deal(
    deal_id: int,
    body: DealUpdate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DealResponse:
    _, tenant_id = access
    try:
        deal = await DealService(db).update_deal(tenant_id, deal_id, **body.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if deal is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Deal not found")
    return DealResponse.model_validate(deal)


@router.delete("/{deal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_deal(
    deal_id: int,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    _, tenant_id = access
    if not await DealService(db).delete_deal(tenant_id, deal_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Deal not found")

"""Broadcast endpoints."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.api.deps import require_feature, require_tenant_context, require_write_access
from wa_mailbox.domain.services.broadcast_service import BroadcastService, BroadcastStateError
from wa_mailbox.domain.services.whatsapp_service import WhatsAppService
from wa_mailbox.persistence.database import get_db
from wa_mailbox.persistence.models.tenant import User

router = APIRouter(dependencies=[Depends(require_feature("broadcasts"))])


class BroadcastCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1, max_length=4096)
    contact_ids: list[int] = []
    tag_ids: list[int] = []
    segment_ids: list[int] = []


class BroadcastResponse(BaseModel):
    id: int
    name: str
    message: str
    status: str
    total_recipients: int
    sent_count: int
    failed_count: int
    delivered_count: int
    read_count: int
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime

    class Config:
        from_attributes = True


class RecipientResponse(BaseModel):
    id: int
    contact_id: int
    status: str
    whatsapp_message_id: str | None
    error_message: str | None
    sent_at: datetime | None
    delivered_at: datetime | None
    read_at: datetime | None

    class Config:
        from_attributes = True


class BroadcastDetailResponse(BroadcastResponse):
    recipients: list[RecipientResponse] = []


@router.get("", response_model=list[BroadcastResponse])
async def list_broadcasts(
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[BroadcastResponse]:
    broadcasts = await BroadcastService(db).list_broadcasts(tenant_id, skip=skip, limit=limit)
    return [BroadcastResponse.model_validate(b) for b in broadcasts]


@router.post("", response_model=BroadcastResponse, status_code=status.HTTP_201_CREATED)
async def create_broadcast(
    body: BroadcastCreate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BroadcastResponse:
    """Create a draft broadcast for explicit, tagged and segment contacts."""
    user, tenant_id = access
    try:
        broadcast = await BroadcastService(db).create_broadcast(
            tenant_id,
            name=body.name,
            message=body.message,
            contact_ids=body.contact_ids,
            tag_ids=body.tag_ids,
            segment_ids=body.segment_ids,
            created_by=user.id,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return BroadcastResponse.model_validate(broadcast)


@router.get("/{broadcast_id}", response_model=BroadcastDetailResponse)
async def get_broadcast(
    broadcast_id: int,
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BroadcastDetailResponse:
    service = BroadcastService(db)
    broadcast = await service.get_broadcast(tenant_id, broadcast_id)
    if broadcast is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Broadcast not found")
    recipients = await service.list_recipients(broadcast.id)
    response = BroadcastDetailResponse.model_validate(broadcast)
    response.recipients = [RecipientResponse.model_validate(r) for r in recipients]
    return response


@router.post("/{broadcast_id}/send", response_model=BroadcastResponse)
async def send_broadcast(
    broadcast_id: int,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BroadcastResponse:
    """Send a draft broadcast. Recipients are messaged one at a time."""
    _, tenant_id = access
    service = BroadcastService(db)
    if await service.get_broadcast(tenant_id, broadcast_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Broadcast not found")

    whatsapp = await WhatsAppService.for_tenant(db, tenant_id)
    if whatsapp is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="WhatsApp API credentials are not configured",
        )

    try:
        broadcast = await service.send_broadcast(tenant_id, broadcast_id, whatsapp)
    except BroadcastStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return BroadcastResponse.model_validate(broadcast)

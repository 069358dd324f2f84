"""Scheduled message endpoints."""

from datetime import datetime, timezone
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.api.deps import require_feature, require_tenant_context, require_write_access
from wa_mailbox.domain.services.scheduled_message_service import (
    ScheduledMessageService,
    ScheduledMessageStateError,
)
from wa_mailbox.persistence.database import get_db
from wa_mailbox.persistence.models.tenant import User

router = APIRouter(dependencies=[Depends(require_feature("scheduled_messages"))])


class ScheduledMessageCreate(BaseModel):
    """Naive times are taken as UTC; aware times are converted."""

    contact_id: int
    scheduled_at: datetime
    message_type: Literal["text", "template"] = "text"
    message: str | None = Field(default=None, max_length=4096)
    template_id: int | None = None
    template_parameters: list[str] | None = None
    is_recurring: bool = False
    recurrence_pattern: Literal["daily", "weekly", "monthly"] | None = None

    @field_validator("scheduled_at")
    @classmethod
    def _to_naive_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value


class ScheduledMessageResponse(BaseModel):
    id: int
    contact_id: int
    message_type: str
    message: str | None
    template_id: int | None
    template_parameters: list[str] | None
    scheduled_at: datetime
    status: str
    sent_at: datetime | None
    whatsapp_message_id: str | None
    error_message: str | None
    is_recurring: bool
    recurrence_pattern: str | None
    created_by: int | None
    created_at: datetime

    class Config:
        from_attributes = True


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Scheduled message not found")


@router.get("", response_model=list[ScheduledMessageResponse])
async def list_scheduled_messages(
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    contact_id: int | None = None,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=200)] = 100,
) -> list[ScheduledMessageResponse]:
    """List scheduled messages, soonest first."""
    scheduled = await ScheduledMessageService(db).list_scheduled(
        tenant_id, status=status_filter, contact_id=contact_id, skip=skip, limit=limit
    )
    return [ScheduledMessageResponse.model_validate(s) for s in scheduled]


@router.post("", response_model=ScheduledMessageResponse, status_code=status.HTTP_201_CREATED)
async def schedule_message(
    body: ScheduledMessageCreate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ScheduledMessageResponse:
    user, tenant_id = access
    try:
        scheduled = await ScheduledMessageService(db).schedule(tenant_id, created_by=user.id, **body.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if scheduled is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contact not found")
    return ScheduledMessageResponse.model_validate(scheduled)


@router.get("/{scheduled_id}", response_model=ScheduledMessageResponse)
async def get_scheduled_message(
    scheduled_id: int,
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ScheduledMessageResponse:
    scheduled = await ScheduledMessageService(db).get_scheduled(tenant_id, scheduled_id)
    if scheduled is None:
        raise _not_found()
    return ScheduledMessageResponse.model_validate(scheduled)


@router.post("/{scheduled_id}/cancel", response_model=ScheduledMessageResponse)
async def cancel_scheduled_message(
    scheduled_id: int,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ScheduledMessageResponse:
    _, tenant_id = access
    try:
        scheduled = await ScheduledMessageService(db).cancel(tenant_id, scheduled_id)
    except ScheduledMessageStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if scheduled is None:
        raise _not_found()
    return ScheduledMessageResponse.model_validate(scheduled)


@router.delete("/{scheduled_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_scheduled_message(
    scheduled_id: int,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    _, tenant_id = access
    if not await ScheduledMessageService(db).delete(tenant_id, scheduled_id):
        raise _not_found()

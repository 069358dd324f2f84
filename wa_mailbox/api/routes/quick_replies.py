"""Quick reply endpoints."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.api.deps import require_feature, require_tenant_context, require_write_access
from wa_mailbox.api.schemas import PartialUpdate
from wa_mailbox.domain.services.quick_reply_service import QuickReplyService
from wa_mailbox.persistence.database import get_db
from wa_mailbox.persistence.models.tenant import User

router = APIRouter(dependencies=[Depends(require_feature("quick_replies"))])


class QuickReplyCreate(BaseModel):
    shortcut: str = Field(..., min_length=1, max_length=50)
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    is_active: bool = True


class QuickReplyUpdate(PartialUpdate):
    not_null = ("shortcut", "title", "message", "is_active")

    shortcut: str | None = Field(default=None, min_length=1, max_length=50)
    title: str | None = None
    message: str | None = None
    is_active: bool | None = None


class QuickReplyResponse(BaseModel):
    id: int
    shortcut: str
    title: str
    message: str
    is_active: bool
    usage_count: int
    created_at: datetime

    class Config:
        from_attributes = True


@router.get("", response_model=list[QuickReplyResponse])
async def list_quick_replies(
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[QuickReplyResponse]:
    replies = await QuickReplyService(db).list_quick_replies(tenant_id)
    return [QuickReplyResponse.model_validate(r) for r in replies]


@router.post("", response_model=QuickReplyResponse, status_code=status.HTTP_201_CREATED)
async def create_quick_reply(
    body: QuickReplyCreate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> QuickReplyResponse:
    _, tenant_id = access
    try:
        reply = await QuickReplyService(db).create_quick_reply(tenant_id, **body.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return QuickReplyResponse.model_validate(reply)


@router.put("/{quick_reply_id}", response_model=QuickReplyResponse)
async def update_quick_reply(
    quick_reply_id: int,
    body: QuickReplyUpdate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> QuickReplyResponse:
    _, tenant_id = access
    try:
        reply = await QuickReplyService(db).update_quick_reply(
            tenant_id, quick_reply_id, **body.model_dump(exclude_unset=True)
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if reply is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Quick reply not found")
    return QuickReplyResponse.model_validate(reply)


@router.delete("/{quick_reply_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_quick_reply(
    quick_reply_id: int,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    _, tenant_id = access
    if not await QuickReplyService(db).delete_quick_reply(tenant_id, quick_reply_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Quick reply not found")

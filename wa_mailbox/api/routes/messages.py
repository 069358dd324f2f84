"""Message search, read-state and media endpoints."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.api.deps import require_tenant_context
from wa_mailbox.domain.services.message_service import MessageService
from wa_mailbox.domain.services.whatsapp_service import WhatsAppService
from wa_mailbox.persistence.database import get_db

router = APIRouter()


class MessageResponse(BaseModel):
    """Stored WhatsApp message."""

    id: int
    message_id: str | None
    contact_id: int
    phone_number: str
    message_type: str
    direction: str
    message_body: str | None
    media_id: str | None
    media_url: str | None
    media_mime_type: str | None
    media_caption: str | None
    media_filename: str | None
    status: str | None
    is_read: bool
    timestamp: datetime

    class Config:
        from_attributes = True


@router.get("/search", response_model=list[MessageResponse])
async def search_messages(
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
    q: Annotated[str, Query(min_length=1)],
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[MessageResponse]:
    """Search message bodies across the tenant's conversations."""
    messages = await MessageService(db).search(tenant_id, q, limit=limit)
    return [MessageResponse.model_validate(m) for m in messages]


@router.post("/{message_id}/read", response_model=MessageResponse)
async def mark_message_read(
    message_id: int,
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> MessageResponse:
    message = await MessageService(db).mark_read(tenant_id, message_id)
    if message is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return MessageResponse.model_validate(message)


class MediaUrlResponse(BaseModel):
    url: str
    mime_type: str | None
    filename: str | None


@router.get("/{message_id}/media", response_model=MediaUrlResponse)
async def get_message_media(
    message_id: int,
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> MediaUrlResponse:
    """Resolve a media message to a download URL.

    Provider URLs expire after a few minutes and need the tenant's access
    token to download; fetch a fresh one for each download.
    """
    message = await MessageService(db).get_message(tenant_id, message_id)
    if message is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    if not message.media_id and not message.media_url:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message has no media")

    whatsapp = await WhatsAppService.for_tenant(db, tenant_id)
    if whatsapp is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="WhatsApp API credentials are not configured",
        )
    url = await whatsapp.get_media_url(message)
    if url is None:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Could not resolve media URL")
    return MediaUrlResponse(url=url, mime_type=message.media_mime_type, filename=message.media_filename)

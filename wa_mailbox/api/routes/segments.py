"""Contact segment endpoints."""

from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.api.deps import require_feature, require_tenant_context, require_write_access
from wa_mailbox.api.routes.contacts import ContactResponse, build_contact_response
from wa_mailbox.api.schemas import PartialUpdate
from wa_mailbox.domain.services.contact_service import ContactService
from wa_mailbox.domain.services.segment_service import SegmentService
from wa_mailbox.persistence.database import get_db
from wa_mailbox.persistence.models.tenant import User

router = APIRouter(dependencies=[Depends(require_feature("segments"))])


class SegmentCreate(BaseModel):
    """Conditions look like ``{"stage": {"operator": "in", "value": ["qualified"]}}``.

    Fields: stage, lead_score, last_message_days. Operators: =, !=, >, >=, <, <=
    and ``in`` (stage only).
    """

    name: str = Field(..., min_length=2, max_length=150)
    description: str | None = None
    conditions: dict[str, Any]


class SegmentUpdate(PartialUpdate):
    not_null = ("name", "conditions")

    name: str | None = Field(default=None, min_length=2, max_length=150)
    description: str | None = None
    conditions: dict[str, Any] | None = None


class SegmentResponse(BaseModel):
    id: int
    name: str
    description: str | None
    conditions: dict[str, Any]
    contact_count: int
    created_by: int | None
    created_at: datetime

    class Config:
        from_attributes = True


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Segment not found")


@router.get("", response_model=list[SegmentResponse])
async def list_segments(
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[SegmentResponse]:
    segments = await SegmentService(db).list_segments(tenant_id)
    return [SegmentResponse.model_validate(s) for s in segments]


@router.post("", response_model=SegmentResponse, status_code=status.HTTP_201_CREATED)
async def create_segment(
    body: SegmentCreate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SegmentResponse:
    user, tenant_id = access
    try:
        segment = await SegmentService(db).create_segment(tenant_id, created_by=user.id, **body.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return SegmentResponse.model_validate(segment)


@router.get("/{segment_id}", response_model=SegmentResponse)
async def get_segment(
    segment_id: int,
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SegmentResponse:
    segment = await SegmentService(db).get_segment(tenant_id, segment_id)
    if segment is None:
        raise _not_found()
    return SegmentResponse.model_validate(segment)


@router.put("/{segment_id}", response_model=SegmentResponse)
async def update_segment(
    segment_id: int,
    body: SegmentUpdate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SegmentResponse:
    _, tenant_id = access
    try:
        segment = await SegmentService(db).update_segment(
            tenant_id, segment_id, **body.model_dump(exclude_unset=True)
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if segment is None:
        raise _not_found()
    return SegmentResponse.model_validate(segment)


@router.delete("/{segment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_segment(
    segment_id: int,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    _, tenant_id = access
    if not await SegmentService(db).delete_segment(tenant_id, segment_id):
        raise _not_found()


@router.get("/{segment_id}/contacts", response_model=list[ContactResponse])
async def list_segment_contacts(
    segment_id: int,
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[ContactResponse]:
    """Contacts matching the segment right now."""
    service = SegmentService(db)
    segment = await service.get_segment(tenant_id, segment_id)
    if segment is None:
        raise _not_found()
    contacts = await service.get_contacts(tenant_id, segment, skip=skip, limit=limit)
    contact_service = ContactService(db)
    return [await build_contact_response(contact_service, c) for c in contacts]


@router.post("/{segment_id}/refresh", response_model=SegmentResponse)
async def refresh_segment_count(
    segment_id: int,
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SegmentResponse:
    service = SegmentService(db)
    segment = await service.get_segment(tenant_id, segment_id)
    if segment is None:
        raise _not_found()
    return SegmentResponse.model_validate(await service.refresh_count(tenant_id, segment))

"""Drip campaign endpoints."""

from datetime import datetime
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.api.deps import require_feature, require_tenant_context, require_write_access
from wa_mailbox.api.schemas import PartialUpdate
from wa_mailbox.domain.services.drip_campaign_service import DripCampaignService, DripStateError
from wa_mailbox.persistence.database import get_db
from wa_mailbox.persistence.models.drip_campaign import DripCampaign, DripSubscriber
from wa_mailbox.persistence.models.tenant import User

router = APIRouter(dependencies=[Depends(require_feature("drip_campaigns"))])


# ============== Request / Response Models ==============

class StepIn(BaseModel):
    name: str | None = Field(default=None, max_length=150)
    delay_minutes: int = Field(default=0, ge=0)
    message_type: Literal["text", "template"] = "text"
    message_content: str | None = None
    template_id: int | None = None


class TriggerConditions(BaseModel):
    segment_id: int | None = None
    tag_id: int | None = None


class CampaignCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=150)
    description: str | None = None
    is_active: bool = False
    trigger_conditions: TriggerConditions = TriggerConditions()
    steps: list[StepIn] = Field(..., min_length=1)


class CampaignUpdate(PartialUpdate):
    not_null = ("name", "is_active", "trigger_conditions", "steps")

    name: str | None = Field(default=None, min_length=2, max_length=150)
    description: str | None = None
    is_active: bool | None = None
    trigger_conditions: TriggerConditions | None = None
    steps: list[StepIn] | None = Field(default=None, min_length=1)


class StepResponse(BaseModel):
    id: int
    step_number: int
    name: str
    delay_minutes: int
    message_type: str
    message_content: str | None
    template_id: int | None
    sent_count: int

    class Config:
        from_attributes = True


class CampaignResponse(BaseModel):
    id: int
    name: str
    description: str | None
    is_active: bool
    trigger_conditions: dict
    total_subscribers: int
    completed_count: int
    created_by: int | None
    created_at: datetime
    steps: list[StepResponse] = []

    class Config:
        from_attributes = True


class EnrollRequest(BaseModel):
    """Explicit contacts, plus everyone matching the trigger when ``match_trigger`` is set."""

    contact_ids: list[int] = []
    match_trigger: bool = False


class EnrollResult(BaseModel):
    enrolled: int
    skipped: int


class SubscriberResponse(BaseModel):
    id: int
    campaign_id: int
    contact_id: int
    current_step: int
    status: str
    next_send_at: datetime | None
    last_error: str | None
    started_at: datetime
    completed_at: datetime | None
    unsubscribed_at: datetime | None

    class Config:
        from_attributes = True


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Drip campaign not found")


async def _campaign_response(service: DripCampaignService, campaign: DripCampaign) -> CampaignResponse:
    response = CampaignResponse.model_validate(campaign)
    response.steps = [StepResponse.model_validate(s) for s in await service.list_steps(campaign.id)]
    return response


async def _campaign_subscriber(
    service: DripCampaignService, tenant_id: int, campaign_id: int, subscriber_id: int
) -> DripSubscriber:
    subscriber = await service.get_subscriber(tenant_id, subscriber_id)
    if subscriber is None or subscriber.campaign_id != campaign_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscriber not found")
    return subscriber


# ============== Campaigns ==============

@router.get("", response_model=list[CampaignResponse])
async def list_campaigns(
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[CampaignResponse]:
    service = DripCampaignService(db)
    return [await _campaign_response(service, c) for c in await service.list_campaigns(tenant_id)]


@router.post("", response_model=CampaignResponse, status_code=status.HTTP_201_CREATED)
async def create_campaign(
    body: CampaignCreate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> CampaignResponse:
    """Create a campaign; steps are numbered in the order given."""
    user, tenant_id = access
    service = DripCampaignService(db)
    try:
        campaign = await service.create_campaign(
            tenant_id,
            name=body.name,
            description=body.description,
            is_active=body.is_active,
            trigger_conditions=body.trigger_conditions.model_dump(exclude_none=True),
            steps=[s.model_dump() for s in body.steps],
            created_by=user.id,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return await _campaign_response(service, campaign)


@router.get("/{campaign_id}", response_model=CampaignResponse)
async def get_campaign(
    campaign_id: int,
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> CampaignResponse:
    service = DripCampaignService(db)
    campaign = await service.get_campaign(tenant_id, campaign_id)
    if campaign is None:
        raise _not_found()
    return await _campaign_response(service, campaign)


@router.put("/{campaign_id}", response_model=CampaignResponse)
async def update_campaign(
    campaign_id: int,
    body: CampaignUpdate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> CampaignResponse:
    """Update a campaign. Sending ``steps`` replaces all of them."""
    _, tenant_id = access
    data = body.model_dump(exclude_unset=True)
    if "trigger_conditions" in data:
        data["trigger_conditions"] = body.trigger_conditions.model_dump(exclude_none=True)
    service = DripCampaignService(db)
    try:
        campaign = await service.update_campaign(tenant_id, campaign_id, **data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if campaign is None:
        raise _not_found()
    return await _campaign_response(service, campaign)


@router.delete("/{campaign_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_campaign(
    campaign_id: int,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    _, tenant_id = access
    if not await DripCampaignService(db).delete_campaign(tenant_id, campaign_id):
        raise _not_found()


# ============== Subscribers ==============

@router.post("/{campaign_id}/enroll", response_model=EnrollResult)
async def enroll_contacts(
    campaign_id: int,
    body: EnrollRequest,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> EnrollResult:
    _, tenant_id = access
    service = DripCampaignService(db)
    campaign = await service.get_campaign(tenant_id, campaign_id)
    if campaign is None:
        raise _not_found()

    contact_ids = list(body.contact_ids)
    try:
        if body.match_trigger:
            contact_ids += await service.matching_contact_ids(tenant_id, campaign)
        result = await service.enroll(tenant_id, campaign_id, contact_ids)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DripStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return EnrollResult(**result)


@router.get("/{campaign_id}/subscribers", response_model=list[SubscriberResponse])
async def list_subscribers(
    campaign_id: int,
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> list[SubscriberResponse]:
    service = DripCampaignService(db)
    if await service.get_campaign(tenant_id, campaign_id) is None:
        raise _not_found()
    subscribers = await service.list_subscribers(campaign_id, status=status_filter)
    return [SubscriberResponse.model_validate(s) for s in subscribers]


@router.post("/{campaign_id}/subscribers/{subscriber_id}/unsubscribe", response_model=SubscriberResponse)
async def unsubscribe(
    campaign_id: int,
    subscriber_id: int,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SubscriberResponse:
    _, tenant_id = access
    service = DripCampaignService(db)
    await _campaign_subscriber(service, tenant_id, campaign_id, subscriber_id)
    try:
        subscriber = await service.unsubscribe(tenant_id, subscriber_id)
    except DripStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return SubscriberResponse.model_validate(subscriber)


@router.post("/{campaign_id}/subscribers/{subscriber_id}/resume", response_model=SubscriberResponse)
async def resume(
    campaign_id: int,
    subscriber_id: int,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SubscriberResponse:
    """Restart a paused or failed subscriber; its next step goes out on the next run."""
    _, tenant_id = access
    service = DripCampaignService(db)
    await _campaign_subscriber(service, tenant_id, campaign_id, subscriber_id)
    try:
        subscriber = await service.resume(tenant_id, subscriber_id)
    except DripStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return SubscriberResponse.model_validate(subscriber)

"""Contacts, conversation threads, contact tags and notes."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.api.deps import require_feature, require_tenant_context, require_write_access
from wa_mailbox.api.routes.messages import MessageResponse
from wa_mailbox.api.schemas import PartialUpdate
from wa_mailbox.domain.services.contact_service import ContactLimitError, ContactService
from wa_mailbox.domain.services.template_service import TemplateNotApprovedError, TemplateService
from wa_mailbox.domain.services.whatsapp_service import MESSAGE_LIMIT_ERROR, WhatsAppService
from wa_mailbox.infrastructure.whatsapp_client import MEDIA_TYPES, SendResult
from wa_mailbox.persistence.database import get_db
from wa_mailbox.persistence.models.contact import Contact
from wa_mailbox.persistence.models.tenant import User

router = APIRouter()


# ============== Request / Response Models ==============

class TagSummary(BaseModel):
    id: int
    name: str
    color: str

    class Config:
        from_attributes = True


class ContactResponse(BaseModel):
    """Contact with its tags."""

    id: int
    phone_number: str
    name: str | None
    profile_picture_url: str | None
    email: str | None
    company_name: str | None
    stage: str
    lead_score: int
    unread_count: int
    last_message_time: datetime | None
    created_at: datetime
    tags: list[TagSummary] = []


class ContactCreate(BaseModel):
    phone_number: str = Field(..., min_length=3, max_length=50)
    name: str | None = None
    stage: str = "new"
    email: str | None = None
    company_name: str | None = None


class ContactUpdate(PartialUpdate):
    not_null = ("stage", "lead_score")

    name: str | None = None
    stage: str | None = None
    lead_score: int | None = Field(default=None, ge=0)
    email: str | None = None
    company_name: str | None = None
    profile_picture_url: str | None = None


class SendMessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=4096)


class SendTemplateRequest(BaseModel):
    template_id: int
    parameters: list[str] = []


class SendMediaRequest(BaseModel):
    """Media by provider id (already uploaded) or by public link, not both."""

    media_type: str
    media_id: str | None = None
    link: str | None = Field(default=None, max_length=1024)
    caption: str | None = Field(default=None, max_length=1024)
    filename: str | None = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def _one_source(self) -> "SendMediaRequest":
        if self.media_type not in MEDIA_TYPES:
            raise ValueError(f"media_type must be one of: {', '.join(MEDIA_TYPES)}")
        if bool(self.media_id) == bool(self.link):
            raise ValueError("Give exactly one of media_id or link")
        return self


class SendMessageResponse(BaseModel):
    success: bool
    message_id: str | None = None


class BulkStageRequest(BaseModel):
    contact_ids: list[int]
    stage: str


class BulkTagRequest(BaseModel):
    contact_ids: list[int]
    tag_id: int


class BulkResult(BaseModel):
    updated: int


class NoteCreate(BaseModel):
    content: str = Field(..., min_length=1)
    note_type: str = "general"


class NoteResponse(BaseModel):
    id: int
    contact_id: int
    content: str
    note_type: str
    created_by: int | None
    created_at: datetime

    class Config:
        from_attributes = True


async def build_contact_response(service: ContactService, contact: Contact) -> ContactResponse:
    tags = await service.get_contact_tags(contact.id)
    return ContactResponse(
        id=contact.id,
        phone_number=contact.phone_number,
        name=contact.name,
        profile_picture_url=contact.profile_picture_url,
        email=contact.email,
        company_name=contact.company_name,
        stage=contact.stage,
        lead_score=contact.lead_score,
        unread_count=contact.unread_count,
        last_message_time=contact.last_message_time,
        created_at=contact.created_at,
        tags=[TagSummary.model_validate(t) for t in tags],
    )


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contact not found")


async def _contact_and_sender(db: AsyncSession, tenant_id: int, contact_id: int) -> tuple[Contact, WhatsAppService]:
    contact = await ContactService(db).get_contact(tenant_id, contact_id)
    if contact is None:
        raise _not_found()
    whatsapp = await WhatsAppService.for_tenant(db, tenant_id)
    if whatsapp is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="WhatsApp API credentials are not configured",
        )
    return contact, whatsapp


def _send_response(result: SendResult) -> SendMessageResponse:
    if not result.success:
        code = (
            status.HTTP_402_PAYMENT_REQUIRED
            if result.error == MESSAGE_LIMIT_ERROR
            else status.HTTP_502_BAD_GATEWAY
        )
        raise HTTPException(status_code=code, detail=result.error)
    return SendMessageResponse(success=True, message_id=result.message_id)


# ============== Contacts ==============

@router.get("", response_model=list[ContactResponse])
async def list_contacts(
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
    search: str | None = None,
    stage: str | None = None,
    tag_id: int | None = None,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[ContactResponse]:
    """List contacts, most recent conversation first."""
    service = ContactService(db)
    contacts = await service.list_contacts(
        tenant_id, search=search, stage=stage, tag_id=tag_id, skip=skip, limit=limit
    )
    return [await build_contact_response(service, c) for c in contacts]


@router.post("", response_model=ContactResponse, status_code=status.HTTP_201_CREATED)
async def create_contact(
    body: ContactCreate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ContactResponse:
    _, tenant_id = access
    service = ContactService(db)
    try:
        contact = await service.create_contact(tenant_id, **body.model_dump())
    except ContactLimitError as e:
        raise HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return await build_contact_response(service, contact)


@router.post("/bulk-stage", response_model=BulkResult)
async def bulk_update_stage(
    body: BulkStageRequest,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BulkResult:
    _, tenant_id = access
    try:
        updated = await ContactService(db).bulk_update_stage(tenant_id, body.contact_ids, body.stage)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return BulkResult(updated=updated)


@router.post("/bulk-tag", response_model=BulkResult)
async def bulk_add_tag(
    body: BulkTagRequest,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BulkResult:
    _, tenant_id = access
    updated = await ContactService(db).bulk_add_tag(tenant_id, body.contact_ids, body.tag_id)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tag not found")
    return BulkResult(updated=updated)


@router.get("/{contact_id}", response_model=ContactResponse)
async def get_contact(
    contact_id: int,
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ContactResponse:
    service = ContactService(db)
    contact = await service.get_contact(tenant_id, contact_id)
    if contact is None:
        raise _not_found()
    return await build_contact_response(service, contact)


@router.put("/{contact_id}", response_model=ContactResponse)
async def update_contact(
    contact_id: int,
    body: ContactUpdate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ContactResponse:
    """Update a contact. Stage and lead score changes fire workflows."""
    _, tenant_id = access
    service = ContactService(db)
    try:
        contact = await service.update_contact(tenant_id, contact_id, **body.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if contact is None:
        raise _not_found()
    return await build_contact_response(service, contact)


@router.delete("/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_contact(
    contact_id: int,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    _, tenant_id = access
    if not await ContactService(db).delete_contact(tenant_id, contact_id):
        raise _not_found()


# ============== Conversation thread ==============

@router.get("/{contact_id}/messages", response_model=list[MessageResponse])
async def get_thread(
    contact_id: int,
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=500)] = 200,
) -> list[MessageResponse]:
    messages = await ContactService(db).get_thread(tenant_id, contact_id, skip=skip, limit=limit)
    if messages is None:
        raise _not_found()
    return [MessageResponse.model_validate(m) for m in messages]


@router.post("/{contact_id}/messages", response_model=SendMessageResponse)
async def send_message(
    contact_id: int,
    body: SendMessageRequest,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SendMessageResponse:
    """Send a text message to a contact through the tenant's WhatsApp number."""
    _, tenant_id = access
    contact, whatsapp = await _contact_and_sender(db, tenant_id, contact_id)
    result = await whatsapp.send_text_message(contact.phone_number, body.message, contact=contact)
    return _send_response(result)


@router.post(
    "/{contact_id}/template",
    response_model=SendMessageResponse,
    dependencies=[Depends(require_feature("message_templates"))],
)
async def send_template(
    contact_id: int,
    body: SendTemplateRequest,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SendMessageResponse:
    """Send an approved message template, e.g. to open a conversation after 24 hours."""
    _, tenant_id = access
    contact, whatsapp = await _contact_and_sender(db, tenant_id, contact_id)
    templates = TemplateService(db)
    template = await templates.get_template(tenant_id, body.template_id)
    if template is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")

    try:
        result = await templates.send_template(template, contact, whatsapp, parameters=body.parameters)
    except TemplateNotApprovedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _send_response(result)


@router.post("/{contact_id}/media", response_model=SendMessageResponse)
async def send_media(
    contact_id: int,
    body: SendMediaRequest,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SendMessageResponse:
    """Send a media file into the thread by provider media id or public link."""
    _, tenant_id = access
    contact, whatsapp = await _contact_and_sender(db, tenant_id, contact_id)
    result = await whatsapp.send_media_message(
        contact.phone_number,
        body.media_type,
        media_id=body.media_id,
        link=body.link,
        caption=body.caption,
        filename=body.filename,
        contact=contact,
    )
    return _send_response(result)


@router.post("/{contact_id}/read")
async def mark_contact_read(
    contact_id: int,
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    updated = await ContactService(db).mark_read(tenant_id, contact_id)
    if updated is None:
        raise _not_found()
    return {"marked_read": updated}


# ============== Tags on a contact ==============

@router.post("/{contact_id}/tags/{tag_id}")
async def add_contact_tag(
    contact_id: int,
    tag_id: int,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    _, tenant_id = access
    attached = await ContactService(db).add_tag(tenant_id, contact_id, tag_id)
    if attached is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contact or tag not found")
    return {"attached": attached}


@router.delete("/{contact_id}/tags/{tag_id}")
async def remove_contact_tag(
    contact_id: int,
    tag_id: int,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    _, tenant_id = access
    removed = await ContactService(db).remove_tag(tenant_id, contact_id, tag_id)
    if removed is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contact or tag not found")
    return {"removed": removed}


# ============== Notes ==============

@router.get("/{contact_id}/notes", response_model=list[NoteResponse])
async def list_notes(
    contact_id: int,
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[NoteResponse]:
    notes = await ContactService(db).list_notes(tenant_id, contact_id)
    if notes is None:
        raise _not_found()
    return [NoteResponse.model_validate(n) for n in notes]


@router.post("/{contact_id}/notes", response_model=NoteResponse, status_code=status.HTTP_201_CREATED)
async def create_note(
    contact_id: int,
    body: NoteCreate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> NoteResponse:
    user, tenant_id = access
    try:
        note = await ContactService(db).create_note(
            tenant_id, contact_id, body.content, body.note_type, created_by=user.id
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if note is None:
        raise _not_found()
    return NoteResponse.model_validate(note)

"""Message template endpoints."""

from datetime import datetime
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.api.deps import require_feature, require_tenant_context, require_write_access
from wa_mailbox.api.schemas import PartialUpdate
from wa_mailbox.domain.services.template_service import TemplateService
from wa_mailbox.persistence.database import get_db
from wa_mailbox.persistence.models.tenant import User

router = APIRouter(dependencies=[Depends(require_feature("message_templates"))])

TemplateCategory = Literal["utility", "marketing", "authentication"]
TemplateStatus = Literal["pending", "approved", "rejected"]


class TemplateCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=150)
    whatsapp_template_name: str = Field(..., min_length=1, max_length=100)
    language_code: str = Field(default="en", min_length=2, max_length=10)
    content: str = Field(..., min_length=1)
    category: TemplateCategory | None = None
    status: TemplateStatus = "pending"


class TemplateUpdate(PartialUpdate):
    not_null = ("name", "whatsapp_template_name", "language_code", "content", "status")

    name: str | None = Field(default=None, min_length=2, max_length=150)
    whatsapp_template_name: str | None = Field(default=None, min_length=1, max_length=100)
    language_code: str | None = Field(default=None, min_length=2, max_length=10)
    content: str | None = Field(default=None, min_length=1)
    category: TemplateCategory | None = None
    status: TemplateStatus | None = None


class TemplateResponse(BaseModel):
    id: int
    name: str
    whatsapp_template_name: str
    language_code: str
    content: str
    variables: list[int]
    category: str | None
    status: str
    usage_count: int
    created_by: int | None
    created_at: datetime

    class Config:
        from_attributes = True


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")


@router.get("", response_model=list[TemplateResponse])
async def list_templates(
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
    status_filter: Annotated[TemplateStatus | None, Query(alias="status")] = None,
) -> list[TemplateResponse]:
    templates = await TemplateService(db).list_templates(tenant_id, status=status_filter)
    return [TemplateResponse.model_validate(t) for t in templates]


@router.post("", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_template(
    body: TemplateCreate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TemplateResponse:
    """Register a template created in Meta Business Manager.

    ``{{1}}``, ``{{2}}``... placeholders in the content become the template's
    variables; sends must supply one parameter per variable.
    """
    user, tenant_id = access
    try:
        template = await TemplateService(db).create_template(tenant_id, created_by=user.id, **body.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return TemplateResponse.model_validate(template)


@router.get("/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: int,
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TemplateResponse:
    template = await TemplateService(db).get_template(tenant_id, template_id)
    if template is None:
        raise _not_found()
    return TemplateResponse.model_validate(template)


@router.put("/{template_id}", response_model=TemplateResponse)
async def update_template(
    template_id: int,
    body: TemplateUpdate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TemplateResponse:
    """Update a template, including its approval status once Meta reviews it."""
    _, tenant_id = access
    try:
        template = await TemplateService(db).update_template(
            tenant_id, template_id, **body.model_dump(exclude_unset=True)
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if template is None:
        raise _not_found()
    return TemplateResponse.model_validate(template)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: int,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    _, tenant_id = access
    if not await TemplateService(db).delete_template(tenant_id, template_id):
        raise _not_found()

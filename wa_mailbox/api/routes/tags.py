"""Tag and auto-tag rule endpoints."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.api.deps import require_tenant_context, require_write_access
from wa_mailbox.api.schemas import PartialUpdate
from wa_mailbox.domain.services.tag_service import AutoTagService, TagService
from wa_mailbox.persistence.database import get_db
from wa_mailbox.persistence.models.tenant import User

router = APIRouter()
rules_router = APIRouter()


class TagCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: str | None = None
    description: str | None = None


class TagUpdate(PartialUpdate):
    not_null = ("name", "color")

    name: str | None = Field(default=None, min_length=1, max_length=100)
    color: str | None = None
    description: str | None = None


class TagResponse(BaseModel):
    id: int
    name: str
    color: str
    description: str | None
    contact_count: int = 0


class AutoTagRuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    keywords: list[str]
    tag_id: int
    match_type: str = "any"
    case_sensitive: bool = False
    priority: int = 0
    is_active: bool = True


class AutoTagRuleUpdate(PartialUpdate):
    not_null = ("name", "keywords", "tag_id", "match_type", "case_sensitive", "priority", "is_active")

    name: str | None = None
    keywords: list[str] | None = None
    tag_id: int | None = None
    match_type: str | None = None
    case_sensitive: bool | None = None
    priority: int | None = None
    is_active: bool | None = None


class AutoTagRuleResponse(BaseModel):
    id: int
    name: str
    keywords: list[str]
    tag_id: int
    match_type: str
    case_sensitive: bool
    priority: int
    is_active: bool
    usage_count: int
    created_at: datetime

    class Config:
        from_attributes = True


# ============== Tags ==============

@router.get("", response_model=list[TagResponse])
async def list_tags(
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[TagResponse]:
    """List tags with the number of contacts carrying each."""
    return [
        TagResponse(id=t.id, name=t.name, color=t.color, description=t.description, contact_count=count)
        for t, count in await TagService(db).list_tags(tenant_id)
    ]


@router.post("", response_model=TagResponse, status_code=status.HTTP_201_CREATED)
async def create_tag(
    body: TagCreate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TagResponse:
    _, tenant_id = access
    try:
        tag = await TagService(db).create_tag(tenant_id, body.name, body.color, body.description)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return TagResponse(id=tag.id, name=tag.name, color=tag.color, description=tag.description)


@router.put("/{tag_id}", response_model=TagResponse)
async def update_tag(
    tag_id: int,
    body: TagUpdate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TagResponse:
    _, tenant_id = access
    try:
        tag = await TagService(db).update_tag(tenant_id, tag_id, **body.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if tag is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tag not found")
    return TagResponse(id=tag.id, name=tag.name, color=tag.color, description=tag.description)


@router.delete("/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tag(
    tag_id: int,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    _, tenant_id = access
    if not await TagService(db).delete_tag(tenant_id, tag_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tag not found")


# ============== Auto-tag rules ==============

@rules_router.get("", response_model=list[AutoTagRuleResponse])
async def list_rules(
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[AutoTagRuleResponse]:
    rules = await AutoTagService(db).list_rules(tenant_id)
    return [AutoTagRuleResponse.model_validate(r) for r in rules]


@rules_router.post("", response_model=AutoTagRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_rule(
    body: AutoTagRuleCreate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AutoTagRuleResponse:
    _, tenant_id = access
    try:
        rule = await AutoTagService(db).create_rule(tenant_id, **body.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return AutoTagRuleResponse.model_validate(rule)


@rules_router.put("/{rule_id}", response_model=AutoTagRuleResponse)
async def update_rule(
    rule_id: int,
    body: AutoTagRuleUpdate,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AutoTagRuleResponse:
    _, tenant_id = access
    try:
        rule = await AutoTagService(db).update_rule(tenant_id, rule_id, **body.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if rule is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rule not found")
    return AutoTagRuleResponse.model_validate(rule)


@rules_router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    rule_id: int,
    access: Annotated[tuple[User, int], Depends(require_write_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    _, tenant_id = access
    if not await AutoTagService(db).delete_rule(tenant_id, rule_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rule not found")

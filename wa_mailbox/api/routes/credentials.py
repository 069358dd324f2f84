"""WhatsApp Cloud API credential management for tenant admins."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.api.deps import require_tenant_admin
from wa_mailbox.api.schemas import PartialUpdate
from wa_mailbox.domain.services.credential_service import (
    CredentialConflictError,
    CredentialService,
    credential_to_dict,
)
from wa_mailbox.persistence.database import get_db
from wa_mailbox.persistence.models.tenant import User

router = APIRouter()


class CredentialUpdate(PartialUpdate):
    not_null = ("api_version", "is_active")

    api_version: str | None = None
    access_token: str | None = None
    phone_number_id: str | None = None
    business_account_id: str | None = None
    business_name: str | None = None
    business_phone_number: str | None = None
    is_active: bool | None = None


@router.get("")
async def get_credentials(
    access: Annotated[tuple[User, int], Depends(require_tenant_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Return the tenant's credentials with the access token masked."""
    _, tenant_id = access
    service = CredentialService(db)
    credential = await service.get_for_tenant(tenant_id)
    if credential is None:
        credential = await service.create_inactive(tenant_id)
    return credential_to_dict(credential)


@router.put("")
async def update_credentials(
    body: CredentialUpdate,
    access: Annotated[tuple[User, int], Depends(require_tenant_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    _, tenant_id = access
    try:
        credential = await CredentialService(db).upsert(tenant_id, **body.model_dump(exclude_unset=True))
    except CredentialConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return credential_to_dict(credential)


@router.post("/rotate-verify-token")
async def rotate_verify_token(
    access: Annotated[tuple[User, int], Depends(require_tenant_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Issue a new webhook verify token. Meta must be reconfigured with it."""
    _, tenant_id = access
    credential = await CredentialService(db).rotate_verify_token(tenant_id)
    return credential_to_dict(credential)

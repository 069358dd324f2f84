"""Global admin endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.api.deps import require_global_admin
from wa_mailbox.domain.services.subscription_service import SubscriptionService, subscription_to_dict
from wa_mailbox.domain.services.tenant_service import TenantService
from wa_mailbox.persistence.database import get_db
from wa_mailbox.persistence.models.tenant import User
from wa_mailbox.persistence.repositories.tenant_repository import TenantRepository

router = APIRouter()


class SubscriptionUpdate(BaseModel):
    plan: str | None = None
    status: str | None = None
    message_limit: int | None = None
    contact_limit: int | None = None
    features: dict[str, bool] | None = None
    reset_usage: bool = False


@router.get("/tenants")
async def list_tenant_health(
    admin_user: Annotated[User, Depends(require_global_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[dict]:
    """Credential, usage and subscription overview for every tenant."""
    return await TenantService(db).health_report()


@router.put("/tenants/{tenant_id}/subscription")
async def update_tenant_subscription(
    tenant_id: int,
    body: SubscriptionUpdate,
    admin_user: Annotated[User, Depends(require_global_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    if await TenantRepository(db).get_by_id(tenant_id, tenant_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")
    try:
        subscription = await SubscriptionService(db).update_subscription(tenant_id, **body.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return subscription_to_dict(subscription)

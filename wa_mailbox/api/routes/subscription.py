"""Current tenant's subscription."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.api.deps import require_tenant_context
from wa_mailbox.domain.services.subscription_service import SubscriptionService, subscription_to_dict
from wa_mailbox.persistence.database import get_db

router = APIRouter()


@router.get("")
async def get_subscription(
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Plan, limits, usage and enabled features."""
    subscription = await SubscriptionService(db).get_for_tenant(tenant_id)
    if subscription is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No subscription found")
    return subscription_to_dict(subscription)

"""Worker for the periodic job run: scheduled messages and drip campaign steps."""

import hmac
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.domain.services.drip_campaign_service import DripCampaignService
from wa_mailbox.domain.services.scheduled_message_service import ScheduledMessageService
from wa_mailbox.persistence.database import get_db
from wa_mailbox.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter()


async def verify_worker_secret(
    x_worker_secret: Annotated[str | None, Header(alias="X-Worker-Secret")] = None,
) -> None:
    if settings.worker_secret and not hmac.compare_digest(x_worker_secret or "", settings.worker_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid worker secret")


async def run_jobs(db: AsyncSession) -> dict[str, Any]:
    """Send due scheduled messages, then advance due drip subscribers."""
    batch = settings.jobs_batch_size
    scheduled = await ScheduledMessageService(db).process_due(limit=batch)
    drips = await DripCampaignService(db).process_due(limit=batch)
    return {"scheduled_messages": scheduled, "drip_campaigns": drips}


@router.post("/process-jobs", dependencies=[Depends(verify_worker_secret)])
async def process_jobs(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict[str, Any]:
    """Process every due job across tenants.

    Called every minute by Cloud Scheduler (or cron via scripts/process_jobs.py).
    Each message commits on its own, so a failed run can simply be retried.
    """
    try:
        result = await run_jobs(db)
        logger.info(f"Job run result: {result}")
        return {"status": "success", **result}

    except Exception as e:
        logger.error(f"Error processing jobs: {e}", exc_info=True)
        # Return error so the scheduler can retry
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Job processing failed: {str(e)}",
        )

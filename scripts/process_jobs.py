"""Run one pass of the job processor (scheduled messages and drip steps).

Meant for cron where Cloud Scheduler is not available:

    * * * * * cd /srv/wa-mailbox && python scripts/process_jobs.py
"""

import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from wa_mailbox.logging_config import setup_logging
from wa_mailbox.persistence.database import AsyncSessionLocal
from wa_mailbox.workers.jobs_worker import run_jobs


async def process_jobs():
    async with AsyncSessionLocal() as db:
        result = await run_jobs(db)

    scheduled = result["scheduled_messages"]
    drips = result["drip_campaigns"]
    print(f"Scheduled messages: {scheduled['sent']} sent, {scheduled['failed']} failed")
    print(
        f"Drip steps: {drips['sent']} sent, {drips['completed']} completed, "
        f"{drips['failed']} failed, {drips['skipped']} skipped"
    )


if __name__ == "__main__":
    setup_logging()
    asyncio.run(process_jobs())

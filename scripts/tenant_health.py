"""Print credential, usage and subscription health for every tenant."""

import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from wa_mailbox.domain.services.tenant_service import TenantService
from wa_mailbox.persistence.database import AsyncSessionLocal


def _flag(value: bool) -> str:
    return "yes" if value else "no"


async def tenant_health():
    """Print one row per tenant."""
    print("=" * 80)
    print("TENANT HEALTH")
    print("=" * 80)
    print()

    async with AsyncSessionLocal() as db:
        report = await TenantService(db).health_report()

    print(
        f"{'ID':<4} {'Name':<24} {'Active':<7} {'Creds':<6} {'Live':<5} "
        f"{'Contacts':<9} {'Messages':<9} {'Plan':<13} {'Usage':<14} {'Last webhook'}"
    )
    print("-" * 110)

    for row in report:
        usage = f"{row['messages_used']}/{row['message_limit']}"
        last_webhook = row["last_webhook_at"].isoformat(timespec="minutes") if row["last_webhook_at"] else "never"
        print(
            f"{row['tenant_id']:<4} {row['name'][:22]:<24} {_flag(row['is_active']):<7} "
            f"{_flag(row['credential_configured']):<6} {_flag(row['credential_active']):<5} "
            f"{row['contact_count']:<9} {row['message_count']:<9} {(row['plan'] or 'none'):<13} "
            f"{usage:<14} {last_webhook}"
        )

    print()
    print(f"Total tenants: {len(report)}")
    unconfigured = [row["tenant_id"] for row in report if not row["credential_active"]]
    if unconfigured:
        print(f"Tenants without active WhatsApp credentials: {unconfigured}")
    failing = {
        row["tenant_id"]: (row["failed_scheduled_messages"], row["failed_drip_subscribers"])
        for row in report
        if row["failed_scheduled_messages"] or row["failed_drip_subscribers"]
    }
    for tenant_id, (scheduled, drips) in failing.items():
        print(f"Tenant {tenant_id}: {scheduled} failed scheduled message(s), {drips} failed drip subscriber(s)")


if __name__ == "__main__":
    asyncio.run(tenant_health())

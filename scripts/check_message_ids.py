"""Report duplicate provider message ids and messages stored without one.

Usage:
    python -m scripts.check_message_ids [tenant_id]
"""

import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from wa_mailbox.persistence.database import AsyncSessionLocal
from wa_mailbox.persistence.repositories.message_repository import MessageRepository


async def check_message_ids(tenant_id: int | None = None) -> int:
    """Print the report and return the number of duplicated ids."""
    print("=" * 80)
    print("MESSAGE ID CHECK" + (f" (tenant {tenant_id})" if tenant_id is not None else ""))
    print("=" * 80)
    print()

    async with AsyncSessionLocal() as db:
        repo = MessageRepository(db)
        duplicates = await repo.duplicate_message_ids(tenant_id)
        missing = await repo.count_missing_message_id(tenant_id)

    if duplicates:
        print(f"{'Tenant':<8} {'Count':<7} {'Message ID'}")
        print("-" * 80)
        for dup_tenant_id, message_id, count in duplicates:
            print(f"{dup_tenant_id:<8} {count:<7} {message_id}")
    else:
        print("No duplicate provider message ids")

    print()
    print(f"Messages without a provider id: {missing}")
    return len(duplicates)


if __name__ == "__main__":
    tenant_arg = int(sys.argv[1]) if len(sys.argv) > 1 else None
    duplicate_count = asyncio.run(check_message_ids(tenant_arg))
    sys.exit(1 if duplicate_count else 0)

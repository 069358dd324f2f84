"""Create a demo tenant with sample CRM data for local development."""

import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from wa_mailbox.domain.services.credential_service import CredentialService
from wa_mailbox.domain.services.quick_reply_service import QuickReplyService
from wa_mailbox.domain.services.segment_service import SegmentService
from wa_mailbox.domain.services.tag_service import AutoTagService, TagService
from wa_mailbox.domain.services.template_service import TemplateService
from wa_mailbox.domain.services.tenant_service import TenantService
from wa_mailbox.domain.services.workflow_service import WorkflowService
from wa_mailbox.persistence.database import AsyncSessionLocal
from wa_mailbox.persistence.repositories.tenant_repository import TenantRepository

DEMO_SUBDOMAIN = "demo"
DEMO_EMAIL = "admin@demo.local"
DEMO_PASSWORD = "demo-password"
DEMO_PHONE_NUMBER_ID = "100000000000001"

TAGS = [
    ("Hot Lead", "#E53935"),
    ("Pricing", "#FB8C00"),
    ("Support", "#1E88E5"),
]

QUICK_REPLIES = [
    ("/hours", "Opening hours", "We are open Monday to Saturday, 9am to 6pm."),
    ("/price", "Price list", "Our latest price list is available at https://example.com/prices"),
]


async def seed_demo_tenant() -> int:
    """Create (or report) the demo tenant and return its id."""
    async with AsyncSessionLocal() as db:
        existing = await TenantRepository(db).get_by_subdomain(DEMO_SUBDOMAIN)
        if existing:
            print(f"Demo tenant already exists (ID: {existing.id})")
            return existing.id

        tenant, _ = await TenantService(db).register(
            business_name="Demo Business",
            email=DEMO_EMAIL,
            password=DEMO_PASSWORD,
            subdomain=DEMO_SUBDOMAIN,
        )
        credential = await CredentialService(db).upsert(
            tenant.id,
            phone_number_id=DEMO_PHONE_NUMBER_ID,
            business_name="Demo Business",
        )

        tag_service = TagService(db)
        tags = {}
        for name, color in TAGS:
            tags[name] = await tag_service.create_tag(tenant.id, name, color)

        await AutoTagService(db).create_rule(
            tenant.id,
            name="Pricing questions",
            keywords=["price", "cost", "rate"],
            tag_id=tags["Pricing"].id,
            match_type="any",
        )

        quick_reply_service = QuickReplyService(db)
        for shortcut, title, message in QUICK_REPLIES:
            await quick_reply_service.create_quick_reply(tenant.id, shortcut, title, message)

        await WorkflowService(db).create_workflow(
            tenant.id,
            name="Flag urgent messages",
            trigger_type="new_message",
            trigger_conditions={"keyword": "urgent"},
            actions=[
                {"type": "add_tag", "tag_id": tags["Hot Lead"].id},
                {"type": "update_lead_score", "delta": 10},
            ],
        )

        await TemplateService(db).create_template(
            tenant.id,
            name="Order update",
            whatsapp_template_name="order_update",
            content="Hi {{1}}, your order {{2}} is on its way.",
            category="utility",
        )
        await SegmentService(db).create_segment(
            tenant.id,
            name="Gone quiet",
            conditions={"last_message_days": {"operator": ">", "value": 30}},
            description="No messages for a month",
        )

        print(f"\n{'=' * 60}")
        print("Demo tenant created")
        print(f"{'=' * 60}")
        print(f"Tenant ID: {tenant.id}")
        print(f"Admin: {DEMO_EMAIL} / {DEMO_PASSWORD}")
        print(f"Webhook verify token: {credential.webhook_verify_token}")
        print(f"phone_number_id: {DEMO_PHONE_NUMBER_ID}")
        print("\nAdd an access token with PUT /api/v1/credentials and set is_active=true to go live.")
        return tenant.id


if __name__ == "__main__":
    asyncio.run(seed_demo_tenant())

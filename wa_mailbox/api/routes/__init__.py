"""API routes."""

from fastapi import APIRouter

from wa_mailbox.api.routes import admin, auth, broadcasts, contacts, credentials, deals, drip_campaigns, messages, quick_replies, scheduled_messages, segments, subscription, tags, templates, webhooks, whatsapp_web, workflows

api_router = APIRouter()

# Public routes (no auth required)
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])

# Protected routes (auth required)
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
api_router.include_router(credentials.router, prefix="/credentials", tags=["credentials"])
api_router.include_router(subscription.router, prefix="/subscription", tags=["subscription"])
api_router.include_router(whatsapp_web.router, prefix="/whatsapp-web", tags=["whatsapp-web"])

# Mailbox
api_router.include_router(contacts.router, prefix="/contacts", tags=["contacts"])
api_router.include_router(messages.router, prefix="/messages", tags=["messages"])
api_router.include_router(quick_replies.router, prefix="/quick-replies", tags=["quick-replies"])
api_router.include_router(broadcasts.router, prefix="/broadcasts", tags=["broadcasts"])

# CRM
api_router.include_router(tags.router, prefix="/tags", tags=["tags"])
api_router.include_router(tags.rules_router, prefix="/auto-tag-rules", tags=["auto-tag-rules"])
api_router.include_router(deals.router, prefix="/deals", tags=["deals"])
api_router.include_router(workflows.router, prefix="/workflows", tags=["workflows"])

# Outreach
api_router.include_router(templates.router, prefix="/templates", tags=["templates"])
api_router.include_router(scheduled_messages.router, prefix="/scheduled-messages", tags=["scheduled-messages"])
api_router.include_router(segments.router, prefix="/segments", tags=["segments"])
api_router.include_router(drip_campaigns.router, prefix="/drip-campaigns", tags=["drip-campaigns"])

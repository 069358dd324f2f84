"""Multi-tenant WhatsApp Business mailbox and CRM."""

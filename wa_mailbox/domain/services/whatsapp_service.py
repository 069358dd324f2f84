"""Per-tenant WhatsApp service: inbound webhook processing and outbound sends."""

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.core.tenant_context import set_tenant_context
from wa_mailbox.domain.services.contact_service import ContactService
from wa_mailbox.domain.services.drip_campaign_service import DripCampaignService
from wa_mailbox.domain.services.quick_reply_service import AUTO_REPLY_PREFIX, QuickReplyService
from wa_mailbox.domain.services.tag_service import AutoTagService
from wa_mailbox.domain.services.workflow_service import WorkflowService
from wa_mailbox.infrastructure.whatsapp_client import SendResult, WhatsAppCloudClient
from wa_mailbox.persistence.models.api_credential import TenantApiCredential
from wa_mailbox.persistence.models.contact import Contact
from wa_mailbox.persistence.models.message import Message
from wa_mailbox.persistence.repositories.broadcast_repository import BroadcastRepository
from wa_mailbox.persistence.repositories.credential_repository import (
    CredentialRepository,
    SubscriptionRepository,
)
from wa_mailbox.persistence.repositories.message_repository import MessageRepository

logger = logging.getLogger(__name__)

MESSAGE_LIMIT_ERROR = "Message limit reached. Please upgrade your plan."


def parse_timestamp(value: Any) -> datetime:
    """Convert a provider epoch timestamp (seconds, str or int) to naive UTC."""
    try:
        return datetime.utcfromtimestamp(int(value))
    except (TypeError, ValueError, OverflowError, OSError):
        return datetime.utcnow()


def extract_message_content(message_data: dict[str, Any]) -> dict[str, Any]:
    """Pull body and media fields out of a Cloud API message object.

    Args:
        message_data: One entry of ``value.messages``

    Returns:
        Dict with message_body, media_id, media_mime_type, media_caption, media_filename
    """
    message_type = message_data.get("type")
    content: dict[str, Any] = {
        "message_body": "",
        "media_id": None,
        "media_mime_type": None,
        "media_caption": None,
        "media_filename": None,
    }
    payload = message_data.get(message_type) if message_type else None
    if not isinstance(payload, dict):
        payload = {}

    if message_type == "text":
        content["message_body"] = payload.get("body", "")
    elif message_type in ("image", "video"):
        content["media_id"] = payload.get("id")
        content["media_mime_type"] = payload.get("mime_type")
        content["media_caption"] = payload.get("caption")
        content["message_body"] = payload.get("caption") or ""
    elif message_type in ("audio", "sticker"):
        content["media_id"] = payload.get("id")
        content["media_mime_type"] = payload.get("mime_type")
    elif message_type == "document":
        content["media_id"] = payload.get("id")
        content["media_mime_type"] = payload.get("mime_type")
        content["media_filename"] = payload.get("filename")
        content["media_caption"] = payload.get("caption") or payload.get("filename")
        content["message_body"] = content["media_caption"] or ""
    elif message_type == "location":
        content["message_body"] = f"Location: {payload.get('latitude')}, {payload.get('longitude')}"
    elif message_type == "button":
        content["message_body"] = payload.get("text", "")
    elif message_type == "interactive":
        reply = payload.get("button_reply") or payload.get("list_reply") or {}
        content["message_body"] = reply.get("title", "")
    elif message_type == "reaction":
        content["message_body"] = payload.get("emoji", "")

    return content


class WhatsAppService:
    """WhatsApp operations for one tenant, bound to that tenant's credentials."""

    def __init__(
        self,
        session: AsyncSession,
        credential: TenantApiCredential,
        client: WhatsAppCloudClient | None = None,
    ) -> None:
        self.session = session
        self.credential = credential
        self.tenant_id = credential.tenant_id
        self.client = client or WhatsAppCloudClient(
            access_token=credential.access_token or "",
            phone_number_id=credential.phone_number_id or "",
            api_version=credential.api_version,
        )
        self.message_repo = MessageRepository(session)
        self.subscription_repo = SubscriptionRepository(session)
        self.broadcast_repo = BroadcastRepository(session)
        self.contact_service = ContactService(session)

    @classmethod
    async def for_tenant(cls, session: AsyncSession, tenant_id: int) -> "WhatsAppService | None":
        """Build the service for a tenant with active, configured credentials."""
        credential = await CredentialRepository(session).get_by_tenant(tenant_id)
        if credential is None or not credential.is_active or not credential.is_configured:
            return None
        return cls(session, credential)

    async def process_webhook_value(self, value: dict[str, Any]) -> bool:
        """Process one webhook change value for this tenant.

        Saves ``value.messages``, applies ``value.statuses`` and records the
        webhook time.

        Args:
            value: The ``changes[].value`` object

        Returns:
            True on success, False if processing failed (the error is logged)
        """
        set_tenant_context(self.tenant_id)
        try:
            messages = value.get("messages") or []
            statuses = value.get("statuses") or []
            logger.info(
                "Processing webhook value",
                extra={"message_count": len(messages), "status_count": len(statuses)},
            )

            for message_data in messages:
                await self.save_incoming_message(message_data, value)

            for status in statuses:
                await self.update_message_status(status)

            self.credential.last_webhook_at = datetime.utcnow()
            await self.session.commit()
            return True
        except Exception as e:
            logger.error(f"Error processing webhook value: {e}", exc_info=True)
            await self.session.rollback()
            return False

    async def save_incoming_message(
        self, message_data: dict[str, Any], value: dict[str, Any]
    ) -> tuple[Message, bool]:
        """Store an inbound message, keyed on the provider message id.

        A redelivered message updates the stored row. Only a newly created
        message bumps the contact's unread count and runs automations; any
        reply also pauses the contact's drip sequences.

        Args:
            message_data: One entry of ``value.messages``
            value: The enclosing change value (for ``contacts``)

        Returns:
            (message, created)

        Raises:
            ValueError: If the message has no id or sender
        """
        provider_id = message_data.get("id")
        sender = message_data.get("from")
        if not provider_id or not sender:
            raise ValueError("Webhook message is missing 'id' or 'from'")

        message_type = message_data.get("type") or "unknown"
        timestamp = parse_timestamp(message_data.get("timestamp"))
        contact, _ = await self.contact_service.get_or_create_for_inbound(
            self.tenant_id, sender, self._profile_name(value)
        )

        fields = {
            "contact_id": contact.id,
            "phone_number": sender,
            "message_type": message_type,
            "direction": "incoming",
            "timestamp": timestamp,
            **extract_message_content(message_data),
        }

        message = await self.message_repo.get_by_message_id(self.tenant_id, provider_id)
        created = message is None
        if created:
            message = Message(tenant_id=self.tenant_id, message_id=provider_id, is_read=False, **fields)
            self.session.add(message)
            contact.unread_count = (contact.unread_count or 0) + 1
        else:
            for key, val in fields.items():
                setattr(message, key, val)
            logger.info("Duplicate webhook message updated", extra={"message_id": provider_id})

        contact.last_message_time = timestamp
        await self.session.commit()

        if created:
            contact_id = contact.id

            async def pause_drips() -> None:
                await DripCampaignService(self.session).pause_on_reply(self.tenant_id, contact_id)

            await self._run_isolated("drip_reply", pause_drips, contact_id, contact, message)

        if created and message_type == "text" and message.message_body:
            await self._run_automations(contact, message)

        return message, created

    def _profile_name(self, value: dict[str, Any]) -> str | None:
        contacts = value.get("contacts") or []
        if contacts and isinstance(contacts[0], dict):
            return (contacts[0].get("profile") or {}).get("name")
        return None

    async def _run_automations(self, contact: Contact, message: Message) -> None:
        contact_id = contact.id
        text = message.message_body

        async def auto_tag() -> None:
            await AutoTagService(self.session).apply_rules(self.tenant_id, contact_id, text)

        async def quick_reply() -> None:
            await self._send_quick_reply(contact, text)

        async def workflows() -> None:
            await WorkflowService(self.session, whatsapp_service=self).trigger(
                self.tenant_id, "new_message", contact, {"message_body": text}
            )

        for name, automation in (("auto_tag", auto_tag), ("quick_reply", quick_reply), ("workflows", workflows)):
            await self._run_isolated(name, automation, contact_id, contact, message)

    async def _run_isolated(
        self,
        name: str,
        automation: Callable[[], Awaitable[None]],
        contact_id: int,
        *in_use: Any,
    ) -> None:
        """Run one automation in its own commit; a failure is logged and rolled back."""
        try:
            await automation()
            await self.session.commit()
        except Exception as e:
            logger.error(
                f"Automation '{name}' failed: {e}",
                exc_info=True,
                extra={"contact_id": contact_id},
            )
            await self.session.rollback()
            # Rollback expires loaded rows; reload the ones still in use
            for instance in (*in_use, self.credential):
                await self.session.refresh(instance)

    async def _send_quick_reply(self, contact: Contact, text: str) -> None:
        quick_reply = await QuickReplyService(self.session).find_match(self.tenant_id, text)
        if quick_reply is None:
            return

        result = await self.send_text_message(
            contact.phone_number,
            quick_reply.message,
            contact=contact,
            stored_body=AUTO_REPLY_PREFIX + quick_reply.message,
            commit=False,
        )
        if result.success:
            quick_reply.usage_count = (quick_reply.usage_count or 0) + 1
            logger.info(
                "Quick reply sent",
                extra={"quick_reply_id": quick_reply.id, "contact_id": contact.id},
            )

    async def update_message_status(self, status: dict[str, Any]) -> bool:
        """Apply a delivery status callback.

        Updates the stored message and, when the id belongs to a broadcast,
        the broadcast recipient and counters.

        Returns:
            True if a stored message was updated
        """
        provider_id = status.get("id")
        new_status = status.get("status")
        if not provider_id or not new_status:
            return False

        message = await self.message_repo.get_by_message_id(self.tenant_id, provider_id)
        if message is not None:
            message.status = new_status

        await self._update_broadcast_recipient(
            provider_id, new_status, parse_timestamp(status.get("timestamp")), status
        )
        await self.session.flush()
        return message is not None

    async def _update_broadcast_recipient(
        self, provider_id: str, new_status: str, at: datetime, status: dict[str, Any]
    ) -> None:
        found = await self.broadcast_repo.get_recipient_by_message_id(self.tenant_id, provider_id)
        if found is None:
            return
        recipient, broadcast = found

        if new_status in ("delivered", "read") and recipient.delivered_at is None:
            recipient.delivered_at = at
            recipient.status = "delivered"
            broadcast.delivered_count = (broadcast.delivered_count or 0) + 1
        if new_status == "read" and recipient.read_at is None:
            recipient.read_at = at
            recipient.status = "read"
            broadcast.read_count = (broadcast.read_count or 0) + 1
        if new_status == "failed" and recipient.status != "failed":
            errors = status.get("errors") or [{}]
            if recipient.status == "sent":
                broadcast.sent_count = max(0, (broadcast.sent_count or 0) - 1)
            recipient.status = "failed"
            recipient.error_message = errors[0].get("title") or errors[0].get("message") or "Delivery failed"
            broadcast.failed_count = (broadcast.failed_count or 0) + 1

    async def send_text_message(
        self,
        to: str,
        body: str,
        contact: Contact | None = None,
        stored_body: str | None = None,
        commit: bool = True,
    ) -> SendResult:
        """Send a text message, subject to the tenant's subscription.

        Args:
            to: Recipient phone number
            body: Text to send
            contact: When given, the outgoing message is stored in its thread
            stored_body: Body to store instead of ``body``
            commit: Commit, or only flush

        Returns:
            SendResult from the Graph API (or a failed result when over limit)
        """
        return await self._send_and_store(
            to,
            lambda: self.client.send_text(to, body),
            contact,
            {"message_type": "text", "message_body": stored_body if stored_body is not None else body},
            commit,
        )

    async def send_template_message(
        self,
        to: str,
        template_name: str,
        language: str = "en",
        parameters: list[str] | None = None,
        contact: Contact | None = None,
        commit: bool = True,
    ) -> SendResult:
        """Send an approved template. The thread shows ``Template: <name>``."""
        return await self._send_and_store(
            to,
            lambda: self.client.send_template(to, template_name, language=language, parameters=parameters),
            contact,
            {"message_type": "template", "message_body": f"Template: {template_name}"},
            commit,
        )

    async def send_media_message(
        self,
        to: str,
        media_type: str,
        media_id: str | None = None,
        link: str | None = None,
        caption: str | None = None,
        filename: str | None = None,
        contact: Contact | None = None,
        commit: bool = True,
    ) -> SendResult:
        """Send one of ``MEDIA_TYPES`` by uploaded media id or public link."""
        return await self._send_and_store(
            to,
            lambda: self.client.send_media(
                to, media_type, media_id=media_id, link=link, caption=caption, filename=filename
            ),
            contact,
            {
                "message_type": media_type,
                "message_body": caption or "",
                "media_id": media_id,
                "media_url": link,
                "media_caption": caption,
                "media_filename": filename,
            },
            commit,
        )

    async def get_media_url(self, message: Message) -> str | None:
        """Download URL for a stored media message.

        Provider media ids resolve to short-lived URLs; messages sent by link
        return the stored link.
        """
        if message.media_id:
            return await self.client.get_media_url(message.media_id)
        return message.media_url

    async def _send_and_store(
        self,
        to: str,
        send: Callable[[], Awaitable[SendResult]],
        contact: Contact | None,
        stored: dict[str, Any],
        commit: bool,
    ) -> SendResult:
        subscription = await self.subscription_repo.get_by_tenant(self.tenant_id)
        if subscription is not None and not subscription.can_send_message():
            logger.warning("Message blocked by subscription limit", extra={"to": to})
            return SendResult(success=False, error=MESSAGE_LIMIT_ERROR)

        result = await send()
        if not result.success:
            return result

        now = datetime.utcnow()
        if subscription is not None:
            subscription.messages_used = (subscription.messages_used or 0) + 1

        if contact is not None:
            self.session.add(
                Message(
                    tenant_id=self.tenant_id,
                    message_id=result.message_id,
                    contact_id=contact.id,
                    phone_number=contact.phone_number,
                    direction="outgoing",
                    status="sent",
                    is_read=True,
                    timestamp=now,
                    **stored,
                )
            )
            contact.last_message_time = now

        if commit:
            await self.session.commit()
        else:
            await self.session.flush()
        return result

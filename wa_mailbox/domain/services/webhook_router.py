"""Routes WhatsApp webhook deliveries to the owning tenant."""

import logging
from typing import Any, Iterator

from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.core.tenant_context import set_tenant_context
from wa_mailbox.domain.services.contact_service import ContactService
from wa_mailbox.domain.services.whatsapp_service import WhatsAppService, parse_timestamp
from wa_mailbox.persistence.models.message import MESSAGE_DIRECTIONS, Message
from wa_mailbox.persistence.repositories.credential_repository import CredentialRepository
from wa_mailbox.persistence.repositories.message_repository import MessageRepository
from wa_mailbox.persistence.repositories.tenant_repository import TenantRepository

logger = logging.getLogger(__name__)

WHATSAPP_OBJECT = "whatsapp_business_account"
MESSAGE_FIELDS = frozenset({"messages", "message_status", "messages_status"})
HISTORY_FIELD = "history"


def iter_changes(payload: dict[str, Any]) -> Iterator[dict[str, Any]]:
    """Yield every ``entry[].changes[]`` object of a webhook payload."""
    entries = payload.get("entry")
    if not isinstance(entries, list):
        return
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        changes = entry.get("changes")
        if not isinstance(changes, list):
            continue
        for change in changes:
            if isinstance(change, dict):
                yield change


def history_to_message_values(value: dict[str, Any]) -> list[dict[str, Any]]:
    """Reshape a ``history`` change into messages-format values.

    Each ``history[].threads[]`` becomes one value carrying the thread's
    messages and the original metadata.
    """
    values = []
    for history in value.get("history") or []:
        for thread in (history or {}).get("threads") or []:
            messages = (thread or {}).get("messages") or []
            if messages:
                values.append(
                    {
                        "messaging_product": value.get("messaging_product", "whatsapp"),
                        "metadata": value.get("metadata") or {},
                        "contacts": [],
                        "messages": messages,
                    }
                )
    return values


class WebhookRouter:
    """Multi-tenant webhook dispatcher.

    A change is routed by ``value.metadata.phone_number_id`` to the tenant
    whose active credential carries that id. Unknown ids are logged and
    dropped; failures never propagate to the HTTP layer.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.credential_repo = CredentialRepository(session)

    async def verify(self, mode: str | None, token: str | None, challenge: str | None) -> str | None:
        """Answer the verification handshake.

        Args:
            mode: ``hub.mode``
            token: ``hub.verify_token``
            challenge: ``hub.challenge``

        Returns:
            The challenge if an active tenant owns the token, else None
        """
        if mode != "subscribe" or not token:
            logger.warning("Webhook verification rejected", extra={"mode": mode})
            return None

        credential = await self.credential_repo.get_active_by_verify_token(token)
        if credential is None:
            logger.warning("Webhook verification failed: unknown verify token")
            return None

        logger.info("Webhook verified", extra={"tenant_id": credential.tenant_id})
        return challenge or ""

    async def route_payload(self, payload: dict[str, Any]) -> int:
        """Route every change of a delivery.

        Returns:
            Number of change values processed successfully
        """
        processed = 0
        for change in iter_changes(payload):
            try:
                processed += await self.route_change(change)
            except Exception as e:
                logger.error(
                    f"Error routing webhook change: {e}",
                    exc_info=True,
                    extra={"field": change.get("field")},
                )
                await self.session.rollback()
        return processed

    async def route_change(self, change: dict[str, Any]) -> int:
        field = change.get("field")
        value = change.get("value")
        if not isinstance(value, dict):
            logger.warning("Webhook change without value", extra={"field": field})
            return 0

        if field in MESSAGE_FIELDS:
            return int(await self.route_value(value))

        if field == HISTORY_FIELD:
            processed = 0
            for history_value in history_to_message_values(value):
                processed += int(await self.route_value(history_value))
            return processed

        logger.info("Skipping unhandled webhook field", extra={"field": field})
        return 0

    async def route_value(self, value: dict[str, Any]) -> bool:
        """Hand a change value to the owning tenant's WhatsAppService.

        Returns:
            True if a tenant was found and processing succeeded
        """
        phone_number_id = (value.get("metadata") or {}).get("phone_number_id")
        if not phone_number_id:
            logger.warning("Webhook value has no phone_number_id")
            return False

        credential = await self.credential_repo.get_active_by_phone_number_id(str(phone_number_id))
        if credential is None:
            logger.warning(
                "No active tenant for phone_number_id",
                extra={"phone_number_id": phone_number_id},
            )
            return False

        service = WhatsAppService(self.session, credential)
        return await service.process_webhook_value(value)

    async def receive_bridge_message(self, payload: dict[str, Any]) -> Message | None:
        """Store a message relayed by the WhatsApp Web bridge.

        Args:
            payload: ``{user_id, phone_number, message: {...}}`` where user_id
                is the tenant id

        Returns:
            The stored message, or None if the tenant does not exist

        Raises:
            ValueError: If the payload is missing required fields
        """
        tenant_id = payload.get("user_id")
        phone_number = payload.get("phone_number")
        message_data = payload.get("message")
        if not tenant_id or not phone_number or not isinstance(message_data, dict):
            raise ValueError("user_id, phone_number and message are required")

        try:
            tenant_id = int(tenant_id)
        except (TypeError, ValueError):
            raise ValueError("user_id must be an integer")

        tenant = await TenantRepository(self.session).get_by_id(None, tenant_id)
        if tenant is None:
            return None
        set_tenant_context(tenant.id)

        direction = message_data.get("direction") or "incoming"
        if direction not in MESSAGE_DIRECTIONS:
            raise ValueError(f"Unknown direction: {direction}")

        contact, _ = await ContactService(self.session).get_or_create_for_inbound(
            tenant.id, str(phone_number), payload.get("name")
        )
        message_repo = MessageRepository(self.session)
        provider_id = message_data.get("message_id")
        message = await message_repo.get_by_message_id(tenant.id, provider_id) if provider_id else None

        fields = {
            "contact_id": contact.id,
            "phone_number": str(phone_number),
            "message_type": message_data.get("message_type") or "text",
            "direction": direction,
            "message_body": message_data.get("message_body") or "",
            "timestamp": parse_timestamp(message_data.get("timestamp")),
        }
        if message is None:
            message = Message(
                tenant_id=tenant.id,
                message_id=provider_id,
                is_read=direction == "outgoing",
                status="sent" if direction == "outgoing" else None,
                **fields,
            )
            self.session.add(message)
            if direction == "incoming":
                contact.unread_count = (contact.unread_count or 0) + 1
        else:
            for key, val in fields.items():
                setattr(message, key, val)

        contact.last_message_time = fields["timestamp"]
        await self.session.commit()
        await self.session.refresh(message)
        logger.info(
            "Stored WhatsApp Web message",
            extra={"message_row_id": message.id, "direction": direction},
        )
        return message

"""WhatsApp Cloud (Graph) API client."""

import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from wa_mailbox.core.phone import format_phone_number
from wa_mailbox.settings import settings

logger = logging.getLogger(__name__)

MEDIA_TYPES = ("image", "video", "audio", "document", "sticker")


@dataclass
class SendResult:
    """Result of an outbound Graph API call."""

    success: bool
    message_id: str | None = None
    error: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


def verify_webhook_signature(payload: bytes, signature_header: str | None, app_secret: str) -> bool:
    """Validate the X-Hub-Signature-256 header of a webhook delivery.

    Args:
        payload: Raw request body bytes
        signature_header: Header value, ``sha256=<hexdigest>``
        app_secret: Meta app secret

    Returns:
        True if the signature matches
    """
    if not signature_header or not signature_header.startswith("sha256="):
        return False
    expected = signature_header[len("sha256="):]
    computed = hmac.new(app_secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(computed, expected)


class WhatsAppCloudClient:
    """Sends messages through one tenant's WhatsApp Business phone number."""

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        api_version: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            access_token: Permanent or system-user access token
            phone_number_id: Sending phone number id
            api_version: Graph API version, e.g. ``v18.0``
            base_url: Graph API base URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.api_version = api_version or settings.whatsapp_default_api_version
        self.base_url = (base_url or settings.whatsapp_graph_base_url).rstrip("/")
        self.timeout = timeout or settings.whatsapp_http_timeout_seconds
        self._transport = transport

    def _get_client(self) -> httpx.AsyncClient:
        """Create HTTP client with auth headers."""
        return httpx.AsyncClient(
            base_url=f"{self.base_url}/{self.api_version}",
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _post_message(self, payload: dict[str, Any]) -> SendResult:
        try:
            async with self._get_client() as client:
                response = await client.post(f"/{self.phone_number_id}/messages", json=payload)
            data = response.json() if response.content else {}
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                f"WhatsApp API request failed: {e}",
                extra={"phone_number_id": self.phone_number_id},
            )
            return SendResult(success=False, error=str(e))

        if response.status_code >= 400:
            error = data.get("error", {}) if isinstance(data, dict) else {}
            message = error.get("message") or f"HTTP {response.status_code}"
            logger.warning(
                f"WhatsApp API error: {message}",
                extra={
                    "phone_number_id": self.phone_number_id,
                    "status_code": response.status_code,
                    "error_code": error.get("code"),
                },
            )
            return SendResult(success=False, error=message, data=data)

        messages = data.get("messages") or [{}]
        message_id = messages[0].get("id")
        if not message_id:
            return SendResult(success=False, error="No message id in API response", data=data)

        logger.info(
            "Sent WhatsApp message",
            extra={"to": payload.get("to"), "message_id": message_id, "type": payload.get("type")},
        )
        return SendResult(success=True, message_id=message_id, data=data)

    async def send_text(self, to: str, body: str, preview_url: bool = False) -> SendResult:
        """Send a plain text message.

        Args:
            to: Recipient phone number in any format
            body: Message text
            preview_url: Render link previews

        Returns:
            SendResult
        """
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": format_phone_number(to),
            "type": "text",
            "text": {"preview_url": preview_url, "body": body},
        }
        return await self._post_message(payload)

    async def send_template(
        self,
        to: str,
        template_name: str,
        language: str = "en",
        parameters: list[str] | None = None,
    ) -> SendResult:
        """Send an approved template message with positional body parameters."""
        template: dict[str, Any] = {"name": template_name, "language": {"code": language}}
        if parameters:
            template["components"] = [
                {
                    "type": "body",
                    "parameters": [{"type": "text", "text": str(p)} for p in parameters],
                }
            ]
        payload = {
            "messaging_product": "whatsapp",
            "to": format_phone_number(to),
            "type": "template",
            "template": template,
        }
        return await self._post_message(payload)

    async def send_media(
        self,
        to: str,
        media_type: str,
        media_id: str | None = None,
        link: str | None = None,
        caption: str | None = None,
        filename: str | None = None,
    ) -> SendResult:
        """Send an image, video, audio, document or sticker.

        Either ``media_id`` (previously uploaded) or ``link`` must be given.
        """
        if media_type not in MEDIA_TYPES:
            return SendResult(success=False, error=f"Unsupported media type: {media_type}")
        if not media_id and not link:
            return SendResult(success=False, error="media_id or link is required")

        media: dict[str, Any] = {"id": media_id} if media_id else {"link": link}
        # Audio and stickers cannot carry captions
        if caption and media_type in ("image", "video", "document"):
            media["caption"] = caption
        if filename and media_type == "document":
            media["filename"] = filename

        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": format_phone_number(to),
            "type": media_type,
            media_type: media,
        }
        return await self._post_message(payload)

    async def get_media_url(self, media_id: str) -> str | None:
        """Resolve a media id to its short-lived download URL."""
        try:
            async with self._get_client() as client:
                response = await client.get(f"/{media_id}")
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Failed to resolve media {media_id}: {e}")
            return None
        return data.get("url")

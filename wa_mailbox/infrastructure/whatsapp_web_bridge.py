"""Client for the WhatsApp Web bridge service (QR-code device linking)."""

import logging
from typing import Any

import httpx

from wa_mailbox.settings import settings

logger = logging.getLogger(__name__)


class BridgeError(Exception):
    """Raised when the bridge service is unreachable or returns an error."""


class WhatsAppWebBridgeClient:
    """Thin HTTP client for the Node.js bridge that drives WhatsApp Web sessions.

    Sessions are keyed by tenant id.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.whatsapp_web_service_url).rstrip("/")
        self.timeout = timeout or settings.whatsapp_http_timeout_seconds
        self._transport = transport

    def _get_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            async with self._get_client() as client:
                response = await client.request(method, path, json=json)
                response.raise_for_status()
                return response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            logger.warning(
                f"Bridge returned {e.response.status_code} for {method} {path}",
                extra={"status_code": e.response.status_code},
            )
            raise BridgeError(f"Bridge error {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Bridge request failed: {method} {path}: {e}")
            raise BridgeError(f"Bridge unavailable: {e}") from e

    async def start_session(self, tenant_id: int) -> dict[str, Any]:
        return await self._request("POST", "/session/start", json={"userId": tenant_id})

    async def get_qr(self, tenant_id: int) -> dict[str, Any]:
        return await self._request("GET", f"/session/{tenant_id}/qr")

    async def get_status(self, tenant_id: int) -> dict[str, Any]:
        return await self._request("GET", f"/session/{tenant_id}/status")

    async def send_message(self, tenant_id: int, to: str, text: str) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/message/send",
            json={"userId": tenant_id, "to": to, "message": text},
        )

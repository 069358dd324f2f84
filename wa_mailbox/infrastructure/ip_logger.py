"""Reports client IPs of authentication events to an external collector."""

import logging
from datetime import datetime

import httpx

from wa_mailbox.settings import settings

logger = logging.getLogger(__name__)


async def log_ip(
    ip: str | None,
    event: str,
    tenant_id: int | None = None,
    user_id: int | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """Post an IP event to IP_LOGGING_URL.

    Args:
        ip: Client IP address
        event: Event name, e.g. ``login`` or ``register``
        tenant_id: Tenant of the acting user
        user_id: Acting user
        transport: Optional httpx transport (tests)

    Returns:
        True if the collector accepted the event, False if disabled or failed
    """
    if not settings.ip_logging_url:
        return False

    payload = {
        "ip": ip,
        "event": event,
        "tenant_id": tenant_id,
        "user_id": user_id,
        "timestamp": datetime.utcnow().isoformat() + "Z",
    }
    try:
        async with httpx.AsyncClient(timeout=5.0, transport=transport) as client:
            response = await client.post(settings.ip_logging_url, json=payload)
            response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning(f"IP logging failed: {e}", extra={"event": event})
        return False
    return True

"""WhatsApp Web (QR code) device linking through the bridge service."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from wa_mailbox.api.deps import require_tenant_admin, require_tenant_context
from wa_mailbox.infrastructure.whatsapp_web_bridge import BridgeError, WhatsAppWebBridgeClient
from wa_mailbox.persistence.models.tenant import User

router = APIRouter()


def get_bridge_client() -> WhatsAppWebBridgeClient:
    return WhatsAppWebBridgeClient()


def _bad_gateway(e: BridgeError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


@router.post("/session")
async def start_session(
    access: Annotated[tuple[User, int], Depends(require_tenant_admin)],
    bridge: Annotated[WhatsAppWebBridgeClient, Depends(get_bridge_client)],
) -> dict:
    _, tenant_id = access
    try:
        return await bridge.start_session(tenant_id)
    except BridgeError as e:
        raise _bad_gateway(e)


@router.get("/qr")
async def get_qr(
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    bridge: Annotated[WhatsAppWebBridgeClient, Depends(get_bridge_client)],
) -> dict:
    """QR code to scan from the phone's WhatsApp app."""
    try:
        return await bridge.get_qr(tenant_id)
    except BridgeError as e:
        raise _bad_gateway(e)


@router.get("/status")
async def get_status(
    tenant_id: Annotated[int, Depends(require_tenant_context)],
    bridge: Annotated[WhatsAppWebBridgeClient, Depends(get_bridge_client)],
) -> dict:
    try:
        return await bridge.get_status(tenant_id)
    except BridgeError as e:
        raise _bad_gateway(e)

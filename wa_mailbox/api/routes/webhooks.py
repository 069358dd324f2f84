"""WhatsApp webhook endpoints (Cloud API and WhatsApp Web bridge)."""

import hmac
import json
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from wa_mailbox.domain.services.webhook_router import WHATSAPP_OBJECT, WebhookRouter
from wa_mailbox.infrastructure.whatsapp_client import verify_webhook_signature
from wa_mailbox.persistence.database import get_db
from wa_mailbox.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter()


def _query_param(request: Request, name: str) -> str | None:
    """Read ``hub.<name>``, also accepting the ``hub_<name>`` spelling."""
    params = request.query_params
    return params.get(f"hub.{name}") or params.get(f"hub_{name}")


async def _decode_json(request: Request) -> tuple[bytes, dict[str, Any] | None]:
    raw_body = await request.body()
    try:
        payload = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return raw_body, None
    if not isinstance(payload, dict):
        return raw_body, None
    return raw_body, payload


@router.get("/whatsapp")
async def verify_whatsapp_webhook(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Response:
    """Webhook verification handshake.

    Meta calls this with ``hub.mode=subscribe``, ``hub.verify_token`` and
    ``hub.challenge`` when the webhook URL is configured. The challenge is
    echoed back only for an active tenant's verify token.
    """
    challenge = await WebhookRouter(db).verify(
        _query_param(request, "mode"),
        _query_param(request, "verify_token"),
        _query_param(request, "challenge"),
    )
    if challenge is None:
        return JSONResponse(status_code=403, content={"error": "Verification failed"})
    return PlainTextResponse(content=challenge, status_code=200)


@router.post("/whatsapp")
async def receive_whatsapp_webhook(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Response:
    """Receive a WhatsApp Cloud API delivery.

    Malformed JSON and foreign object types are rejected with 400. Everything
    else is acknowledged with 200. Unknown tenants are skipped and processing
    errors are logged.
    """
    raw_body, payload = await _decode_json(request)
    if payload is None:
        logger.warning("Webhook body is not a JSON object")
        return JSONResponse(status_code=400, content={"error": "Invalid JSON"})

    if payload.get("object") != WHATSAPP_OBJECT:
        logger.warning("Webhook with unexpected object type", extra={"object_type": payload.get("object")})
        return JSONResponse(status_code=400, content={"error": "Invalid object type"})

    if settings.whatsapp_app_secret:
        signature = request.headers.get("X-Hub-Signature-256")
        if not verify_webhook_signature(raw_body, signature, settings.whatsapp_app_secret):
            if settings.environment == "production":
                logger.warning("Invalid webhook signature")
                return JSONResponse(status_code=403, content={"error": "Invalid signature"})
            logger.warning("Invalid webhook signature (accepted outside production)")

    try:
        processed = await WebhookRouter(db).route_payload(payload)
        logger.info("Webhook processed", extra={"processed_values": processed})
    except Exception as e:
        logger.error(f"Unexpected webhook failure: {e}", exc_info=True)

    return JSONResponse(status_code=200, content={"status": "received"})


@router.post("/whatsapp-web")
async def receive_whatsapp_web_message(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Response:
    """Receive a message relayed by the WhatsApp Web bridge service."""
    if settings.whatsapp_web_webhook_secret:
        secret = request.headers.get("X-Bridge-Secret") or ""
        if not hmac.compare_digest(secret, settings.whatsapp_web_webhook_secret):
            logger.warning("Bridge webhook with invalid secret")
            return JSONResponse(status_code=403, content={"error": "Invalid secret"})

    _, payload = await _decode_json(request)
    if payload is None:
        return JSONResponse(status_code=400, content={"error": "Invalid JSON"})

    try:
        message = await WebhookRouter(db).receive_bridge_message(payload)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    if message is None:
        return JSONResponse(status_code=404, content={"error": "User not found"})
    return JSONResponse(status_code=200, content={"success": True, "message_id": message.id})

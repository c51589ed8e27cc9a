"""Nuvemshop order webhooks (push path).

Nuvemshop notifications are thin: `{"store_id": 123, "event": "order/paid",
"id": 456}`. When the payload does not already carry the order body, the
order is fetched with the integration's token before normalizing.

Signature: `X-Linkedstore-Hmac-SHA256` = base64 HMAC-SHA256(raw body,
NUVEMSHOP_CLIENT_SECRET).
"""

import json
import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from commerce_hub.config import Settings, get_settings
from commerce_hub.database import get_db
from commerce_hub.deps import get_http_transport, get_token_cipher
from commerce_hub.models import Integration, IntegrationStatusEnum, PlatformEnum
from commerce_hub.schemas import WebhookAck
from commerce_hub.security import TokenCipher
from commerce_hub.services.adapters.nuvemshop import fetch_nuvemshop_order, normalize_nuvemshop_order
from commerce_hub.services.errors import PlatformAPIError
from commerce_hub.services.records import upsert_order
from commerce_hub.services.token_service import decrypt_credential
from commerce_hub.services.webhook_signatures import verify_hmac_signature
from commerce_hub.utils.parsing import as_text

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/nuvemshop", tags=["Nuvemshop Webhooks"])

ORDER_EVENTS = frozenset({"order/created", "order/updated", "order/paid", "order/cancelled"})
# Fields only present on a full order body
ORDER_BODY_FIELDS = ("payment_status", "total", "created_at")


@router.post("", response_model=WebhookAck)
async def nuvemshop_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    cipher: TokenCipher = Depends(get_token_cipher),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_http_transport),
) -> WebhookAck:
    if not settings.NUVEMSHOP_CLIENT_SECRET:
        logger.error("[NUVEMSHOP_WEBHOOK] NUVEMSHOP_CLIENT_SECRET not configured")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Webhook secret not configured")

    body = await request.body()
    signature = request.headers.get("X-Linkedstore-Hmac-SHA256")
    if not verify_hmac_signature(settings.NUVEMSHOP_CLIENT_SECRET, body, signature, source="NUVEMSHOP_WEBHOOK"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload")

    store_id = as_text(payload.get("store_id"))
    if store_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing store_id")

    integration = (
        db.query(Integration)
        .filter(
            Integration.platform == PlatformEnum.nuvemshop,
            Integration.status == IntegrationStatusEnum.connected,
            Integration.external_store_id == store_id,
        )
        .first()
    )
    if integration is None:
        logger.warning("[NUVEMSHOP_WEBHOOK] No connected integration for store %s", store_id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Integration not found")

    event = as_text(payload.get("event"))
    if event not in ORDER_EVENTS:
        logger.info("[NUVEMSHOP_WEBHOOK] Ignoring event %s from store %s", event, store_id)
        return WebhookAck(message=f"Event {event} ignored")

    order_id = as_text(payload.get("id"))
    if order_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing order id")

    order_body = payload
    if not any(field in payload for field in ORDER_BODY_FIELDS):
        access_token = decrypt_credential(cipher, integration, "access_token")
        if not access_token:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Integration not found")
        try:
            async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS, transport=transport) as client:
                order_body = await fetch_nuvemshop_order(
                    client, store_id, access_token, order_id, settings.NUVEMSHOP_USER_AGENT,
                )
        except (PlatformAPIError, httpx.HTTPError) as exc:
            logger.error("[NUVEMSHOP_WEBHOOK] Could not fetch order %s: %s", order_id, exc)
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Could not fetch order")

    order = normalize_nuvemshop_order(order_body, settings.DEFAULT_CURRENCY)
    if order is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing order id")

    upsert_order(db, integration.organization_id, PlatformEnum.nuvemshop, order)
    logger.info(
        "[NUVEMSHOP_WEBHOOK] %s: order %s -> %s (org %s)",
        event, order.external_order_id, order.status, integration.organization_id,
    )
    return WebhookAck()

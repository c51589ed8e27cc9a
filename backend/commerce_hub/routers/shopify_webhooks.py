"""Shopify order webhooks (push path).

WHAT:
    POST /webhooks/shopify receives orders/create, orders/updated,
    orders/paid and orders/cancelled, verifies the HMAC signature and
    upserts the order through the same normalizer as the pull adapter.

WHY:
    Orders show up on the dashboard within seconds instead of waiting for
    the next scheduled pull. Both paths share the natural-key upsert, so a
    webhook racing a pull converges on one row.

FAILURE MODES:
    - secret not configured -> 500
    - missing / invalid signature -> 401 (nothing is parsed or written)
    - missing shop / topic headers, bad JSON, no order id -> 400
    - no CONNECTED Shopify integration for the shop -> 404

REFERENCES:
    - https://shopify.dev/docs/apps/build/webhooks/subscribe/https#step-5-verify-the-webhook
    - commerce_hub/services/adapters/shopify.py (normalize_shopify_order)
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from commerce_hub.config import Settings, get_settings
from commerce_hub.database import get_db
from commerce_hub.models import Integration, IntegrationStatusEnum, PlatformEnum
from commerce_hub.schemas import WebhookAck
from commerce_hub.services.adapters.shopify import normalize_shopify_order, shop_handle, shop_host
from commerce_hub.services.records import upsert_order
from commerce_hub.services.webhook_signatures import verify_hmac_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/shopify", tags=["Shopify Webhooks"])

ORDER_TOPICS = frozenset({"orders/create", "orders/updated", "orders/paid", "orders/cancelled"})


def _find_integration(db: Session, shop_domain: str):
    candidates = {shop_host(shop_domain), shop_handle(shop_domain), shop_domain}
    return (
        db.query(Integration)
        .filter(
            Integration.platform == PlatformEnum.shopify,
            Integration.status == IntegrationStatusEnum.connected,
            Integration.external_store_id.in_(candidates),
        )
        .first()
    )


@router.post("", response_model=WebhookAck)
async def shopify_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> WebhookAck:
    if not settings.SHOPIFY_CLIENT_SECRET:
        logger.error("[SHOPIFY_WEBHOOK] SHOPIFY_CLIENT_SECRET not configured")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Webhook secret not configured")

    body = await request.body()
    signature = request.headers.get("X-Shopify-Hmac-SHA256")
    if not verify_hmac_signature(settings.SHOPIFY_CLIENT_SECRET, body, signature, source="SHOPIFY_WEBHOOK"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")

    shop_domain = request.headers.get("X-Shopify-Shop-Domain")
    topic = request.headers.get("X-Shopify-Topic")
    if not shop_domain or not topic:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing shop domain or topic header")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload")

    integration = _find_integration(db, shop_domain)
    if integration is None:
        logger.warning("[SHOPIFY_WEBHOOK] No connected integration for %s", shop_domain)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Integration not found")

    if topic not in ORDER_TOPICS:
        logger.info("[SHOPIFY_WEBHOOK] Ignoring topic %s from %s", topic, shop_domain)
        return WebhookAck(message=f"Topic {topic} ignored")

    order = normalize_shopify_order(payload, settings.DEFAULT_CURRENCY)
    if order is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing order id")

    upsert_order(db, integration.organization_id, PlatformEnum.shopify, order)
    logger.info(
        "[SHOPIFY_WEBHOOK] %s: order %s -> %s (org %s)",
        topic, order.external_order_id, order.status, integration.organization_id,
    )
    return WebhookAck()

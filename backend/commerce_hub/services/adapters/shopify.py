"""Shopify orders adapter (REST Admin API).

WHAT:
    Pulls every order (`status=any`) following the `Link: rel="next"`
    cursor, normalizes financial_status, and upserts into `orders`.

WHY:
    A 401 means the merchant uninstalled the app or rotated the token;
    the integration is disconnected so the UI prompts for a reconnect
    instead of failing every 15 minutes.

REFERENCES:
    - https://shopify.dev/docs/api/admin-rest/2024-01/resources/order
    - https://shopify.dev/docs/api/usage/pagination-rest
    - commerce_hub/routers/shopify_webhooks.py (push path, same normalizer)
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from commerce_hub.models import Integration, PlatformEnum
from commerce_hub.services.adapters.base import OrderPlatformAdapter
from commerce_hub.services.errors import PlatformAuthError
from commerce_hub.services.order_status import map_shopify_status
from commerce_hub.services.records import NormalizedOrder
from commerce_hub.services.token_service import disconnect_integration
from commerce_hub.utils.parsing import as_list, as_mapping, as_text, parse_datetime, to_decimal, utcnow

logger = logging.getLogger(__name__)

PAGE_LIMIT = 250
SHOPIFY_DOMAIN_SUFFIX = ".myshopify.com"


def shop_host(store_id: str) -> str:
    """`mystore` or `mystore.myshopify.com` -> `mystore.myshopify.com`."""
    store_id = store_id.strip().lower()
    if store_id.startswith("https://"):
        store_id = store_id[len("https://"):]
    store_id = store_id.rstrip("/")
    if "." not in store_id:
        store_id = f"{store_id}{SHOPIFY_DOMAIN_SUFFIX}"
    return store_id


def shop_handle(store_id: str) -> str:
    """`mystore.myshopify.com` -> `mystore`."""
    host = shop_host(store_id)
    if host.endswith(SHOPIFY_DOMAIN_SUFFIX):
        return host[: -len(SHOPIFY_DOMAIN_SUFFIX)]
    return host


def normalize_shopify_order(raw: Dict[str, Any], default_currency: str) -> Optional[NormalizedOrder]:
    """Map a Shopify order (REST or webhook payload) to the shared shape."""
    order_id = as_text(raw.get("id"))
    if order_id is None:
        return None

    customer = as_mapping(raw.get("customer"))
    name = " ".join(
        part for part in (as_text(customer.get("first_name")), as_text(customer.get("last_name"))) if part
    ) or None

    return NormalizedOrder(
        external_order_id=order_id,
        status=map_shopify_status(raw.get("financial_status")),
        customer_name=name,
        customer_email=as_text(customer.get("email")) or as_text(raw.get("email")),
        total_amount=to_decimal(raw.get("total_price")),
        currency=as_text(raw.get("currency")) or default_currency,
        items_count=len(as_list(raw.get("line_items"))),
        order_date=parse_datetime(raw.get("created_at")) or utcnow(),
        raw_data=raw,
    )


class ShopifyAdapter(OrderPlatformAdapter):
    platform = PlatformEnum.shopify
    display_name = "Shopify"
    log_tag = "[SHOPIFY_ADAPTER]"
    required_fields = ("access_token", "external_store_id")

    async def fetch(self, db: Session, integration: Integration, client: httpx.AsyncClient) -> List[Dict[str, Any]]:
        access_token = self.credential(integration, "access_token")
        host = shop_host(integration.external_store_id)
        url: Optional[str] = f"https://{host}/admin/api/{self.settings.SHOPIFY_API_VERSION}/orders.json"
        params: Optional[Dict[str, Any]] = {"status": "any", "limit": PAGE_LIMIT}
        headers = {"X-Shopify-Access-Token": access_token, "Content-Type": "application/json"}

        orders: List[Dict[str, Any]] = []
        page = 0
        while url:
            page += 1
            data, response = await self.request_json(client, "GET", url, params=params, headers=headers)
            batch = data.get("orders") or []
            orders.extend(batch)
            logger.debug("%s Page %d: %d orders", self.log_tag, page, len(batch))

            # Cursor URL already carries page_info and limit
            url = response.links.get("next", {}).get("url")
            params = None

        return orders

    def normalize(self, raw: Dict[str, Any], integration: Integration) -> Optional[NormalizedOrder]:
        return normalize_shopify_order(raw, self.default_currency)

    def on_failure(self, db: Session, integration: Integration, exc: Exception) -> None:
        if isinstance(exc, PlatformAuthError) and exc.status_code == 401:
            logger.warning("%s Token rejected for org %s, disconnecting", self.log_tag, integration.organization_id)
            disconnect_integration(db, integration, error_message=str(exc))

"""Cartpanda orders adapter.

Orders come back under `data` (paginated envelope) or `orders` depending
on the account's API revision; the next page URL is `next_page_url` or
`links.next`.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from commerce_hub.models import Integration, PlatformEnum
from commerce_hub.services.adapters.base import OrderPlatformAdapter
from commerce_hub.services.order_status import map_cartpanda_status
from commerce_hub.services.records import NormalizedOrder
from commerce_hub.utils.parsing import as_list, as_mapping, as_text, parse_datetime, to_decimal, utcnow

logger = logging.getLogger(__name__)

CARTPANDA_API_URL = "https://api.cartpanda.com/v1"


def _extract_orders(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, list):
        return payload
    data = payload.get("data")
    if isinstance(data, dict):
        # {"data": {"data": [...], "next_page_url": ...}}
        return data.get("data") or []
    return data or payload.get("orders") or []


def _next_page_url(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    envelope = payload.get("data") if isinstance(payload.get("data"), dict) else payload
    links = envelope.get("links") if isinstance(envelope.get("links"), dict) else {}
    return envelope.get("next_page_url") or links.get("next")


class CartpandaAdapter(OrderPlatformAdapter):
    platform = PlatformEnum.cartpanda
    display_name = "Cartpanda"
    log_tag = "[CARTPANDA_ADAPTER]"
    required_fields = ("api_key", "external_store_id")

    async def fetch(self, db: Session, integration: Integration, client: httpx.AsyncClient) -> List[Dict[str, Any]]:
        api_key = self.credential(integration, "api_key")
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        url: Optional[str] = f"{CARTPANDA_API_URL}/stores/{integration.external_store_id}/orders"

        orders: List[Dict[str, Any]] = []
        seen_urls = set()
        while url and url not in seen_urls:
            seen_urls.add(url)
            payload, _ = await self.request_json(client, "GET", url, headers=headers)
            orders.extend(_extract_orders(payload))
            url = _next_page_url(payload)

        return orders

    def normalize(self, raw: Dict[str, Any], integration: Integration) -> Optional[NormalizedOrder]:
        order_id = as_text(raw.get("id"))
        if order_id is None:
            return None

        customer = as_mapping(raw.get("customer"))
        return NormalizedOrder(
            external_order_id=order_id,
            status=map_cartpanda_status(raw.get("status")),
            customer_name=as_text(customer.get("name")),
            customer_email=as_text(customer.get("email")),
            total_amount=to_decimal(raw.get("total")),
            currency=as_text(raw.get("currency")) or self.default_currency,
            items_count=len(as_list(raw.get("items"))),
            order_date=parse_datetime(raw.get("created_at")) or utcnow(),
            raw_data=raw,
        )

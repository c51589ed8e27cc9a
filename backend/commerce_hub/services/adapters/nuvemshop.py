"""Nuvemshop (Tiendanube) orders adapter.

WHAT:
    Pages through `/v1/{store_id}/orders` 200 at a time until a short page,
    normalizes payment_status and upserts into `orders`.

NOTES:
    - Auth header is `Authentication: bearer <token>` (not Authorization).
    - The API requires an identifying User-Agent.
    - Requesting a page past the last one returns 404; treated as the end.

REFERENCES:
    - https://tiendanube.github.io/api-documentation/resources/order
    - commerce_hub/routers/nuvemshop_webhooks.py
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from commerce_hub.models import Integration, PlatformEnum
from commerce_hub.services.adapters.base import OrderPlatformAdapter
from commerce_hub.services.errors import PlatformAPIError
from commerce_hub.services.order_status import map_nuvemshop_status
from commerce_hub.services.records import NormalizedOrder
from commerce_hub.utils.parsing import as_list, as_mapping, as_text, parse_datetime, to_decimal, utcnow

logger = logging.getLogger(__name__)

NUVEMSHOP_API_URL = "https://api.nuvemshop.com.br/v1"
PAGE_SIZE = 200


def nuvemshop_headers(access_token: str, user_agent: str) -> Dict[str, str]:
    return {
        "Authentication": f"bearer {access_token}",
        "User-Agent": user_agent,
        "Content-Type": "application/json",
    }


def normalize_nuvemshop_order(raw: Dict[str, Any], default_currency: str) -> Optional[NormalizedOrder]:
    order_id = as_text(raw.get("id"))
    if order_id is None:
        return None

    customer = as_mapping(raw.get("customer"))
    return NormalizedOrder(
        external_order_id=order_id,
        status=map_nuvemshop_status(raw.get("payment_status")),
        customer_name=as_text(customer.get("name")),
        customer_email=as_text(customer.get("email")) or as_text(raw.get("contact_email")),
        total_amount=to_decimal(raw.get("total")),
        currency=as_text(raw.get("currency")) or default_currency,
        items_count=len(as_list(raw.get("products"))),
        order_date=parse_datetime(raw.get("created_at")) or utcnow(),
        raw_data=raw,
    )


async def fetch_nuvemshop_order(
    client: httpx.AsyncClient,
    store_id: str,
    access_token: str,
    order_id: str,
    user_agent: str,
) -> Dict[str, Any]:
    """Fetch one order; webhooks only carry the id."""
    response = await client.get(
        f"{NUVEMSHOP_API_URL}/{store_id}/orders/{order_id}",
        headers=nuvemshop_headers(access_token, user_agent),
    )
    if response.status_code != 200:
        raise PlatformAPIError(
            f"Nuvemshop API error: {response.status_code}",
            status_code=response.status_code,
            platform=PlatformEnum.nuvemshop.value,
        )
    try:
        order = response.json()
    except ValueError:
        order = None
    if not isinstance(order, dict):
        raise PlatformAPIError(
            "Nuvemshop API returned an invalid order body",
            status_code=response.status_code,
            platform=PlatformEnum.nuvemshop.value,
        )
    return order


class NuvemshopAdapter(OrderPlatformAdapter):
    platform = PlatformEnum.nuvemshop
    display_name = "Nuvemshop"
    log_tag = "[NUVEMSHOP_ADAPTER]"
    required_fields = ("access_token", "external_store_id")

    async def fetch(self, db: Session, integration: Integration, client: httpx.AsyncClient) -> List[Dict[str, Any]]:
        access_token = self.credential(integration, "access_token")
        headers = nuvemshop_headers(access_token, self.settings.NUVEMSHOP_USER_AGENT)
        url = f"{NUVEMSHOP_API_URL}/{integration.external_store_id}/orders"

        orders: List[Dict[str, Any]] = []
        page = 1
        while True:
            try:
                batch, _ = await self.request_json(
                    client, "GET", url,
                    params={"per_page": PAGE_SIZE, "page": page},
                    headers=headers,
                )
            except PlatformAPIError as exc:
                if exc.status_code == 404 and page > 1:
                    break
                raise

            batch = batch or []
            orders.extend(batch)
            if len(batch) < PAGE_SIZE:
                break
            page += 1

        return orders

    def normalize(self, raw: Dict[str, Any], integration: Integration) -> Optional[NormalizedOrder]:
        return normalize_nuvemshop_order(raw, self.default_currency)

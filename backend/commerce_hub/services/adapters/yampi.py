"""Yampi (Dooki API) orders adapter.

Yampi authenticates with a token/secret pair and wraps nested resources
in `{"data": ...}`: the status name lives at `status.data.name`, the
customer at `customer.data`, items at `items.data`, and `created_at` is
`{"date": "2024-01-15 10:30:00.000000", ...}`.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from commerce_hub.models import Integration, PlatformEnum
from commerce_hub.services.adapters.base import OrderPlatformAdapter
from commerce_hub.services.order_status import map_yampi_status
from commerce_hub.services.records import NormalizedOrder
from commerce_hub.utils.parsing import as_list, as_mapping, as_text, parse_datetime, to_decimal, utcnow

logger = logging.getLogger(__name__)

YAMPI_API_URL = "https://api.dooki.com.br/v2"
PAGE_SIZE = 100


def _unwrap(value: Any) -> Any:
    if isinstance(value, dict) and "data" in value:
        return value["data"]
    return value


class YampiAdapter(OrderPlatformAdapter):
    platform = PlatformEnum.yampi
    display_name = "Yampi"
    log_tag = "[YAMPI_ADAPTER]"
    required_fields = ("api_key", "api_secret", "external_store_id")

    async def fetch(self, db: Session, integration: Integration, client: httpx.AsyncClient) -> List[Dict[str, Any]]:
        headers = {
            "User-Token": self.credential(integration, "api_key"),
            "User-Secret-Key": self.credential(integration, "api_secret"),
            "Content-Type": "application/json",
        }
        url = f"{YAMPI_API_URL}/{integration.external_store_id}/orders"

        orders: List[Dict[str, Any]] = []
        page = 1
        while True:
            payload, _ = await self.request_json(
                client, "GET", url,
                params={"limit": PAGE_SIZE, "page": page, "sort": "created_at:desc"},
                headers=headers,
            )
            batch = payload.get("data") or []
            orders.extend(batch)

            pagination = (payload.get("meta") or {}).get("pagination") or {}
            total_pages = pagination.get("total_pages") or 1
            if page >= total_pages or not batch:
                break
            page += 1

        return orders

    def normalize(self, raw: Dict[str, Any], integration: Integration) -> Optional[NormalizedOrder]:
        order_id = as_text(raw.get("id"))
        if order_id is None:
            return None

        status = _unwrap(raw.get("status"))
        customer = as_mapping(_unwrap(raw.get("customer")))
        items = as_list(_unwrap(raw.get("items")))
        created_at = raw.get("created_at")
        if isinstance(created_at, dict):
            created_at = created_at.get("date")

        return NormalizedOrder(
            external_order_id=order_id,
            status=map_yampi_status(status.get("name") if isinstance(status, dict) else status),
            customer_name=as_text(customer.get("name")),
            customer_email=as_text(customer.get("email")),
            total_amount=to_decimal(raw.get("value_total")),
            currency=self.default_currency,
            items_count=len(items),
            order_date=parse_datetime(created_at) or utcnow(),
            raw_data=raw,
        )

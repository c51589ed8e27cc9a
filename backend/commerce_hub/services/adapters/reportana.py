"""Reportana adapter.

Reportana is push-only: abandoned / recovered checkout events arrive via
POST /webhooks/reportana. A "sync" validates the connection and reports
how many events are stored for the organization, so Reportana still shows
up in the ledger and the orchestrator summary like every other platform.
"""

import logging
from typing import Any, Dict

import httpx
from sqlalchemy import func
from sqlalchemy.orm import Session

from commerce_hub.models import Integration, PlatformEnum, ReportanaEvent
from commerce_hub.services.adapters.base import PlatformAdapter
from commerce_hub.services.records import NormalizedReportanaEvent
from commerce_hub.utils.parsing import as_text, parse_datetime, to_decimal, utcnow

logger = logging.getLogger(__name__)

REPORTANA_EVENT_TYPES = frozenset({"abandoned_checkout", "checkout_recovered"})


def pick_field(payload: Dict[str, Any], *keys: str) -> Any:
    """First non-empty value among snake_case / camelCase spellings."""
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None


def normalize_reportana_event(payload: Dict[str, Any], default_currency: str) -> NormalizedReportanaEvent:
    """Map a webhook payload. Caller has already validated event_type / reference_id."""
    line_items = pick_field(payload, "line_items", "lineItems") or []
    return NormalizedReportanaEvent(
        event_type=as_text(pick_field(payload, "event_type", "eventType")),
        reference_id=as_text(pick_field(payload, "reference_id", "referenceId")),
        customer_name=as_text(pick_field(payload, "customer_name", "customerName")),
        customer_email=as_text(pick_field(payload, "customer_email", "customerEmail")),
        customer_phone=as_text(pick_field(payload, "customer_phone", "customerPhone")),
        total_price=to_decimal(pick_field(payload, "total_price", "totalPrice")),
        currency=as_text(pick_field(payload, "currency")) or default_currency,
        line_items=line_items if isinstance(line_items, list) else [line_items],
        event_date=parse_datetime(pick_field(payload, "event_date", "eventDate", "created_at", "createdAt")) or utcnow(),
        raw_data=payload,
    )


class ReportanaAdapter(PlatformAdapter):
    platform = PlatformEnum.reportana
    display_name = "Reportana"
    log_tag = "[REPORTANA_ADAPTER]"
    required_fields = ("api_key",)

    async def run(self, db: Session, integration: Integration, client: httpx.AsyncClient) -> int:
        count = (
            db.query(func.count(ReportanaEvent.id))
            .filter(ReportanaEvent.organization_id == integration.organization_id)
            .scalar()
        )
        logger.info("%s Org %s has %d stored events", self.log_tag, integration.organization_id, count)
        return int(count or 0)

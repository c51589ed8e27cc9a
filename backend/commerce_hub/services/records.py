"""Normalized record shapes and idempotent upserts.

WHAT:
    - `NormalizedOrder`, `NormalizedAdMetric`, `NormalizedReportanaEvent`:
      the platform-neutral shapes every adapter and webhook produces.
    - `upsert_order`, `upsert_ad_metric`, `upsert_reportana_event`: single
      statement INSERT ... ON CONFLICT DO UPDATE keyed by the natural key.

WHY:
    Pull syncs, manual syncs and webhooks can all write the same record
    concurrently. Conflict-target upserts make them converge to one row
    (last writer wins) without locks. Natural key columns and the first
    observed order date are never overwritten.

REFERENCES:
    - commerce_hub/models.py (unique constraints / partial indexes)
    - https://docs.sqlalchemy.org/en/20/dialects/postgresql.html#insert-on-conflict-upsert
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from commerce_hub.models import AdMetric, Order, PlatformEnum, ReportanaEvent
from commerce_hub.utils.parsing import utcnow

logger = logging.getLogger(__name__)


# =============================================================================
# NORMALIZED SHAPES
# =============================================================================

@dataclass
class NormalizedOrder:
    external_order_id: str
    status: str
    customer_name: Optional[str]
    customer_email: Optional[str]
    total_amount: Decimal
    currency: str
    items_count: int
    order_date: datetime
    raw_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class NormalizedAdMetric:
    campaign_id: str
    date: date
    campaign_name: Optional[str] = None
    ad_set_id: Optional[str] = None
    ad_set_name: Optional[str] = None
    ad_id: Optional[str] = None
    ad_name: Optional[str] = None
    thumbnail_url: Optional[str] = None
    video_url: Optional[str] = None
    impressions: int = 0
    reach: int = 0
    clicks: int = 0
    spend: Decimal = Decimal("0")
    conversions: int = 0
    revenue: Decimal = Decimal("0")
    add_to_cart: int = 0
    initiate_checkout: int = 0
    currency: str = "BRL"
    raw_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class NormalizedReportanaEvent:
    event_type: str
    reference_id: str
    customer_name: Optional[str]
    customer_email: Optional[str]
    customer_phone: Optional[str]
    total_price: Decimal
    currency: str
    line_items: List[Any]
    event_date: datetime
    raw_data: Dict[str, Any] = field(default_factory=dict)


# =============================================================================
# UPSERTS
# =============================================================================

def _insert_for(db: Session, model):
    """Dialect-specific INSERT supporting ON CONFLICT (PostgreSQL and SQLite)."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise RuntimeError(f"Upserts are not supported on dialect '{dialect}'")


def upsert_order(
    db: Session,
    organization_id: UUID,
    platform: PlatformEnum,
    order: NormalizedOrder,
    *,
    commit: bool = True,
) -> None:
    """Insert or update one order keyed by (organization, platform, external id).

    On conflict only mutable fields change; order_date keeps the value of
    the first insert.
    """
    now = utcnow()
    stmt = _insert_for(db, Order).values(
        organization_id=organization_id,
        platform=platform,
        external_order_id=order.external_order_id,
        status=order.status,
        customer_name=order.customer_name,
        customer_email=order.customer_email,
        total_amount=order.total_amount,
        currency=order.currency,
        items_count=order.items_count,
        order_date=order.order_date,
        raw_data=order.raw_data,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["organization_id", "platform", "external_order_id"],
        set_={
            "status": stmt.excluded.status,
            "customer_name": stmt.excluded.customer_name,
            "customer_email": stmt.excluded.customer_email,
            "total_amount": stmt.excluded.total_amount,
            "currency": stmt.excluded.currency,
            "items_count": stmt.excluded.items_count,
            "raw_data": stmt.excluded.raw_data,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    db.execute(stmt)
    if commit:
        db.commit()


def upsert_ad_metric(
    db: Session,
    organization_id: UUID,
    platform: PlatformEnum,
    metric: NormalizedAdMetric,
    *,
    commit: bool = True,
) -> None:
    """Insert or update one daily metric row.

    Ad-level rows conflict on (org, platform, campaign, ad, date);
    campaign-level rows (ad_id None) on (org, platform, campaign, date).
    """
    now = utcnow()
    stmt = _insert_for(db, AdMetric).values(
        organization_id=organization_id,
        platform=platform,
        campaign_id=metric.campaign_id,
        campaign_name=metric.campaign_name,
        ad_set_id=metric.ad_set_id,
        ad_set_name=metric.ad_set_name,
        ad_id=metric.ad_id,
        ad_name=metric.ad_name,
        thumbnail_url=metric.thumbnail_url,
        video_url=metric.video_url,
        date=metric.date,
        impressions=metric.impressions,
        reach=metric.reach,
        clicks=metric.clicks,
        spend=metric.spend,
        conversions=metric.conversions,
        revenue=metric.revenue,
        add_to_cart=metric.add_to_cart,
        initiate_checkout=metric.initiate_checkout,
        currency=metric.currency,
        raw_data=metric.raw_data,
        created_at=now,
        updated_at=now,
    )

    if metric.ad_id is not None:
        index_elements = ["organization_id", "platform", "campaign_id", "ad_id", "date"]
        index_where = AdMetric.ad_id.isnot(None)
    else:
        index_elements = ["organization_id", "platform", "campaign_id", "date"]
        index_where = AdMetric.ad_id.is_(None)

    stmt = stmt.on_conflict_do_update(
        index_elements=index_elements,
        index_where=index_where,
        set_={
            "campaign_name": stmt.excluded.campaign_name,
            "ad_set_id": stmt.excluded.ad_set_id,
            "ad_set_name": stmt.excluded.ad_set_name,
            "ad_name": stmt.excluded.ad_name,
            "thumbnail_url": stmt.excluded.thumbnail_url,
            "video_url": stmt.excluded.video_url,
            "impressions": stmt.excluded.impressions,
            "reach": stmt.excluded.reach,
            "clicks": stmt.excluded.clicks,
            "spend": stmt.excluded.spend,
            "conversions": stmt.excluded.conversions,
            "revenue": stmt.excluded.revenue,
            "add_to_cart": stmt.excluded.add_to_cart,
            "initiate_checkout": stmt.excluded.initiate_checkout,
            "currency": stmt.excluded.currency,
            "raw_data": stmt.excluded.raw_data,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    db.execute(stmt)
    if commit:
        db.commit()


def upsert_reportana_event(
    db: Session,
    organization_id: UUID,
    event: NormalizedReportanaEvent,
    *,
    commit: bool = True,
) -> None:
    """Insert or update one checkout event keyed by (organization, type, reference)."""
    stmt = _insert_for(db, ReportanaEvent).values(
        organization_id=organization_id,
        event_type=event.event_type,
        reference_id=event.reference_id,
        customer_name=event.customer_name,
        customer_email=event.customer_email,
        customer_phone=event.customer_phone,
        total_price=event.total_price,
        currency=event.currency,
        line_items=event.line_items,
        raw_data=event.raw_data,
        event_date=event.event_date,
        created_at=utcnow(),
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["organization_id", "event_type", "reference_id"],
        set_={
            "customer_name": stmt.excluded.customer_name,
            "customer_email": stmt.excluded.customer_email,
            "customer_phone": stmt.excluded.customer_phone,
            "total_price": stmt.excluded.total_price,
            "currency": stmt.excluded.currency,
            "line_items": stmt.excluded.line_items,
            "raw_data": stmt.excluded.raw_data,
            "event_date": stmt.excluded.event_date,
        },
    )
    db.execute(stmt)
    if commit:
        db.commit()

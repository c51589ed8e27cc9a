"""Facebook Ads insights adapter (Graph API over httpx).

WHAT:
    1. Best-effort long-lived token exchange when the token expires within 24h.
    2. Ad-level daily insights for the last SYNC_LOOKBACK_DAYS, following
       `paging.next`.
    3. Second pass over the distinct ad ids (batches of 50) to attach
       creative thumbnails and video source URLs; a failed batch is skipped.
    4. Upsert one AdMetric row per (campaign, ad, day).

WHY:
    - Purchases are reported under either `purchase` or
      `offsite_conversion.fb_pixel_purchase` depending on the pixel setup;
      the first matching entry wins, absent means 0.
    - A refresh failure must not block the sync: the current token is
      usually still valid for a few more hours.

REFERENCES:
    - https://developers.facebook.com/docs/marketing-api/insights
    - https://developers.facebook.com/docs/graph-api/batch-requests (ids= lookups)
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx
from sqlalchemy.orm import Session

from commerce_hub.models import Integration, PlatformEnum
from commerce_hub.services.adapters.base import AdMetricPlatformAdapter, chunked
from commerce_hub.services.records import NormalizedAdMetric
from commerce_hub.services.token_service import (
    FACEBOOK_REFRESH_WINDOW,
    refresh_facebook_token,
    token_expires_within,
)
from commerce_hub.utils.parsing import as_list, as_mapping, as_text, to_decimal, to_int, utcnow

logger = logging.getLogger(__name__)

PURCHASE_ACTION_TYPES = ("purchase", "offsite_conversion.fb_pixel_purchase")
ADD_TO_CART_ACTION_TYPES = ("add_to_cart", "offsite_conversion.fb_pixel_add_to_cart")
INITIATE_CHECKOUT_ACTION_TYPES = ("initiate_checkout", "offsite_conversion.fb_pixel_initiate_checkout")

INSIGHT_FIELDS = ",".join([
    "campaign_id",
    "campaign_name",
    "adset_id",
    "adset_name",
    "ad_id",
    "ad_name",
    "impressions",
    "reach",
    "clicks",
    "spend",
    "actions",
    "action_values",
    "account_currency",
    "date_start",
])
CREATIVE_FIELDS = "creative{thumbnail_url,video_id,object_story_spec{video_data{video_id}}}"
CREATIVE_BATCH_SIZE = 50
INSIGHTS_PAGE_LIMIT = 500


# =============================================================================
# ACTION PARSING
# =============================================================================

def _first_action_value(entries: Optional[Iterable[Dict[str, Any]]], action_types: Tuple[str, ...]) -> Optional[str]:
    for entry in as_list(entries):
        entry = as_mapping(entry)
        if as_text(entry.get("action_type")) in action_types:
            return entry.get("value")
    return None


def extract_purchase_metrics(insight: Dict[str, Any]) -> Tuple[int, Decimal]:
    """Return (conversions, revenue) from an insight's actions / action_values."""
    conversions = to_int(_first_action_value(insight.get("actions"), PURCHASE_ACTION_TYPES))
    revenue = to_decimal(_first_action_value(insight.get("action_values"), PURCHASE_ACTION_TYPES))
    return conversions, revenue


def extract_funnel_metrics(insight: Dict[str, Any]) -> Tuple[int, int]:
    """Return (add_to_cart, initiate_checkout) counts."""
    actions = insight.get("actions")
    return (
        to_int(_first_action_value(actions, ADD_TO_CART_ACTION_TYPES)),
        to_int(_first_action_value(actions, INITIATE_CHECKOUT_ACTION_TYPES)),
    )


def _creative_video_id(creative: Dict[str, Any]) -> Optional[str]:
    video_id = as_text(creative.get("video_id"))
    if video_id:
        return video_id
    video_data = as_mapping(as_mapping(creative.get("object_story_spec")).get("video_data"))
    return as_text(video_data.get("video_id"))


# =============================================================================
# ADAPTER
# =============================================================================

class FacebookAdsAdapter(AdMetricPlatformAdapter):
    platform = PlatformEnum.facebook_ads
    display_name = "Facebook Ads"
    log_tag = "[FACEBOOK_ADS_ADAPTER]"
    required_fields = ("access_token", "external_account_id")

    @property
    def graph_url(self) -> str:
        return f"https://graph.facebook.com/{self.settings.FACEBOOK_GRAPH_VERSION}"

    async def _access_token(self, db: Session, integration: Integration, client: httpx.AsyncClient) -> str:
        if token_expires_within(integration, FACEBOOK_REFRESH_WINDOW):
            try:
                return await refresh_facebook_token(db, integration, self.cipher, self.settings, client)
            except Exception as exc:
                db.rollback()
                logger.warning("%s Token refresh failed for org %s, using current token: %s", self.log_tag, integration.organization_id, exc)
        return self.credential(integration, "access_token")

    async def fetch(self, db: Session, integration: Integration, client: httpx.AsyncClient) -> List[Dict[str, Any]]:
        access_token = await self._access_token(db, integration, client)
        account_id = integration.external_account_id
        if not account_id.startswith("act_"):
            account_id = f"act_{account_id}"

        until = utcnow().date()
        since = until - timedelta(days=self.settings.SYNC_LOOKBACK_DAYS)
        url: Optional[str] = f"{self.graph_url}/{account_id}/insights"
        params: Optional[Dict[str, Any]] = {
            "access_token": access_token,
            "level": "ad",
            "fields": INSIGHT_FIELDS,
            "time_range": f'{{"since":"{since.isoformat()}","until":"{until.isoformat()}"}}',
            "time_increment": 1,
            "limit": INSIGHTS_PAGE_LIMIT,
        }

        insights: List[Dict[str, Any]] = []
        while url:
            payload, _ = await self.request_json(client, "GET", url, params=params)
            payload = as_mapping(payload)
            insights.extend(row for row in as_list(payload.get("data")) if isinstance(row, dict))
            # paging.next already embeds the token and cursor
            url = as_text(as_mapping(payload.get("paging")).get("next"))
            params = None

        await self._attach_creatives(client, access_token, insights)
        return insights

    async def _attach_creatives(self, client: httpx.AsyncClient, access_token: str, insights: List[Dict[str, Any]]) -> None:
        ad_ids = sorted({ad_id for ad_id in (as_text(row.get("ad_id")) for row in insights) if ad_id})
        if not ad_ids:
            return

        creatives: Dict[str, Dict[str, Any]] = {}
        for batch in chunked(ad_ids, CREATIVE_BATCH_SIZE):
            data = await self._lookup_ids(client, access_token, batch, CREATIVE_FIELDS)
            for ad_id, node in data.items():
                creatives[ad_id] = as_mapping(as_mapping(node).get("creative"))

        video_ids = sorted({vid for vid in (_creative_video_id(c) for c in creatives.values()) if vid})
        video_sources: Dict[str, str] = {}
        for batch in chunked(video_ids, CREATIVE_BATCH_SIZE):
            data = await self._lookup_ids(client, access_token, batch, "source")
            for video_id, node in data.items():
                source = as_text(as_mapping(node).get("source"))
                if source:
                    video_sources[video_id] = source

        for row in insights:
            creative = creatives.get(as_text(row.get("ad_id")) or "")
            if not creative:
                continue
            row["_thumbnail_url"] = creative.get("thumbnail_url")
            video_id = _creative_video_id(creative)
            if video_id and video_id in video_sources:
                row["_video_url"] = video_sources[video_id]

    async def _lookup_ids(self, client: httpx.AsyncClient, access_token: str, ids: List[str], fields: str) -> Dict[str, Dict[str, Any]]:
        """Graph `?ids=` lookup; a failed batch returns {} and is logged."""
        try:
            payload, _ = await self.request_json(
                client, "GET", f"{self.graph_url}/",
                params={"ids": ",".join(ids), "fields": fields, "access_token": access_token},
            )
        except Exception as exc:
            logger.warning("%s Creative lookup failed for %d ids: %s", self.log_tag, len(ids), exc)
            return {}
        return payload if isinstance(payload, dict) else {}

    def normalize(self, raw: Dict[str, Any], integration: Integration) -> Optional[NormalizedAdMetric]:
        campaign_id = as_text(raw.get("campaign_id"))
        try:
            day = date.fromisoformat(as_text(raw.get("date_start")) or "")
        except ValueError:
            day = None
        if not campaign_id or day is None:
            return None

        conversions, revenue = extract_purchase_metrics(raw)
        add_to_cart, initiate_checkout = extract_funnel_metrics(raw)

        return NormalizedAdMetric(
            campaign_id=campaign_id,
            campaign_name=as_text(raw.get("campaign_name")),
            ad_set_id=as_text(raw.get("adset_id")),
            ad_set_name=as_text(raw.get("adset_name")),
            ad_id=as_text(raw.get("ad_id")),
            ad_name=as_text(raw.get("ad_name")),
            thumbnail_url=as_text(raw.get("_thumbnail_url")),
            video_url=raw.get("_video_url"),
            date=day,
            impressions=to_int(raw.get("impressions")),
            reach=to_int(raw.get("reach")),
            clicks=to_int(raw.get("clicks")),
            spend=to_decimal(raw.get("spend")),
            conversions=conversions,
            revenue=revenue,
            add_to_cart=add_to_cart,
            initiate_checkout=initiate_checkout,
            currency=as_text(raw.get("account_currency")) or self.settings.DEFAULT_CURRENCY,
            raw_data={key: value for key, value in raw.items() if not key.startswith("_")},
        )

"""Google Ads campaign metrics adapter (REST searchStream).

WHAT:
    Refreshes the OAuth access token when it has expired, runs one GAQL
    query at ad group level over the lookback window and upserts one
    campaign-level AdMetric row per campaign and day (ad_id NULL).

WHY:
    - searchStream returns every row in one response (a JSON array of
      batches), so there is no pagination to drain.
    - Unlike Facebook, a failed refresh fails the sync: an expired Google
      token is rejected immediately.
    - cost_micros / 1e6 gives spend in account currency.
    - Ad group rows of the same campaign and day are summed before the
      upsert; the ad set columns are only filled when a single ad group
      ran that day.

REFERENCES:
    - https://developers.google.com/google-ads/api/rest/reference/rest/v16/customers.googleAds/searchStream
    - https://developers.google.com/google-ads/api/docs/query/overview
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import httpx
from sqlalchemy.orm import Session

from commerce_hub.models import Integration, PlatformEnum
from commerce_hub.services.adapters.base import AdMetricPlatformAdapter
from commerce_hub.services.errors import CredentialConfigError
from commerce_hub.services.records import NormalizedAdMetric
from commerce_hub.services.token_service import is_token_expired, refresh_google_token
from commerce_hub.utils.parsing import as_list, as_mapping, as_text, to_decimal, to_int, utcnow

logger = logging.getLogger(__name__)

GOOGLE_ADS_API_URL = "https://googleads.googleapis.com"
MICROS = Decimal(1_000_000)


def build_ad_group_query(since: date, until: date) -> str:
    return f"""
        SELECT
            campaign.id,
            campaign.name,
            ad_group.id,
            ad_group.name,
            segments.date,
            metrics.impressions,
            metrics.clicks,
            metrics.cost_micros,
            metrics.conversions,
            metrics.conversions_value
        FROM ad_group
        WHERE segments.date BETWEEN '{since.isoformat()}' AND '{until.isoformat()}'
        ORDER BY segments.date DESC
    """


SUMMED_METRICS = ("impressions", "clicks", "costMicros", "conversions", "conversionsValue")


def merge_ad_group_rows(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Collapse ad group rows into one row per (campaign, day)."""
    merged: Dict[Tuple[str, str], Dict[str, Any]] = {}
    for row in rows:
        campaign = as_mapping(row.get("campaign"))
        segments = as_mapping(row.get("segments"))
        key = (as_text(campaign.get("id")), as_text(segments.get("date")))
        if None in key:
            continue
        try:
            date.fromisoformat(key[1])
        except ValueError:
            logger.warning("[GOOGLE_ADS_ADAPTER] Skipping row with invalid date %r", key[1])
            continue

        metrics = as_mapping(row.get("metrics"))
        ad_group = as_mapping(row.get("adGroup"))
        entry = merged.get(key)
        if entry is None:
            merged[key] = {
                "campaign": campaign,
                "segments": segments,
                "metrics": {name: to_decimal(metrics.get(name)) for name in SUMMED_METRICS},
                "adGroups": [ad_group],
            }
            continue
        for name in SUMMED_METRICS:
            entry["metrics"][name] += to_decimal(metrics.get(name))
        entry["adGroups"].append(ad_group)
    return list(merged.values())


class GoogleAdsAdapter(AdMetricPlatformAdapter):
    platform = PlatformEnum.google_ads
    display_name = "Google Ads"
    log_tag = "[GOOGLE_ADS_ADAPTER]"
    required_fields = ("access_token", "external_account_id")

    async def fetch(self, db: Session, integration: Integration, client: httpx.AsyncClient) -> List[Dict[str, Any]]:
        developer_token = self.settings.GOOGLE_ADS_DEVELOPER_TOKEN
        if not developer_token:
            raise CredentialConfigError("Google Ads developer token not configured")

        if is_token_expired(integration):
            access_token = await refresh_google_token(db, integration, self.cipher, self.settings, client)
        else:
            access_token = self.credential(integration, "access_token")

        customer_id = integration.external_account_id.replace("-", "")
        headers = {
            "Authorization": f"Bearer {access_token}",
            "developer-token": developer_token,
            "Content-Type": "application/json",
        }
        login_customer_id = (integration.extra_metadata or {}).get("login_customer_id")
        if login_customer_id:
            headers["login-customer-id"] = str(login_customer_id).replace("-", "")

        until = utcnow().date()
        since = until - timedelta(days=self.settings.SYNC_LOOKBACK_DAYS)
        url = (
            f"{GOOGLE_ADS_API_URL}/{self.settings.GOOGLE_ADS_API_VERSION}"
            f"/customers/{customer_id}/googleAds:searchStream"
        )
        payload, _ = await self.request_json(
            client, "POST", url,
            headers=headers,
            json={"query": build_ad_group_query(since, until)},
        )

        batches = payload if isinstance(payload, list) else [payload]
        rows: List[Dict[str, Any]] = []
        for batch in batches:
            rows.extend(row for row in as_list(as_mapping(batch).get("results")) if isinstance(row, dict))
        return merge_ad_group_rows(rows)

    def normalize(self, raw: Dict[str, Any], integration: Integration) -> Optional[NormalizedAdMetric]:
        campaign = raw["campaign"]
        metrics = raw["metrics"]
        ad_group_ids = {as_text(group.get("id")) for group in raw["adGroups"]}
        single_group = raw["adGroups"][0] if len(ad_group_ids) == 1 else {}

        return NormalizedAdMetric(
            campaign_id=as_text(campaign["id"]),
            campaign_name=as_text(campaign.get("name")),
            ad_set_id=as_text(single_group.get("id")),
            ad_set_name=as_text(single_group.get("name")),
            date=date.fromisoformat(raw["segments"]["date"]),
            impressions=to_int(metrics["impressions"]),
            clicks=to_int(metrics["clicks"]),
            spend=(metrics["costMicros"] / MICROS).quantize(Decimal("0.01")),
            conversions=to_int(metrics["conversions"]),
            revenue=metrics["conversionsValue"],
            currency=(integration.extra_metadata or {}).get("currency") or self.settings.DEFAULT_CURRENCY,
            raw_data={
                "campaign": campaign,
                "segments": raw["segments"],
                "metrics": {name: str(value) for name, value in metrics.items()},
                "adGroups": raw["adGroups"],
            },
        )

"""Sync orchestrator: fan out one organization's sync across all platforms.

WHAT:
    - `SyncOrchestrator.sync_all_platforms(org)`: runs every adapter
      concurrently, each wrapped in a bounded retry with exponential
      backoff and a hard timeout, and aggregates the outcomes.
    - `SyncOrchestrator.sync_platform(org, platform)`: one adapter, no retry.
    - `sync_all_organizations(...)`: the scheduled sweep over every
      organization with a CONNECTED integration (sequential per org).

WHY:
    - One broken platform must never hide the others: gathering with
      `return_exceptions=True` turns escaped exceptions into result rows.
    - Only raised exceptions are retried. A returned failure (bad token,
      API 500 already recorded in the ledger) is final for this run.

ARCHITECTURE:
    sync_all_platforms
        ├── _run_with_retry(ShopifyAdapter)   ─┐
        ├── _run_with_retry(CartpandaAdapter)  │  asyncio.gather
        ├── ...                                │  (return_exceptions=True)
        └── _run_with_retry(ReportanaAdapter) ─┘
                │
                ▼
        aggregate: not_connected dropped, failure / exception -> success=False

REFERENCES:
    - commerce_hub/services/adapters/base.py (SyncOutcome)
    - commerce_hub/routers/sync.py, commerce_hub/routers/cron.py
    - commerce_hub/workers/arq_worker.py
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from commerce_hub.config import Settings
from commerce_hub.models import Integration, IntegrationStatusEnum, Organization, PlatformEnum
from commerce_hub.schemas import OrganizationSyncResult, SyncResult
from commerce_hub.security import TokenCipher
from commerce_hub.services.adapters.base import PlatformAdapter, SyncOutcome, SyncOutcomeKind
from commerce_hub.services.adapters.cartpanda import CartpandaAdapter
from commerce_hub.services.adapters.facebook_ads import FacebookAdsAdapter
from commerce_hub.services.adapters.google_ads import GoogleAdsAdapter
from commerce_hub.services.adapters.nuvemshop import NuvemshopAdapter
from commerce_hub.services.adapters.reportana import ReportanaAdapter
from commerce_hub.services.adapters.shopify import ShopifyAdapter
from commerce_hub.services.adapters.yampi import YampiAdapter
from commerce_hub.services.sync_ledger import sweep_stale_syncs
from commerce_hub.telemetry import capture_exception

logger = logging.getLogger(__name__)

# Result order of sync_all_platforms
ADAPTER_ORDER = (
    ShopifyAdapter,
    CartpandaAdapter,
    YampiAdapter,
    NuvemshopAdapter,
    FacebookAdsAdapter,
    GoogleAdsAdapter,
    ReportanaAdapter,
)


class UnknownPlatformError(ValueError):
    """Raised when a single-platform sync names a platform with no adapter."""


def build_adapters(
    session_factory: Callable[[], Session],
    cipher: TokenCipher,
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[PlatformAdapter]:
    return [cls(session_factory, cipher, settings, transport=transport) for cls in ADAPTER_ORDER]


class SyncOrchestrator:
    """Run adapters for one organization with retry, timeout and aggregation."""

    def __init__(
        self,
        adapters: Sequence[PlatformAdapter],
        *,
        max_retries: int = 2,
        base_delay: float = 1.0,
        adapter_timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.adapters = list(adapters)
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.adapter_timeout = adapter_timeout
        self._sleep = sleep
        self._by_platform: Dict[PlatformEnum, PlatformAdapter] = {a.platform: a for a in self.adapters}

    @classmethod
    def from_settings(
        cls,
        session_factory: Callable[[], Session],
        cipher: TokenCipher,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "SyncOrchestrator":
        return cls(
            build_adapters(session_factory, cipher, settings, transport),
            max_retries=settings.SYNC_MAX_RETRIES,
            base_delay=settings.SYNC_RETRY_BASE_DELAY_SECONDS,
            adapter_timeout=settings.ADAPTER_TIMEOUT_SECONDS,
        )

    # ------------------------------------------------------------------

    async def _run_once(self, adapter: PlatformAdapter, organization_id: UUID) -> SyncOutcome:
        if self.adapter_timeout:
            return await asyncio.wait_for(adapter.sync(organization_id), timeout=self.adapter_timeout)
        return await adapter.sync(organization_id)

    async def _run_with_retry(self, adapter: PlatformAdapter, organization_id: UUID) -> SyncOutcome:
        """Retry raised exceptions only; delay = base_delay * 2**attempt."""
        attempt = 0
        while True:
            try:
                return await self._run_once(adapter, organization_id)
            except Exception as exc:
                if attempt >= self.max_retries:
                    raise
                delay = self.base_delay * (2 ** attempt)
                logger.warning(
                    "[SYNC_ORCHESTRATOR] %s raised %r for org %s (attempt %d/%d), retrying in %.1fs",
                    adapter.platform.value, exc, organization_id, attempt + 1, self.max_retries + 1, delay,
                )
                await self._sleep(delay)
                attempt += 1

    async def sync_all_platforms(self, organization_id: UUID) -> List[SyncResult]:
        logger.info("[SYNC_ORCHESTRATOR] Syncing %d platforms for org %s", len(self.adapters), organization_id)
        outcomes = await asyncio.gather(
            *(self._run_with_retry(adapter, organization_id) for adapter in self.adapters),
            return_exceptions=True,
        )

        results: List[SyncResult] = []
        for adapter, outcome in zip(self.adapters, outcomes):
            platform = adapter.platform.value
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.error("[SYNC_ORCHESTRATOR] %s failed after retries for org %s: %r", platform, organization_id, outcome)
                capture_exception(outcome, extra={"organization_id": str(organization_id), "platform": platform})
                results.append(SyncResult(platform=platform, success=False, error=str(outcome) or "Unknown error"))
            elif outcome.kind == SyncOutcomeKind.not_connected:
                continue
            elif outcome.kind == SyncOutcomeKind.failure:
                results.append(SyncResult(platform=platform, success=False, error=outcome.message))
            else:
                results.append(SyncResult(platform=platform, success=True, synced=outcome.synced))

        logger.info(
            "[SYNC_ORCHESTRATOR] Org %s done: %d ok, %d failed",
            organization_id, sum(r.success for r in results), sum(not r.success for r in results),
        )
        return results

    async def sync_platform(self, organization_id: UUID, platform: str) -> SyncOutcome:
        """Run one adapter directly (manual per-platform sync).

        Raises:
            UnknownPlatformError: No adapter for `platform`.
        """
        try:
            key = PlatformEnum(platform.upper())
        except ValueError:
            raise UnknownPlatformError(f"Unknown platform: {platform}")
        adapter = self._by_platform.get(key)
        if adapter is None:
            raise UnknownPlatformError(f"Unknown platform: {platform}")
        try:
            return await self._run_once(adapter, organization_id)
        except asyncio.TimeoutError:
            logger.error("[SYNC_ORCHESTRATOR] %s timed out for org %s", key.value, organization_id)
            return SyncOutcome.failure("Sync timed out")
        except Exception as exc:
            logger.error("[SYNC_ORCHESTRATOR] %s raised %r for org %s", key.value, exc, organization_id)
            capture_exception(exc, extra={"organization_id": str(organization_id), "platform": key.value})
            return SyncOutcome.failure(str(exc) or "Unknown error")


# =============================================================================
# SCHEDULED SWEEP
# =============================================================================

def organizations_with_connected_integrations(db: Session) -> List[Organization]:
    return (
        db.query(Organization)
        .join(Integration, Integration.organization_id == Organization.id)
        .filter(Integration.status == IntegrationStatusEnum.connected)
        .distinct()
        .order_by(Organization.created_at)
        .all()
    )


async def sync_all_organizations(
    session_factory: Callable[[], Session],
    orchestrator: SyncOrchestrator,
    stale_sync_minutes: int,
) -> tuple[int, List[OrganizationSyncResult]]:
    """Close stale ledger rows, then sync every connected organization in turn.

    Returns:
        (stale rows closed, per-organization results)
    """
    db = session_factory()
    try:
        closed = sweep_stale_syncs(db, stale_sync_minutes)
        organizations = [(org.id, org.name) for org in organizations_with_connected_integrations(db)]
    finally:
        db.close()

    logger.info("[CRON_SYNC] Syncing %d organizations", len(organizations))
    results: List[OrganizationSyncResult] = []
    for organization_id, name in organizations:
        try:
            synced = await orchestrator.sync_all_platforms(organization_id)
            results.append(OrganizationSyncResult(organization_id=organization_id, name=name, synced=synced))
        except Exception as exc:
            logger.exception("[CRON_SYNC] Sync failed for org %s", organization_id)
            capture_exception(exc, extra={"organization_id": str(organization_id)})
            results.append(OrganizationSyncResult(organization_id=organization_id, name=name, error="Sync failed"))

    return closed, results

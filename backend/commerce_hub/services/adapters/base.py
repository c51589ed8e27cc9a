"""Platform adapter contract.

WHAT:
    `PlatformAdapter` implements the sync lifecycle shared by all seven
    platforms; subclasses only describe how to fetch and normalize:

        preconditions ──▶ ledger SYNCING ──▶ fetch (all pages)
                                                │
                        ledger SUCCESS ◀── normalize + upsert (commit each)
                              │
                        (any exception) ──▶ rollback ──▶ ledger FAILED

    `SyncOutcome` is the tagged result: success / not_connected / failure.

WHY:
    - Callers branch on `outcome.kind`, not on error text.
    - Platform-side failures are returned, never raised, so one broken
      store cannot abort its siblings; only infrastructure errors (DB down,
      cancellation) propagate to the orchestrator's retry policy.
    - Each adapter opens its own session from the injected factory; no
      session is shared across concurrent adapters.

REFERENCES:
    - commerce_hub/services/sync_ledger.py
    - commerce_hub/services/sync_orchestrator.py
"""

from __future__ import annotations

import asyncio
import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from commerce_hub.config import Settings
from commerce_hub.models import Integration, IntegrationStatusEnum, PlatformEnum
from commerce_hub.security import TokenCipher
from commerce_hub.services.errors import PlatformAPIError, PlatformAuthError
from commerce_hub.services.records import (
    NormalizedAdMetric,
    NormalizedOrder,
    upsert_ad_metric,
    upsert_order,
)
from commerce_hub.services.sync_ledger import begin_sync, complete_sync, fail_sync
from commerce_hub.services.token_service import decrypt_credential

logger = logging.getLogger(__name__)


# =============================================================================
# OUTCOME
# =============================================================================

class SyncOutcomeKind(str, enum.Enum):
    success = "success"
    not_connected = "not_connected"
    failure = "failure"


@dataclass(frozen=True)
class SyncOutcome:
    kind: SyncOutcomeKind
    synced: int = 0
    message: Optional[str] = None

    @classmethod
    def success(cls, synced: int) -> "SyncOutcome":
        return cls(SyncOutcomeKind.success, synced=synced)

    @classmethod
    def not_connected(cls, message: str) -> "SyncOutcome":
        return cls(SyncOutcomeKind.not_connected, message=message)

    @classmethod
    def failure(cls, message: str) -> "SyncOutcome":
        return cls(SyncOutcomeKind.failure, message=message)

    @property
    def ok(self) -> bool:
        return self.kind == SyncOutcomeKind.success

    def as_dict(self) -> Dict[str, Any]:
        """Legacy response shape: {"success": True, "synced": n} or {"error": msg}."""
        if self.ok:
            return {"success": True, "synced": self.synced}
        return {"error": self.message}


# =============================================================================
# ADAPTER
# =============================================================================

class PlatformAdapter(ABC):
    """Sync lifecycle for one platform and one organization.

    Subclasses implement `run`; the base owns preconditions, the ledger and
    failure bookkeeping.
    """

    platform: PlatformEnum
    display_name: str
    log_tag: str = "[ADAPTER]"
    # Integration columns that must be non-null before any network call
    required_fields: Tuple[str, ...] = ()

    def __init__(
        self,
        session_factory: Callable[[], Session],
        cipher: TokenCipher,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session_factory = session_factory
        self.cipher = cipher
        self.settings = settings
        self._transport = transport

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def sync(self, organization_id: UUID) -> SyncOutcome:
        db = self.session_factory()
        try:
            integration = self._load_integration(db, organization_id)
            if not self._is_connected(integration):
                logger.info("%s Skipping org %s: not connected", self.log_tag, organization_id)
                return SyncOutcome.not_connected(f"{self.display_name} not connected")

            log = begin_sync(db, integration)
            try:
                async with self.http_client() as client:
                    synced = await self.run(db, integration, client)
            except asyncio.CancelledError:
                db.rollback()
                fail_sync(db, integration, log, "Sync cancelled")
                raise
            except Exception as exc:
                logger.exception("%s Sync failed for org %s", self.log_tag, organization_id)
                db.rollback()
                self.on_failure(db, integration, exc)
                message = str(exc) or exc.__class__.__name__
                fail_sync(db, integration, log, message)
                return SyncOutcome.failure(message)

            complete_sync(db, integration, log, synced)
            return SyncOutcome.success(synced)
        finally:
            db.close()

    def _load_integration(self, db: Session, organization_id: UUID) -> Optional[Integration]:
        return (
            db.query(Integration)
            .filter(
                Integration.organization_id == organization_id,
                Integration.platform == self.platform,
            )
            .first()
        )

    def _is_connected(self, integration: Optional[Integration]) -> bool:
        if integration is None or integration.status != IntegrationStatusEnum.connected:
            return False
        return all(getattr(integration, field) for field in self.required_fields)

    @abstractmethod
    async def run(self, db: Session, integration: Integration, client: httpx.AsyncClient) -> int:
        """Do the platform work inside the ledger. Returns the record count."""

    def on_failure(self, db: Session, integration: Integration, exc: Exception) -> None:
        """Hook for platform-specific reactions to a failed sync (default: none)."""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.HTTP_TIMEOUT_SECONDS, transport=self._transport)

    def credential(self, integration: Integration, field: str) -> Optional[str]:
        return decrypt_credential(self.cipher, integration, field)

    async def request_json(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> Tuple[Any, httpx.Response]:
        """Send a request and return (parsed JSON, response).

        Raises:
            PlatformAuthError: 401 / 403.
            PlatformAPIError: any other non-2xx status or a non-JSON body.
        """
        response = await client.request(method, url, **kwargs)

        if response.status_code in (401, 403):
            raise PlatformAuthError(
                f"{self.display_name} API error: {response.status_code}",
                status_code=response.status_code,
                platform=self.platform.value,
                body=response.text,
            )
        if response.status_code >= 400:
            logger.error("%s HTTP %s from %s", self.log_tag, response.status_code, url.split("?")[0])
            raise PlatformAPIError(
                f"{self.display_name} API error: {response.status_code}",
                status_code=response.status_code,
                platform=self.platform.value,
                body=response.text,
            )

        try:
            return response.json(), response
        except ValueError as exc:
            raise PlatformAPIError(
                f"{self.display_name} returned invalid JSON",
                status_code=response.status_code,
                platform=self.platform.value,
            ) from exc


class PullPlatformAdapter(PlatformAdapter):
    """Adapter that pulls every record over the platform API and upserts it."""

    async def run(self, db: Session, integration: Integration, client: httpx.AsyncClient) -> int:
        """Drain every page, then normalize and upsert each record. Returns the count."""
        raw_records = await self.fetch(db, integration, client)
        logger.info("%s Fetched %d raw records for org %s", self.log_tag, len(raw_records), integration.organization_id)

        synced = 0
        for raw in raw_records:
            record = self.normalize(raw, integration)
            if record is None:
                logger.warning("%s Skipping record without identifier", self.log_tag)
                continue
            self.store(db, integration, record)
            synced += 1
        return synced

    @abstractmethod
    async def fetch(self, db: Session, integration: Integration, client: httpx.AsyncClient) -> List[Dict[str, Any]]:
        """Return every raw record from the platform (all pages)."""

    @abstractmethod
    def normalize(self, raw: Dict[str, Any], integration: Integration):
        """Map one raw record to a normalized shape, or None to skip it."""

    @abstractmethod
    def store(self, db: Session, integration: Integration, record) -> None:
        """Upsert one normalized record (commits)."""


class OrderPlatformAdapter(PullPlatformAdapter):
    """Adapter whose records are orders."""

    def store(self, db: Session, integration: Integration, record: NormalizedOrder) -> None:
        upsert_order(db, integration.organization_id, self.platform, record)

    @property
    def default_currency(self) -> str:
        return self.settings.DEFAULT_CURRENCY


class AdMetricPlatformAdapter(PullPlatformAdapter):
    """Adapter whose records are daily ad metrics."""

    def store(self, db: Session, integration: Integration, record: NormalizedAdMetric) -> None:
        upsert_ad_metric(db, integration.organization_id, self.platform, record)


def chunked(items: List[Any], size: int) -> Iterable[List[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]

"""Scheduled sync trigger for an external cron (e.g. Vercel / Cloud Scheduler).

GET /cron/sync with `Authorization: Bearer <CRON_SECRET>`.

- CRON_SECRET unset -> 500 (fail closed: an unconfigured deploy must not
  expose an unauthenticated sync-everything endpoint)
- wrong bearer -> 401
"""

import hmac
import logging
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from commerce_hub.config import Settings, get_settings
from commerce_hub.deps import get_orchestrator, get_session_factory
from commerce_hub.schemas import CronSyncResponse
from commerce_hub.services.sync_orchestrator import SyncOrchestrator, sync_all_organizations

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["Cron"])


def verify_cron_secret(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    if not settings.CRON_SECRET:
        logger.error("[CRON_SYNC] CRON_SECRET not configured")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="CRON_SECRET not configured")

    expected = f"Bearer {settings.CRON_SECRET}"
    if not authorization or not hmac.compare_digest(authorization.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("[CRON_SYNC] Rejected cron call with invalid secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.get("/sync", response_model=CronSyncResponse, response_model_exclude_none=True, dependencies=[Depends(verify_cron_secret)])
async def cron_sync(
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
) -> CronSyncResponse:
    closed, results = await sync_all_organizations(session_factory, orchestrator, settings.STALE_SYNC_MINUTES)
    logger.info("[CRON_SYNC] Completed: %d organizations, %d stale attempts closed", len(results), closed)
    return CronSyncResponse(
        success=True,
        organizations=len(results),
        stale_syncs_closed=closed,
        results=results,
    )

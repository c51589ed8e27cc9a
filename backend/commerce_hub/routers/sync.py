"""Manual sync endpoints.

POST /sync              -> sync every platform for the caller's organization
POST /sync/{platform}   -> sync one platform (no retry; user clicks again)
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from commerce_hub.deps import get_current_organization_id, get_orchestrator
from commerce_hub.schemas import PlatformSyncResponse, SyncAllResponse
from commerce_hub.services.sync_orchestrator import SyncOrchestrator, UnknownPlatformError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["Sync"])


@router.post("", response_model=SyncAllResponse, response_model_exclude_none=True)
async def sync_all(
    organization_id: UUID = Depends(get_current_organization_id),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> SyncAllResponse:
    logger.info("[SYNC] Manual sync of all platforms for org %s", organization_id)
    results = await orchestrator.sync_all_platforms(organization_id)
    return SyncAllResponse(results=results)


@router.post("/{platform}", response_model=PlatformSyncResponse, response_model_exclude_none=True)
async def sync_one(
    platform: str,
    organization_id: UUID = Depends(get_current_organization_id),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> PlatformSyncResponse:
    logger.info("[SYNC] Manual %s sync for org %s", platform, organization_id)
    try:
        outcome = await orchestrator.sync_platform(organization_id, platform)
    except UnknownPlatformError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return PlatformSyncResponse(**outcome.as_dict())

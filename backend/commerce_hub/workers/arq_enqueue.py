"""ARQ job enqueueing utilities.

USAGE:
    from commerce_hub.workers.arq_enqueue import enqueue_organization_sync

    await enqueue_organization_sync(organization_id)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Union
from uuid import UUID

from arq import create_pool
from arq.connections import ArqRedis

from commerce_hub.workers.arq_worker import QUEUE_NAME, get_redis_settings

logger = logging.getLogger(__name__)

_arq_pool: Optional[ArqRedis] = None


async def get_arq_pool() -> ArqRedis:
    """Get or create the shared ARQ Redis pool."""
    global _arq_pool
    if _arq_pool is None:
        _arq_pool = await create_pool(get_redis_settings())
        logger.info("[ARQ-ENQUEUE] Redis pool created")
    return _arq_pool


async def reset_arq_pool() -> None:
    global _arq_pool
    if _arq_pool is not None:
        await _arq_pool.close()
        _arq_pool = None


async def enqueue_organization_sync(
    organization_id: Union[str, UUID],
    pool: Optional[ArqRedis] = None,
) -> Dict[str, Any]:
    """Enqueue sync_organization_job for one organization.

    The job id is derived from the organization so a second enqueue while
    one is queued or running is deduplicated by ARQ.
    """
    pool = pool or await get_arq_pool()
    job = await pool.enqueue_job(
        "sync_organization_job",
        str(organization_id),
        _job_id=f"sync-org:{organization_id}",
        _queue_name=QUEUE_NAME,
    )
    if job:
        logger.info("[ARQ] Enqueued sync job %s for org %s", job.job_id, organization_id)
        return {"job_id": job.job_id, "status": "enqueued"}

    logger.warning("[ARQ] Sync already queued for org %s", organization_id)
    return {"job_id": None, "status": "skipped_or_duplicate"}

"""Sync ledger: write-ahead audit of every sync attempt.

WHAT:
    `begin_sync` records a SYNCING row (and mirrors the status on the
    Integration) before any network call; `complete_sync` / `fail_sync`
    perform the single terminal update. `sweep_stale_syncs` closes rows left
    in SYNCING by a crashed process.

WHY:
    Operators answer "when did Yampi last sync and why did it fail?" from
    sync_logs alone. Writing the row first means even a hung attempt is
    visible.

REFERENCES:
    - commerce_hub/services/adapters/base.py (the only caller of begin/complete/fail)
    - commerce_hub/routers/cron.py, commerce_hub/workers/arq_worker.py (sweep)
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from commerce_hub.models import Integration, SyncLog, SyncStatusEnum
from commerce_hub.utils.parsing import utcnow

logger = logging.getLogger(__name__)

STALE_SYNC_MESSAGE = "Sync timed out"


def begin_sync(db: Session, integration: Integration) -> SyncLog:
    """Mark the integration SYNCING and insert the attempt's ledger row."""
    now = utcnow()
    integration.sync_status = SyncStatusEnum.syncing
    log = SyncLog(
        organization_id=integration.organization_id,
        integration_id=integration.id,
        platform=integration.platform,
        status=SyncStatusEnum.syncing,
        started_at=now,
    )
    db.add(log)
    db.commit()
    db.refresh(log)
    logger.info(
        "[SYNC_LEDGER] Started %s sync for org %s (log=%s)",
        integration.platform.value, integration.organization_id, log.id,
    )
    return log


def complete_sync(db: Session, integration: Integration, log: SyncLog, records_synced: int) -> None:
    """Terminal SUCCESS update for both the ledger row and the integration."""
    now = utcnow()
    integration.sync_status = SyncStatusEnum.success
    integration.last_sync_at = now
    integration.error_message = None

    log.status = SyncStatusEnum.success
    log.records_synced = records_synced
    log.completed_at = now
    db.commit()
    logger.info(
        "[SYNC_LEDGER] %s sync for org %s succeeded (%d records)",
        integration.platform.value, integration.organization_id, records_synced,
    )


def fail_sync(db: Session, integration: Integration, log: Optional[SyncLog], message: str) -> None:
    """Terminal FAILED update. Caller must have rolled back any failed transaction."""
    now = utcnow()
    integration.sync_status = SyncStatusEnum.failed
    integration.error_message = message

    if log is not None:
        log.status = SyncStatusEnum.failed
        log.error_message = message
        log.completed_at = now
    db.commit()
    logger.warning(
        "[SYNC_LEDGER] %s sync for org %s failed: %s",
        integration.platform.value, integration.organization_id, message,
    )


def sweep_stale_syncs(db: Session, max_age_minutes: int) -> int:
    """Fail every SYNCING ledger row older than `max_age_minutes`.

    The matching integration is moved to FAILED as well, unless it has a
    younger SYNCING row (an attempt that is still legitimately running).

    Returns:
        Number of ledger rows closed.
    """
    now = utcnow()
    cutoff = now - timedelta(minutes=max_age_minutes)

    stale_logs = (
        db.query(SyncLog)
        .filter(and_(SyncLog.status == SyncStatusEnum.syncing, SyncLog.started_at < cutoff))
        .all()
    )
    if not stale_logs:
        return 0

    integration_ids = set()
    for log in stale_logs:
        log.status = SyncStatusEnum.failed
        log.error_message = STALE_SYNC_MESSAGE
        log.completed_at = now
        if log.integration_id is not None:
            integration_ids.add(log.integration_id)
    db.flush()

    for integration_id in integration_ids:
        integration = db.get(Integration, integration_id)
        if integration is None or integration.sync_status != SyncStatusEnum.syncing:
            continue
        still_running = (
            db.query(SyncLog.id)
            .filter(
                SyncLog.integration_id == integration_id,
                SyncLog.status == SyncStatusEnum.syncing,
            )
            .first()
        )
        if still_running is None:
            integration.sync_status = SyncStatusEnum.failed
            integration.error_message = STALE_SYNC_MESSAGE

    db.commit()
    logger.warning("[SYNC_LEDGER] Closed %d stale SYNCING attempts (older than %d min)", len(stale_logs), max_age_minutes)
    return len(stale_logs)

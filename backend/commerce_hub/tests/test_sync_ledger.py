"""Tests for the sync ledger and the stale-attempt sweep."""

from datetime import timedelta

from commerce_hub.models import PlatformEnum, SyncLog, SyncStatusEnum
from commerce_hub.services.sync_ledger import (
    STALE_SYNC_MESSAGE,
    begin_sync,
    complete_sync,
    fail_sync,
    sweep_stale_syncs,
)
from commerce_hub.utils.parsing import utcnow


def test_begin_then_complete(test_db_session, make_integration):
    integration = make_integration(PlatformEnum.cartpanda, api_key="k", external_store_id="loja")

    log = begin_sync(test_db_session, integration)
    assert log.status == SyncStatusEnum.syncing
    assert integration.sync_status == SyncStatusEnum.syncing
    assert log.completed_at is None

    complete_sync(test_db_session, integration, log, 12)

    test_db_session.refresh(log)
    test_db_session.refresh(integration)
    assert log.status == SyncStatusEnum.success
    assert log.records_synced == 12
    assert log.completed_at is not None
    assert integration.sync_status == SyncStatusEnum.success
    assert integration.last_sync_at == log.completed_at
    assert integration.error_message is None


def test_fail_records_message_on_both(test_db_session, make_integration):
    integration = make_integration(PlatformEnum.yampi, api_key="k", api_secret="s", external_store_id="loja")
    log = begin_sync(test_db_session, integration)

    fail_sync(test_db_session, integration, log, "Yampi API error: 500")

    test_db_session.refresh(log)
    assert log.status == SyncStatusEnum.failed
    assert log.error_message == "Yampi API error: 500"
    assert integration.sync_status == SyncStatusEnum.failed
    assert integration.error_message == "Yampi API error: 500"
    assert integration.last_sync_at is None


def test_sweep_closes_only_old_syncing_rows(test_db_session, make_integration):
    integration = make_integration(PlatformEnum.shopify, access_token="t", external_store_id="loja")
    stale = begin_sync(test_db_session, integration)
    stale.started_at = utcnow() - timedelta(minutes=45)
    test_db_session.commit()

    closed = sweep_stale_syncs(test_db_session, max_age_minutes=30)

    assert closed == 1
    test_db_session.refresh(stale)
    test_db_session.refresh(integration)
    assert stale.status == SyncStatusEnum.failed
    assert stale.error_message == STALE_SYNC_MESSAGE
    assert stale.completed_at is not None
    assert integration.sync_status == SyncStatusEnum.failed
    assert integration.error_message == STALE_SYNC_MESSAGE


def test_sweep_keeps_integration_syncing_when_fresh_attempt_runs(test_db_session, make_integration):
    integration = make_integration(PlatformEnum.shopify, access_token="t", external_store_id="loja")
    stale = begin_sync(test_db_session, integration)
    stale.started_at = utcnow() - timedelta(hours=2)
    test_db_session.commit()
    fresh = begin_sync(test_db_session, integration)

    closed = sweep_stale_syncs(test_db_session, max_age_minutes=30)

    assert closed == 1
    test_db_session.refresh(fresh)
    test_db_session.refresh(integration)
    assert fresh.status == SyncStatusEnum.syncing
    assert integration.sync_status == SyncStatusEnum.syncing


def test_sweep_without_stale_rows_is_a_noop(test_db_session, make_integration):
    integration = make_integration(PlatformEnum.shopify, access_token="t", external_store_id="loja")
    begin_sync(test_db_session, integration)

    assert sweep_stale_syncs(test_db_session, max_age_minutes=30) == 0
    assert test_db_session.query(SyncLog).filter(SyncLog.status == SyncStatusEnum.syncing).count() == 1

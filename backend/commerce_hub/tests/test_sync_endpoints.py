"""Manual sync (/sync) and scheduled sync (/cron/sync) endpoint tests."""

from datetime import timedelta

import httpx

from commerce_hub.models import Order, PlatformEnum, SyncLog, SyncStatusEnum
from commerce_hub.services.sync_ledger import STALE_SYNC_MESSAGE, begin_sync
from commerce_hub.utils.parsing import utcnow


def _cartpanda_transport(calls=None):
    def handler(request):
        if calls is not None:
            calls.append(request)
        return httpx.Response(200, json={"orders": [
            {"id": 1, "status": "paid", "total": "50.00"},
            {"id": 2, "status": "pending", "total": "20.00"},
        ]})

    return httpx.MockTransport(handler)


# =============================================================================
# AUTHENTICATION
# =============================================================================

def test_sync_requires_session(client):
    assert client.post("/sync").status_code == 401


def test_sync_rejects_invalid_token(client):
    response = client.post("/sync", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


def test_sync_requires_organization_claim(client, session_token):
    token = session_token({})

    response = client.post("/sync", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 403


def test_session_cookie_is_accepted(client, session_token, test_organization):
    client.cookies.set("access_token", session_token({"org_id": str(test_organization.id)}))

    response = client.post("/sync")

    assert response.status_code == 200
    assert response.json() == {"results": []}


# =============================================================================
# MANUAL SYNC
# =============================================================================

def test_sync_all_reports_connected_platforms(client, outbound, auth_headers, make_integration, test_db_session):
    make_integration(PlatformEnum.cartpanda, api_key="cp-key", external_store_id="loja")
    outbound.transport = _cartpanda_transport()

    response = client.post("/sync", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"results": [{"platform": "CARTPANDA", "success": True, "synced": 2}]}
    assert test_db_session.query(Order).count() == 2


def test_sync_all_reports_platform_failure(client, outbound, auth_headers, make_integration):
    make_integration(PlatformEnum.cartpanda, api_key="cp-key", external_store_id="loja")
    make_integration(PlatformEnum.shopify, access_token="tok", external_store_id="loja")

    def handler(request):
        if request.url.host == "api.cartpanda.com":
            return httpx.Response(503)
        return httpx.Response(200, json={"orders": [{"id": 10, "financial_status": "paid"}]})

    outbound.transport = httpx.MockTransport(handler)

    response = client.post("/sync", headers=auth_headers)

    assert response.json()["results"] == [
        {"platform": "SHOPIFY", "success": True, "synced": 1},
        {"platform": "CARTPANDA", "success": False, "error": "Cartpanda API error: 503"},
    ]


def test_sync_single_platform(client, outbound, auth_headers, make_integration):
    make_integration(PlatformEnum.cartpanda, api_key="cp-key", external_store_id="loja")
    outbound.transport = _cartpanda_transport()

    response = client.post("/sync/cartpanda", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"success": True, "synced": 2}


def test_sync_single_platform_not_connected(client, auth_headers):
    response = client.post("/sync/yampi", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"error": "Yampi not connected"}


def test_sync_unknown_platform(client, auth_headers):
    response = client.post("/sync/woocommerce", headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Unknown platform: woocommerce"


# =============================================================================
# CRON
# =============================================================================

def test_cron_rejects_wrong_secret(client):
    assert client.get("/cron/sync").status_code == 401
    assert client.get("/cron/sync", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_cron_fails_closed_without_secret(client, app, settings):
    from commerce_hub.config import get_settings

    app.dependency_overrides[get_settings] = lambda: settings.model_copy(update={"CRON_SECRET": None})

    response = client.get("/cron/sync", headers={"Authorization": "Bearer test-cron-secret"})

    assert response.status_code == 500


def test_cron_sweeps_stale_and_syncs_connected_orgs(client, outbound, make_integration, test_organization, test_db_session):
    integration = make_integration(PlatformEnum.cartpanda, api_key="cp-key", external_store_id="loja")
    stale = begin_sync(test_db_session, integration)
    stale.started_at = utcnow() - timedelta(hours=1)
    test_db_session.commit()
    outbound.transport = _cartpanda_transport()

    response = client.get("/cron/sync", headers={"Authorization": "Bearer test-cron-secret"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["organizations"] == 1
    assert body["stale_syncs_closed"] == 1
    assert body["results"][0]["name"] == "Loja Teste"
    assert body["results"][0]["synced"] == [{"platform": "CARTPANDA", "success": True, "synced": 2}]

    test_db_session.refresh(stale)
    assert stale.status == SyncStatusEnum.failed
    assert stale.error_message == STALE_SYNC_MESSAGE
    logs = test_db_session.query(SyncLog).filter(SyncLog.status == SyncStatusEnum.success).all()
    assert len(logs) == 1


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}

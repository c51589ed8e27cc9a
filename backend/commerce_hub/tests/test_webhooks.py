"""Webhook endpoint tests: signatures, routing to the integration, and upserts."""

import json
from decimal import Decimal

import httpx

from commerce_hub.models import (
    IntegrationStatusEnum,
    Order,
    Organization,
    PlatformEnum,
    ReportanaEvent,
)
from commerce_hub.services.webhook_signatures import compute_hmac_base64, verify_hmac_signature


def _signed(secret, payload):
    body = json.dumps(payload).encode("utf-8")
    return body, compute_hmac_base64(secret, body)


# =============================================================================
# SIGNATURES
# =============================================================================

def test_verify_hmac_signature():
    body = b'{"id": 1}'
    signature = compute_hmac_base64("segredo", body)

    assert verify_hmac_signature("segredo", body, signature, source="TEST") is True
    assert verify_hmac_signature("segredo", body + b" ", signature, source="TEST") is False
    assert verify_hmac_signature("segredo", body, None, source="TEST") is False
    assert verify_hmac_signature("segredo", body, "short", source="TEST") is False


# =============================================================================
# SHOPIFY
# =============================================================================

SHOPIFY_ORDER = {
    "id": 450789469,
    "financial_status": "paid",
    "total_price": "199.90",
    "currency": "BRL",
    "created_at": "2024-03-01T12:00:00Z",
    "email": "cliente@example.com",
    "line_items": [{"id": 1}],
}


def _shopify_headers(signature, topic="orders/paid", shop="loja.myshopify.com"):
    return {
        "X-Shopify-Hmac-SHA256": signature,
        "X-Shopify-Topic": topic,
        "X-Shopify-Shop-Domain": shop,
        "Content-Type": "application/json",
    }


def test_shopify_webhook_upserts_order(client, make_integration, test_organization, test_db_session):
    # Stored as the bare handle; webhook sends the full host
    make_integration(PlatformEnum.shopify, access_token="tok", external_store_id="loja")
    body, signature = _signed("test-shopify-secret", SHOPIFY_ORDER)

    response = client.post("/webhooks/shopify", content=body, headers=_shopify_headers(signature))

    assert response.status_code == 200
    assert response.json()["success"] is True
    order = test_db_session.query(Order).one()
    assert order.organization_id == test_organization.id
    assert order.external_order_id == "450789469"
    assert order.status == "paid"
    assert order.total_amount == Decimal("199.90")
    assert order.customer_email == "cliente@example.com"


def test_shopify_webhook_replay_keeps_one_row(client, make_integration, test_db_session):
    make_integration(PlatformEnum.shopify, access_token="tok", external_store_id="loja.myshopify.com")
    body, signature = _signed("test-shopify-secret", SHOPIFY_ORDER)

    client.post("/webhooks/shopify", content=body, headers=_shopify_headers(signature))
    client.post("/webhooks/shopify", content=body, headers=_shopify_headers(signature))

    assert test_db_session.query(Order).count() == 1


def test_shopify_webhook_rejects_tampered_body(client, make_integration, test_db_session):
    make_integration(PlatformEnum.shopify, access_token="tok", external_store_id="loja")
    body, signature = _signed("test-shopify-secret", SHOPIFY_ORDER)
    tampered = body.replace(b"199.90", b"1.00")

    response = client.post("/webhooks/shopify", content=tampered, headers=_shopify_headers(signature))

    assert response.status_code == 401
    assert test_db_session.query(Order).count() == 0


def test_shopify_webhook_missing_signature(client):
    response = client.post("/webhooks/shopify", content=b"{}", headers={"X-Shopify-Topic": "orders/paid"})

    assert response.status_code == 401


def test_shopify_webhook_missing_topic_header(client, make_integration):
    make_integration(PlatformEnum.shopify, access_token="tok", external_store_id="loja")
    body, signature = _signed("test-shopify-secret", SHOPIFY_ORDER)
    headers = _shopify_headers(signature)
    del headers["X-Shopify-Topic"]

    response = client.post("/webhooks/shopify", content=body, headers=headers)

    assert response.status_code == 400


def test_shopify_webhook_unknown_shop(client, make_integration):
    make_integration(PlatformEnum.shopify, access_token="tok", external_store_id="outra-loja")
    body, signature = _signed("test-shopify-secret", SHOPIFY_ORDER)

    response = client.post("/webhooks/shopify", content=body, headers=_shopify_headers(signature))

    assert response.status_code == 404


def test_shopify_webhook_ignores_disconnected_integration(client, make_integration):
    make_integration(PlatformEnum.shopify, status=IntegrationStatusEnum.disconnected, external_store_id="loja")
    body, signature = _signed("test-shopify-secret", SHOPIFY_ORDER)

    response = client.post("/webhooks/shopify", content=body, headers=_shopify_headers(signature))

    assert response.status_code == 404


def test_shopify_webhook_acknowledges_other_topics(client, make_integration, test_db_session):
    make_integration(PlatformEnum.shopify, access_token="tok", external_store_id="loja")
    body, signature = _signed("test-shopify-secret", {"id": 1, "title": "Camiseta"})

    response = client.post("/webhooks/shopify", content=body, headers=_shopify_headers(signature, topic="products/update"))

    assert response.status_code == 200
    assert response.json()["message"] == "Topic products/update ignored"
    assert test_db_session.query(Order).count() == 0


def test_shopify_webhook_order_without_id(client, make_integration):
    make_integration(PlatformEnum.shopify, access_token="tok", external_store_id="loja")
    body, signature = _signed("test-shopify-secret", {"financial_status": "paid"})

    response = client.post("/webhooks/shopify", content=body, headers=_shopify_headers(signature))

    assert response.status_code == 400


def test_shopify_webhook_tolerates_malformed_nested_fields(client, make_integration, test_db_session):
    make_integration(PlatformEnum.shopify, access_token="tok", external_store_id="loja")
    payload = {**SHOPIFY_ORDER, "customer": "guest", "line_items": "1", "currency": ["BRL"], "email": {"x": 1}}
    body, signature = _signed("test-shopify-secret", payload)

    response = client.post("/webhooks/shopify", content=body, headers=_shopify_headers(signature))

    assert response.status_code == 200
    order = test_db_session.query(Order).one()
    assert order.customer_name is None
    assert order.customer_email is None
    assert order.items_count == 0
    assert order.currency == "BRL"


# =============================================================================
# NUVEMSHOP
# =============================================================================

def _nuvemshop_headers(signature):
    return {"X-Linkedstore-Hmac-SHA256": signature, "Content-Type": "application/json"}


def test_nuvemshop_thin_webhook_fetches_order(client, outbound, make_integration, test_db_session):
    make_integration(PlatformEnum.nuvemshop, access_token="nv-token", external_store_id="123456")
    fetched = []

    def handler(request):
        fetched.append(request)
        return httpx.Response(200, json={
            "id": 871254203,
            "payment_status": "paid",
            "total": "89.90",
            "currency": "BRL",
            "created_at": "2024-03-02T09:15:00-0300",
            "customer": {"name": "Joana", "email": "joana@example.com"},
            "products": [{"id": 1}, {"id": 2}],
        })

    outbound.transport = httpx.MockTransport(handler)
    body, signature = _signed("test-nuvemshop-secret", {"store_id": 123456, "event": "order/paid", "id": 871254203})

    response = client.post("/webhooks/nuvemshop", content=body, headers=_nuvemshop_headers(signature))

    assert response.status_code == 200
    assert fetched[0].url.path == "/v1/123456/orders/871254203"
    assert fetched[0].headers["Authentication"] == "bearer nv-token"
    order = test_db_session.query(Order).one()
    assert order.platform == PlatformEnum.nuvemshop
    assert order.status == "paid"
    assert order.items_count == 2


def test_nuvemshop_fetch_failure_returns_502(client, outbound, make_integration, test_db_session):
    make_integration(PlatformEnum.nuvemshop, access_token="nv-token", external_store_id="123456")
    outbound.transport = httpx.MockTransport(lambda request: httpx.Response(500))
    body, signature = _signed("test-nuvemshop-secret", {"store_id": 123456, "event": "order/created", "id": 1})

    response = client.post("/webhooks/nuvemshop", content=body, headers=_nuvemshop_headers(signature))

    assert response.status_code == 502
    assert test_db_session.query(Order).count() == 0


def test_nuvemshop_full_body_is_used_directly(client, outbound, make_integration, test_db_session):
    make_integration(PlatformEnum.nuvemshop, access_token="nv-token", external_store_id="123456")
    outbound.transport = httpx.MockTransport(lambda request: httpx.Response(500))
    payload = {"store_id": 123456, "event": "order/cancelled", "id": 5, "payment_status": "voided", "total": "10"}
    body, signature = _signed("test-nuvemshop-secret", payload)

    response = client.post("/webhooks/nuvemshop", content=body, headers=_nuvemshop_headers(signature))

    assert response.status_code == 200
    assert test_db_session.query(Order).one().status == "cancelled"


def test_nuvemshop_bad_signature(client, make_integration):
    make_integration(PlatformEnum.nuvemshop, access_token="nv-token", external_store_id="123456")
    body, _ = _signed("test-nuvemshop-secret", {"store_id": 123456, "event": "order/paid", "id": 1})
    _, wrong = _signed("not-the-secret", {"store_id": 123456, "event": "order/paid", "id": 1})

    response = client.post("/webhooks/nuvemshop", content=body, headers=_nuvemshop_headers(wrong))

    assert response.status_code == 401


def test_nuvemshop_rejects_tampered_body(client, outbound, make_integration, test_db_session):
    make_integration(PlatformEnum.nuvemshop, access_token="nv-token", external_store_id="123456")
    fetched = []
    outbound.transport = httpx.MockTransport(lambda request: fetched.append(request) or httpx.Response(500))
    payload = {"store_id": 123456, "event": "order/paid", "id": 5, "payment_status": "pending", "total": "89.90"}
    body, signature = _signed("test-nuvemshop-secret", payload)
    tampered = body.replace(b'"pending"', b'"paid"')

    response = client.post("/webhooks/nuvemshop", content=tampered, headers=_nuvemshop_headers(signature))

    assert response.status_code == 401
    assert fetched == []
    assert test_db_session.query(Order).count() == 0


def test_nuvemshop_tolerates_malformed_fields(client, make_integration, test_db_session):
    make_integration(PlatformEnum.nuvemshop, access_token="nv-token", external_store_id="123456")
    payload = {
        "store_id": 123456,
        "event": "order/paid",
        "id": 5,
        "payment_status": {"state": "paid"},
        "total": "Infinity",
        "customer": ["Joana"],
        "products": None,
    }
    body, signature = _signed("test-nuvemshop-secret", payload)

    response = client.post("/webhooks/nuvemshop", content=body, headers=_nuvemshop_headers(signature))

    assert response.status_code == 200
    order = test_db_session.query(Order).one()
    assert order.status == "pending"
    assert order.total_amount == Decimal("0")
    assert order.customer_name is None


def test_nuvemshop_non_string_event_is_acknowledged(client, make_integration, test_db_session):
    make_integration(PlatformEnum.nuvemshop, access_token="nv-token", external_store_id="123456")
    body, signature = _signed("test-nuvemshop-secret", {"store_id": 123456, "event": ["order/paid"], "id": 1})

    response = client.post("/webhooks/nuvemshop", content=body, headers=_nuvemshop_headers(signature))

    assert response.status_code == 200
    assert test_db_session.query(Order).count() == 0


def test_nuvemshop_unknown_store(client, make_integration):
    make_integration(PlatformEnum.nuvemshop, access_token="nv-token", external_store_id="123456")
    body, signature = _signed("test-nuvemshop-secret", {"store_id": 999, "event": "order/paid", "id": 1})

    response = client.post("/webhooks/nuvemshop", content=body, headers=_nuvemshop_headers(signature))

    assert response.status_code == 404


def test_nuvemshop_non_order_event_is_acknowledged(client, make_integration):
    make_integration(PlatformEnum.nuvemshop, access_token="nv-token", external_store_id="123456")
    body, signature = _signed("test-nuvemshop-secret", {"store_id": 123456, "event": "app/uninstalled", "id": 1})

    response = client.post("/webhooks/nuvemshop", content=body, headers=_nuvemshop_headers(signature))

    assert response.status_code == 200
    assert response.json()["message"] == "Event app/uninstalled ignored"


# =============================================================================
# REPORTANA
# =============================================================================

REPORTANA_EVENT = {
    "event_type": "abandoned_checkout",
    "reference_id": "chk_001",
    "customer_name": "Pedro",
    "customer_email": "pedro@example.com",
    "customerPhone": "+5511999999999",
    "total_price": "259.00",
    "line_items": [{"title": "Tenis", "quantity": 1}],
    "event_date": "2024-03-03T18:00:00Z",
}


def test_reportana_event_is_stored(client, make_integration, test_organization, test_db_session):
    make_integration(PlatformEnum.reportana, api_key="rp-key-123")

    response = client.post("/webhooks/reportana", json=REPORTANA_EVENT, headers={"Authorization": "Bearer rp-key-123"})

    assert response.status_code == 200
    event = test_db_session.query(ReportanaEvent).one()
    assert event.organization_id == test_organization.id
    assert event.customer_phone == "+5511999999999"
    assert event.total_price == Decimal("259.00")
    assert event.currency == "BRL"


def test_reportana_replay_updates_same_event(client, make_integration, test_db_session):
    make_integration(PlatformEnum.reportana, api_key="rp-key-123")
    headers = {"Authorization": "Bearer rp-key-123"}

    client.post("/webhooks/reportana", json=REPORTANA_EVENT, headers=headers)
    client.post("/webhooks/reportana", json={**REPORTANA_EVENT, "total_price": "199.00"}, headers=headers)

    event = test_db_session.query(ReportanaEvent).one()
    assert event.total_price == Decimal("199.00")


def test_reportana_key_routes_to_its_organization(client, make_integration, test_db_session):
    other = Organization(name="Outra Loja")
    test_db_session.add(other)
    test_db_session.commit()
    make_integration(PlatformEnum.reportana, api_key="key-a")
    make_integration(PlatformEnum.reportana, organization=other, api_key="key-b")

    response = client.post("/webhooks/reportana", json=REPORTANA_EVENT, headers={"Authorization": "Bearer key-b"})

    assert response.status_code == 200
    assert test_db_session.query(ReportanaEvent).one().organization_id == other.id


def test_reportana_requires_bearer(client):
    assert client.post("/webhooks/reportana", json=REPORTANA_EVENT).status_code == 401
    assert client.post("/webhooks/reportana", json=REPORTANA_EVENT, headers={"Authorization": "Basic x"}).status_code == 401


def test_reportana_unknown_key(client, make_integration):
    make_integration(PlatformEnum.reportana, api_key="rp-key-123")

    response = client.post("/webhooks/reportana", json=REPORTANA_EVENT, headers={"Authorization": "Bearer wrong"})

    assert response.status_code == 401


def test_reportana_validates_event_type(client, make_integration, test_db_session):
    make_integration(PlatformEnum.reportana, api_key="rp-key-123")
    headers = {"Authorization": "Bearer rp-key-123"}

    missing = client.post("/webhooks/reportana", json={"event_type": "abandoned_checkout"}, headers=headers)
    invalid = client.post("/webhooks/reportana", json={**REPORTANA_EVENT, "event_type": "order_paid"}, headers=headers)

    assert missing.status_code == 400
    assert invalid.status_code == 400
    assert "abandoned_checkout, checkout_recovered" in invalid.json()["detail"]
    assert test_db_session.query(ReportanaEvent).count() == 0


def test_reportana_rejects_non_scalar_identifiers(client, make_integration, test_db_session):
    make_integration(PlatformEnum.reportana, api_key="rp-key-123")
    headers = {"Authorization": "Bearer rp-key-123"}

    list_type = client.post(
        "/webhooks/reportana",
        json={"event_type": ["abandoned_checkout"], "reference_id": "r1"},
        headers=headers,
    )
    dict_reference = client.post(
        "/webhooks/reportana",
        json={"event_type": "abandoned_checkout", "reference_id": {"id": "r1"}},
        headers=headers,
    )

    assert list_type.status_code == 400
    assert dict_reference.status_code == 400
    assert test_db_session.query(ReportanaEvent).count() == 0


def test_reportana_ignores_malformed_optional_fields(client, make_integration, test_db_session):
    make_integration(PlatformEnum.reportana, api_key="rp-key-123")
    payload = {**REPORTANA_EVENT, "reference_id": 42, "customer_name": {"first": "Pedro"}, "currency": ["USD"]}

    response = client.post("/webhooks/reportana", json=payload, headers={"Authorization": "Bearer rp-key-123"})

    assert response.status_code == 200
    event = test_db_session.query(ReportanaEvent).one()
    assert event.reference_id == "42"
    assert event.customer_name is None
    assert event.currency == "BRL"


def test_reportana_accepts_camel_case(client, make_integration, test_db_session):
    make_integration(PlatformEnum.reportana, api_key="rp-key-123")
    payload = {"eventType": "checkout_recovered", "referenceId": "chk_9", "totalPrice": 12}

    response = client.post("/webhooks/reportana", json=payload, headers={"Authorization": "Bearer rp-key-123"})

    assert response.status_code == 200
    assert test_db_session.query(ReportanaEvent).one().reference_id == "chk_9"

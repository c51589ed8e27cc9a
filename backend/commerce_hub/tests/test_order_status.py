"""Unit tests for per-platform order status mapping."""

import pytest

from commerce_hub.services.order_status import (
    CANONICAL_STATUSES,
    map_cartpanda_status,
    map_nuvemshop_status,
    map_shopify_status,
    map_yampi_status,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("paid", "paid"),
        ("authorized", "pending"),
        ("partially_refunded", "refunded"),
        ("voided", "cancelled"),
    ],
)
def test_shopify_financial_status(raw, expected):
    assert map_shopify_status(raw) == expected


def test_nuvemshop_abandoned_is_cancelled():
    assert map_nuvemshop_status("abandoned") == "cancelled"


def test_cartpanda_is_case_insensitive():
    assert map_cartpanda_status("SHIPPED") == "shipped"
    assert map_cartpanda_status("Delivered") == "delivered"


def test_yampi_portuguese_names():
    assert map_yampi_status("Pago") == "paid"
    assert map_yampi_status("aprovado") == "paid"
    assert map_yampi_status("ENTREGUE") == "delivered"


@pytest.mark.parametrize("mapper", [map_shopify_status, map_nuvemshop_status, map_cartpanda_status, map_yampi_status])
def test_missing_status_defaults_to_pending(mapper):
    assert mapper(None) == "pending"
    assert mapper("") == "pending"


def test_unknown_status_passes_through_unchanged():
    # Case is preserved even for the case-insensitive tables
    assert map_shopify_status("chargeback") == "chargeback"
    assert map_cartpanda_status("Em_Analise") == "Em_Analise"
    assert map_yampi_status("aguardando") == "aguardando"


def test_known_values_land_in_canonical_set():
    for value in ("paid", "pending", "refunded", "voided", "authorized"):
        assert map_shopify_status(value) in CANONICAL_STATUSES

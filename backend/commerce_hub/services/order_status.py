"""Order status normalization.

WHAT:
    Closed lookup tables that translate each store platform's status
    vocabulary into the canonical one: paid, pending, cancelled, refunded,
    shipped, delivered.

WHY:
    Dashboards aggregate orders across platforms by status. Values outside
    a table are stored verbatim so new platform statuses stay visible
    instead of silently collapsing into a bucket. A missing status maps to
    "pending".

REFERENCES:
    - commerce_hub/services/adapters/*.py (pull path)
    - commerce_hub/routers/*_webhooks.py (push path)
"""

from typing import Mapping, Optional

DEFAULT_STATUS = "pending"

CANONICAL_STATUSES = frozenset({"paid", "pending", "cancelled", "refunded", "shipped", "delivered"})

# Shopify financial_status
SHOPIFY_STATUS_MAP = {
    "paid": "paid",
    "pending": "pending",
    "refunded": "refunded",
    "voided": "cancelled",
    "partially_refunded": "refunded",
    "authorized": "pending",
}

# Nuvemshop payment_status ("abandoned" only arrives through webhooks)
NUVEMSHOP_STATUS_MAP = {
    "paid": "paid",
    "pending": "pending",
    "refunded": "refunded",
    "voided": "cancelled",
    "authorized": "pending",
    "abandoned": "cancelled",
}

# Cartpanda status, matched case-insensitively
CARTPANDA_STATUS_MAP = {
    "paid": "paid",
    "pending": "pending",
    "cancelled": "cancelled",
    "refunded": "refunded",
    "shipped": "shipped",
    "delivered": "delivered",
}

# Yampi status name (Portuguese and English), matched case-insensitively
YAMPI_STATUS_MAP = {
    "pago": "paid",
    "pendente": "pending",
    "cancelado": "cancelled",
    "reembolsado": "refunded",
    "enviado": "shipped",
    "entregue": "delivered",
    "aprovado": "paid",
    "paid": "paid",
    "pending": "pending",
    "cancelled": "cancelled",
}


def _map_status(value: Optional[str], table: Mapping[str, str], *, lowercase: bool) -> str:
    if not isinstance(value, str) or value == "":
        return DEFAULT_STATUS
    key = value.lower() if lowercase else value
    return table.get(key, value)


def map_shopify_status(value: Optional[str]) -> str:
    return _map_status(value, SHOPIFY_STATUS_MAP, lowercase=False)


def map_nuvemshop_status(value: Optional[str]) -> str:
    return _map_status(value, NUVEMSHOP_STATUS_MAP, lowercase=False)


def map_cartpanda_status(value: Optional[str]) -> str:
    return _map_status(value, CARTPANDA_STATUS_MAP, lowercase=True)


def map_yampi_status(value: Optional[str]) -> str:
    return _map_status(value, YAMPI_STATUS_MAP, lowercase=True)

"""HMAC verification for inbound platform webhooks.

Shopify (`X-Shopify-Hmac-SHA256`) and Nuvemshop (`X-Linkedstore-Hmac-SHA256`)
both sign the raw request body with base64(HMAC-SHA256(app secret)).
"""

import base64
import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)


def compute_hmac_base64(secret: str, body: bytes) -> str:
    return base64.b64encode(
        hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    ).decode("utf-8")


def verify_hmac_signature(secret: str, body: bytes, signature: Optional[str], *, source: str) -> bool:
    """Constant-time check of `signature` against the body's HMAC.

    Lengths are compared first; `hmac.compare_digest` handles the rest.
    """
    if not signature:
        logger.warning("[%s] Missing HMAC header", source)
        return False

    expected = compute_hmac_base64(secret, body).encode("utf-8")
    provided = signature.strip().encode("utf-8")
    if len(expected) != len(provided) or not hmac.compare_digest(expected, provided):
        logger.warning("[%s] Invalid HMAC signature", source)
        return False
    return True

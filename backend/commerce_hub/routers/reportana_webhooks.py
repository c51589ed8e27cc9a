"""Reportana checkout-event webhook.

WHAT:
    POST /webhooks/reportana stores abandoned_checkout / checkout_recovered
    events. The caller authenticates with `Authorization: Bearer <api key>`,
    the same key the merchant saved when connecting Reportana.

WHY:
    Keys are stored encrypted with a random Fernet IV, so they cannot be
    looked up by ciphertext. The integration is found by decrypting every
    CONNECTED Reportana key and comparing in constant time. This is O(n) in
    Reportana integrations, which stays small.

REFERENCES:
    - commerce_hub/services/adapters/reportana.py (normalize_reportana_event)
"""

import hmac
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from commerce_hub.config import Settings, get_settings
from commerce_hub.database import get_db
from commerce_hub.deps import get_token_cipher
from commerce_hub.models import Integration, IntegrationStatusEnum, PlatformEnum
from commerce_hub.schemas import WebhookAck
from commerce_hub.security import TokenCipher
from commerce_hub.services.adapters.reportana import (
    REPORTANA_EVENT_TYPES,
    pick_field,
    normalize_reportana_event,
)
from commerce_hub.services.records import upsert_reportana_event
from commerce_hub.services.token_service import decrypt_credential
from commerce_hub.utils.parsing import as_text

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/reportana", tags=["Reportana Webhooks"])


def find_integration_by_api_key(db: Session, cipher: TokenCipher, token: str) -> Optional[Integration]:
    integrations = (
        db.query(Integration)
        .filter(
            Integration.platform == PlatformEnum.reportana,
            Integration.status == IntegrationStatusEnum.connected,
            Integration.api_key.isnot(None),
        )
        .all()
    )
    for integration in integrations:
        try:
            api_key = decrypt_credential(cipher, integration, "api_key")
        except ValueError:
            logger.warning("[REPORTANA_WEBHOOK] Undecryptable api key on integration %s", integration.id)
            continue
        if api_key and hmac.compare_digest(api_key.encode("utf-8"), token.encode("utf-8")):
            return integration
    return None


@router.post("", response_model=WebhookAck)
async def reportana_webhook(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    cipher: TokenCipher = Depends(get_token_cipher),
) -> WebhookAck:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing authorization")

    token = authorization[len("Bearer "):].strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Empty token")

    integration = find_integration_by_api_key(db, cipher, token)
    if integration is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    try:
        payload = json.loads(await request.body())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload")

    event_type = as_text(pick_field(payload, "event_type", "eventType"))
    reference_id = as_text(pick_field(payload, "reference_id", "referenceId"))
    if not event_type or not reference_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required fields: event_type, reference_id",
        )
    if event_type not in REPORTANA_EVENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid event_type. Must be one of: {', '.join(sorted(REPORTANA_EVENT_TYPES))}",
        )

    event = normalize_reportana_event(payload, settings.DEFAULT_CURRENCY)
    upsert_reportana_event(db, integration.organization_id, event)
    logger.info(
        "[REPORTANA_WEBHOOK] %s %s stored for org %s",
        event.event_type, event.reference_id, integration.organization_id,
    )
    return WebhookAck()

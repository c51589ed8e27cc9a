"""Nuvemshop (Tiendanube) app install flow.

GET /integrations/nuvemshop/authorize -> app authorization page
GET /integrations/nuvemshop/callback  -> code -> permanent access token + store id

Nuvemshop tokens do not expire; there is no refresh token.
"""

import logging
from typing import Optional
from uuid import UUID

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from commerce_hub.config import Settings, get_settings
from commerce_hub.database import get_db
from commerce_hub.deps import (
    enforce_callback_rate_limit,
    get_current_organization_id,
    get_http_transport,
    get_token_cipher,
)
from commerce_hub.models import Organization, PlatformEnum
from commerce_hub.security import TokenCipher
from commerce_hub.services.errors import CredentialConfigError, PlatformAPIError
from commerce_hub.services.oauth_service import (
    build_state,
    exchange_nuvemshop_code,
    integrations_redirect_url,
    nuvemshop_authorize_url,
    organization_from_state,
)
from commerce_hub.services.token_service import store_integration_tokens

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations/nuvemshop", tags=["Nuvemshop OAuth"])


@router.get("/authorize")
async def nuvemshop_authorize(
    organization_id: UUID = Depends(get_current_organization_id),
    settings: Settings = Depends(get_settings),
):
    try:
        auth_url = nuvemshop_authorize_url(settings, build_state(organization_id))
    except CredentialConfigError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
    logger.info("[NUVEMSHOP_OAUTH] Redirecting org %s to Nuvemshop authorization", organization_id)
    return RedirectResponse(url=auth_url)


@router.get("/callback", dependencies=[Depends(enforce_callback_rate_limit)])
async def nuvemshop_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    cipher: TokenCipher = Depends(get_token_cipher),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_http_transport),
):
    if not code or not state:
        return RedirectResponse(url=integrations_redirect_url(settings, error="missing_params"))

    try:
        organization_id = organization_from_state(state)
    except ValueError:
        logger.warning("[NUVEMSHOP_OAUTH] Malformed state parameter")
        return RedirectResponse(url=integrations_redirect_url(settings, error="nuvemshop_oauth_failed"))
    if db.get(Organization, organization_id) is None:
        logger.warning("[NUVEMSHOP_OAUTH] Unknown organization in state: %s", organization_id)
        return RedirectResponse(url=integrations_redirect_url(settings, error="nuvemshop_oauth_failed"))

    try:
        async with httpx.AsyncClient(transport=transport, timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
            tokens = await exchange_nuvemshop_code(client, settings, code)
    except (PlatformAPIError, CredentialConfigError, httpx.HTTPError, KeyError, ValueError):
        logger.exception("[NUVEMSHOP_OAUTH] Token exchange failed for org %s", organization_id)
        return RedirectResponse(url=integrations_redirect_url(settings, error="nuvemshop_oauth_failed"))

    store_integration_tokens(
        db,
        cipher,
        organization_id,
        PlatformEnum.nuvemshop,
        access_token=tokens.access_token,
        external_store_id=tokens.external_store_id,
    )
    logger.info("[NUVEMSHOP_OAUTH] Connected store %s for org %s", tokens.external_store_id, organization_id)
    return RedirectResponse(url=integrations_redirect_url(settings, success="nuvemshop"))

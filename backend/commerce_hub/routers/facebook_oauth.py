"""Facebook (Meta) Ads OAuth flow endpoints.

WHAT:
    GET /integrations/facebook/authorize -> Facebook login dialog
    GET /integrations/facebook/callback  -> code -> long-lived token,
                                            ad accounts stored in metadata

WHY:
    Short-lived tokens expire within hours; the long-lived exchange gives
    ~60 days, renewed by the adapter when close to expiry.

REFERENCES:
    - commerce_hub/services/oauth_service.py
    - https://developers.facebook.com/docs/facebook-login/guides/advanced/manual-flow
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
    exchange_facebook_code,
    facebook_authorize_url,
    integrations_redirect_url,
    organization_from_state,
)
from commerce_hub.services.token_service import store_integration_tokens

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations/facebook", tags=["Facebook OAuth"])


@router.get("/authorize")
async def facebook_authorize(
    organization_id: UUID = Depends(get_current_organization_id),
    settings: Settings = Depends(get_settings),
):
    try:
        auth_url = facebook_authorize_url(settings, build_state(organization_id))
    except CredentialConfigError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
    logger.info("[FACEBOOK_OAUTH] Redirecting org %s to Facebook login", organization_id)
    return RedirectResponse(url=auth_url)


@router.get("/callback", dependencies=[Depends(enforce_callback_rate_limit)])
async def facebook_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    cipher: TokenCipher = Depends(get_token_cipher),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_http_transport),
):
    if error:
        logger.warning("[FACEBOOK_OAUTH] Provider returned error: %s", error)
        return RedirectResponse(url=integrations_redirect_url(settings, error="facebook_oauth_failed"))
    if not code or not state:
        return RedirectResponse(url=integrations_redirect_url(settings, error="missing_params"))

    try:
        organization_id = organization_from_state(state)
    except ValueError:
        logger.warning("[FACEBOOK_OAUTH] Malformed state parameter")
        return RedirectResponse(url=integrations_redirect_url(settings, error="facebook_oauth_failed"))
    if db.get(Organization, organization_id) is None:
        logger.warning("[FACEBOOK_OAUTH] Unknown organization in state: %s", organization_id)
        return RedirectResponse(url=integrations_redirect_url(settings, error="facebook_oauth_failed"))

    try:
        async with httpx.AsyncClient(transport=transport, timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
            tokens = await exchange_facebook_code(client, settings, code)
    except (PlatformAPIError, CredentialConfigError, httpx.HTTPError, KeyError, ValueError):
        logger.exception("[FACEBOOK_OAUTH] Token exchange failed for org %s", organization_id)
        return RedirectResponse(url=integrations_redirect_url(settings, error="facebook_oauth_failed"))

    store_integration_tokens(
        db,
        cipher,
        organization_id,
        PlatformEnum.facebook_ads,
        access_token=tokens.access_token,
        expires_at=tokens.expires_at,
        external_account_id=tokens.external_account_id,
        metadata=tokens.metadata,
    )
    logger.info(
        "[FACEBOOK_OAUTH] Connected Facebook Ads for org %s (%d ad accounts)",
        organization_id, len(tokens.metadata.get("ad_accounts", [])),
    )
    return RedirectResponse(url=integrations_redirect_url(settings, success="facebook"))

"""Google Ads OAuth 2.0 flow endpoints.

WHAT:
    GET /integrations/google/authorize -> redirect to the consent screen
    GET /integrations/google/callback  -> exchange code, store encrypted tokens

WHY:
    Merchants connect their own Google Ads account. `access_type=offline`
    plus `prompt=consent` yields a refresh token so the adapter can renew
    access tokens without user interaction.

REFERENCES:
    - commerce_hub/services/oauth_service.py
    - https://developers.google.com/google-ads/api/docs/oauth/overview
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
    exchange_google_code,
    google_authorize_url,
    integrations_redirect_url,
    list_google_customer_ids,
    organization_from_state,
)
from commerce_hub.services.token_service import store_integration_tokens

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations/google", tags=["Google OAuth"])


@router.get("/authorize")
async def google_authorize(
    organization_id: UUID = Depends(get_current_organization_id),
    settings: Settings = Depends(get_settings),
):
    """Redirect the merchant to Google's consent screen."""
    try:
        auth_url = google_authorize_url(settings, build_state(organization_id))
    except CredentialConfigError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
    logger.info("[GOOGLE_OAUTH] Redirecting org %s to Google consent screen", organization_id)
    return RedirectResponse(url=auth_url)


@router.get("/callback", dependencies=[Depends(enforce_callback_rate_limit)])
async def google_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    cipher: TokenCipher = Depends(get_token_cipher),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_http_transport),
):
    """Exchange the code, look up the Ads customer and store the tokens.

    A re-consent without a new refresh token keeps the stored one.
    """
    if error:
        logger.warning("[GOOGLE_OAUTH] Provider returned error: %s", error)
        return RedirectResponse(url=integrations_redirect_url(settings, error="google_oauth_failed"))
    if not code or not state:
        return RedirectResponse(url=integrations_redirect_url(settings, error="missing_params"))

    try:
        organization_id = organization_from_state(state)
    except ValueError:
        logger.warning("[GOOGLE_OAUTH] Malformed state parameter")
        return RedirectResponse(url=integrations_redirect_url(settings, error="google_oauth_failed"))
    if db.get(Organization, organization_id) is None:
        logger.warning("[GOOGLE_OAUTH] Unknown organization in state: %s", organization_id)
        return RedirectResponse(url=integrations_redirect_url(settings, error="google_oauth_failed"))

    try:
        async with httpx.AsyncClient(transport=transport, timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
            tokens = await exchange_google_code(client, settings, code)
            customer_ids = await list_google_customer_ids(client, settings, tokens.access_token)
    except (PlatformAPIError, CredentialConfigError, httpx.HTTPError, KeyError, ValueError):
        logger.exception("[GOOGLE_OAUTH] Token exchange failed for org %s", organization_id)
        return RedirectResponse(url=integrations_redirect_url(settings, error="google_oauth_failed"))

    store_integration_tokens(
        db,
        cipher,
        organization_id,
        PlatformEnum.google_ads,
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_at=tokens.expires_at,
        external_account_id=customer_ids[0] if customer_ids else None,
        metadata={"customer_ids": customer_ids} if customer_ids else None,
        keep_existing_refresh_token=True,
    )
    logger.info("[GOOGLE_OAUTH] Connected Google Ads for org %s (%d customers)", organization_id, len(customer_ids))
    return RedirectResponse(url=integrations_redirect_url(settings, success="google"))

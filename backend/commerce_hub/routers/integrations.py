"""Integration management endpoints.

WHAT:
    GET  /integrations                        -> list the org's integrations
    POST /integrations/shopify/connect        -> client-credentials token for a shop
    POST /integrations/{platform}/connect     -> API-key platforms (Cartpanda, Yampi, Reportana)
    POST /integrations/{platform}/disconnect  -> null credentials, DISCONNECTED
    GET  /integrations/shopify/callback       -> legacy redirect

WHY:
    OAuth platforms connect through their own routers; everything else is
    a credential form posted here. All credentials go through
    token_service.store_integration_tokens so they are encrypted at rest.
"""

import logging
from typing import List, Optional
from uuid import UUID

import httpx
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from commerce_hub.config import Settings, get_settings
from commerce_hub.database import get_db
from commerce_hub.deps import get_current_organization_id, get_http_transport, get_token_cipher
from commerce_hub.models import Integration, PlatformEnum
from commerce_hub.schemas import (
    ApiKeyConnectRequest,
    IntegrationSummary,
    ShopifyConnectRequest,
    WebhookAck,
)
from commerce_hub.security import TokenCipher
from commerce_hub.services.adapters.shopify import shop_host
from commerce_hub.services.errors import CredentialConfigError, PlatformAPIError
from commerce_hub.services.oauth_service import exchange_shopify_client_credentials, integrations_redirect_url
from commerce_hub.services.token_service import disconnect_integration, store_integration_tokens

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations", tags=["Integrations"])

API_KEY_PLATFORMS = {
    PlatformEnum.cartpanda: ("external_store_id",),
    PlatformEnum.yampi: ("api_secret", "external_store_id"),
    PlatformEnum.reportana: (),
}


def _parse_platform(platform: str) -> PlatformEnum:
    try:
        return PlatformEnum(platform.upper())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown platform: {platform}")


def _summary(integration: Integration) -> IntegrationSummary:
    return IntegrationSummary(
        id=integration.id,
        platform=integration.platform.value,
        status=integration.status.value,
        sync_status=integration.sync_status.value,
        external_store_id=integration.external_store_id,
        external_account_id=integration.external_account_id,
        last_sync_at=integration.last_sync_at,
        error_message=integration.error_message,
    )


@router.get("", response_model=List[IntegrationSummary])
def list_integrations(
    organization_id: UUID = Depends(get_current_organization_id),
    db: Session = Depends(get_db),
) -> List[IntegrationSummary]:
    integrations = (
        db.query(Integration)
        .filter(Integration.organization_id == organization_id)
        .order_by(Integration.platform)
        .all()
    )
    return [_summary(integration) for integration in integrations]


@router.get("/shopify/callback")
def shopify_callback(settings: Settings = Depends(get_settings)):
    """Shopify connects with client credentials now; old install links land here."""
    return RedirectResponse(url=integrations_redirect_url(settings))


@router.post("/shopify/connect", response_model=IntegrationSummary)
async def connect_shopify(
    body: ShopifyConnectRequest,
    organization_id: UUID = Depends(get_current_organization_id),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    cipher: TokenCipher = Depends(get_token_cipher),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_http_transport),
) -> IntegrationSummary:
    shop = shop_host(body.shop)
    try:
        async with httpx.AsyncClient(transport=transport, timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
            tokens = await exchange_shopify_client_credentials(client, settings, shop)
    except CredentialConfigError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
    except (PlatformAPIError, httpx.HTTPError, KeyError, ValueError) as exc:
        logger.warning("[INTEGRATIONS] Shopify connect failed for %s: %s", shop, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to connect Shopify store")

    integration = store_integration_tokens(
        db,
        cipher,
        organization_id,
        PlatformEnum.shopify,
        access_token=tokens.access_token,
        expires_at=tokens.expires_at,
        external_store_id=tokens.external_store_id,
        metadata=tokens.metadata,
    )
    logger.info("[INTEGRATIONS] Connected Shopify store %s for org %s", shop, organization_id)
    return _summary(integration)


@router.post("/{platform}/connect", response_model=IntegrationSummary)
def connect_api_key(
    platform: str,
    body: ApiKeyConnectRequest,
    organization_id: UUID = Depends(get_current_organization_id),
    db: Session = Depends(get_db),
    cipher: TokenCipher = Depends(get_token_cipher),
) -> IntegrationSummary:
    platform_enum = _parse_platform(platform)
    if platform_enum not in API_KEY_PLATFORMS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{platform_enum.value} does not connect with an API key",
        )

    missing = [field for field in API_KEY_PLATFORMS[platform_enum] if not getattr(body, field)]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing required fields: {', '.join(missing)}",
        )

    integration = store_integration_tokens(
        db,
        cipher,
        organization_id,
        platform_enum,
        api_key=body.api_key.strip(),
        api_secret=body.api_secret.strip() if body.api_secret else None,
        external_store_id=body.external_store_id.strip() if body.external_store_id else None,
    )
    logger.info("[INTEGRATIONS] Connected %s for org %s", platform_enum.value, organization_id)
    return _summary(integration)


@router.post("/{platform}/disconnect", response_model=WebhookAck)
def disconnect(
    platform: str,
    organization_id: UUID = Depends(get_current_organization_id),
    db: Session = Depends(get_db),
) -> WebhookAck:
    platform_enum = _parse_platform(platform)
    integration = (
        db.query(Integration)
        .filter(Integration.organization_id == organization_id, Integration.platform == platform_enum)
        .first()
    )
    if integration is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Integration not found")

    disconnect_integration(db, integration)
    return WebhookAck(message=f"{platform_enum.value} disconnected")

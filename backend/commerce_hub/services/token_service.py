"""Token service for encrypting, refreshing and persisting platform credentials.

WHAT:
    - Decrypt the credential fields of an Integration.
    - Detect expiring OAuth tokens and run the platform refresh flow
      (Facebook long-lived exchange, Google refresh_token grant).
    - Store tokens produced by OAuth callbacks; disconnect integrations.

WHY:
    - Keeps encryption logic out of adapters and routers.
    - Adapters and OAuth callbacks share one write path, so credentials
      are always ciphertext and DISCONNECTED always means "no credentials".

REFERENCES:
    - commerce_hub/security.py (TokenCipher)
    - commerce_hub/services/adapters/facebook_ads.py, google_ads.py (refresh callers)
    - commerce_hub/routers/*_oauth.py (store_integration_tokens callers)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from commerce_hub.config import Settings
from commerce_hub.models import Integration, IntegrationStatusEnum, PlatformEnum, SyncStatusEnum
from commerce_hub.security import TokenCipher
from commerce_hub.services.errors import CredentialConfigError, TokenRefreshError
from commerce_hub.utils.parsing import utcnow

logger = logging.getLogger(__name__)

CREDENTIAL_FIELDS = ("api_key", "api_secret", "access_token", "refresh_token")

# Facebook long-lived tokens last ~60 days
FACEBOOK_DEFAULT_EXPIRES_IN = 60 * 24 * 3600
FACEBOOK_REFRESH_WINDOW = timedelta(hours=24)
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


def _label(integration: Integration, field: str) -> str:
    return f"{integration.platform.value}:{integration.organization_id}:{field}"


def decrypt_credential(cipher: TokenCipher, integration: Integration, field: str) -> Optional[str]:
    """Return the plaintext of one credential column, or None when unset."""
    if field not in CREDENTIAL_FIELDS:
        raise ValueError(f"Unknown credential field: {field}")
    ciphertext = getattr(integration, field)
    if not ciphertext:
        return None
    return cipher.decrypt(ciphertext, context=_label(integration, field))


def token_expires_within(integration: Integration, window: timedelta, now: Optional[datetime] = None) -> bool:
    """True when the token expiry is known and falls inside `window` from now."""
    if integration.token_expires_at is None:
        return False
    now = now or utcnow()
    return integration.token_expires_at <= now + window


def is_token_expired(integration: Integration, now: Optional[datetime] = None) -> bool:
    return token_expires_within(integration, timedelta(0), now)


# =============================================================================
# REFRESH FLOWS
# =============================================================================

async def refresh_facebook_token(
    db: Session,
    integration: Integration,
    cipher: TokenCipher,
    settings: Settings,
    client: httpx.AsyncClient,
) -> str:
    """Exchange the current Facebook token for a fresh long-lived one.

    Persists the new ciphertext and expiry; concurrent refreshes for the
    same integration resolve as last writer wins.

    Raises:
        CredentialConfigError: App id/secret not configured.
        TokenRefreshError: Graph API rejected the exchange.
    """
    if not settings.FACEBOOK_APP_ID or not settings.FACEBOOK_APP_SECRET:
        raise CredentialConfigError("Facebook app credentials not configured")

    current = decrypt_credential(cipher, integration, "access_token")
    if not current:
        raise TokenRefreshError("No Facebook access token to refresh", platform=PlatformEnum.facebook_ads.value)

    url = f"https://graph.facebook.com/{settings.FACEBOOK_GRAPH_VERSION}/oauth/access_token"
    response = await client.get(
        url,
        params={
            "grant_type": "fb_exchange_token",
            "client_id": settings.FACEBOOK_APP_ID,
            "client_secret": settings.FACEBOOK_APP_SECRET,
            "fb_exchange_token": current,
        },
    )
    if response.status_code != 200:
        raise TokenRefreshError(
            f"Facebook token exchange failed: HTTP {response.status_code}",
            status_code=response.status_code,
            platform=PlatformEnum.facebook_ads.value,
        )

    data = response.json()
    new_token = data.get("access_token")
    if not new_token:
        raise TokenRefreshError("Facebook token exchange returned no token", platform=PlatformEnum.facebook_ads.value)

    expires_in = int(data.get("expires_in") or FACEBOOK_DEFAULT_EXPIRES_IN)
    integration.access_token = cipher.encrypt(new_token, context=_label(integration, "access_token"))
    integration.token_expires_at = utcnow() + timedelta(seconds=expires_in)
    db.commit()
    logger.info("[TOKEN_SERVICE] Refreshed Facebook token for org %s (expires in %ss)", integration.organization_id, expires_in)
    return new_token


async def refresh_google_token(
    db: Session,
    integration: Integration,
    cipher: TokenCipher,
    settings: Settings,
    client: httpx.AsyncClient,
) -> str:
    """Use the stored refresh token to obtain a new Google access token.

    Raises:
        CredentialConfigError: OAuth client not configured.
        TokenRefreshError: No refresh token stored, or Google rejected it.
    """
    if not settings.GOOGLE_ADS_CLIENT_ID or not settings.GOOGLE_ADS_CLIENT_SECRET:
        raise CredentialConfigError("Google Ads OAuth client not configured")

    refresh_token = decrypt_credential(cipher, integration, "refresh_token")
    if not refresh_token:
        raise TokenRefreshError("No Google refresh token stored", platform=PlatformEnum.google_ads.value)

    response = await client.post(
        GOOGLE_TOKEN_URL,
        data={
            "client_id": settings.GOOGLE_ADS_CLIENT_ID,
            "client_secret": settings.GOOGLE_ADS_CLIENT_SECRET,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        },
    )
    if response.status_code != 200:
        raise TokenRefreshError(
            f"Failed to refresh Google token: HTTP {response.status_code}",
            status_code=response.status_code,
            platform=PlatformEnum.google_ads.value,
        )

    data = response.json()
    new_token = data.get("access_token")
    if not new_token:
        raise TokenRefreshError("Google refresh returned no access token", platform=PlatformEnum.google_ads.value)

    expires_in = int(data.get("expires_in") or 3600)
    integration.access_token = cipher.encrypt(new_token, context=_label(integration, "access_token"))
    integration.token_expires_at = utcnow() + timedelta(seconds=expires_in)
    db.commit()
    logger.info("[TOKEN_SERVICE] Refreshed Google token for org %s", integration.organization_id)
    return new_token


# =============================================================================
# CONNECT / DISCONNECT
# =============================================================================

def store_integration_tokens(
    db: Session,
    cipher: TokenCipher,
    organization_id: UUID,
    platform: PlatformEnum,
    *,
    access_token: Optional[str] = None,
    refresh_token: Optional[str] = None,
    api_key: Optional[str] = None,
    api_secret: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    external_store_id: Optional[str] = None,
    external_account_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    keep_existing_refresh_token: bool = False,
) -> Integration:
    """Encrypt and persist credentials, creating or reconnecting the Integration.

    Google omits the refresh token on re-consent; pass
    `keep_existing_refresh_token=True` to keep the stored one in that case.
    """
    integration = (
        db.query(Integration)
        .filter(Integration.organization_id == organization_id, Integration.platform == platform)
        .first()
    )
    if integration is None:
        integration = Integration(organization_id=organization_id, platform=platform)
        db.add(integration)
        logger.info("[TOKEN_SERVICE] Creating %s integration for org %s", platform.value, organization_id)

    label = f"{platform.value}:{organization_id}"
    integration.access_token = cipher.encrypt_optional(access_token, context=f"{label}:access_token")
    if refresh_token or not keep_existing_refresh_token:
        integration.refresh_token = cipher.encrypt_optional(refresh_token, context=f"{label}:refresh_token")
    integration.api_key = cipher.encrypt_optional(api_key, context=f"{label}:api_key")
    integration.api_secret = cipher.encrypt_optional(api_secret, context=f"{label}:api_secret")
    integration.token_expires_at = expires_at
    if external_store_id is not None:
        integration.external_store_id = external_store_id
    if external_account_id is not None:
        integration.external_account_id = external_account_id
    if metadata is not None:
        integration.extra_metadata = metadata

    integration.status = IntegrationStatusEnum.connected
    integration.sync_status = SyncStatusEnum.idle
    integration.error_message = None
    db.commit()
    db.refresh(integration)
    logger.info("[TOKEN_SERVICE] Stored encrypted credentials for %s", label)
    return integration


def disconnect_integration(db: Session, integration: Integration, *, error_message: Optional[str] = None) -> None:
    """Mark DISCONNECTED and null every credential column."""
    for field in CREDENTIAL_FIELDS:
        setattr(integration, field, None)
    integration.token_expires_at = None
    integration.status = IntegrationStatusEnum.disconnected
    integration.error_message = error_message
    db.commit()
    logger.info(
        "[TOKEN_SERVICE] Disconnected %s integration for org %s",
        integration.platform.value, integration.organization_id,
    )

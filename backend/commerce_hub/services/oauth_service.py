"""OAuth / connect helpers for platform integrations.

WHAT:
    - Authorize URLs (Facebook, Google, Nuvemshop) carrying
      `state = "<organization_id>:<nonce>"`.
    - Code exchanges: Facebook (short-lived -> long-lived + ad accounts),
      Google (access + refresh token), Nuvemshop (access token + store id).
    - Shopify client-credentials token for a shop domain.

WHY:
    Routers stay thin: they parse query params, call one of these, persist
    through token_service.store_integration_tokens and redirect.

REFERENCES:
    - https://developers.facebook.com/docs/facebook-login/guides/access-tokens/get-long-lived
    - https://developers.google.com/identity/protocols/oauth2/web-server
    - https://tiendanube.github.io/api-documentation/authentication
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode
from uuid import UUID

import httpx

from commerce_hub.config import Settings
from commerce_hub.services.adapters.google_ads import GOOGLE_ADS_API_URL
from commerce_hub.services.errors import CredentialConfigError, PlatformAPIError, PlatformAuthError
from commerce_hub.services.token_service import GOOGLE_TOKEN_URL
from commerce_hub.utils.parsing import utcnow

logger = logging.getLogger(__name__)

FACEBOOK_SCOPES = "ads_read,ads_management,read_insights"
GOOGLE_ADS_SCOPE = "https://www.googleapis.com/auth/adwords"
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
NUVEMSHOP_TOKEN_URL = "https://www.tiendanube.com/apps/authorize/token"


@dataclass
class OAuthTokens:
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    external_store_id: Optional[str] = None
    external_account_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def build_state(organization_id: UUID) -> str:
    return f"{organization_id}:{secrets.token_hex(16)}"


def organization_from_state(state: str) -> UUID:
    """Leading `:`-separated segment of `state` as an organization id.

    Raises:
        ValueError: Not a UUID.
    """
    return UUID(state.split(":")[0])


def callback_url(settings: Settings, platform_slug: str) -> str:
    return f"{settings.BACKEND_URL.rstrip('/')}/integrations/{platform_slug}/callback"


def _expires_at(expires_in: Any) -> Optional[datetime]:
    if not expires_in:
        return None
    return utcnow() + timedelta(seconds=int(expires_in))


# =============================================================================
# FACEBOOK
# =============================================================================

def facebook_authorize_url(settings: Settings, state: str) -> str:
    if not settings.FACEBOOK_APP_ID:
        raise CredentialConfigError("FACEBOOK_APP_ID not configured")
    params = {
        "client_id": settings.FACEBOOK_APP_ID,
        "redirect_uri": callback_url(settings, "facebook"),
        "scope": FACEBOOK_SCOPES,
        "state": state,
    }
    return f"https://www.facebook.com/{settings.FACEBOOK_GRAPH_VERSION}/dialog/oauth?{urlencode(params)}"


async def exchange_facebook_code(client: httpx.AsyncClient, settings: Settings, code: str) -> OAuthTokens:
    """code -> short-lived token -> long-lived token, then list ad accounts."""
    if not settings.FACEBOOK_APP_ID or not settings.FACEBOOK_APP_SECRET:
        raise CredentialConfigError("Facebook app credentials not configured")

    token_url = f"https://graph.facebook.com/{settings.FACEBOOK_GRAPH_VERSION}/oauth/access_token"
    response = await client.get(
        token_url,
        params={
            "client_id": settings.FACEBOOK_APP_ID,
            "client_secret": settings.FACEBOOK_APP_SECRET,
            "redirect_uri": callback_url(settings, "facebook"),
            "code": code,
        },
    )
    if response.status_code != 200:
        raise PlatformAPIError(f"Failed to exchange Facebook code: {response.status_code}", status_code=response.status_code, platform="FACEBOOK_ADS")
    data = response.json()
    access_token = data["access_token"]
    expires_in = data.get("expires_in")

    try:
        long_lived = await client.get(
            token_url,
            params={
                "grant_type": "fb_exchange_token",
                "client_id": settings.FACEBOOK_APP_ID,
                "client_secret": settings.FACEBOOK_APP_SECRET,
                "fb_exchange_token": access_token,
            },
        )
        long_lived.raise_for_status()
        long_data = long_lived.json()
        access_token = long_data.get("access_token") or access_token
        expires_in = long_data.get("expires_in", expires_in)
        logger.info("[FACEBOOK_OAUTH] Exchanged for long-lived token (expires in %ss)", expires_in)
    except httpx.HTTPError as exc:
        logger.warning("[FACEBOOK_OAUTH] Long-lived exchange failed, keeping short-lived token: %s", exc)

    ad_accounts = await list_facebook_ad_accounts(client, settings, access_token)
    first_account = ad_accounts[0]["id"] if ad_accounts else None
    return OAuthTokens(
        access_token=access_token,
        expires_at=_expires_at(expires_in),
        external_account_id=first_account.replace("act_", "") if first_account else None,
        metadata={"ad_accounts": ad_accounts},
    )


async def list_facebook_ad_accounts(client: httpx.AsyncClient, settings: Settings, access_token: str) -> List[Dict[str, Any]]:
    response = await client.get(
        f"https://graph.facebook.com/{settings.FACEBOOK_GRAPH_VERSION}/me/adaccounts",
        params={"fields": "id,name,account_status,currency", "access_token": access_token},
    )
    if response.status_code != 200:
        raise PlatformAPIError(f"Failed to list Facebook ad accounts: {response.status_code}", status_code=response.status_code, platform="FACEBOOK_ADS")
    return response.json().get("data") or []


# =============================================================================
# GOOGLE
# =============================================================================

def google_authorize_url(settings: Settings, state: str) -> str:
    if not settings.GOOGLE_ADS_CLIENT_ID:
        raise CredentialConfigError("GOOGLE_ADS_CLIENT_ID not configured")
    params = {
        "client_id": settings.GOOGLE_ADS_CLIENT_ID,
        "redirect_uri": callback_url(settings, "google"),
        "response_type": "code",
        "scope": GOOGLE_ADS_SCOPE,
        # offline + consent so Google always returns a refresh token
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def exchange_google_code(client: httpx.AsyncClient, settings: Settings, code: str) -> OAuthTokens:
    if not settings.GOOGLE_ADS_CLIENT_ID or not settings.GOOGLE_ADS_CLIENT_SECRET:
        raise CredentialConfigError("Google Ads OAuth client not configured")

    response = await client.post(
        GOOGLE_TOKEN_URL,
        data={
            "code": code,
            "client_id": settings.GOOGLE_ADS_CLIENT_ID,
            "client_secret": settings.GOOGLE_ADS_CLIENT_SECRET,
            "redirect_uri": callback_url(settings, "google"),
            "grant_type": "authorization_code",
        },
    )
    if response.status_code != 200:
        raise PlatformAPIError(f"Failed to exchange Google code: {response.status_code}", status_code=response.status_code, platform="GOOGLE_ADS")
    data = response.json()
    return OAuthTokens(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_at=_expires_at(data.get("expires_in")),
    )


async def list_google_customer_ids(client: httpx.AsyncClient, settings: Settings, access_token: str) -> List[str]:
    """Customer ids the token can reach (`customers/123` -> `123`).

    Empty when no developer token is configured; the account id can then be
    set later and the adapter reports the missing developer token on sync.
    """
    if not settings.GOOGLE_ADS_DEVELOPER_TOKEN:
        logger.warning("[GOOGLE_OAUTH] GOOGLE_ADS_DEVELOPER_TOKEN not configured, skipping customer lookup")
        return []
    response = await client.get(
        f"{GOOGLE_ADS_API_URL}/{settings.GOOGLE_ADS_API_VERSION}/customers:listAccessibleCustomers",
        headers={
            "Authorization": f"Bearer {access_token}",
            "developer-token": settings.GOOGLE_ADS_DEVELOPER_TOKEN,
        },
    )
    if response.status_code != 200:
        raise PlatformAPIError(f"Failed to list Google Ads customers: {response.status_code}", status_code=response.status_code, platform="GOOGLE_ADS")
    return [name.split("/")[-1] for name in response.json().get("resourceNames") or []]


# =============================================================================
# NUVEMSHOP
# =============================================================================

def nuvemshop_authorize_url(settings: Settings, state: str) -> str:
    if not settings.NUVEMSHOP_CLIENT_ID:
        raise CredentialConfigError("NUVEMSHOP_CLIENT_ID not configured")
    params = {
        "response_type": "code",
        "redirect_uri": callback_url(settings, "nuvemshop"),
        "state": state,
    }
    return f"https://www.tiendanube.com/apps/{settings.NUVEMSHOP_CLIENT_ID}/authorize?{urlencode(params)}"


async def exchange_nuvemshop_code(client: httpx.AsyncClient, settings: Settings, code: str) -> OAuthTokens:
    if not settings.NUVEMSHOP_CLIENT_ID or not settings.NUVEMSHOP_CLIENT_SECRET:
        raise CredentialConfigError("Nuvemshop app credentials not configured")

    response = await client.post(
        NUVEMSHOP_TOKEN_URL,
        json={
            "client_id": settings.NUVEMSHOP_CLIENT_ID,
            "client_secret": settings.NUVEMSHOP_CLIENT_SECRET,
            "grant_type": "authorization_code",
            "code": code,
        },
    )
    if response.status_code != 200:
        raise PlatformAPIError(f"Failed to exchange Nuvemshop token: {response.status_code}", status_code=response.status_code, platform="NUVEMSHOP")
    data = response.json()
    if data.get("error") or not data.get("access_token"):
        raise PlatformAPIError(f"Nuvemshop token error: {data.get('error_description') or data.get('error')}", platform="NUVEMSHOP")
    return OAuthTokens(
        access_token=data["access_token"],
        external_store_id=str(data["user_id"]),
    )


# =============================================================================
# SHOPIFY (client credentials)
# =============================================================================

async def exchange_shopify_client_credentials(client: httpx.AsyncClient, settings: Settings, shop: str) -> OAuthTokens:
    """Admin API token for `shop` using the app's own client credentials.

    Raises:
        CredentialConfigError: SHOPIFY_CLIENT_ID / SHOPIFY_CLIENT_SECRET unset.
        PlatformAuthError: Shopify rejected the app credentials (401 / 403).
        PlatformAPIError: Any other non-200.
    """
    if not settings.SHOPIFY_CLIENT_ID or not settings.SHOPIFY_CLIENT_SECRET:
        raise CredentialConfigError("Shopify app credentials not configured")

    response = await client.post(
        f"https://{shop}/admin/oauth/access_token",
        data={
            "client_id": settings.SHOPIFY_CLIENT_ID,
            "client_secret": settings.SHOPIFY_CLIENT_SECRET,
            "grant_type": "client_credentials",
        },
    )
    if response.status_code in (401, 403):
        raise PlatformAuthError("Shopify rejected the app credentials", status_code=response.status_code, platform="SHOPIFY")
    if response.status_code != 200:
        raise PlatformAPIError(f"Failed to obtain Shopify token: {response.status_code}", status_code=response.status_code, platform="SHOPIFY")
    data = response.json()
    return OAuthTokens(
        access_token=data["access_token"],
        expires_at=_expires_at(data.get("expires_in")),
        external_store_id=shop,
        metadata={"scopes": data.get("scope") or ""},
    )


def integrations_redirect_url(settings: Settings, **params: str) -> str:
    """Frontend integrations page, e.g. `?success=google` or `?error=missing_params`."""
    base = f"{settings.FRONTEND_URL.rstrip('/')}/integrations"
    return f"{base}?{urlencode(params)}" if params else base

"""Dependency providers for routers."""

import logging
from typing import Callable, Optional
from uuid import UUID

import httpx
from fastapi import Cookie, Depends, Header, HTTPException, Request, status
from jose import JWTError
from sqlalchemy.orm import Session

from commerce_hub.config import Settings, get_settings
from commerce_hub.database import SessionLocal
from commerce_hub.security import TokenCipher, decode_token, get_cipher
from commerce_hub.services.rate_limiter import CallbackRateLimiter, client_ip
from commerce_hub.services.sync_orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


def get_session_factory() -> Callable[[], Session]:
    """Session factory handed to adapters (each opens its own sessions)."""
    return SessionLocal


def get_token_cipher() -> TokenCipher:
    return get_cipher()


def get_http_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Outbound transport for platform calls; None means the real network."""
    return None


def get_orchestrator(
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    cipher: TokenCipher = Depends(get_token_cipher),
    settings: Settings = Depends(get_settings),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_http_transport),
) -> SyncOrchestrator:
    return SyncOrchestrator.from_settings(session_factory, cipher, settings, transport)


def get_current_organization_id(
    access_token: Optional[str] = Cookie(default=None, alias="access_token"),
    authorization: Optional[str] = Header(default=None),
) -> UUID:
    """Resolve the caller's organization from the session JWT.

    The token comes from the `access_token` cookie or an
    `Authorization: Bearer <jwt>` header and must carry an `org_id` claim.
    """
    raw = access_token or authorization
    if not raw:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    # Remove optional "Bearer " prefix
    token = raw[len("Bearer "):] if raw.startswith("Bearer ") else raw

    try:
        payload = decode_token(token)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    org_id = payload.get("org_id")
    if not org_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No organization selected")
    try:
        return UUID(str(org_id))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def get_callback_rate_limiter(request: Request) -> CallbackRateLimiter:
    return request.app.state.callback_rate_limiter


def enforce_callback_rate_limit(
    request: Request,
    limiter: CallbackRateLimiter = Depends(get_callback_rate_limiter),
) -> None:
    """429 when the client IP exceeded the OAuth callback budget."""
    key = f"oauth-callback:{client_ip(request)}"
    if not limiter.check(key):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests",
            headers={"Retry-After": str(limiter.retry_after(key))},
        )

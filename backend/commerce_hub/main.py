"""FastAPI application entrypoint.

Configures logging, Sentry, CORS, the OAuth callback rate limiter, includes
routers, and exposes a healthcheck endpoint.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from commerce_hub import schemas
from commerce_hub.config import get_settings
from commerce_hub.routers import cron as cron_router
from commerce_hub.routers import facebook_oauth as facebook_oauth_router
from commerce_hub.routers import google_oauth as google_oauth_router
from commerce_hub.routers import integrations as integrations_router
from commerce_hub.routers import nuvemshop_oauth as nuvemshop_oauth_router
from commerce_hub.routers import nuvemshop_webhooks as nuvemshop_webhooks_router
from commerce_hub.routers import reportana_webhooks as reportana_webhooks_router
from commerce_hub.routers import shopify_webhooks as shopify_webhooks_router
from commerce_hub.routers import sync as sync_router
from commerce_hub.services.rate_limiter import CallbackRateLimiter
from commerce_hub.telemetry import init_sentry

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    init_sentry()

    app = FastAPI(
        title="Commerce Hub API",
        description="""
        Pulls orders and ad performance from connected commerce and advertising
        platforms into one store per organization.

        - Manual and scheduled syncs (Shopify, Nuvemshop, Cartpanda, Yampi,
          Facebook Ads, Google Ads, Reportana)
        - Signed webhooks (Shopify, Nuvemshop, Reportana)
        - OAuth connect flows (Facebook, Google, Nuvemshop)
        """,
        version="1.0.0",
    )

    # Only the load balancer may rewrite the client address
    trusted_proxies = [host.strip() for host in settings.FORWARDED_ALLOW_IPS.split(",") if host.strip()]
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=trusted_proxies)

    # BACKEND_CORS_ORIGINS is a comma-separated list
    allowed_origins = [origin.strip() for origin in settings.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]
    frontend_url = settings.FRONTEND_URL.rstrip("/")
    if frontend_url not in allowed_origins:
        allowed_origins.append(frontend_url)
    logger.info("[CORS] Allowed origins: %s", allowed_origins)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Per-process; each API replica counts its own callbacks
    app.state.callback_rate_limiter = CallbackRateLimiter(
        limit=settings.CALLBACK_RATE_LIMIT,
        window_seconds=settings.CALLBACK_RATE_WINDOW_SECONDS,
    )

    app.include_router(sync_router.router)
    app.include_router(cron_router.router)
    app.include_router(integrations_router.router)
    app.include_router(facebook_oauth_router.router)
    app.include_router(google_oauth_router.router)
    app.include_router(nuvemshop_oauth_router.router)
    app.include_router(shopify_webhooks_router.router)
    app.include_router(nuvemshop_webhooks_router.router)
    app.include_router(reportana_webhooks_router.router)

    @app.get(
        "/health",
        response_model=schemas.HealthResponse,
        tags=["Health"],
        summary="Health check",
    )
    def health():
        return schemas.HealthResponse(status="ok")

    return app


app = create_app()

"""Application settings.

WHAT:
    Single pydantic-settings model for every secret and tunable the sync
    engine reads: JWT/encryption keys, platform app credentials, HTTP and
    retry tunables, callback rate limits, Redis and Sentry.

WHY:
    Settings are read once and cached. Tests clear the cache
    (`get_settings.cache_clear()`) after patching the environment.

REFERENCES:
    - commerce_hub/security.py (consumes JWT_SECRET / TOKEN_ENCRYPTION_KEY)
    - commerce_hub/services/sync_orchestrator.py (retry + timeout tunables)
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    ENVIRONMENT: str = "development"

    # Auth / encryption
    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"
    TOKEN_ENCRYPTION_KEY: str = ""
    # Unset disables GET /cron/sync (fail closed)
    CRON_SECRET: Optional[str] = None

    FRONTEND_URL: str = "http://localhost:3000"
    BACKEND_URL: str = "http://localhost:8000"
    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"

    # Facebook Ads
    FACEBOOK_APP_ID: Optional[str] = None
    FACEBOOK_APP_SECRET: Optional[str] = None
    FACEBOOK_GRAPH_VERSION: str = "v21.0"

    # Google Ads
    GOOGLE_ADS_CLIENT_ID: Optional[str] = None
    GOOGLE_ADS_CLIENT_SECRET: Optional[str] = None
    GOOGLE_ADS_DEVELOPER_TOKEN: Optional[str] = None
    GOOGLE_ADS_API_VERSION: str = "v16"

    # Shopify
    SHOPIFY_CLIENT_ID: Optional[str] = None
    SHOPIFY_CLIENT_SECRET: Optional[str] = None
    SHOPIFY_API_VERSION: str = "2024-01"

    # Nuvemshop
    NUVEMSHOP_CLIENT_ID: Optional[str] = None
    NUVEMSHOP_CLIENT_SECRET: Optional[str] = None
    NUVEMSHOP_USER_AGENT: str = "CommerceHub (suporte@commercehub.app)"

    # Sync tunables
    DEFAULT_CURRENCY: str = "BRL"
    SYNC_LOOKBACK_DAYS: int = 30
    HTTP_TIMEOUT_SECONDS: float = 30.0
    ADAPTER_TIMEOUT_SECONDS: float = 300.0
    SYNC_MAX_RETRIES: int = 2
    SYNC_RETRY_BASE_DELAY_SECONDS: float = 1.0
    STALE_SYNC_MINUTES: int = 30

    # OAuth callback rate limit (per client IP)
    CALLBACK_RATE_LIMIT: int = 10
    CALLBACK_RATE_WINDOW_SECONDS: float = 60.0
    # Comma-separated proxy addresses whose X-Forwarded-For is trusted
    FORWARDED_ALLOW_IPS: str = "127.0.0.1"

    REDIS_URL: str = "redis://localhost:6379/0"
    SENTRY_DSN: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]

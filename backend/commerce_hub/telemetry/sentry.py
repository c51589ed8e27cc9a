"""
Sentry Error Tracking
=====================

Error tracking for the sync engine. Adapters return failures instead of
raising, so Sentry only sees what escapes them: adapters that exhausted
their retries and organizations whose scheduled sync crashed.

Related files:
- commerce_hub/main.py: Initializes Sentry on app startup
- commerce_hub/services/sync_orchestrator.py: capture_exception on exhausted retries
- commerce_hub/workers/arq_worker.py: Initializes Sentry in the worker process

Environment Variables:
- SENTRY_DSN: Sentry project DSN (Sentry stays disabled when unset)
- ENVIRONMENT: Environment name (production, staging, development)
"""

from __future__ import annotations

import logging
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from commerce_hub.config import get_settings

logger = logging.getLogger(__name__)

_initialized = False


def init_sentry() -> bool:
    """
    Initialize Sentry SDK. Call once per process (API or worker).

    Returns:
        True if Sentry was initialized, False when no DSN is configured.
    """
    global _initialized

    settings = get_settings()
    if not settings.SENTRY_DSN:
        return False

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(
                level=logging.INFO,         # INFO+ as breadcrumbs
                event_level=logging.ERROR,  # ERROR+ as events
            ),
        ],
        traces_sample_rate=0.1,
        # Credentials and customer emails flow through these requests
        send_default_pii=False,
    )
    _initialized = True
    logger.info("[SENTRY] Initialized for %s environment", settings.ENVIRONMENT)
    return True


def capture_exception(exception: BaseException, extra: Optional[dict] = None) -> None:
    """
    Report a handled exception.

    Args:
        exception: The exception to capture
        extra: Additional context (organization_id, platform, ...)
    """
    if not _initialized:
        logger.error("[SENTRY] Exception (Sentry disabled): %s", exception)
        return

    with sentry_sdk.new_scope() as scope:
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(exception)

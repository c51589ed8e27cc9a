"""Pytest configuration for sync engine tests

WHAT: Shared fixtures for adapter, orchestrator, webhook and endpoint tests
WHY: Every test gets its own SQLite file database, a real TokenCipher and a
     FastAPI app whose outbound HTTP goes through an httpx.MockTransport
REFERENCES:
    - commerce_hub/main.py: create_app
    - commerce_hub/deps.py: overridable providers
    - commerce_hub/database.py: get_db
"""

import os
import sys
from datetime import datetime, timedelta
from pathlib import Path
from types import SimpleNamespace
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Ensure backend is in path
BACKEND_ROOT = Path(__file__).resolve().parents[2]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

# Set test environment (read once by the cached Settings)
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
# Must be URL-safe base64-encoded 32-byte string
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", "MDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDA=")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("SHOPIFY_CLIENT_ID", "test-shopify-client-id")
os.environ.setdefault("SHOPIFY_CLIENT_SECRET", "test-shopify-secret")
os.environ.setdefault("NUVEMSHOP_CLIENT_ID", "4321")
os.environ.setdefault("NUVEMSHOP_CLIENT_SECRET", "test-nuvemshop-secret")
os.environ.setdefault("FACEBOOK_APP_ID", "test-fb-app")
os.environ.setdefault("FACEBOOK_APP_SECRET", "test-fb-secret")
os.environ.setdefault("GOOGLE_ADS_CLIENT_ID", "test-google-client")
os.environ.setdefault("GOOGLE_ADS_CLIENT_SECRET", "test-google-secret")
os.environ.setdefault("GOOGLE_ADS_DEVELOPER_TOKEN", "test-dev-token")
os.environ.setdefault("FRONTEND_URL", "http://localhost:3000")
os.environ.setdefault("BACKEND_URL", "http://localhost:8000")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

from commerce_hub.config import get_settings  # noqa: E402
from commerce_hub.models import (  # noqa: E402
    Base,
    Integration,
    IntegrationStatusEnum,
    Organization,
    PlatformEnum,
)
from commerce_hub.security import TokenCipher  # noqa: E402


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def test_db_engine(tmp_path):
    """File-backed SQLite so adapters can open their own sessions."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'commerce_hub_test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    return sessionmaker(bind=test_db_engine, autoflush=False, autocommit=False)


@pytest.fixture
def test_db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# ============================================================================
# Settings & Crypto
# ============================================================================

@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def cipher(settings) -> TokenCipher:
    return TokenCipher(settings.TOKEN_ENCRYPTION_KEY)


# ============================================================================
# Model Fixtures
# ============================================================================

@pytest.fixture
def test_organization(test_db_session) -> Organization:
    organization = Organization(name="Loja Teste")
    test_db_session.add(organization)
    test_db_session.commit()
    test_db_session.refresh(organization)
    return organization


@pytest.fixture
def make_integration(test_db_session, cipher, test_organization):
    """Factory: make_integration(PlatformEnum.shopify, access_token="tok", external_store_id="x")."""

    def _make(
        platform: PlatformEnum,
        *,
        organization: Organization = None,
        status: IntegrationStatusEnum = IntegrationStatusEnum.connected,
        **fields,
    ) -> Integration:
        organization = organization or test_organization
        integration = Integration(organization_id=organization.id, platform=platform, status=status)
        for name in ("api_key", "api_secret", "access_token", "refresh_token"):
            if fields.get(name):
                setattr(integration, name, cipher.encrypt(fields.pop(name), context=f"test:{name}"))
            else:
                fields.pop(name, None)
        for name, value in fields.items():
            setattr(integration, name, value)
        test_db_session.add(integration)
        test_db_session.commit()
        test_db_session.refresh(integration)
        return integration

    return _make


# ============================================================================
# Application & Client Fixtures
# ============================================================================

@pytest.fixture
def outbound():
    """Holder for the transport outbound platform calls go through.

    Tests assign `outbound.transport = httpx.MockTransport(handler)`.
    """
    return SimpleNamespace(transport=None)


@pytest.fixture
def app(session_factory, outbound):
    from commerce_hub.database import get_db
    from commerce_hub.deps import get_http_transport, get_session_factory
    from commerce_hub.main import create_app

    test_app = create_app()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_session_factory] = lambda: session_factory
    test_app.dependency_overrides[get_http_transport] = lambda: outbound.transport
    return test_app


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


# ============================================================================
# Authentication Fixtures
# ============================================================================

def make_session_token(claims: dict) -> str:
    from jose import jwt

    payload = {"sub": "user-123", "exp": datetime.utcnow() + timedelta(hours=1), **claims}
    return jwt.encode(payload, os.environ["JWT_SECRET"], algorithm="HS256")


@pytest.fixture
def session_token():
    """Factory: session_token({"org_id": ...}) -> signed JWT."""
    return make_session_token


@pytest.fixture
def auth_headers(test_organization):
    token = make_session_token({"org_id": str(test_organization.id)})
    return {"Authorization": f"Bearer {token}"}

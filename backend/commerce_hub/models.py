"""SQLAlchemy ORM models and enums.

This module defines the sync engine schema: tenants (organizations), their
platform integrations, and the normalized records pulled from or pushed by
those platforms (orders, ad metrics, Reportana checkout events), plus the
per-attempt sync ledger.

Natural-key uniqueness lives in the database so that every write path
(scheduled pull, manual pull, webhook push) can upsert on the same
conflict target.
"""

import uuid
import enum

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship

from commerce_hub.utils.parsing import utcnow


# Single Base used by the entire application
Base = declarative_base()


# Enums ---------------------------------------------------------

class PlatformEnum(str, enum.Enum):
    shopify = "SHOPIFY"
    nuvemshop = "NUVEMSHOP"
    cartpanda = "CARTPANDA"
    yampi = "YAMPI"
    facebook_ads = "FACEBOOK_ADS"
    google_ads = "GOOGLE_ADS"
    reportana = "REPORTANA"


class IntegrationStatusEnum(str, enum.Enum):
    connected = "CONNECTED"
    disconnected = "DISCONNECTED"


class SyncStatusEnum(str, enum.Enum):
    idle = "IDLE"
    syncing = "SYNCING"
    success = "SUCCESS"
    failed = "FAILED"


def _enum_values(obj):
    return [e.value for e in obj]


# Tenancy -------------------------------------------------------

class Organization(Base):
    """Tenant boundary. Owns every integration and synced record."""
    __tablename__ = "organizations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    integrations = relationship("Integration", back_populates="organization")

    def __str__(self):
        return self.name


class Integration(Base):
    """Connection between one organization and one external platform.

    Credential columns hold Fernet ciphertext only (see security.TokenCipher).
    A DISCONNECTED integration has every credential column nulled; the
    disconnect operation in services/token_service.py enforces that.
    """
    __tablename__ = "integrations"
    __table_args__ = (
        UniqueConstraint("organization_id", "platform", name="uq_integration_org_platform"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True)
    platform = Column(
        Enum(PlatformEnum, name="platform_enum", values_callable=_enum_values),
        nullable=False,
    )
    status = Column(
        Enum(IntegrationStatusEnum, name="integration_status_enum", values_callable=_enum_values),
        nullable=False,
        default=IntegrationStatusEnum.disconnected,
    )

    # Encrypted credentials (each independently nullable)
    api_key = Column(Text, nullable=True)
    api_secret = Column(Text, nullable=True)
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)

    external_store_id = Column(String, nullable=True)  # shop domain, store id, alias
    external_account_id = Column(String, nullable=True)  # ad account / customer id
    token_expires_at = Column(DateTime, nullable=True)

    last_sync_at = Column(DateTime, nullable=True)
    sync_status = Column(
        Enum(SyncStatusEnum, name="sync_status_enum", values_callable=_enum_values),
        nullable=False,
        default=SyncStatusEnum.idle,
    )
    error_message = Column(Text, nullable=True)

    # "metadata" is reserved on declarative classes
    extra_metadata = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    organization = relationship("Organization", back_populates="integrations")

    def __str__(self):
        return f"{self.platform.value} ({self.status.value})"


# Synced records ------------------------------------------------

class Order(Base):
    """E-commerce order normalized from any store platform.

    (organization_id, platform, external_order_id) is the idempotence key.
    `status` is a plain string: canonical values are paid, pending,
    cancelled, refunded, shipped, delivered; unknown platform values are
    stored verbatim.
    """
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "platform", "external_order_id",
            name="uq_order_org_platform_external_id",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True)
    platform = Column(
        Enum(PlatformEnum, name="platform_enum", values_callable=_enum_values),
        nullable=False,
    )
    external_order_id = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")
    customer_name = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    total_amount = Column(Numeric(14, 2), nullable=False, default=0)
    currency = Column(String(8), nullable=False, default="BRL")
    items_count = Column(Integer, nullable=False, default=0)
    order_date = Column(DateTime, nullable=False)
    raw_data = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class AdMetric(Base):
    """Daily ad performance row.

    Two uniqueness rules: ad-level rows are keyed by
    (org, platform, campaign, ad, date); campaign-level rows (ad_id NULL,
    e.g. Google Ads) by (org, platform, campaign, date). Both are partial
    unique indexes so the upsert can target either.
    """
    __tablename__ = "ad_metrics"
    __table_args__ = (
        Index(
            "uq_ad_metric_ad_level",
            "organization_id", "platform", "campaign_id", "ad_id", "date",
            unique=True,
            postgresql_where=text("ad_id IS NOT NULL"),
            sqlite_where=text("ad_id IS NOT NULL"),
        ),
        Index(
            "uq_ad_metric_campaign_level",
            "organization_id", "platform", "campaign_id", "date",
            unique=True,
            postgresql_where=text("ad_id IS NULL"),
            sqlite_where=text("ad_id IS NULL"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True)
    platform = Column(
        Enum(PlatformEnum, name="platform_enum", values_callable=_enum_values),
        nullable=False,
    )
    campaign_id = Column(String, nullable=False)
    campaign_name = Column(String, nullable=True)
    ad_set_id = Column(String, nullable=True)
    ad_set_name = Column(String, nullable=True)
    ad_id = Column(String, nullable=True)
    ad_name = Column(String, nullable=True)
    thumbnail_url = Column(Text, nullable=True)
    video_url = Column(Text, nullable=True)
    date = Column(Date, nullable=False)

    impressions = Column(Integer, nullable=False, default=0)
    reach = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)
    spend = Column(Numeric(14, 2), nullable=False, default=0)
    conversions = Column(Integer, nullable=False, default=0)
    revenue = Column(Numeric(14, 2), nullable=False, default=0)
    add_to_cart = Column(Integer, nullable=False, default=0)
    initiate_checkout = Column(Integer, nullable=False, default=0)
    currency = Column(String(8), nullable=False, default="BRL")
    raw_data = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class ReportanaEvent(Base):
    """Abandoned / recovered checkout event pushed by Reportana."""
    __tablename__ = "reportana_events"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "event_type", "reference_id",
            name="uq_reportana_event_org_type_reference",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True)
    event_type = Column(String, nullable=False)  # abandoned_checkout, checkout_recovered
    reference_id = Column(String, nullable=False)
    customer_name = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)
    total_price = Column(Numeric(14, 2), nullable=False, default=0)
    currency = Column(String(8), nullable=False, default="BRL")
    line_items = Column(JSON, nullable=True)
    raw_data = Column(JSON, nullable=True)
    event_date = Column(DateTime, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)


# Ledger --------------------------------------------------------

class SyncLog(Base):
    """One row per sync attempt per platform.

    Written as SYNCING before any network call and updated exactly once to
    SUCCESS or FAILED. Never deleted by the application.
    """
    __tablename__ = "sync_logs"
    __table_args__ = (
        Index("ix_sync_logs_status_started_at", "status", "started_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True)
    integration_id = Column(UUID(as_uuid=True), ForeignKey("integrations.id"), nullable=True, index=True)
    platform = Column(
        Enum(PlatformEnum, name="platform_enum", values_callable=_enum_values),
        nullable=False,
    )
    status = Column(
        Enum(SyncStatusEnum, name="sync_status_enum", values_callable=_enum_values),
        nullable=False,
        default=SyncStatusEnum.syncing,
    )
    records_synced = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime, default=utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

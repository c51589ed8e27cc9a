"""Create sync engine tables (organizations, integrations, orders, ad_metrics, reportana_events, sync_logs)

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 09:00:00.000000

WHAT:
    Creates the full schema for multi-platform syncing:
    - organizations: tenant boundary
    - integrations: one per (organization, platform), encrypted credentials
    - orders: normalized store orders, unique per external id
    - ad_metrics: daily ad / campaign performance with partial unique indexes
    - reportana_events: abandoned / recovered checkout events
    - sync_logs: one ledger row per sync attempt

WHY:
    Every write path (pull, webhook) upserts on the natural keys declared
    here, so uniqueness has to live in the database.

REFERENCES:
    - commerce_hub/models.py
    - commerce_hub/services/records.py (conflict targets)
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '20261019_000001'
down_revision = None
branch_labels = None
depends_on = None


PLATFORMS = ('SHOPIFY', 'NUVEMSHOP', 'CARTPANDA', 'YAMPI', 'FACEBOOK_ADS', 'GOOGLE_ADS', 'REPORTANA')
SYNC_STATUSES = ('IDLE', 'SYNCING', 'SUCCESS', 'FAILED')


def upgrade() -> None:
    # =========================================================================
    # STEP 1: Enums
    # =========================================================================
    platform_enum = postgresql.ENUM(*PLATFORMS, name='platform_enum', create_type=False)
    integration_status_enum = postgresql.ENUM('CONNECTED', 'DISCONNECTED', name='integration_status_enum', create_type=False)
    sync_status_enum = postgresql.ENUM(*SYNC_STATUSES, name='sync_status_enum', create_type=False)

    bind = op.get_bind()
    platform_enum.create(bind, checkfirst=True)
    integration_status_enum.create(bind, checkfirst=True)
    sync_status_enum.create(bind, checkfirst=True)

    # =========================================================================
    # STEP 2: organizations / integrations
    # =========================================================================
    op.create_table(
        'organizations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'integrations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('platform', platform_enum, nullable=False),
        sa.Column('status', integration_status_enum, nullable=False, server_default='DISCONNECTED'),
        sa.Column('api_key', sa.Text(), nullable=True),
        sa.Column('api_secret', sa.Text(), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('external_store_id', sa.String(), nullable=True),
        sa.Column('external_account_id', sa.String(), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(), nullable=True),
        sa.Column('last_sync_at', sa.DateTime(), nullable=True),
        sa.Column('sync_status', sync_status_enum, nullable=False, server_default='IDLE'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('organization_id', 'platform', name='uq_integration_org_platform'),
    )
    op.create_index('ix_integrations_organization_id', 'integrations', ['organization_id'])

    # =========================================================================
    # STEP 3: orders
    # =========================================================================
    op.create_table(
        'orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('platform', platform_enum, nullable=False),
        sa.Column('external_order_id', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('customer_name', sa.String(), nullable=True),
        sa.Column('customer_email', sa.String(), nullable=True),
        sa.Column('total_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(8), nullable=False, server_default='BRL'),
        sa.Column('items_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('order_date', sa.DateTime(), nullable=False),
        sa.Column('raw_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('organization_id', 'platform', 'external_order_id', name='uq_order_org_platform_external_id'),
    )
    op.create_index('ix_orders_organization_id', 'orders', ['organization_id'])

    # =========================================================================
    # STEP 4: ad_metrics
    # =========================================================================
    # WHAT: Two partial unique indexes, one per grain
    # WHY: Google Ads rows are campaign-level (ad_id NULL); NULLs never
    #      collide in a plain unique index
    op.create_table(
        'ad_metrics',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('platform', platform_enum, nullable=False),
        sa.Column('campaign_id', sa.String(), nullable=False),
        sa.Column('campaign_name', sa.String(), nullable=True),
        sa.Column('ad_set_id', sa.String(), nullable=True),
        sa.Column('ad_set_name', sa.String(), nullable=True),
        sa.Column('ad_id', sa.String(), nullable=True),
        sa.Column('ad_name', sa.String(), nullable=True),
        sa.Column('thumbnail_url', sa.Text(), nullable=True),
        sa.Column('video_url', sa.Text(), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('impressions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reach', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('clicks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('spend', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('conversions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('revenue', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('add_to_cart', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('initiate_checkout', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(8), nullable=False, server_default='BRL'),
        sa.Column('raw_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_ad_metrics_organization_id', 'ad_metrics', ['organization_id'])
    op.create_index(
        'uq_ad_metric_ad_level',
        'ad_metrics',
        ['organization_id', 'platform', 'campaign_id', 'ad_id', 'date'],
        unique=True,
        postgresql_where=sa.text('ad_id IS NOT NULL'),
    )
    op.create_index(
        'uq_ad_metric_campaign_level',
        'ad_metrics',
        ['organization_id', 'platform', 'campaign_id', 'date'],
        unique=True,
        postgresql_where=sa.text('ad_id IS NULL'),
    )

    # =========================================================================
    # STEP 5: reportana_events
    # =========================================================================
    op.create_table(
        'reportana_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('reference_id', sa.String(), nullable=False),
        sa.Column('customer_name', sa.String(), nullable=True),
        sa.Column('customer_email', sa.String(), nullable=True),
        sa.Column('customer_phone', sa.String(), nullable=True),
        sa.Column('total_price', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(8), nullable=False, server_default='BRL'),
        sa.Column('line_items', sa.JSON(), nullable=True),
        sa.Column('raw_data', sa.JSON(), nullable=True),
        sa.Column('event_date', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('organization_id', 'event_type', 'reference_id', name='uq_reportana_event_org_type_reference'),
    )
    op.create_index('ix_reportana_events_organization_id', 'reportana_events', ['organization_id'])

    # =========================================================================
    # STEP 6: sync_logs
    # =========================================================================
    op.create_table(
        'sync_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('integration_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('integrations.id'), nullable=True),
        sa.Column('platform', platform_enum, nullable=False),
        sa.Column('status', sync_status_enum, nullable=False, server_default='SYNCING'),
        sa.Column('records_synced', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_sync_logs_organization_id', 'sync_logs', ['organization_id'])
    op.create_index('ix_sync_logs_integration_id', 'sync_logs', ['integration_id'])
    # Stale sweep scans SYNCING rows by age
    op.create_index('ix_sync_logs_status_started_at', 'sync_logs', ['status', 'started_at'])


def downgrade() -> None:
    op.drop_index('ix_sync_logs_status_started_at', table_name='sync_logs')
    op.drop_index('ix_sync_logs_integration_id', table_name='sync_logs')
    op.drop_index('ix_sync_logs_organization_id', table_name='sync_logs')
    op.drop_table('sync_logs')

    op.drop_index('ix_reportana_events_organization_id', table_name='reportana_events')
    op.drop_table('reportana_events')

    op.drop_index('uq_ad_metric_campaign_level', table_name='ad_metrics')
    op.drop_index('uq_ad_metric_ad_level', table_name='ad_metrics')
    op.drop_index('ix_ad_metrics_organization_id', table_name='ad_metrics')
    op.drop_table('ad_metrics')

    op.drop_index('ix_orders_organization_id', table_name='orders')
    op.drop_table('orders')

    op.drop_index('ix_integrations_organization_id', table_name='integrations')
    op.drop_table('integrations')
    op.drop_table('organizations')

    op.execute('DROP TYPE IF EXISTS sync_status_enum')
    op.execute('DROP TYPE IF EXISTS integration_status_enum')
    op.execute('DROP TYPE IF EXISTS platform_enum')

"""Pydantic schemas for sync, webhook and integration endpoints."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class SyncResult(BaseModel):
    """Per-platform outcome of an orchestrated sync.

    `synced` is set on success, `error` on failure.
    """

    platform: str = Field(description="Platform enum value, e.g. SHOPIFY")
    success: bool
    synced: Optional[int] = None
    error: Optional[str] = None


class SyncAllResponse(BaseModel):
    results: List[SyncResult]


class PlatformSyncResponse(BaseModel):
    """Single-adapter response: {"success": true, "synced": n} or {"error": msg}."""

    success: Optional[bool] = None
    synced: Optional[int] = None
    error: Optional[str] = None


class OrganizationSyncResult(BaseModel):
    organization_id: UUID
    name: str
    synced: Optional[List[SyncResult]] = None
    error: Optional[str] = None


class CronSyncResponse(BaseModel):
    success: bool
    organizations: int
    stale_syncs_closed: int = 0
    results: List[OrganizationSyncResult]


class WebhookAck(BaseModel):
    success: bool = True
    message: Optional[str] = None


class IntegrationSummary(BaseModel):
    """Integration status for the integrations page (credentials never included)."""

    id: UUID
    platform: str
    status: str
    sync_status: str
    external_store_id: Optional[str] = None
    external_account_id: Optional[str] = None
    last_sync_at: Optional[datetime] = None
    error_message: Optional[str] = None


class ApiKeyConnectRequest(BaseModel):
    api_key: str = Field(min_length=1)
    api_secret: Optional[str] = None
    external_store_id: Optional[str] = None


class ShopifyConnectRequest(BaseModel):
    shop: str = Field(min_length=1, description="mystore or mystore.myshopify.com")


class HealthResponse(BaseModel):
    status: str = Field(description="Service status", examples=["ok"])

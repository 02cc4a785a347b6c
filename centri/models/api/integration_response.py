# models/api/integration_response.py
"""
Response models for integration and sync endpoints.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class ClassificationResponse(BaseModel):
    type: Literal["meeting", "task"]
    confidence: float = Field(..., ge=0.0, le=1.0)
    reason: str


class ConnectURLResponse(BaseModel):
    provider: str
    auth_url: str = Field(..., description="Provider OAuth authorization URL")


class IntegrationStatus(BaseModel):
    provider: str
    connected: bool = True
    needs_reconnect: bool = False
    last_error: str | None = None
    last_synced_at: datetime | None = None
    expires_at: datetime | None = None


class IntegrationListResponse(BaseModel):
    integrations: list[IntegrationStatus] = Field(default_factory=list)


class IntegrationCallbackResponse(BaseModel):
    success: bool
    provider: str
    message: str


class DisconnectResponse(BaseModel):
    provider: str
    disconnected: bool


class ProviderSyncResponse(BaseModel):
    provider: str
    status: Literal["success", "partial_success", "failed", "skipped"]
    sync_run_id: str | None = None
    counts: dict[str, int] = Field(default_factory=dict)
    error: str | None = None
    reason: str | None = None
    reconnect_required: bool = False


class SyncResponse(BaseModel):
    success: bool = Field(..., description="False when any provider failed")
    tenant_id: str
    results: list[ProviderSyncResponse] = Field(default_factory=list)

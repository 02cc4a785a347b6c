# models/api/update_response.py
"""
Response models for the updates feed.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class UpdateItemResponse(BaseModel):
    id: str
    source: str
    type: str
    severity: Literal["urgent", "important", "info"]
    title: str
    body: str | None = None
    occurred_at: datetime
    external_id: str
    url: str | None = None
    is_read: bool = False
    is_dismissed: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)


class SourceCheckResponse(BaseModel):
    source: str
    status: Literal["not_connected", "checked_empty", "checked_ok", "error"]
    count: int = 0
    error: str | None = None


class RefreshUpdatesResponse(BaseModel):
    items: list[UpdateItemResponse] = Field(default_factory=list)
    source_checks: list[SourceCheckResponse] = Field(default_factory=list)
    last_refreshed_at: datetime
    new_high_severity: int = Field(default=0, description="High-severity items notified this run")


class UpdateListResponse(BaseModel):
    items: list[UpdateItemResponse] = Field(default_factory=list)
    count: int = 0


class UpdateActionResponse(BaseModel):
    success: bool
    updated: int = 0

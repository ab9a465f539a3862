"""Pydantic models for API request/response."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

# ============ Request Models ============


class TagWriteRequest(BaseModel):
    """Request to write a value to a live tag."""

    value: Any = Field(..., description="Value to write (bool, number or string)")


# ============ Response Models ============


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


class StatusResponse(BaseModel):
    """Sync engine status."""

    last_sync_time: datetime | None = Field(None, description="Start of the last sync cycle")
    last_sync_duration_ms: int | None = Field(None, description="Duration of the last cycle")
    last_historical_sync_time: datetime = Field(..., description="Last checkpoint write")
    last_transaction_id: int = Field(..., description="Last committed feed transaction")
    success_count: int
    failure_count: int
    history_points: int
    history_enabled: bool
    realtime_devices: list[str] = Field(default_factory=list)
    registered_tags: int = 0


class ControlResponse(BaseModel):
    """Result of a reset or force request."""

    action: str
    accepted: bool
    detail: str = ""


class TagResponse(BaseModel):
    """Current value of a live tag."""

    path: str
    value: Any = None
    quality: str
    timestamp: datetime


class TagListResponse(BaseModel):
    """All registered tag paths."""

    paths: list[str]
    count: int


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    detail: str | None = None

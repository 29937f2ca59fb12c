"""
Teamleader sync API response models.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class SyncStartResponse(BaseModel):
    status: Literal["success", "processing", "error"]
    message: str
    sync_started: bool = False
    authorized: bool | None = None
    links: dict[str, str] | None = None
    started_at: datetime | None = None


class SyncStatusResponse(BaseModel):
    """Latest run summary plus live state."""

    has_run: bool = Field(..., description="Whether any run finished since startup")
    is_running: bool = Field(..., description="Whether a run is currently in progress")
    message: str | None = None
    last_sync: dict[str, Any] | None = Field(default=None, description="Most recent run summary")

"""
Sync run results.
"""

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

SyncOperation = Literal["full_sync", "custom_fields_refresh"]


class SyncRunSummary(BaseModel):
    """Outcome of one sync or custom-field refresh run."""

    operation: SyncOperation = "full_sync"
    success: bool = False
    total_processed: int = 0
    created: int = 0
    updated: int = 0
    errors: int = 0
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    message: str | None = None
    error_type: str | None = None
    role_recalculation_error: str | None = None

    def finish(self) -> "SyncRunSummary":
        """Stamp completion time and derive `success` from the error count."""
        self.completed_at = datetime.now(UTC)
        self.success = self.errors == 0
        return self

    def fail(self, message: str, error_type: str | None = None) -> "SyncRunSummary":
        self.completed_at = datetime.now(UTC)
        self.success = False
        self.message = message
        self.error_type = error_type
        return self

    @property
    def duration_seconds(self) -> float | None:
        if not self.completed_at:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> dict:
        data = self.model_dump(mode="json")
        data["duration_seconds"] = self.duration_seconds
        return data

"""
In-memory holder for the most recent sync run summary.
"""

from crm_sync.models.domain.sync_domain import SyncRunSummary


class SyncStatusStore:
    """Keeps only the latest summary. Lost on restart, no history."""

    def __init__(self):
        self._last: SyncRunSummary | None = None

    def record(self, summary: SyncRunSummary) -> None:
        self._last = summary

    def last(self) -> SyncRunSummary | None:
        return self._last

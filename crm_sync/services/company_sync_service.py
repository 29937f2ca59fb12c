"""
Company synchronization from Teamleader into the local company store.

A full sync pages through `companies.list`, fetches details for every
record, and upserts by Teamleader id. A custom-field refresh re-reads the
details of every stored company and rewrites only its custom fields. Both
isolate per-record failures, count them, and trigger the role
recalculation hook once after a clean run.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from crm_sync.config import settings
from crm_sync.infrastructure.observability.logging import get_logger
from crm_sync.models.domain.company_domain import Company
from crm_sync.models.domain.sync_domain import SyncOperation, SyncRunSummary
from crm_sync.repositories.base import LocalEntityStore
from crm_sync.services.sync_status_store import SyncStatusStore
from crm_sync.services.teamleader.company_client import (
    TeamleaderCompanyClient,
    is_error_response,
)
from crm_sync.services.teamleader.company_mapper import (
    extract_custom_fields,
    extract_external_id,
    map_company,
)
from crm_sync.services.token_service import OAuthTokenManager

logger = get_logger(__name__)

RoleHook = Callable[[], Awaitable[None] | None]

ALREADY_RUNNING_MESSAGE = "sync already in progress"
NOT_AUTHORIZED_MESSAGE = "not authorized"


def _error_message(response) -> str:
    if isinstance(response, dict) and response.get("message"):
        return str(response["message"])
    return "no response"


class CompanySyncService:
    """Orchestrates full syncs and custom-field refreshes. One run at a time."""

    def __init__(
        self,
        company_client: TeamleaderCompanyClient,
        company_store: LocalEntityStore,
        token_manager: OAuthTokenManager,
        status_store: SyncStatusStore | None = None,
        role_hook: RoleHook | None = None,
        page_size: int | None = None,
        detail_delay_seconds: float | None = None,
        probe_connection: bool | None = None,
    ):
        self.company_client = company_client
        self.company_store = company_store
        self.token_manager = token_manager
        self.status_store = status_store or SyncStatusStore()
        self.role_hook = role_hook
        self.page_size = page_size or settings.TEAMLEADER_SYNC_PAGE_SIZE
        self.detail_delay_seconds = (
            settings.TEAMLEADER_SYNC_DETAIL_DELAY_SECONDS
            if detail_delay_seconds is None
            else detail_delay_seconds
        )
        self.probe_connection = (
            settings.TEAMLEADER_SYNC_PROBE_CONNECTION
            if probe_connection is None
            else probe_connection
        )
        self._running = False
        self._background_tasks: set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self._running

    def get_last_sync_status(self) -> SyncRunSummary | None:
        return self.status_store.last()

    # =================================================================
    # Fire-and-forget entry points
    # =================================================================

    def start_full_sync(self) -> asyncio.Task | None:
        """
        Schedule a full sync on the running loop and return its task.

        The run is claimed before this returns, so a second call made before
        the first task gets scheduled returns None instead of a task.
        """
        return self._spawn("full_sync", self._run_full_sync, "teamleader_company_sync")

    def start_custom_fields_refresh(self) -> asyncio.Task | None:
        return self._spawn(
            "custom_fields_refresh",
            self._run_custom_fields_refresh,
            "teamleader_custom_fields_refresh",
        )

    def _spawn(
        self,
        operation: SyncOperation,
        runner: Callable[[SyncRunSummary], Awaitable[None]],
        name: str,
    ) -> asyncio.Task | None:
        summary = self._claim(operation)
        if summary is None:
            return None
        task = asyncio.create_task(self._execute(summary, runner), name=name)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    # =================================================================
    # Runs
    # =================================================================

    async def sync_all_companies(self) -> SyncRunSummary:
        """
        Run a full company sync.

        Returns:
            SyncRunSummary: Counters and outcome. Never raises.
        """
        return await self._guarded_run("full_sync", self._run_full_sync)

    async def refresh_custom_fields(self) -> SyncRunSummary:
        """Re-fetch custom fields for every stored company. Never raises."""
        return await self._guarded_run("custom_fields_refresh", self._run_custom_fields_refresh)

    def _claim(self, operation: SyncOperation) -> SyncRunSummary | None:
        """Set the running flag, or return None when another run holds it."""
        if self._running:
            logger.warning(
                "Teamleader sync requested while another run is active", operation=operation
            )
            return None
        self._running = True
        return SyncRunSummary(operation=operation)

    async def _guarded_run(
        self, operation: SyncOperation, runner: Callable[[SyncRunSummary], Awaitable[None]]
    ) -> SyncRunSummary:
        summary = self._claim(operation)
        if summary is None:
            return SyncRunSummary(operation=operation).fail(ALREADY_RUNNING_MESSAGE)
        return await self._execute(summary, runner)

    async def _execute(
        self, summary: SyncRunSummary, runner: Callable[[SyncRunSummary], Awaitable[None]]
    ) -> SyncRunSummary:
        operation = summary.operation
        logger.info("Teamleader sync run started", operation=operation)
        try:
            try:
                await runner(summary)
            except Exception as e:
                logger.error(
                    "Teamleader sync run aborted",
                    operation=operation,
                    error=str(e),
                    error_type=type(e).__name__,
                    total_processed=summary.total_processed,
                    errors=summary.errors,
                )
                summary.fail(str(e), type(e).__name__)

            self.status_store.record(summary)

            logger.info(
                "Teamleader sync run finished",
                operation=operation,
                success=summary.success,
                total_processed=summary.total_processed,
                created=summary.created,
                updated=summary.updated,
                errors=summary.errors,
                duration_seconds=summary.duration_seconds,
                message=summary.message,
            )
            return summary
        finally:
            self._running = False

    async def _run_full_sync(self, summary: SyncRunSummary) -> None:
        if not await self.token_manager.has_valid_token():
            logger.warning("Teamleader sync skipped - no valid access token")
            summary.fail(NOT_AUTHORIZED_MESSAGE)
            return

        if self.probe_connection:
            probe = await self.company_client.test_connection()
            if is_error_response(probe):
                summary.fail(f"connection test failed: {_error_message(probe)}")
                return

        await self._page_through_companies(summary)

        summary.finish()
        summary.message = (
            f"Synced {summary.total_processed} companies "
            f"({summary.created} created, {summary.updated} updated, {summary.errors} errors)"
        )
        if summary.success:
            await self._recalculate_roles(summary)

    async def _page_through_companies(self, summary: SyncRunSummary) -> None:
        page = 1
        while True:
            response = await self.company_client.list_companies(page, self.page_size)
            if is_error_response(response):
                summary.errors += 1
                logger.error(
                    "Failed to list Teamleader companies",
                    page=page,
                    error=_error_message(response),
                )
                break

            records = response.get("data")
            if not isinstance(records, list):
                summary.errors += 1
                logger.error("Teamleader company list has no data array", page=page)
                break

            logger.info("Processing Teamleader company page", page=page, records=len(records))

            for record in records:
                await self._sync_company_record(record, summary)
                if self.detail_delay_seconds > 0:
                    await asyncio.sleep(self.detail_delay_seconds)

            if len(records) < self.page_size:
                break
            page += 1

    async def _sync_company_record(self, record, summary: SyncRunSummary) -> None:
        external_id = extract_external_id(record)
        if not external_id:
            summary.errors += 1
            logger.warning("Skipping Teamleader company without id")
            return

        try:
            details = await self.company_client.get_company_details(external_id)
            if is_error_response(details) or not isinstance(details.get("data"), dict):
                summary.errors += 1
                logger.error(
                    "Failed to fetch Teamleader company details",
                    external_id=external_id,
                    error=_error_message(details),
                )
                return

            data = details["data"]
            if not extract_external_id(data):
                data = {**data, "id": external_id}

            existing = await self.company_store.find_by_external_id(external_id)
            saved = await self.company_store.save(map_company(data, existing=existing))

            if existing:
                summary.updated += 1
            else:
                summary.created += 1
            summary.total_processed += 1

            logger.debug(
                "Company synced",
                external_id=external_id,
                company_id=saved.id if saved else None,
                created=existing is None,
            )

        except Exception as e:
            summary.errors += 1
            logger.error(
                "Failed to sync Teamleader company",
                external_id=external_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def _run_custom_fields_refresh(self, summary: SyncRunSummary) -> None:
        companies = await self.company_store.find_all()
        logger.info("Refreshing Teamleader custom fields", companies=len(companies))

        for company in companies:
            await self._refresh_company_custom_fields(company, summary)
            if self.detail_delay_seconds > 0:
                await asyncio.sleep(self.detail_delay_seconds)

        summary.finish()
        summary.message = (
            f"Refreshed custom fields for {summary.updated} companies ({summary.errors} errors)"
        )
        if summary.success:
            await self._recalculate_roles(summary)

    async def _refresh_company_custom_fields(
        self, company: Company, summary: SyncRunSummary
    ) -> None:
        try:
            details = await self.company_client.get_company_details(company.external_id)
            if is_error_response(details) or not isinstance(details.get("data"), dict):
                summary.errors += 1
                logger.error(
                    "Failed to fetch Teamleader company details",
                    external_id=company.external_id,
                    error=_error_message(details),
                )
                return

            data = details["data"]
            company.custom_fields = extract_custom_fields(data)
            if data.get("status") is not None:
                company.status = str(data["status"])
            company.synced_at = datetime.now(UTC)

            await self.company_store.save(company)
            summary.updated += 1
            summary.total_processed += 1

        except Exception as e:
            summary.errors += 1
            logger.error(
                "Failed to refresh Teamleader custom fields",
                external_id=company.external_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def _recalculate_roles(self, summary: SyncRunSummary) -> None:
        if self.role_hook is None:
            logger.debug("No role recalculation hook configured")
            return

        try:
            result = self.role_hook()
            if inspect.isawaitable(result):
                await result
            logger.info("Role recalculation completed", operation=summary.operation)
        except Exception as e:
            summary.success = False
            summary.role_recalculation_error = str(e)
            logger.error(
                "Role recalculation failed",
                operation=summary.operation,
                error=str(e),
                error_type=type(e).__name__,
            )

"""
Scheduled Teamleader company sync.

Runs a full company sync every TEAMLEADER_SYNC_INTERVAL_MINUTES when
TEAMLEADER_SYNC_ENABLED is set, skipping cycles while the integration is
not authorized.
"""

import asyncio

from crm_sync.config import settings
from crm_sync.db.pool import db_pool
from crm_sync.infrastructure.observability.logging import get_logger
from crm_sync.services.company_sync_service import CompanySyncService
from crm_sync.services.token_service import OAuthTokenManager

logger = get_logger(__name__)

ERROR_BACKOFF_SECONDS = 60


class CompanySyncJob:
    """One scheduled sync cycle. Services are resolved lazily so tests can inject fakes."""

    def __init__(
        self,
        sync_service: CompanySyncService | None = None,
        token_manager: OAuthTokenManager | None = None,
    ):
        self._sync_service = sync_service
        self._token_manager = token_manager

    @property
    def sync_service(self) -> CompanySyncService:
        if self._sync_service is None:
            from crm_sync.dependencies import get_company_sync_service

            self._sync_service = get_company_sync_service()
        return self._sync_service

    @property
    def token_manager(self) -> OAuthTokenManager:
        if self._token_manager is None:
            from crm_sync.dependencies import get_token_manager

            self._token_manager = get_token_manager()
        return self._token_manager

    async def run_once(self) -> dict:
        """
        Run a single scheduled sync.

        Returns:
            dict: Run summary, or `{"skipped": True, "reason": ...}`
        """
        if self.sync_service.is_running:
            logger.warning("Company sync already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        if not await self.token_manager.has_valid_token():
            logger.warning("Scheduled company sync skipped - Teamleader not authorized")
            return {"skipped": True, "reason": "not_authorized"}

        summary = await self.sync_service.sync_all_companies()
        return summary.to_dict()

    async def refresh_custom_fields(self) -> dict:
        if not await self.token_manager.has_valid_token():
            logger.warning("Custom fields refresh skipped - Teamleader not authorized")
            return {"skipped": True, "reason": "not_authorized"}

        summary = await self.sync_service.refresh_custom_fields()
        return summary.to_dict()


async def start_company_sync_scheduler() -> None:
    """Worker entrypoint: loop forever, one full sync per interval."""
    if not settings.TEAMLEADER_SYNC_ENABLED:
        logger.info("Scheduled company sync disabled (TEAMLEADER_SYNC_ENABLED is false)")
        return

    interval_seconds = settings.TEAMLEADER_SYNC_INTERVAL_MINUTES * 60
    logger.info(
        "Starting company sync scheduler",
        interval_minutes=settings.TEAMLEADER_SYNC_INTERVAL_MINUTES,
    )

    await db_pool.initialize()
    job = CompanySyncJob()

    try:
        while True:
            try:
                result = await job.run_once()
                logger.info("Company sync cycle completed", **result)
                await asyncio.sleep(interval_seconds)

            except Exception as e:
                logger.error(
                    "Error in company sync scheduler", error=str(e), error_type=type(e).__name__
                )
                await asyncio.sleep(ERROR_BACKOFF_SECONDS)
    finally:
        await db_pool.close()


async def run_custom_fields_refresh_job() -> None:
    """Worker entrypoint: refresh custom fields of all stored companies once."""
    await db_pool.initialize()
    try:
        result = await CompanySyncJob().refresh_custom_fields()
        logger.info("Custom fields refresh job completed", **result)
    finally:
        await db_pool.close()

"""
Teamleader sync routes. Runs are started in the background and reported
through the status endpoint.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from crm_sync.dependencies import get_company_client, get_company_sync_service, get_token_manager
from crm_sync.infrastructure.observability.logging import get_logger
from crm_sync.models.api.sync_response import SyncStartResponse, SyncStatusResponse
from crm_sync.services.company_sync_service import CompanySyncService
from crm_sync.services.teamleader.company_client import TeamleaderCompanyClient, is_error_response
from crm_sync.services.token_service import OAuthTokenManager

logger = get_logger(__name__)

router = APIRouter(prefix="/api/teamleader/sync", tags=["teamleader-sync"])

AUTHORIZE_LINKS = {
    "authorize": "/api/teamleader/oauth/authorize",
    "status": "/api/teamleader/oauth/status",
}


def _not_authorized() -> SyncStartResponse:
    return SyncStartResponse(
        status="error",
        message="Teamleader integration is not authorized",
        authorized=False,
        links=AUTHORIZE_LINKS,
    )


def _already_running() -> JSONResponse:
    body = SyncStartResponse(status="error", message="A synchronization is already running")
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=body.model_dump(mode="json"))


@router.post("/companies", response_model=SyncStartResponse)
async def sync_companies(
    sync_service: CompanySyncService = Depends(get_company_sync_service),
    token_manager: OAuthTokenManager = Depends(get_token_manager),
    company_client: TeamleaderCompanyClient = Depends(get_company_client),
):
    """
    Start a full company sync in the background.

    Authorization and API connectivity are checked up front so the caller
    gets immediate feedback; the run itself is reported via /status.
    """
    if not await token_manager.has_valid_token():
        return _not_authorized()

    probe = await company_client.test_connection()
    if is_error_response(probe):
        return SyncStartResponse(
            status="error",
            message=f"API connection test failed: {probe.get('message', 'Unknown error')}",
        )

    if sync_service.is_running:
        return _already_running()

    if sync_service.start_full_sync() is None:
        return _already_running()
    logger.info("Teamleader company sync started from API")

    body = SyncStartResponse(
        status="success",
        message="Company synchronization started",
        sync_started=True,
        started_at=datetime.now(UTC),
    )
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=body.model_dump(mode="json"))


@router.post("/refresh-custom-fields", response_model=SyncStartResponse)
async def refresh_custom_fields(
    sync_service: CompanySyncService = Depends(get_company_sync_service),
    token_manager: OAuthTokenManager = Depends(get_token_manager),
):
    if not await token_manager.has_valid_token():
        return _not_authorized()

    if sync_service.is_running:
        return _already_running()

    if sync_service.start_custom_fields_refresh() is None:
        return _already_running()
    logger.info("Teamleader custom fields refresh started from API")

    body = SyncStartResponse(
        status="processing",
        message="Custom fields refresh and user roles update started",
        sync_started=True,
        started_at=datetime.now(UTC),
    )
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=body.model_dump(mode="json"))


@router.get("/status", response_model=SyncStatusResponse)
async def sync_status(sync_service: CompanySyncService = Depends(get_company_sync_service)):
    last = sync_service.get_last_sync_status()

    if last is None:
        return SyncStatusResponse(
            has_run=False,
            is_running=sync_service.is_running,
            message="No synchronization has been performed yet",
        )

    return SyncStatusResponse(
        has_run=True,
        is_running=sync_service.is_running,
        message=last.message,
        last_sync=last.to_dict(),
    )

"""
Process-wide service instances, exposed as FastAPI dependencies.

Tests swap them out with `app.dependency_overrides`.
"""

from functools import lru_cache

from crm_sync.repositories.company_repository import CompanyRepository
from crm_sync.repositories.oauth_token_repository import OAuthTokenRepository
from crm_sync.services.company_sync_service import CompanySyncService
from crm_sync.services.sync_status_store import SyncStatusStore
from crm_sync.services.teamleader.company_client import TeamleaderCompanyClient
from crm_sync.services.teamleader.oauth_client import TeamleaderOAuthClient
from crm_sync.services.token_service import OAuthTokenManager


@lru_cache
def get_token_store() -> OAuthTokenRepository:
    return OAuthTokenRepository()


@lru_cache
def get_company_store() -> CompanyRepository:
    return CompanyRepository()


@lru_cache
def get_sync_status_store() -> SyncStatusStore:
    return SyncStatusStore()


@lru_cache
def get_token_manager() -> OAuthTokenManager:
    return OAuthTokenManager(get_token_store(), TeamleaderOAuthClient())


@lru_cache
def get_company_client() -> TeamleaderCompanyClient:
    return TeamleaderCompanyClient(get_token_manager())


@lru_cache
def get_company_sync_service() -> CompanySyncService:
    # No role recalculation hook is wired in this service; user roles live elsewhere
    return CompanySyncService(
        company_client=get_company_client(),
        company_store=get_company_store(),
        token_manager=get_token_manager(),
        status_store=get_sync_status_store(),
    )

from datetime import UTC, datetime, timedelta

import pytest
from cryptography.fernet import Fernet

from crm_sync.config import settings
from crm_sync.models.domain.company_domain import Company
from crm_sync.models.domain.oauth_domain import OAuthCredential


def make_credential(
    expires_in_seconds: int | None = 3600,
    access_token: str = "access-1",
    refresh_token: str | None = "refresh-1",
    provider: str = "teamleader",
) -> OAuthCredential:
    now = datetime.now(UTC)
    return OAuthCredential(
        provider=provider,
        access_token=access_token,
        refresh_token=refresh_token,
        access_token_expires_at=(
            now + timedelta(seconds=expires_in_seconds) if expires_in_seconds is not None else None
        ),
        token_type="Bearer",
        scope="companies",
        last_updated=now - timedelta(hours=1),
    )


class FakeTokenStore:
    """In-memory TokenStore. Hands out copies the way a database would."""

    def __init__(self, credential: OAuthCredential | None = None):
        self.credentials: dict[str, OAuthCredential] = {}
        self.save_calls = 0
        self.delete_calls = 0
        self.mark_used_calls: list[tuple[str, datetime]] = []
        if credential:
            self.credentials[credential.provider] = credential.model_copy(deep=True)

    async def find_by_provider(self, provider: str) -> OAuthCredential | None:
        credential = self.credentials.get(provider)
        return credential.model_copy(deep=True) if credential else None

    async def save(self, credential: OAuthCredential) -> OAuthCredential:
        self.save_calls += 1
        self.credentials[credential.provider] = credential.model_copy(deep=True)
        return credential.model_copy(deep=True)

    async def delete(self, credential: OAuthCredential) -> None:
        self.delete_calls += 1
        self.credentials.pop(credential.provider, None)

    async def mark_used(self, provider: str, used_at: datetime) -> None:
        self.mark_used_calls.append((provider, used_at))
        if provider in self.credentials:
            self.credentials[provider].last_used = used_at


class FakeCompanyStore:
    """In-memory LocalEntityStore keyed on external id."""

    def __init__(self, fail_on: set[str] | None = None):
        self.companies: dict[str, Company] = {}
        self.fail_on = fail_on or set()
        self.save_calls = 0
        self._next_id = 1

    async def find_by_external_id(self, external_id: str) -> Company | None:
        company = self.companies.get(external_id)
        return company.model_copy(deep=True) if company else None

    async def save(self, company: Company) -> Company:
        if company.external_id in self.fail_on:
            raise RuntimeError(f"store rejected {company.external_id}")

        self.save_calls += 1
        now = datetime.now(UTC)
        stored = company.model_copy(deep=True)
        existing = self.companies.get(company.external_id)
        if existing:
            stored.id = existing.id
            stored.created_at = existing.created_at
        else:
            stored.id = self._next_id
            stored.created_at = now
            self._next_id += 1
        stored.updated_at = now

        self.companies[stored.external_id] = stored
        return stored.model_copy(deep=True)

    async def find_all(self) -> list[Company]:
        return [company.model_copy(deep=True) for company in self.companies.values()]


class FakeTokenManager:
    def __init__(self, valid: bool = True):
        self.valid = valid

    async def has_valid_token(self) -> bool:
        return self.valid

    async def get_access_token(self) -> str | None:
        return "access-1" if self.valid else None


def company_record(external_id: str, name: str | None = None, **fields) -> dict:
    return {"id": external_id, "name": name or f"Company {external_id}", **fields}


class FakeCompanyClient:
    """Serves a fixed company list page by page, plus per-id details."""

    def __init__(
        self,
        companies: list[dict] | None = None,
        failing_details: set[str] | None = None,
        list_error_on_page: int | None = None,
        probe_error: bool = False,
    ):
        self.companies = companies or []
        self.details = {c["id"]: dict(c) for c in self.companies if c.get("id")}
        self.failing_details = failing_details or set()
        self.list_error_on_page = list_error_on_page
        self.probe_error = probe_error
        self.list_calls: list[tuple[int, int]] = []
        self.detail_calls: list[str] = []
        self.probe_calls = 0

    async def test_connection(self) -> dict:
        self.probe_calls += 1
        if self.probe_error:
            return {"error": True, "status": 401, "message": "HTTP 401 Unauthorized"}
        return {"status": "success", "message": "ok", "data": {"id": "user-1"}}

    async def list_companies(self, page: int = 1, page_size: int = 20) -> dict:
        self.list_calls.append((page, page_size))
        if page == self.list_error_on_page:
            return {"error": True, "message": "HTTP 503 Service Unavailable", "status": 503}
        start = (page - 1) * page_size
        return {"data": self.companies[start : start + page_size]}

    async def get_company_details(self, external_id: str) -> dict:
        self.detail_calls.append(external_id)
        if external_id in self.failing_details or external_id not in self.details:
            return {"error": True, "status": 404, "message": "HTTP 404 Not Found"}
        return {"data": self.details[external_id]}


@pytest.fixture
def encryption_key(monkeypatch):
    key = Fernet.generate_key().decode("utf-8")
    monkeypatch.setattr(settings, "ENCRYPTION_KEY", key)
    return key


@pytest.fixture
def token_store():
    return FakeTokenStore()


@pytest.fixture
def company_store():
    return FakeCompanyStore()

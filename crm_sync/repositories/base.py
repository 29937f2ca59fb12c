"""
Storage contracts used by the token manager and the sync service.

The Postgres repositories in this package implement them; tests use
in-memory fakes.
"""

from datetime import datetime
from typing import Protocol

from crm_sync.models.domain.company_domain import Company
from crm_sync.models.domain.oauth_domain import OAuthCredential


class TokenStore(Protocol):
    async def find_by_provider(self, provider: str) -> OAuthCredential | None: ...

    async def save(self, credential: OAuthCredential) -> OAuthCredential: ...

    async def delete(self, credential: OAuthCredential) -> None: ...

    async def mark_used(self, provider: str, used_at: datetime) -> None:
        """Update only `last_used`, leaving token fields untouched."""
        ...


class LocalEntityStore(Protocol):
    async def find_by_external_id(self, external_id: str) -> Company | None: ...

    async def save(self, company: Company) -> Company:
        """Insert or update by `external_id`, returning the stored company with its id."""
        ...

    async def find_all(self) -> list[Company]: ...

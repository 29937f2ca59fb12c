"""
OAuth credential domain model for the Teamleader integration.
"""

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from crm_sync.services.teamleader.oauth_client import TokenResponse

TEAMLEADER_PROVIDER = "teamleader"

# Tokens are treated as expired this long before the provider says they are
EXPIRY_BUFFER_MINUTES = 5


def _utcnow() -> datetime:
    return datetime.now(UTC)


class OAuthCredential(BaseModel):
    """Domain model for a provider's OAuth credential (decrypted)."""

    provider: str = TEAMLEADER_PROVIDER
    access_token: str  # decrypted
    access_token_expires_at: datetime | None = None
    refresh_token: str | None = None  # decrypted
    token_type: str = "Bearer"
    scope: str | None = None
    last_updated: datetime = Field(default_factory=_utcnow)
    last_used: datetime | None = None

    def is_access_token_expired(self, buffer_minutes: int = EXPIRY_BUFFER_MINUTES) -> bool:
        """
        Check whether the access token must be refreshed before use.

        A credential without a known expiry is considered expired.
        """
        if not self.access_token_expires_at:
            return True
        buffer_time = _utcnow() + timedelta(minutes=buffer_minutes)
        return buffer_time >= self.access_token_expires_at

    def has_refresh_token(self) -> bool:
        return bool(self.refresh_token)

    def apply_token_response(self, token_response: "TokenResponse") -> None:
        """
        Overwrite the credential with a fresh token endpoint response.

        The stored refresh token is only replaced when the response carries
        a non-empty one, so an omitted refresh token never erases ours.
        """
        now = _utcnow()
        self.access_token = token_response.access_token
        self.access_token_expires_at = now + timedelta(seconds=token_response.expires_in)
        self.token_type = token_response.token_type or "Bearer"
        self.scope = token_response.scope
        if token_response.refresh_token:
            self.refresh_token = token_response.refresh_token
        self.last_updated = now

    @classmethod
    def from_token_response(
        cls, token_response: "TokenResponse", provider: str = TEAMLEADER_PROVIDER
    ) -> "OAuthCredential":
        """Build a brand new credential from a code exchange response."""
        now = _utcnow()
        return cls(
            provider=provider,
            access_token=token_response.access_token,
            access_token_expires_at=now + timedelta(seconds=token_response.expires_in),
            refresh_token=token_response.refresh_token,
            token_type=token_response.token_type or "Bearer",
            scope=token_response.scope,
            last_updated=now,
        )

    def mark_used(self) -> datetime:
        self.last_used = _utcnow()
        return self.last_used

    def status_summary(self) -> dict:
        """Non-secret view of the credential for status endpoints."""
        return {
            "provider": self.provider,
            "token_type": self.token_type,
            "scope": self.scope,
            "has_refresh_token": self.has_refresh_token(),
            "access_token_expires_at": (
                self.access_token_expires_at.isoformat() if self.access_token_expires_at else None
            ),
            "token_expired": self.is_access_token_expired(),
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "last_used": self.last_used.isoformat() if self.last_used else None,
        }

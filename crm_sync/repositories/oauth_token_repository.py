"""
Postgres-backed token store.

Tokens are Fernet-encrypted before they hit the `oauth_tokens` table and
decrypted on the way out, so callers only ever see plain OAuthCredential
objects.
"""

from datetime import datetime

from crm_sync.db.helpers import execute_query, fetch_one, with_db_retry
from crm_sync.infrastructure.observability.logging import get_logger
from crm_sync.models.domain.oauth_domain import OAuthCredential
from crm_sync.services.infrastructure.encryption_service import (
    decrypt_oauth_tokens,
    encrypt_oauth_tokens,
)

logger = get_logger(__name__)


class OAuthTokenRepository:
    """Persistence for provider OAuth credentials, one row per provider."""

    @with_db_retry(max_retries=2)
    async def find_by_provider(self, provider: str) -> OAuthCredential | None:
        query = """
            SELECT provider, access_token, refresh_token, token_type, scope,
                   access_token_expires_at, last_updated, last_used
            FROM oauth_tokens
            WHERE provider = %s
        """
        row = await fetch_one(query, (provider,))
        if not row:
            return None

        access_token, refresh_token = decrypt_oauth_tokens(
            row["access_token"], row["refresh_token"]
        )

        return OAuthCredential(
            provider=row["provider"],
            access_token=access_token,
            refresh_token=refresh_token,
            token_type=row["token_type"] or "Bearer",
            scope=row["scope"],
            access_token_expires_at=row["access_token_expires_at"],
            last_updated=row["last_updated"],
            last_used=row["last_used"],
        )

    @with_db_retry(max_retries=2)
    async def save(self, credential: OAuthCredential) -> OAuthCredential:
        encrypted_access, encrypted_refresh = encrypt_oauth_tokens(
            credential.access_token, credential.refresh_token
        )

        query = """
            INSERT INTO oauth_tokens (
                provider, access_token, refresh_token, token_type, scope,
                access_token_expires_at, last_updated, last_used
            ) VALUES (
                %s, %s, %s, %s, %s, %s, %s, %s
            )
            ON CONFLICT (provider)
            DO UPDATE SET
                access_token = EXCLUDED.access_token,
                refresh_token = EXCLUDED.refresh_token,
                token_type = EXCLUDED.token_type,
                scope = EXCLUDED.scope,
                access_token_expires_at = EXCLUDED.access_token_expires_at,
                last_updated = EXCLUDED.last_updated,
                last_used = COALESCE(EXCLUDED.last_used, oauth_tokens.last_used)
        """
        await execute_query(
            query,
            (
                credential.provider,
                encrypted_access,
                encrypted_refresh,
                credential.token_type,
                credential.scope,
                credential.access_token_expires_at,
                credential.last_updated,
                credential.last_used,
            ),
        )

        logger.debug(
            "OAuth credential stored",
            provider=credential.provider,
            has_refresh_token=credential.has_refresh_token(),
            expires_at=(
                credential.access_token_expires_at.isoformat()
                if credential.access_token_expires_at
                else None
            ),
        )
        return credential

    @with_db_retry(max_retries=2)
    async def delete(self, credential: OAuthCredential) -> None:
        await execute_query("DELETE FROM oauth_tokens WHERE provider = %s", (credential.provider,))

    async def mark_used(self, provider: str, used_at: datetime) -> None:
        await execute_query(
            "UPDATE oauth_tokens SET last_used = %s WHERE provider = %s",
            (used_at, provider),
        )

"""
OAuth token lifecycle manager for the Teamleader integration.

Owns authorization URL generation, code exchange, expiry detection,
single-flight refresh, last-used marking and revocation. Every public
operation reports failure through its return value and never raises.
"""

import asyncio
import secrets

import httpx

from crm_sync.infrastructure.observability.logging import get_logger, token_preview
from crm_sync.models.domain.oauth_domain import TEAMLEADER_PROVIDER, OAuthCredential
from crm_sync.repositories.base import TokenStore
from crm_sync.services.teamleader.oauth_client import TeamleaderOAuthClient, TeamleaderOAuthError

logger = get_logger(__name__)


class OAuthTokenManager:
    """
    Token manager for one OAuth provider.

    Mutations (exchange, refresh, revoke) are serialized by a per-provider
    asyncio.Lock. Reads never take the lock. Concurrent callers that find an
    expired token share a single in-flight refresh task, so the refresh grant
    is posted at most once per expiry.
    """

    def __init__(
        self,
        token_store: TokenStore,
        oauth_client: TeamleaderOAuthClient | None = None,
        provider: str = TEAMLEADER_PROVIDER,
    ):
        self.token_store = token_store
        self.oauth_client = oauth_client or TeamleaderOAuthClient()
        self.provider = provider
        self._locks: dict[str, asyncio.Lock] = {}
        self._inflight_refresh: dict[str, asyncio.Task] = {}

    def _lock_for(self, provider: str) -> asyncio.Lock:
        return self._locks.setdefault(provider, asyncio.Lock())

    def get_authorization_url(self) -> str:
        """Build the provider authorization URL with a fresh random state."""
        state = secrets.token_urlsafe(24)
        url = self.oauth_client.build_authorization_url(state)
        logger.info(
            "Teamleader authorization URL generated",
            provider=self.provider,
            state_preview=token_preview(state),
        )
        return url

    async def exchange_authorization_code(self, code: str) -> bool:
        """
        Exchange an authorization code and persist the resulting credential.

        Args:
            code: Authorization code from the OAuth callback

        Returns:
            bool: True if a credential was stored
        """
        if not code:
            logger.warning("Authorization code exchange called without a code")
            return False

        async with self._lock_for(self.provider):
            try:
                token_response = await self.oauth_client.exchange_code(code)

                credential = await self.token_store.find_by_provider(self.provider)
                if credential:
                    credential.apply_token_response(token_response)
                else:
                    credential = OAuthCredential.from_token_response(
                        token_response, provider=self.provider
                    )

                await self.token_store.save(credential)

                logger.info(
                    "Teamleader authorization completed",
                    provider=self.provider,
                    expires_at=credential.access_token_expires_at.isoformat(),
                    has_refresh_token=credential.has_refresh_token(),
                )
                return True

            except TeamleaderOAuthError as e:
                logger.error(
                    "Authorization code exchange rejected",
                    provider=self.provider,
                    error=str(e),
                    error_code=e.error_code,
                )
                return False
            except httpx.RequestError as e:
                logger.error(
                    "Authorization code exchange failed - token endpoint unreachable",
                    provider=self.provider,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return False
            except Exception as e:
                logger.error(
                    "Unexpected error during authorization code exchange",
                    provider=self.provider,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return False

    async def get_access_token(self) -> str | None:
        """
        Return a usable access token, refreshing it first if it is expired.

        Returns:
            str | None: Access token, or None when unauthorized or refresh failed
        """
        try:
            credential = await self.token_store.find_by_provider(self.provider)
            if not credential:
                logger.warning("No Teamleader credential stored", provider=self.provider)
                return None

            if credential.is_access_token_expired():
                logger.info(
                    "Teamleader access token expired, refreshing",
                    provider=self.provider,
                    expires_at=(
                        credential.access_token_expires_at.isoformat()
                        if credential.access_token_expires_at
                        else None
                    ),
                )
                credential = await self._refresh_shared(self.provider)
                if not credential:
                    return None

            used_at = credential.mark_used()
            try:
                await self.token_store.mark_used(self.provider, used_at)
            except Exception as e:
                # Bookkeeping only, the token itself is still good
                logger.warning(
                    "Failed to record Teamleader token use",
                    provider=self.provider,
                    error=str(e),
                    error_type=type(e).__name__,
                )

            return credential.access_token

        except Exception as e:
            logger.error(
                "Failed to get Teamleader access token",
                provider=self.provider,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    async def has_valid_token(self) -> bool:
        token = await self.get_access_token()
        return bool(token)

    async def get_token_info(self) -> OAuthCredential | None:
        """Stored credential as-is (no refresh, no last-used update)."""
        try:
            return await self.token_store.find_by_provider(self.provider)
        except Exception as e:
            logger.error(
                "Failed to load Teamleader credential",
                provider=self.provider,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    async def revoke_token(self) -> bool:
        """
        Delete the stored credential.

        Returns:
            bool: True if a credential existed and was removed
        """
        async with self._lock_for(self.provider):
            try:
                credential = await self.token_store.find_by_provider(self.provider)
                if not credential:
                    logger.info("No Teamleader credential to revoke", provider=self.provider)
                    return False

                await self.token_store.delete(credential)
                logger.info("Teamleader credential revoked", provider=self.provider)
                return True

            except Exception as e:
                logger.error(
                    "Failed to revoke Teamleader credential",
                    provider=self.provider,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return False

    async def _refresh_access_token(self, credential: OAuthCredential) -> bool:
        """Refresh the given credential's provider. Joins an in-flight refresh if any."""
        return await self._refresh_shared(credential.provider) is not None

    async def _refresh_shared(self, provider: str) -> OAuthCredential | None:
        task = self._inflight_refresh.get(provider)
        if task is None:
            task = asyncio.create_task(self._run_refresh(provider))
            self._inflight_refresh[provider] = task
            task.add_done_callback(lambda done, p=provider: self._clear_inflight(p, done))
        else:
            logger.debug("Joining in-flight token refresh", provider=provider)

        # Shielded so one cancelled caller does not abort the refresh for the others
        return await asyncio.shield(task)

    def _clear_inflight(self, provider: str, task: asyncio.Task) -> None:
        if self._inflight_refresh.get(provider) is task:
            del self._inflight_refresh[provider]

    async def _run_refresh(self, provider: str) -> OAuthCredential | None:
        async with self._lock_for(provider):
            try:
                credential = await self.token_store.find_by_provider(provider)
                if not credential:
                    logger.warning("Credential disappeared before refresh", provider=provider)
                    return None

                if not credential.is_access_token_expired():
                    logger.debug("Access token already refreshed", provider=provider)
                    return credential

                if not credential.has_refresh_token():
                    logger.warning(
                        "Cannot refresh Teamleader token - no refresh token stored",
                        provider=provider,
                    )
                    return None

                token_response = await self.oauth_client.refresh(credential.refresh_token)
                credential.apply_token_response(token_response)
                saved = await self.token_store.save(credential)
                if credential.is_access_token_expired():
                    logger.warning(
                        "Refreshed token lifetime is inside the expiry buffer",
                        provider=provider,
                        expires_in=token_response.expires_in,
                    )

                logger.info(
                    "Teamleader access token refreshed",
                    provider=provider,
                    expires_at=credential.access_token_expires_at.isoformat(),
                    refresh_token_rotated=bool(token_response.refresh_token),
                )
                return saved or credential

            except TeamleaderOAuthError as e:
                logger.error(
                    "Teamleader token refresh rejected",
                    provider=provider,
                    error=str(e),
                    error_code=e.error_code,
                )
                return None
            except httpx.RequestError as e:
                logger.error(
                    "Teamleader token refresh failed - token endpoint unreachable",
                    provider=provider,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return None
            except Exception as e:
                logger.error(
                    "Unexpected error during Teamleader token refresh",
                    provider=provider,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return None

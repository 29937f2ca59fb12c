"""
Teamleader OAuth 2.0 client.
Builds the authorization URL and talks to the token endpoint (code exchange
and refresh). Persistence and concurrency live in the token manager.
"""

import asyncio
from urllib.parse import urlencode

import httpx

from crm_sync.config import settings
from crm_sync.infrastructure.observability.logging import get_logger, token_preview

logger = get_logger(__name__)

# Request timeouts and retry configuration
REQUEST_TIMEOUT = 10  # seconds
MAX_ATTEMPTS = 2
BACKOFF_BASE_SECONDS = 0.5  # 0.5, 1.0, ...
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class TeamleaderOAuthError(Exception):
    """Custom exception for Teamleader OAuth-related errors."""

    def __init__(
        self, message: str, error_code: str | None = None, response_data: dict | None = None
    ):
        super().__init__(message)
        self.error_code = error_code
        self.response_data = response_data or {}


class TokenResponse:
    """Structured representation of a token endpoint response."""

    def __init__(self, data: dict):
        self.access_token = data.get("access_token")
        self.refresh_token = data.get("refresh_token")
        self.token_type = data.get("token_type") or "Bearer"
        self.scope = data.get("scope")

        expires_in = data.get("expires_in")
        try:
            self.expires_in = int(expires_in) if expires_in is not None else None
        except (TypeError, ValueError):
            self.expires_in = None

    def is_valid(self) -> bool:
        """A usable response carries both an access token and its lifetime."""
        return bool(self.access_token) and self.expires_in is not None


class TeamleaderOAuthClient:
    """
    HTTP client for the Teamleader authorization server.

    Token endpoint calls are form-encoded and retried on transport errors,
    429 and 5xx responses with exponential backoff. Other 4xx responses
    fail immediately.
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        redirect_uri: str | None = None,
        auth_url: str | None = None,
        token_url: str | None = None,
        max_attempts: int = MAX_ATTEMPTS,
        backoff_base: float = BACKOFF_BASE_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_id = client_id or settings.TEAMLEADER_CLIENT_ID
        self.client_secret = client_secret or settings.TEAMLEADER_CLIENT_SECRET
        self.redirect_uri = redirect_uri or settings.teamleader_redirect_uri()
        self.auth_url = auth_url or settings.TEAMLEADER_AUTH_URL
        self.token_url = token_url or settings.TEAMLEADER_TOKEN_URL
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self._transport = transport

    def _validate_config(self) -> None:
        if not self.client_id:
            raise TeamleaderOAuthError("TEAMLEADER_CLIENT_ID not configured", error_code="config")
        if not self.client_secret:
            raise TeamleaderOAuthError(
                "TEAMLEADER_CLIENT_SECRET not configured", error_code="config"
            )

    def build_authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id or "",
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "state": state,
        }
        return f"{self.auth_url}?{urlencode(params)}"

    async def _post_with_retry(self, data: dict, operation: str) -> httpx.Response:
        """
        POST a form payload to the token endpoint with retry/backoff handling.

        Args:
            data: Form fields
            operation: Operation name for logging context

        Raises:
            httpx.RequestError: When the last attempt fails at the transport level
        """
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }

        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT, transport=self._transport) as client:
            for attempt in range(1, self.max_attempts + 1):
                wait_time = self.backoff_base * (2 ** (attempt - 1))
                try:
                    response = await client.post(self.token_url, data=data, headers=headers)
                except httpx.RequestError as exc:
                    if attempt == self.max_attempts:
                        raise

                    logger.warning(
                        "Teamleader token request error, retrying",
                        operation=operation,
                        attempt=attempt,
                        wait_time=wait_time,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                    await asyncio.sleep(wait_time)
                    continue

                if response.status_code in RETRY_STATUS_CODES and attempt < self.max_attempts:
                    logger.warning(
                        "Teamleader token endpoint transient status",
                        operation=operation,
                        status_code=response.status_code,
                        attempt=attempt,
                        wait_time=wait_time,
                    )
                    await asyncio.sleep(wait_time)
                    continue

                return response

        raise TeamleaderOAuthError(f"{operation} failed: no response")

    async def exchange_code(self, code: str) -> TokenResponse:
        """
        Exchange an authorization code for tokens.

        Raises:
            TeamleaderOAuthError: On configuration, HTTP or payload problems
            httpx.RequestError: When the token endpoint stays unreachable
        """
        self._validate_config()

        logger.info("Exchanging Teamleader authorization code", code_preview=token_preview(code))

        response = await self._post_with_retry(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri,
            },
            operation="code_exchange",
        )
        return self._handle_token_response(response, "code_exchange")

    async def refresh(self, refresh_token: str) -> TokenResponse:
        """Trade a refresh token for a new access token."""
        self._validate_config()

        logger.info(
            "Refreshing Teamleader access token",
            refresh_token_preview=token_preview(refresh_token),
        )

        response = await self._post_with_retry(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
            operation="token_refresh",
        )
        return self._handle_token_response(response, "token_refresh")

    def _handle_token_response(self, response: httpx.Response, operation: str) -> TokenResponse:
        if not response.is_success:
            try:
                error_data = response.json()
            except ValueError:
                logger.error(
                    f"Teamleader {operation} failed with non-JSON response",
                    status_code=response.status_code,
                    response_text=response.text[:200],
                )
                raise TeamleaderOAuthError(
                    f"Teamleader token endpoint error (HTTP {response.status_code})",
                    error_code=str(response.status_code),
                ) from None

            error_code = (
                error_data.get("error", "unknown_error")
                if isinstance(error_data, dict)
                else "unknown_error"
            )
            logger.error(
                f"Teamleader {operation} failed",
                status_code=response.status_code,
                error_code=error_code,
            )
            raise TeamleaderOAuthError(
                f"Teamleader {operation} failed ({error_code})",
                error_code=error_code,
                response_data=error_data if isinstance(error_data, dict) else {},
            )

        try:
            data = response.json()
        except ValueError as e:
            logger.error(
                f"Failed to parse Teamleader {operation} response",
                response_text=response.text[:200],
            )
            raise TeamleaderOAuthError(f"Failed to parse token response: {e}") from e

        token_response = TokenResponse(data if isinstance(data, dict) else {})
        if not token_response.is_valid():
            logger.error(
                f"Invalid token response from Teamleader {operation}",
                has_access_token=bool(token_response.access_token),
                has_expires_in=token_response.expires_in is not None,
            )
            raise TeamleaderOAuthError("Token response is missing access_token or expires_in")

        logger.info(
            f"Teamleader {operation} successful",
            token_type=token_response.token_type,
            expires_in=token_response.expires_in,
            has_refresh_token=bool(token_response.refresh_token),
        )
        return token_response

"""
Teamleader company API client.

Each call fetches a fresh access token from the token manager and returns
the JSON body as a dict. Failures come back as error-shaped dicts
(`{"error": True, "message": ...}`) instead of exceptions, so callers can
treat the result uniformly.
"""

from typing import Any

import httpx

from crm_sync.config import settings
from crm_sync.infrastructure.observability.logging import get_logger
from crm_sync.services.token_service import OAuthTokenManager

logger = get_logger(__name__)

REQUEST_TIMEOUT = 30  # seconds
NO_TOKEN_MESSAGE = "No valid access token available"


def error_response(message: str, **extra: Any) -> dict[str, Any]:
    return {"error": True, "message": message, **extra}


def is_error_response(response: Any) -> bool:
    """True for None, non-dict bodies and error-shaped dicts."""
    return not isinstance(response, dict) or bool(response.get("error"))


class TeamleaderCompanyClient:
    """Read-only access to the companies endpoints of the Teamleader API."""

    def __init__(
        self,
        token_manager: OAuthTokenManager,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token_manager = token_manager
        self.base_url = (base_url or settings.TEAMLEADER_BASE_URL).rstrip("/")
        self._transport = transport

    async def list_companies(self, page: int = 1, page_size: int = 20) -> dict[str, Any]:
        """
        Fetch one page of companies.

        Args:
            page: 1-based page number
            page_size: Records per page

        Returns:
            dict: API body (`data` holds the records) or an error dict
        """
        if page < 1 or page_size < 1:
            return error_response("page and page_size must be positive")

        return await self._post(
            "/companies.list",
            {"page": {"size": page_size, "number": page}},
            operation="list_companies",
        )

    async def get_company_details(self, external_id: str) -> dict[str, Any]:
        return await self._post(
            "/companies.info", {"id": external_id}, operation="get_company_details"
        )

    async def test_connection(self) -> dict[str, Any]:
        """Probe the API with the current user's profile."""
        response = await self._post("/users.me", {}, operation="test_connection")
        if is_error_response(response):
            return response

        return {
            "status": "success",
            "message": "Successfully connected to Teamleader API",
            "data": response.get("data"),
        }

    async def _post(self, path: str, payload: dict, operation: str) -> dict[str, Any]:
        access_token = await self.token_manager.get_access_token()
        if not access_token:
            logger.error("No valid access token available for Teamleader API", operation=operation)
            return error_response(NO_TOKEN_MESSAGE)

        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=REQUEST_TIMEOUT, transport=self._transport
            ) as client:
                response = await client.post(path, json=payload, headers=headers)

            if not response.is_success:
                return self._handle_api_error(response, operation)

            body = response.json()
            if not isinstance(body, dict):
                return error_response(f"Unexpected response body from {path}")
            return body

        except Exception as e:
            logger.error(
                "Teamleader API request failed",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            return error_response(str(e))

    def _handle_api_error(self, response: httpx.Response, operation: str) -> dict[str, Any]:
        message = f"HTTP {response.status_code} {response.reason_phrase}".strip()

        logger.error(
            "Teamleader API error",
            operation=operation,
            status_code=response.status_code,
            response_text=response.text[:200],
        )

        try:
            return error_response(message, status=response.status_code, details=response.json())
        except ValueError:
            return error_response(
                message, status=response.status_code, response_body=response.text
            )

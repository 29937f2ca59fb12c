"""
Teamleader OAuth routes: authorization redirect, callback, status and revoke.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from crm_sync.dependencies import get_token_manager
from crm_sync.infrastructure.observability.logging import get_logger, token_preview
from crm_sync.models.api.oauth_response import (
    AuthorizationURLResponse,
    OAuthActionResponse,
    OAuthStatusResponse,
)
from crm_sync.services.token_service import OAuthTokenManager

logger = get_logger(__name__)

router = APIRouter(prefix="/api/teamleader/oauth", tags=["teamleader-oauth"])


@router.get("/authorize")
async def authorize(token_manager: OAuthTokenManager = Depends(get_token_manager)):
    """Redirect the browser to the Teamleader consent screen."""
    return RedirectResponse(url=token_manager.get_authorization_url(), status_code=302)


@router.get("/url", response_model=AuthorizationURLResponse)
async def authorization_url(token_manager: OAuthTokenManager = Depends(get_token_manager)):
    return AuthorizationURLResponse(authorization_url=token_manager.get_authorization_url())


@router.get("/callback", response_model=OAuthActionResponse)
async def oauth_callback(
    code: str = Query(..., description="Authorization code from Teamleader"),
    state: str | None = Query(default=None, description="OAuth state parameter"),
    token_manager: OAuthTokenManager = Depends(get_token_manager),
):
    """
    Complete the authorization code flow.

    The state parameter is accepted but not validated against the one issued.
    """
    logger.info(
        "Teamleader OAuth callback received",
        code_preview=token_preview(code),
        state_preview=token_preview(state),
    )

    if await token_manager.exchange_authorization_code(code):
        return OAuthActionResponse(
            status="success",
            message="Successfully authorized with Teamleader. You can now use the Teamleader API.",
        )

    return OAuthActionResponse(
        status="error",
        message="Failed to authorize with Teamleader. Please try again.",
    )


@router.get("/status", response_model=OAuthStatusResponse)
async def oauth_status(token_manager: OAuthTokenManager = Depends(get_token_manager)):
    credential = await token_manager.get_token_info()

    if not credential:
        return OAuthStatusResponse(
            authorized=False,
            message=(
                "Teamleader API integration is not authorized. "
                "Please visit /api/teamleader/oauth/authorize to authorize."
            ),
        )

    return OAuthStatusResponse(
        authorized=True,
        message="Teamleader API integration is authorized and ready to use.",
        **credential.status_summary(),
    )


@router.post("/revoke", response_model=OAuthActionResponse)
async def revoke(token_manager: OAuthTokenManager = Depends(get_token_manager)):
    if await token_manager.revoke_token():
        return OAuthActionResponse(
            status="success",
            message="Successfully revoked Teamleader authorization.",
        )

    return OAuthActionResponse(
        status="error",
        message="No token found to revoke or error revoking token.",
    )

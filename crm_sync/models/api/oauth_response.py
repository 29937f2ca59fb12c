"""
Teamleader OAuth API response models.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class AuthorizationURLResponse(BaseModel):
    authorization_url: str = Field(..., description="Teamleader OAuth authorization URL")


class OAuthActionResponse(BaseModel):
    """Result of the callback and revoke endpoints."""

    status: Literal["success", "error"]
    message: str


class OAuthStatusResponse(BaseModel):
    """Authorization state of the Teamleader integration."""

    authorized: bool = Field(..., description="Whether a Teamleader credential is stored")
    provider: str | None = None
    token_type: str | None = None
    scope: str | None = None
    has_refresh_token: bool | None = None
    access_token_expires_at: datetime | None = None
    last_updated: datetime | None = Field(default=None, description="Last token write")
    last_used: datetime | None = Field(default=None, description="Last time a token was handed out")
    token_expired: bool | None = Field(
        default=None, description="Whether the access token is inside the refresh window"
    )
    message: str

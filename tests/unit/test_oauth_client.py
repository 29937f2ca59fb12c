from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from crm_sync.services.teamleader.oauth_client import TeamleaderOAuthClient, TeamleaderOAuthError

TOKEN_URL = "https://auth.example.test/oauth2/access_token"


def build_client(handler, max_attempts: int = 2) -> TeamleaderOAuthClient:
    return TeamleaderOAuthClient(
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri="https://app.example.test/callback",
        auth_url="https://auth.example.test/oauth2/authorize",
        token_url=TOKEN_URL,
        max_attempts=max_attempts,
        backoff_base=0,
        transport=httpx.MockTransport(handler),
    )


def test_authorization_url_contains_required_params():
    client = build_client(lambda request: httpx.Response(200))

    url = client.build_authorization_url("state-123")
    parsed = urlparse(url)
    params = parse_qs(parsed.query)

    assert url.startswith("https://auth.example.test/oauth2/authorize?")
    assert params["client_id"] == ["client-id"]
    assert params["response_type"] == ["code"]
    assert params["redirect_uri"] == ["https://app.example.test/callback"]
    assert params["state"] == ["state-123"]


@pytest.mark.asyncio
async def test_exchange_code_posts_form_encoded_grant():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["content_type"] = request.headers["content-type"]
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(
            200, json={"access_token": "a1", "refresh_token": "r1", "expires_in": 3600}
        )

    token_response = await build_client(handler).exchange_code("code-1")

    assert token_response.access_token == "a1"
    assert token_response.refresh_token == "r1"
    assert token_response.token_type == "Bearer"
    assert seen["content_type"] == "application/x-www-form-urlencoded"
    assert seen["form"]["grant_type"] == ["authorization_code"]
    assert seen["form"]["code"] == ["code-1"]
    assert seen["form"]["redirect_uri"] == ["https://app.example.test/callback"]


@pytest.mark.asyncio
async def test_refresh_retries_once_on_server_error():
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            return httpx.Response(503, json={"error": "unavailable"})
        return httpx.Response(200, json={"access_token": "a2", "expires_in": 3600})

    token_response = await build_client(handler).refresh("r1")

    assert token_response.access_token == "a2"
    assert calls["count"] == 2


@pytest.mark.asyncio
async def test_refresh_retries_transport_errors_then_raises():
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(httpx.ConnectError):
        await build_client(handler).refresh("r1")

    assert calls["count"] == 2


@pytest.mark.asyncio
async def test_client_error_is_not_retried():
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(400, json={"error": "invalid_grant"})

    with pytest.raises(TeamleaderOAuthError) as exc_info:
        await build_client(handler).refresh("r1")

    assert calls["count"] == 1
    assert exc_info.value.error_code == "invalid_grant"


@pytest.mark.asyncio
async def test_response_without_expires_in_is_rejected():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"access_token": "a1"})

    with pytest.raises(TeamleaderOAuthError):
        await build_client(handler).exchange_code("code-1")


@pytest.mark.asyncio
async def test_missing_client_secret_fails_without_http_call():
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(200)

    client = build_client(handler)
    client.client_secret = None

    with pytest.raises(TeamleaderOAuthError):
        await client.exchange_code("code-1")
    assert calls["count"] == 0

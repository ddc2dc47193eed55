"""
Integration tests for the Entra SSO login/callback endpoints.

The IdP token endpoint and Graph are served by the FakeUpstream fixture.
"""

from urllib.parse import parse_qs, quote, urlparse

import pytest
from httpx import AsyncClient

from roadmap_auth.config.settings import DEFAULT_JWT_SECRET
from roadmap_auth.core.sso.flow import (
    INVALID_CALLBACK_MESSAGE,
    MISSING_ACCESS_TOKEN_MESSAGE,
    POLICY_DENIED_MESSAGE,
    UPSTREAM_UNREACHABLE_MESSAGE,
)

FLOW_COOKIES = {
    "entra_state",
    "entra_nonce",
    "entra_pkce_verifier",
    "entra_return_url",
    "entra_popup",
}


def set_cookie_headers(response) -> dict[str, str]:
    return {h.split("=", 1)[0]: h for h in response.headers.get_list("set-cookie")}


def cookies_from(response) -> dict[str, str]:
    cookies = {}
    for name, header in set_cookie_headers(response).items():
        cookies[name] = header.split(";", 1)[0].split("=", 1)[1].strip('"')
    return cookies


async def start_login(client: AsyncClient, return_url="/admin/projects", popup="0"):
    response = await client.get(
        "/api/auth/entra/login", params={"returnUrl": return_url, "popup": popup}
    )
    assert response.status_code == 302
    query = parse_qs(urlparse(response.headers["location"]).query)
    return response, cookies_from(response), query


async def call_callback(client: AsyncClient, cookies: dict, **params):
    client.cookies.clear()
    headers = {}
    if cookies:
        headers["Cookie"] = "; ".join(f"{name}={value}" for name, value in cookies.items())
    return await client.get("/api/auth/entra/callback", params=params, headers=headers)


def fragment_params(location: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(location.split("#", 1)[1]).items()}


def assert_flow_cookies_cleared(response):
    headers = set_cookie_headers(response)
    assert set(headers) == FLOW_COOKIES
    assert all("Max-Age=0" in h for h in headers.values())
    assert set(cookies_from(response).values()) == {""}


def assert_login_error(response, message, return_url="/admin/projects"):
    assert response.status_code == 302
    location = response.headers["location"]
    assert location.startswith(f"/admin/login?returnUrl={quote(return_url, safe='')}&error=")
    assert parse_qs(urlparse(location).query)["error"] == [message]


class TestLogin:
    @pytest.mark.asyncio
    async def test_redirects_to_authorize_endpoint(self, client: AsyncClient):
        response, cookies, query = await start_login(client)

        location = urlparse(response.headers["location"])
        assert location.netloc == "login.microsoftonline.com"
        assert location.path == "/tenant-123/oauth2/v2.0/authorize"
        assert query["redirect_uri"] == ["http://testserver/api/auth/entra/callback"]
        assert query["code_challenge_method"] == ["S256"]
        assert query["scope"] == ["openid profile email User.Read"]
        assert query["state"] == [cookies["entra_state"]]
        assert query["nonce"] == [cookies["entra_nonce"]]

        assert set(cookies) == FLOW_COOKIES
        assert cookies["entra_return_url"] == "/admin/projects"
        assert cookies["entra_popup"] == "0"
        assert response.headers["cache-control"] == "no-store"

        headers = set_cookie_headers(response)
        for name in ("entra_state", "entra_nonce", "entra_pkce_verifier"):
            assert "HttpOnly" in headers[name]
        for name in ("entra_return_url", "entra_popup"):
            assert "HttpOnly" not in headers[name]
        assert all("Max-Age=600" in h and "SameSite=lax" in h and "Path=/" in h for h in headers.values())
        assert not any("Secure" in h for h in headers.values())

    @pytest.mark.asyncio
    async def test_each_login_gets_fresh_state(self, client: AsyncClient):
        _, first, _ = await start_login(client)
        _, second, _ = await start_login(client)

        assert first["entra_state"] != second["entra_state"]
        assert first["entra_pkce_verifier"] != second["entra_pkce_verifier"]

    @pytest.mark.asyncio
    async def test_external_return_url_is_replaced(self, client: AsyncClient):
        _, cookies, _ = await start_login(client, return_url="https://evil.example/steal")
        assert cookies["entra_return_url"] == "/admin"

    @pytest.mark.asyncio
    async def test_forwarded_headers_drive_redirect_uri(self, client: AsyncClient):
        response = await client.get(
            "/api/auth/entra/login",
            headers={"X-Forwarded-Proto": "https", "X-Forwarded-Host": "portal.example.com"},
        )

        query = parse_qs(urlparse(response.headers["location"]).query)
        assert query["redirect_uri"] == ["https://portal.example.com/api/auth/entra/callback"]
        assert all("Secure" in h for h in response.headers.get_list("set-cookie"))

    @pytest.mark.asyncio
    async def test_disabled_sso_returns_400(self, client: AsyncClient, settings):
        settings.entra_client_secret = None

        response = await client.get("/api/auth/entra/login")

        assert response.status_code == 400
        assert response.json() == {"error": "Entra SSO is not configured"}

    @pytest.mark.asyncio
    async def test_disabled_sso_callback_clears_flow_cookies(self, client: AsyncClient, settings):
        _, cookies, query = await start_login(client)
        settings.entra_client_secret = None

        response = await call_callback(client, cookies, code="c", state=query["state"][0])

        assert response.status_code == 400
        assert response.json() == {"error": "Entra SSO is not configured"}
        assert_flow_cookies_cleared(response)

    @pytest.mark.asyncio
    async def test_relative_redirect_override_is_config_error(self, client: AsyncClient, settings):
        settings.entra_redirect_uri = "/api/auth/entra/callback"

        response = await client.get("/api/auth/entra/login")

        assert response.status_code == 500
        body = response.json()
        assert "ENTRA_REDIRECT_URI" in body["error"]
        assert body["computedRedirectUri"] == "/api/auth/entra/callback"
        assert response.headers.get_list("set-cookie") == []

    @pytest.mark.asyncio
    async def test_default_secret_refused_outside_development(self, client: AsyncClient, settings):
        settings.environment = "production"
        settings.jwt_secret = DEFAULT_JWT_SECRET

        response = await client.get("/api/auth/entra/login")

        assert response.status_code == 500
        assert "JWT_SECRET" in response.json()["error"]


class TestCallbackRedirectMode:
    @pytest.mark.asyncio
    async def test_end_to_end_success(self, client: AsyncClient, upstream, session_manager):
        _, cookies, query = await start_login(client)

        response = await call_callback(client, cookies, code="auth-code", state=query["state"][0])

        assert response.status_code == 302
        location = response.headers["location"]
        assert location.startswith("/admin/projects#token=")
        params = fragment_params(location)
        assert params["username"] == "Anna Beispiel"

        claims = session_manager.verify(params["token"])
        assert claims.username == "a@b.ch"
        assert claims.is_admin is True
        assert claims.source == "entra"
        assert claims.groups == ["admin-finance"]
        assert claims.entra.mail == "anna@b.ch"

        exchange = upstream.calls_to("/oauth2/v2.0/token")[0]
        form = {k: v[0] for k, v in parse_qs(exchange.content.decode()).items()}
        assert form["code"] == "auth-code"
        assert form["code_verifier"] == cookies["entra_pkce_verifier"]
        assert form["redirect_uri"] == query["redirect_uri"][0]

        assert_flow_cookies_cleared(response)

    @pytest.mark.asyncio
    async def test_state_mismatch_never_reaches_idp(self, client: AsyncClient, upstream):
        _, cookies, _ = await start_login(client)

        response = await call_callback(client, cookies, code="auth-code", state="forged")

        assert_login_error(response, INVALID_CALLBACK_MESSAGE)
        assert upstream.requests == []
        assert_flow_cookies_cleared(response)

    @pytest.mark.asyncio
    async def test_missing_verifier_cookie_is_rejected(self, client: AsyncClient, upstream):
        _, cookies, query = await start_login(client)
        del cookies["entra_pkce_verifier"]

        response = await call_callback(client, cookies, code="auth-code", state=query["state"][0])

        assert_login_error(response, INVALID_CALLBACK_MESSAGE)
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_missing_code_is_rejected(self, client: AsyncClient, upstream):
        _, cookies, query = await start_login(client)

        response = await call_callback(client, cookies, state=query["state"][0])

        assert_login_error(response, INVALID_CALLBACK_MESSAGE)
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_no_flow_cookies_falls_back_to_default_return_url(self, client: AsyncClient):
        response = await call_callback(client, {}, code="auth-code", state="s")
        assert_login_error(response, INVALID_CALLBACK_MESSAGE, return_url="/admin")

    @pytest.mark.asyncio
    async def test_provider_error_is_surfaced(self, client: AsyncClient, upstream):
        _, cookies, query = await start_login(client)

        response = await call_callback(
            client,
            cookies,
            error="access_denied",
            error_description="The user canceled the sign-in.",
            state=query["state"][0],
        )

        assert_login_error(response, "The user canceled the sign-in.")
        assert upstream.requests == []
        assert_flow_cookies_cleared(response)

    @pytest.mark.asyncio
    async def test_provider_error_without_description(self, client: AsyncClient, upstream):
        _, cookies, _ = await start_login(client)

        response = await call_callback(client, cookies, error="access_denied")

        assert response.status_code == 302
        assert response.headers["location"] == "/admin/login?returnUrl=%2Fadmin%2Fprojects&error=access_denied"
        assert upstream.requests == []
        assert_flow_cookies_cleared(response)

    @pytest.mark.asyncio
    async def test_token_exchange_failure(self, client: AsyncClient, upstream):
        upstream.token_status = 400
        upstream.token_body = {"error": "invalid_grant", "error_description": "AADSTS54005: code redeemed"}
        _, cookies, query = await start_login(client)

        response = await call_callback(client, cookies, code="used", state=query["state"][0])

        assert_login_error(response, "AADSTS54005: code redeemed")
        assert upstream.calls_to("/me") == []

    @pytest.mark.asyncio
    async def test_missing_access_token(self, client: AsyncClient, upstream):
        upstream.token_body = {"id_token": "only-id-token"}
        _, cookies, query = await start_login(client)

        response = await call_callback(client, cookies, code="c", state=query["state"][0])

        assert_login_error(response, MISSING_ACCESS_TOKEN_MESSAGE)

    @pytest.mark.asyncio
    async def test_group_read_failure_is_not_fatal(self, client: AsyncClient, upstream, session_manager):
        upstream.group_status = 403
        _, cookies, query = await start_login(client)

        response = await call_callback(client, cookies, code="c", state=query["state"][0])

        assert response.status_code == 302
        claims = session_manager.verify(fragment_params(response.headers["location"])["token"])
        assert claims.groups == []

    @pytest.mark.asyncio
    async def test_groups_are_paged(self, client: AsyncClient, upstream, session_manager):
        upstream.group_pages = [
            {"value": [{"displayName": "admin-finance"}]},
            {"value": [{"displayName": "superadmin"}, {"displayName": "admin-finance"}]},
        ]
        _, cookies, query = await start_login(client)

        response = await call_callback(client, cookies, code="c", state=query["state"][0])

        claims = session_manager.verify(fragment_params(response.headers["location"])["token"])
        assert claims.groups == ["admin-finance", "superadmin"]

    @pytest.mark.asyncio
    async def test_user_not_on_allowlist_gets_no_token(self, client: AsyncClient, upstream):
        upstream.profile = {"id": "2", "displayName": "Mallory", "userPrincipalName": "m@evil.ch"}
        _, cookies, query = await start_login(client)

        response = await call_callback(client, cookies, code="c", state=query["state"][0])

        assert_login_error(response, POLICY_DENIED_MESSAGE)
        assert "token=" not in response.headers["location"]

    @pytest.mark.asyncio
    async def test_allow_all(self, client: AsyncClient, upstream, settings):
        settings.entra_admin_upns = ""
        settings.entra_allow_all = True
        upstream.profile = {"id": "2", "displayName": "Any", "mail": "any@b.ch"}
        _, cookies, query = await start_login(client)

        response = await call_callback(client, cookies, code="c", state=query["state"][0])

        assert "#token=" in response.headers["location"]

    @pytest.mark.asyncio
    async def test_unreachable_idp(self, client: AsyncClient, upstream):
        upstream.raise_on_token = True
        _, cookies, query = await start_login(client)

        response = await call_callback(client, cookies, code="c", state=query["state"][0])

        assert_login_error(response, UPSTREAM_UNREACHABLE_MESSAGE)
        assert_flow_cookies_cleared(response)


class TestCallbackPopupMode:
    @pytest.mark.asyncio
    async def test_success_posts_message(self, client: AsyncClient):
        _, cookies, query = await start_login(client, popup="1")

        response = await call_callback(client, cookies, code="c", state=query["state"][0])

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "type: 'AUTH_SUCCESS'" in response.text
        assert "'http://testserver'" in response.text
        assert_flow_cookies_cleared(response)

    @pytest.mark.asyncio
    async def test_failure_posts_error(self, client: AsyncClient):
        _, cookies, _ = await start_login(client, popup="1")

        response = await call_callback(client, cookies, code="c", state="forged")

        assert response.status_code == 200
        assert "type: 'AUTH_ERROR'" in response.text
        assert "Invalid login callback (state/code)" in response.text

    @pytest.mark.asyncio
    async def test_display_name_is_escaped(self, client: AsyncClient, upstream):
        upstream.profile = {
            "id": "1",
            "displayName": "</script><script>alert(1)</script>",
            "userPrincipalName": "a@b.ch",
        }
        _, cookies, query = await start_login(client, popup="1")

        response = await call_callback(client, cookies, code="c", state=query["state"][0])

        assert "<script>alert(1)</script>" not in response.text
        assert "&lt;script&gt;alert(1)&lt;/script&gt;" in response.text


class TestStatus:
    @pytest.mark.asyncio
    async def test_reports_configuration_without_secrets(self, client: AsyncClient, settings):
        settings.entra_redirect_uri = "https://portal.example.com/api/auth/entra/callback"

        response = await client.get("/api/auth/entra/status")

        assert response.status_code == 200
        body = response.json()
        assert body == {
            "enabled": True,
            "tenantIdConfigured": True,
            "clientIdConfigured": True,
            "clientSecretConfigured": True,
            "redirectUriConfigured": True,
            "redirectUriOverride": "https://portal.example.com/api/auth/entra/callback",
            "redirectUriOverrideValid": True,
            "computedRedirectUri": "https://portal.example.com/api/auth/entra/callback",
            "allowlistConfigured": True,
        }
        assert "client-secret" not in response.text

    @pytest.mark.asyncio
    async def test_without_override(self, client: AsyncClient):
        body = (await client.get("/api/auth/entra/status")).json()

        assert body["redirectUriOverride"] is None
        assert body["redirectUriOverrideValid"] is None
        assert body["computedRedirectUri"] == "http://testserver/api/auth/entra/callback"

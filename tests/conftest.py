"""
Pytest configuration and fixtures for the roadmap auth service tests.

Provides fixtures for:
- Settings with SSO configured
- Session token manager and signed test tokens
- A fake Entra/Graph/SharePoint upstream (httpx.MockTransport)
- An in-process API client with dependencies overridden
"""

from typing import AsyncGenerator, Optional
from urllib.parse import unquote, urlparse

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from roadmap_auth.api.dependencies import (
    get_determination_cache,
    get_http_client_factory,
    get_instance_store,
    reset_dependencies,
)
from roadmap_auth.config.settings import Settings, get_settings
from roadmap_auth.domain.models.instance import RoadmapInstance
from roadmap_auth.domain.models.session import EntraIdentity, SessionClaims
from roadmap_auth.infrastructure.auth.session_tokens import SessionTokenManager
from roadmap_auth.infrastructure.cache.determination_cache import InMemoryDeterminationCache
from roadmap_auth.infrastructure.instances.store import InMemoryInstanceStore
from roadmap_auth.main import app

TEST_JWT_SECRET = "test-signing-secret"
SITE_BASE = "https://contoso.sharepoint.com/sites"


class FakeUpstream:
    """Scriptable stand-in for the Entra token endpoint, Graph and SharePoint.

    Every request is recorded in `requests`.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.token_body: dict = {"access_token": "graph-access-token", "id_token": "id-token"}
        self.profile_status = 200
        self.profile: dict = {
            "id": "object-1",
            "displayName": "Anna Beispiel",
            "userPrincipalName": "a@b.ch",
            "mail": "anna@b.ch",
        }
        self.group_pages: list[dict] = [{"value": [{"displayName": "admin-finance"}]}]
        self.group_status = 200
        # (site path, group title) -> members; anything else is a 404
        self.site_groups: dict[tuple[str, str], list[dict]] = {}
        self.raise_on_token = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = urlparse(unquote(str(request.url)))

        if url.path.endswith("/oauth2/v2.0/token"):
            if self.raise_on_token:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(self.token_status, json=self.token_body)

        if url.path.endswith("/v1.0/me"):
            return httpx.Response(self.profile_status, json=self.profile)

        if "/transitiveMemberOf/" in url.path:
            if self.group_status != 200:
                return httpx.Response(
                    self.group_status,
                    json={"error": {"message": "Insufficient privileges to complete the operation."}},
                )
            page = int(dict(request.url.params).get("page", "0"))
            body = dict(self.group_pages[page])
            if page + 1 < len(self.group_pages):
                body["@odata.nextLink"] = (
                    "https://graph.microsoft.com/v1.0/me/transitiveMemberOf/"
                    f"microsoft.graph.group?page={page + 1}"
                )
            return httpx.Response(200, json=body)

        if "/_api/web/sitegroups/getbyname(" in url.path:
            site = url.path.split("/_api/", 1)[0]
            title = url.path.split("getbyname('", 1)[1].split("')", 1)[0]
            members = self.site_groups.get((site, title))
            if members is None:
                return httpx.Response(404, json={"error": "Group cannot be found."})
            return httpx.Response(200, json={"value": members})

        return httpx.Response(404)

    def client_factory(self):
        return lambda: httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def calls_to(self, fragment: str) -> list[httpx.Request]:
        return [r for r in self.requests if fragment in unquote(str(r.url))]


def make_instance(slug: str, allowed_users: Optional[list] = None) -> RoadmapInstance:
    metadata = {}
    if allowed_users is not None:
        metadata = {"adminAccess": {"allowedUsers": allowed_users}}
    return RoadmapInstance(
        slug=slug,
        display_name=slug.title(),
        sharepoint_site_url=f"{SITE_BASE}/{slug}",
        metadata=metadata,
    )


@pytest.fixture
def settings() -> Settings:
    """Settings with Entra SSO enabled and an allowlist for a@b.ch"""
    return Settings(
        _env_file=None,
        environment="test",
        entra_tenant_id="tenant-123",
        entra_client_id="client-abc",
        entra_client_secret="client-secret",
        entra_admin_upns="a@b.ch",
        jwt_secret=TEST_JWT_SECRET,
        superadmin_instance_slugs="",
        instances_file=None,
    )


@pytest.fixture
def session_manager(settings) -> SessionTokenManager:
    return SessionTokenManager(
        secret_key=settings.jwt_secret,
        ttl_seconds=settings.jwt_ttl_seconds,
        allow_default_secret=True,
    )


@pytest.fixture
def make_claims():
    """Factory for admin session claims"""

    def _make(
        username: str = "a@b.ch",
        display_name: str = "Anna Beispiel",
        groups: Optional[list] = None,
        is_admin: bool = True,
    ) -> SessionClaims:
        return SessionClaims(
            username=username,
            display_name=display_name,
            is_admin=is_admin,
            source="entra",
            groups=groups or [],
            entra=EntraIdentity(id="object-1", upn=username, mail=None),
        )

    return _make


@pytest.fixture
def make_token(session_manager, make_claims):
    """Factory for signed session tokens"""

    def _make(**kwargs) -> str:
        return session_manager.issue(make_claims(**kwargs))

    return _make


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def instance_store() -> InMemoryInstanceStore:
    return InMemoryInstanceStore(
        [
            make_instance("finance", allowed_users=["A@B.ch", "other@b.ch"]),
            make_instance("hr", allowed_users=["someone.else@b.ch"]),
            make_instance("ops"),
        ]
    )


@pytest.fixture
def determination_cache() -> InMemoryDeterminationCache:
    return InMemoryDeterminationCache()


@pytest_asyncio.fixture
async def client(
    settings, upstream, instance_store, determination_cache
) -> AsyncGenerator[AsyncClient, None]:
    """In-process API client talking to the fake upstream"""
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_http_client_factory] = upstream.client_factory
    app.dependency_overrides[get_instance_store] = lambda: instance_store
    app.dependency_overrides[get_determination_cache] = lambda: determination_cache

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()
    reset_dependencies()

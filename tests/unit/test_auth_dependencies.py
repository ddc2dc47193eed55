"""
Unit tests for the session and instance authorization dependencies.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import HTTPException

from roadmap_auth.api.middleware.auth import (
    extract_session_token,
    get_admin_session_optional,
    require_admin_session,
    require_instance_admin,
    require_superadmin,
)
from roadmap_auth.domain.models.instance import RoadmapInstance
from roadmap_auth.infrastructure.instances.store import InMemoryInstanceStore

pytestmark = pytest.mark.unit


def fake_request(headers: dict, cookies=None):
    request = MagicMock()
    request.headers = headers
    request.cookies = cookies or {}
    return request


class TestExtractSessionToken:
    def test_bearer_header(self, settings):
        assert extract_session_token(fake_request({"Authorization": "Bearer abc"}), settings) == "abc"

    def test_bearer_scheme_is_case_insensitive(self, settings):
        assert extract_session_token(fake_request({"Authorization": "bearer abc"}), settings) == "abc"

    def test_cookie_fallback(self, settings):
        request = fake_request({}, cookies={"x": "1", "roadmap_admin_token": "tok"})
        assert extract_session_token(request, settings) == "tok"

    def test_other_schemes_ignored(self, settings):
        assert extract_session_token(fake_request({"Authorization": "Basic Zm9v"}), settings) is None

    def test_bearer_header_wins_over_cookie(self, settings):
        request = fake_request({"Authorization": "Bearer abc"}, cookies={"roadmap_admin_token": "tok"})
        assert extract_session_token(request, settings) == "abc"


class TestSessionDependencies:
    @pytest.mark.asyncio
    async def test_invalid_token_is_anonymous(self, session_manager):
        assert await get_admin_session_optional("garbage", session_manager) is None
        assert await get_admin_session_optional(None, session_manager) is None

    @pytest.mark.asyncio
    async def test_require_admin_session(self, make_claims):
        session = make_claims()
        assert await require_admin_session(session) is session

        for rejected in (None, make_claims(is_admin=False)):
            with pytest.raises(HTTPException) as exc_info:
                await require_admin_session(rejected)
            assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_require_superadmin(self, make_claims):
        resolver = AsyncMock()
        resolver.is_superadmin = AsyncMock(return_value=False)

        with pytest.raises(HTTPException) as exc_info:
            await require_superadmin(make_claims(), resolver)
        assert exc_info.value.status_code == 403


class TestRequireInstanceAdmin:
    @pytest.fixture
    def store(self):
        return InMemoryInstanceStore([RoadmapInstance(slug="finance")])

    @pytest.mark.asyncio
    async def test_allowed(self, store, make_claims):
        resolver = AsyncMock()
        resolver.is_allowed_for_instance = AsyncMock(return_value=True)

        instance = await require_instance_admin("Finance", make_claims(), store, resolver)

        assert instance.slug == "finance"

    @pytest.mark.asyncio
    async def test_denied(self, store, make_claims):
        resolver = AsyncMock()
        resolver.is_allowed_for_instance = AsyncMock(return_value=False)

        with pytest.raises(HTTPException) as exc_info:
            await require_instance_admin("finance", make_claims(), store, resolver)
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_instance(self, store, make_claims):
        with pytest.raises(HTTPException) as exc_info:
            await require_instance_admin("missing", make_claims(), store, AsyncMock())
        assert exc_info.value.status_code == 404

"""
Admin session authentication and instance authorization dependencies.

Provides FastAPI dependencies for:
- Session token extraction (Bearer header, session cookie fallback)
- Admin session validation
- Superadmin-only routes
- Instance-scoped admin access
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from roadmap_auth.api.dependencies import (
    get_instance_access_resolver,
    get_instance_store,
    get_session_manager,
    get_superadmin_resolver,
)
from roadmap_auth.config.settings import Settings, get_settings
from roadmap_auth.core.access import InstanceAccessResolver, SuperAdminResolver
from roadmap_auth.domain.models.instance import RoadmapInstance
from roadmap_auth.domain.models.session import SessionClaims
from roadmap_auth.infrastructure.auth.session_tokens import SessionTokenError, SessionTokenManager
from roadmap_auth.infrastructure.instances.store import InstanceStore

logger = logging.getLogger(__name__)


def extract_session_token(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> Optional[str]:
    """Session token from "Authorization: Bearer" or the session cookie"""
    authorization = request.headers.get("Authorization")
    if authorization and authorization[:7].lower() == "bearer ":
        token = authorization[7:].strip()
        if token:
            return token

    return request.cookies.get(settings.session_cookie_name) or None


async def get_admin_session_optional(
    token: Optional[str] = Depends(extract_session_token),
    session_manager: SessionTokenManager = Depends(get_session_manager),
) -> Optional[SessionClaims]:
    """Verified session claims, or None (no error if missing/invalid)"""
    if not token:
        return None
    try:
        return session_manager.verify(token)
    except SessionTokenError as e:
        logger.debug(f"Session verification failed: {e}")
        return None


async def require_admin_session(
    session: Optional[SessionClaims] = Depends(get_admin_session_optional),
) -> SessionClaims:
    """
    Require a valid admin session.

    Raises:
        HTTPException: 401 for missing, invalid, expired or non-admin tokens
    """
    if session is None or not session.is_admin:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


async def require_superadmin(
    session: SessionClaims = Depends(require_admin_session),
    resolver: SuperAdminResolver = Depends(get_superadmin_resolver),
) -> SessionClaims:
    """
    Require a superadmin session (token group or directory fallback).

    Raises:
        HTTPException: 403 if the session is not a superadmin
    """
    if not await resolver.is_superadmin(session):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return session


async def require_instance_admin(
    slug: str,
    session: SessionClaims = Depends(require_admin_session),
    instance_store: InstanceStore = Depends(get_instance_store),
    resolver: InstanceAccessResolver = Depends(get_instance_access_resolver),
) -> RoadmapInstance:
    """
    Require admin access to the instance named by the {slug} path parameter.

    Raises:
        HTTPException: 404 if the instance is unknown, 403 if access is denied
    """
    instance = await instance_store.get(slug)
    if instance is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Instance not found")

    if not await resolver.is_allowed_for_instance(session, instance):
        logger.info(f"Instance access denied: user={session.username} instance={instance.slug}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    return instance

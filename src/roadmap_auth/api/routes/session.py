"""Admin Session Routes

Key Endpoints:
- GET /api/auth/whoami: Claims of the current admin session
- GET /api/auth/check-admin-session: Lightweight session probe for the admin UI
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from roadmap_auth.api.dependencies import get_session_manager, get_superadmin_resolver
from roadmap_auth.api.middleware.auth import extract_session_token, require_admin_session
from roadmap_auth.core.access import SuperAdminResolver
from roadmap_auth.domain.models.session import SessionClaims
from roadmap_auth.infrastructure.auth.session_tokens import SessionTokenError, SessionTokenManager

router = APIRouter(prefix="/api/auth", tags=["admin-session"])
logger = logging.getLogger(__name__)


@router.get("/whoami")
async def whoami(
    session: SessionClaims = Depends(require_admin_session),
    resolver: SuperAdminResolver = Depends(get_superadmin_resolver),
):
    """Current session claims plus the resolved superadmin flag"""
    return {
        "username": session.username,
        "displayName": session.display_name,
        "source": session.source,
        "isAdmin": session.is_admin,
        "isSuperAdmin": await resolver.is_superadmin(session),
        "groups": session.groups,
        "entra": session.entra.model_dump() if session.entra else None,
    }


@router.get("/check-admin-session")
async def check_admin_session(
    token: Optional[str] = Depends(extract_session_token),
    session_manager: SessionTokenManager = Depends(get_session_manager),
):
    """
    Check whether the caller holds a valid session token

    Superadmin here reflects the token's group claim only; no directory
    lookups are made.

    Returns:
        200 {isAdmin, username, groups, isSuperAdmin} or 401 {isAdmin: false, error}
    """
    if not token:
        return JSONResponse(status_code=401, content={"isAdmin": False, "error": "No token provided"})

    try:
        session = session_manager.verify(token)
    except SessionTokenError as e:
        logger.info(f"check-admin-session: verification failed: {e}")
        return JSONResponse(
            status_code=401,
            content={"isAdmin": False, "error": "Invalid or expired token"},
        )

    return {
        "isAdmin": session.is_admin,
        "username": session.display_name or session.username,
        "groups": session.groups,
        "isSuperAdmin": session.is_superadmin,
    }

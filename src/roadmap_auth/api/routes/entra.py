"""Entra SSO Routes

Key Endpoints:
- GET /api/auth/entra/login: Start the Authorization Code + PKCE flow
- GET /api/auth/entra/callback: Complete the flow and deliver the session token
- GET /api/auth/entra/status: Configuration diagnostics (no secrets)
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from roadmap_auth.api.dependencies import get_entra_flow
from roadmap_auth.config.settings import Settings, get_settings
from roadmap_auth.core.sso import EntraSsoFlow, RequestContext
from roadmap_auth.core.sso.delivery import ResponseDescription

router = APIRouter(prefix="/api/auth/entra", tags=["entra-sso"])
logger = logging.getLogger(__name__)


def render(description: ResponseDescription) -> Response:
    """Turn a flow response description into a Starlette response"""
    if description.is_redirect:
        response: Response = RedirectResponse(description.location, status_code=description.status_code)
    elif description.html is not None:
        response = HTMLResponse(description.html, status_code=description.status_code)
    else:
        response = JSONResponse(description.json or {}, status_code=description.status_code)

    for cookie in description.cookies:
        if cookie.expires_now:
            response.delete_cookie(
                cookie.name,
                path=cookie.path,
                secure=cookie.secure,
                httponly=cookie.http_only,
                samesite=cookie.same_site,
            )
        else:
            response.set_cookie(
                cookie.name,
                cookie.value,
                max_age=cookie.max_age,
                path=cookie.path,
                secure=cookie.secure,
                httponly=cookie.http_only,
                samesite=cookie.same_site,
            )
    response.headers["Cache-Control"] = "no-store"
    return response


@router.get("/login")
async def entra_login(request: Request, flow: EntraSsoFlow = Depends(get_entra_flow)):
    """
    Redirect the browser to the Entra authorize endpoint

    Query Parameters:
        returnUrl: Same-origin path to land on after sign-in (default /admin)
        popup: "1" to deliver the result to window.opener
    """
    return render(flow.start_login(RequestContext.from_request(request)))


@router.get("/callback")
async def entra_callback(request: Request, flow: EntraSsoFlow = Depends(get_entra_flow)):
    """Handle the IdP redirect back to this service"""
    return render(await flow.handle_callback(RequestContext.from_request(request)))


@router.get("/status")
async def entra_status(
    request: Request,
    flow: EntraSsoFlow = Depends(get_entra_flow),
    settings: Settings = Depends(get_settings),
):
    """Report which SSO settings are present and the computed redirect URI"""
    override = (settings.entra_redirect_uri or "").strip()

    return {
        "enabled": settings.entra_sso_enabled,
        "tenantIdConfigured": bool(settings.entra_tenant_id),
        "clientIdConfigured": bool(settings.entra_client_id),
        "clientSecretConfigured": bool(settings.entra_client_secret),
        "redirectUriConfigured": bool(override),
        "redirectUriOverride": override or None,
        "redirectUriOverrideValid": (settings.callback_path in override) if override else None,
        "computedRedirectUri": flow.redirect_uri(RequestContext.from_request(request)),
        "allowlistConfigured": settings.allowlist_configured,
    }

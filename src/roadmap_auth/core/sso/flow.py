"""Entra SSO login/callback orchestration.

INITIATED -> redirect to the IdP with state, nonce and PKCE challenge;
flow state rides in cookies. The callback validates the cookies against
the query, exchanges the code, resolves profile and groups, applies the
allowlist, issues a session token and delivers it by popup or redirect.
Every callback exit clears the flow cookies.
"""

import logging
import secrets
from typing import Callable, Optional

import httpx

from roadmap_auth.config.settings import Settings
from roadmap_auth.domain.models.session import EntraIdentity, SessionClaims
from roadmap_auth.infrastructure.auth.session_tokens import (
    InsecureSigningSecretError,
    SessionTokenManager,
)

from .cookies import FlowCookieJar, FlowCookieNames, FlowState, should_use_secure_cookies
from .delivery import (
    AuthOutcome,
    ResponseDescription,
    TransportMode,
    deliver,
    normalize_return_url,
)
from .errors import AuthenticationError, ConfigurationError, GraphError, PolicyDeniedError, TokenExchangeError
from .graph import EntraUserProfile, GraphClient
from .oidc import EntraOIDCClient, is_absolute_http_url
from .pkce import generate_pkce_pair, generate_random_token
from .policy import is_user_allowed
from .request import RequestContext, resolve_base_path, resolve_redirect_uri

logger = logging.getLogger(__name__)

INVALID_CALLBACK_MESSAGE = "Invalid login callback (state/code)"
MISSING_ACCESS_TOKEN_MESSAGE = "No access_token received (check the User.Read scope)"
POLICY_DENIED_MESSAGE = (
    "Not authorized. Set ENTRA_ADMIN_UPNS (or ENTRA_ALLOW_ALL=true) for admin access."
)
UPSTREAM_UNREACHABLE_MESSAGE = "Sign-in failed: identity provider unreachable"
SSO_DISABLED_MESSAGE = "Entra SSO is not configured"

HttpClientFactory = Callable[[], httpx.AsyncClient]


def build_session_claims(profile: EntraUserProfile, groups: list[str]) -> SessionClaims:
    username = profile.userPrincipalName or profile.mail or "unknown"
    return SessionClaims(
        username=username,
        display_name=profile.displayName or username,
        is_admin=True,
        source="entra",
        groups=groups,
        entra=EntraIdentity(id=profile.id, upn=profile.userPrincipalName, mail=profile.mail),
    )


class EntraSsoFlow:
    """Login initiation and callback handling for Entra SSO.

    Stateless across requests and processes: any instance can complete a
    callback another instance started.
    """

    def __init__(
        self,
        settings: Settings,
        session_manager: SessionTokenManager,
        http_client_factory: Optional[HttpClientFactory] = None,
    ):
        self.settings = settings
        self.session_manager = session_manager
        self.http_client_factory = http_client_factory or (
            lambda: httpx.AsyncClient(timeout=settings.upstream_timeout_seconds)
        )
        self.cookie_jar = FlowCookieJar(
            FlowCookieNames.with_prefix(settings.flow_cookie_prefix),
            max_age_seconds=settings.flow_cookie_max_age_seconds,
        )

    @property
    def enabled(self) -> bool:
        return self.settings.entra_sso_enabled

    def _oidc_client(self) -> EntraOIDCClient:
        return EntraOIDCClient(
            tenant_id=self.settings.entra_tenant_id or "",
            client_id=self.settings.entra_client_id or "",
            client_secret=self.settings.entra_client_secret,
            authority_host=self.settings.entra_authority_host,
        )

    def redirect_uri(self, request: RequestContext) -> str:
        return resolve_redirect_uri(
            request,
            override=self.settings.entra_redirect_uri,
            callback_path=self.settings.callback_path,
            base_path=resolve_base_path(
                self.settings.is_production,
                self.settings.base_path_dev,
                self.settings.base_path_prod,
            ),
        )

    def _secure(self, request: RequestContext) -> bool:
        return should_use_secure_cookies(request.forwarded_proto, self.settings.is_production)

    @staticmethod
    def _config_error_response(error: ConfigurationError, cookies=None) -> ResponseDescription:
        return ResponseDescription(
            status_code=500,
            json={"error": error.message, **error.details},
            cookies=list(cookies or []),
        )

    def _check_signing_secret(self) -> None:
        try:
            self.session_manager.ensure_usable()
        except InsecureSigningSecretError as e:
            raise ConfigurationError(str(e)) from e

    def start_login(self, request: RequestContext) -> ResponseDescription:
        """Begin the flow: set flow cookies and redirect to the IdP"""
        if not self.enabled:
            return ResponseDescription(status_code=400, json={"error": SSO_DISABLED_MESSAGE})

        redirect_uri = self.redirect_uri(request)
        return_url = normalize_return_url(
            request.param("returnUrl"), self.settings.default_return_url
        )
        popup = request.param("popup") == "1"

        state = generate_random_token(32)
        nonce = generate_random_token(32)
        pkce = generate_pkce_pair()

        try:
            self._check_signing_secret()
            authorize_url = self._oidc_client().build_authorize_url(
                redirect_uri=redirect_uri,
                state=state,
                nonce=nonce,
                code_challenge=pkce.challenge,
                scopes=self.settings.scope_list,
                prompt=self.settings.entra_prompt,
            )
        except ConfigurationError as e:
            logger.error(f"Entra login misconfigured: {e.message} (redirect_uri={redirect_uri})")
            return self._config_error_response(e)

        cookies = self.cookie_jar.set_cookies(
            FlowState(state=state, nonce=nonce, verifier=pkce.verifier, return_url=return_url, popup=popup),
            secure=self._secure(request),
        )
        logger.info(f"Entra login initiated (popup={popup}, return_url={return_url})")
        return ResponseDescription(status_code=302, location=authorize_url, cookies=cookies)

    async def handle_callback(self, request: RequestContext) -> ResponseDescription:
        """Complete the flow and deliver a session token or an error"""
        clear_cookies = self.cookie_jar.clear_cookies(self._secure(request))
        if not self.enabled:
            return ResponseDescription(
                status_code=400, json={"error": SSO_DISABLED_MESSAGE}, cookies=clear_cookies
            )

        flow = self.cookie_jar.read(request.cookies)

        mode = TransportMode.POPUP if flow["popup"] == "1" else TransportMode.REDIRECT
        return_url = normalize_return_url(flow["return_url"], self.settings.default_return_url)

        def respond(outcome: AuthOutcome) -> ResponseDescription:
            return deliver(
                outcome,
                mode,
                return_url=return_url,
                origin=request.origin,
                login_page_path=self.settings.login_page_path,
                cookies=clear_cookies,
            )

        provider_error = request.param("error")
        if provider_error:
            message = request.param("error_description") or provider_error
            logger.info(f"Entra callback reported provider error: {provider_error}")
            return respond(AuthOutcome.failure(message))

        code = request.param("code")
        state = request.param("state")
        expected_state = flow["state"]
        verifier = flow["verifier"]

        if (
            not code
            or not state
            or not expected_state
            or not verifier
            or not secrets.compare_digest(state.encode(), expected_state.encode())
        ):
            logger.info("Entra callback rejected: state/code missing or mismatched")
            return respond(AuthOutcome.failure(INVALID_CALLBACK_MESSAGE))

        redirect_uri = self.redirect_uri(request)
        try:
            self._check_signing_secret()
            if not is_absolute_http_url(redirect_uri):
                raise ConfigurationError(
                    "Invalid redirect URI. Set ENTRA_REDIRECT_URI explicitly "
                    "(must be an absolute http/https URL).",
                    computedRedirectUri=redirect_uri,
                )
        except ConfigurationError as e:
            logger.error(f"Entra callback misconfigured: {e.message}")
            return self._config_error_response(e, clear_cookies)

        try:
            claims = await self._authenticate(code, verifier, redirect_uri)
        except AuthenticationError as e:
            logger.info(f"Entra sign-in failed: {e}")
            return respond(AuthOutcome.failure(str(e)))
        except httpx.HTTPError as e:
            logger.warning(f"Entra upstream request failed: {e}")
            return respond(AuthOutcome.failure(UPSTREAM_UNREACHABLE_MESSAGE))

        token = self.session_manager.issue(claims)
        logger.info(f"Entra sign-in succeeded for {claims.username} (groups={len(claims.groups)})")
        return respond(AuthOutcome.success(token, claims.display_name or claims.username or ""))

    async def _authenticate(self, code: str, verifier: str, redirect_uri: str) -> SessionClaims:
        """Exchange the code and build session claims

        Raises:
            AuthenticationError: On exchange, profile or policy failure
            httpx.HTTPError: If an upstream is unreachable
        """
        async with self.http_client_factory() as client:
            tokens = await self._oidc_client().exchange_code(
                client, redirect_uri=redirect_uri, code=code, code_verifier=verifier
            )
            if not tokens.access_token:
                raise TokenExchangeError(MISSING_ACCESS_TOKEN_MESSAGE)

            graph = GraphClient(client, tokens.access_token, base_url=self.settings.graph_base_url)
            profile = await graph.fetch_profile()

            try:
                groups = await graph.fetch_group_names()
            except (GraphError, httpx.HTTPError) as e:
                # Many tenants never grant group read consent
                logger.warning(f"Entra group fetch skipped/failed: {e}")
                groups = []

        if not is_user_allowed(
            profile,
            allow_all=self.settings.entra_allow_all,
            allowed_identifiers_csv=self.settings.entra_admin_upns,
        ):
            raise PolicyDeniedError(POLICY_DENIED_MESSAGE)

        return build_session_claims(profile, groups)

"""Microsoft Entra ID authorization-code + PKCE client.

Builds the authorize URL and performs the back-channel code exchange
against the tenant's v2.0 endpoints:

    https://login.microsoftonline.com/{tenant}/oauth2/v2.0/authorize
    https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token

Provider responses are arbitrary JSON; fields of the wrong type read as absent.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import quote, urlencode

import httpx

from .errors import ConfigurationError, TokenExchangeError

logger = logging.getLogger(__name__)

_ABSOLUTE_HTTP_URL = re.compile(r"^https?://", re.IGNORECASE)


def is_absolute_http_url(value: Optional[str]) -> bool:
    return bool(value) and bool(_ABSOLUTE_HTTP_URL.match(value))


def as_dict(value: Any) -> dict:
    """Return value if it is a JSON object, else an empty dict"""
    return value if isinstance(value, dict) else {}


def optional_str(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    return value if isinstance(value, str) else None


def read_json(response: httpx.Response) -> Any:
    """Decode a response body, treating unparseable bodies as empty"""
    try:
        return response.json()
    except ValueError:
        return {}


@dataclass
class TokenExchangeResult:
    """Result of the authorization code exchange"""

    id_token: Optional[str] = None
    access_token: Optional[str] = None
    raw: dict = field(default_factory=dict)


class EntraOIDCClient:
    """Authorization Code + PKCE client for a single Entra tenant.

    Example Configuration:
        ENTRA_TENANT_ID=contoso.onmicrosoft.com
        ENTRA_CLIENT_ID=xxx
        ENTRA_CLIENT_SECRET=xxx
    """

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: Optional[str] = None,
        authority_host: str = "https://login.microsoftonline.com",
    ):
        """Initialize Entra client.

        Args:
            tenant_id: Directory (tenant) ID or domain
            client_id: Application (client) ID
            client_secret: Client secret, only needed for the code exchange
            authority_host: Login host (override for sovereign clouds)
        """
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.authority_host = authority_host.rstrip("/")

    @property
    def authority(self) -> str:
        return f"{self.authority_host}/{quote(self.tenant_id, safe='')}/oauth2/v2.0"

    def build_authorize_url(
        self,
        redirect_uri: str,
        state: str,
        nonce: str,
        code_challenge: str,
        scopes: list[str],
        prompt: Optional[str] = None,
    ) -> str:
        """Generate the authorization endpoint URL.

        Args:
            redirect_uri: Absolute http(s) callback URL
            state: CSRF protection state
            nonce: ID token replay protection nonce
            code_challenge: PKCE S256 challenge
            scopes: Scopes to request
            prompt: Optional prompt hint (e.g. select_account)

        Returns:
            Authorization URL to redirect the browser to

        Raises:
            ConfigurationError: If redirect_uri is not an absolute http/https URL
        """
        if not is_absolute_http_url(redirect_uri):
            raise ConfigurationError(
                "Invalid redirect URI. Set ENTRA_REDIRECT_URI explicitly "
                "(must be an absolute http/https URL).",
                computedRedirectUri=redirect_uri,
            )

        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "response_mode": "query",
            "scope": " ".join(scopes),
            "state": state,
            "nonce": nonce,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        if prompt:
            params["prompt"] = prompt

        return f"{self.authority}/authorize?{urlencode(params)}"

    async def exchange_code(
        self,
        client: httpx.AsyncClient,
        redirect_uri: str,
        code: str,
        code_verifier: str,
    ) -> TokenExchangeResult:
        """Exchange an authorization code for tokens.

        Args:
            client: HTTP client used for the back-channel POST
            redirect_uri: Same redirect_uri used in the authorize request
            code: Authorization code from the callback
            code_verifier: PKCE verifier matching the challenge sent earlier

        Returns:
            TokenExchangeResult with whichever tokens the provider returned

        Raises:
            TokenExchangeError: If the token endpoint answers non-2xx
        """
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret or "",
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "code_verifier": code_verifier,
        }

        response = await client.post(
            f"{self.authority}/token",
            data=data,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        raw = as_dict(read_json(response))

        if not response.is_success:
            message = (
                optional_str(raw, "error_description")
                or optional_str(raw, "error")
                or f"Token exchange failed ({response.status_code})"
            )
            logger.warning(f"Entra token exchange failed: status={response.status_code}")
            raise TokenExchangeError(message)

        return TokenExchangeResult(
            id_token=optional_str(raw, "id_token"),
            access_token=optional_str(raw, "access_token"),
            raw=raw,
        )

"""Entra ID single sign-on.

Authorization Code + PKCE against Microsoft Entra ID, Graph profile and
group lookup, allowlist policy, and popup/redirect delivery of the
resulting session token.
"""

from .errors import (
    AuthenticationError,
    ConfigurationError,
    GraphError,
    PolicyDeniedError,
    SsoError,
    TokenExchangeError,
)
from .flow import EntraSsoFlow
from .request import RequestContext

__all__ = [
    "EntraSsoFlow",
    "RequestContext",
    "SsoError",
    "ConfigurationError",
    "AuthenticationError",
    "TokenExchangeError",
    "GraphError",
    "PolicyDeniedError",
]

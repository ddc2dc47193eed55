"""Exceptions raised by the Entra SSO flow."""


class SsoError(Exception):
    """Base class for SSO flow failures."""
    pass


class ConfigurationError(SsoError):
    """The deployment is misconfigured (redirect URI, credentials, secrets).

    Surfaced to the caller as a 5xx with diagnostic detail, never as a
    user-facing authentication failure.
    """

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details


class AuthenticationError(SsoError):
    """Authentication failed. The message is safe to show to the user."""
    pass


class TokenExchangeError(AuthenticationError):
    """The token endpoint rejected the authorization code."""
    pass


class GraphError(AuthenticationError):
    """A directory (Graph) request failed."""
    pass


class PolicyDeniedError(AuthenticationError):
    """The resolved profile is not on the admin allowlist."""
    pass

"""Session Token Manager (HS256)

Issues and verifies the compact signed session token handed to the
browser after SSO. Tokens are single-shot, fixed lifetime; there is no
refresh.

Token Format:
{
    "username": "jane.doe@example.com",
    "displayName": "Jane Doe",
    "isAdmin": true,
    "source": "entra",
    "groups": ["admin-finance"],
    "entra": {"id": "...", "upn": "...", "mail": "..."},
    "iat": 1700000000,
    "exp": 1700086400
}
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError

from roadmap_auth.config.settings import DEFAULT_JWT_SECRET
from roadmap_auth.domain.models.session import SessionClaims

logger = logging.getLogger(__name__)


class SessionTokenError(Exception):
    """Session token could not be issued or verified."""
    pass


class InsecureSigningSecretError(SessionTokenError):
    """The compiled-in default secret is in use outside development."""
    pass


class SessionTokenManager:
    """Signs and verifies admin session tokens with a shared secret"""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        ttl_seconds: int = 86400,  # 24 hours
        allow_default_secret: bool = True,
    ):
        """Initialize session token manager

        Args:
            secret_key: Deployment-specific signing secret
            algorithm: JWT signing algorithm
            ttl_seconds: Default token lifetime
            allow_default_secret: Accept the default secret (development only)
        """
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.ttl_seconds = ttl_seconds
        self.allow_default_secret = allow_default_secret

    @property
    def uses_default_secret(self) -> bool:
        return self.secret_key == DEFAULT_JWT_SECRET

    def ensure_usable(self) -> None:
        """Refuse to operate with the default secret outside development

        Raises:
            InsecureSigningSecretError: If the default secret is not allowed
        """
        if not self.secret_key:
            raise InsecureSigningSecretError("JWT_SECRET is empty")
        if self.uses_default_secret and not self.allow_default_secret:
            raise InsecureSigningSecretError(
                "JWT_SECRET still has its default value; set a deployment-specific secret"
            )

    def issue(
        self,
        claims: Union[SessionClaims, dict],
        ttl_seconds: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """Sign a session token

        Args:
            claims: Session claims
            ttl_seconds: Lifetime override
            now: Issue time override

        Returns:
            Encoded token
        """
        self.ensure_usable()

        payload = claims.to_claims() if isinstance(claims, SessionClaims) else dict(claims)
        issued_at = now or datetime.now(timezone.utc)
        lifetime = timedelta(seconds=self.ttl_seconds if ttl_seconds is None else ttl_seconds)
        payload["iat"] = int(issued_at.timestamp())
        payload["exp"] = int((issued_at + lifetime).timestamp())

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        logger.info(f"Issued session token for {payload.get('username')}")
        return token

    def verify(self, token: str) -> SessionClaims:
        """Verify signature and expiry and decode claims

        Raises:
            SessionTokenError: For any failure (expired, tampered, malformed)
        """
        self.ensure_usable()

        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError as e:
            logger.debug("Session token expired")
            raise SessionTokenError("token expired") from e
        except JWTError as e:
            logger.debug(f"Session token rejected: {e}")
            raise SessionTokenError("invalid token") from e

        if not isinstance(payload, dict):
            raise SessionTokenError("invalid token")

        return SessionClaims.model_validate(payload)

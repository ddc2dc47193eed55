"""PKCE (Proof Key for Code Exchange) and nonce utilities.

Implements RFC 7636 S256 for the authorization code flow:
- state / nonce: 32 random bytes, base64url encoded
- code_verifier: 48 random bytes, base64url encoded (64 chars)
- code_challenge: base64url(sha256(code_verifier))
"""

import base64
import hashlib
import secrets
from typing import NamedTuple


class PKCEPair(NamedTuple):
    """PKCE verifier/challenge pair."""

    verifier: str
    challenge: str


def base64url_encode(data: bytes) -> str:
    """Base64-URL encode without padding (RFC 4648 Section 5)"""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def generate_random_token(byte_length: int = 32) -> str:
    """Generate a URL-safe random token from a CSPRNG.

    Args:
        byte_length: Number of random bytes before encoding

    Returns:
        Base64-URL encoded string
    """
    return base64url_encode(secrets.token_bytes(byte_length))


def sha256_base64url(value: str) -> str:
    return base64url_encode(hashlib.sha256(value.encode("ascii")).digest())


def generate_pkce_pair() -> PKCEPair:
    """Generate a PKCE verifier and its S256 challenge."""
    verifier = generate_random_token(48)
    return PKCEPair(verifier=verifier, challenge=sha256_base64url(verifier))

"""Admin allowlist policy for SSO sign-in."""

from typing import Optional

from .graph import EntraUserProfile


def normalize_identifier(value) -> str:
    """Trim and lower-case a string identifier; anything else becomes ''"""
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


def is_user_allowed(
    profile: EntraUserProfile,
    allow_all: bool = False,
    allowed_identifiers_csv: Optional[str] = None,
) -> bool:
    """Decide whether a profile may receive an admin session.

    Matches userPrincipalName and mail case-insensitively against the CSV.
    An empty CSV without allow_all denies everyone (fail closed).
    """
    if allow_all:
        return True

    allowed = {
        normalize_identifier(entry)
        for entry in str(allowed_identifiers_csv or "").split(",")
    }
    allowed.discard("")
    if not allowed:
        return False

    candidates = {
        normalize_identifier(profile.userPrincipalName),
        normalize_identifier(profile.mail),
    }
    candidates.discard("")

    return bool(candidates & allowed)

"""Session Data Models

Purpose: Claims carried by the signed admin session token

The token is the only authentication state shared between requests; the
server keeps no session table. Claims use the camelCase wire names the
portal front end reads.

Key Components:
- EntraIdentity: Directory identifiers of the signed-in principal
- SessionClaims: Decoded/issuable session payload
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

SUPERADMIN_GROUP = "superadmin"


def normalize_groups(groups: Any) -> list[str]:
    """Trim, lower-case and dedupe a group claim, dropping non-strings"""
    if not isinstance(groups, (list, tuple)):
        return []
    out: list[str] = []
    for group in groups:
        if not isinstance(group, str):
            continue
        value = group.strip().lower()
        if value and value not in out:
            out.append(value)
    return out


class EntraIdentity(BaseModel):
    """Directory identifiers embedded in the session"""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    upn: Optional[str] = None
    mail: Optional[str] = None

    @field_validator("id", "upn", "mail", mode="before")
    @classmethod
    def drop_non_strings(cls, v):
        return v if isinstance(v, str) else None


class SessionClaims(BaseModel):
    """Admin session claims

    Attributes:
        username: UPN, mail or "unknown"
        display_name: Human-readable name
        is_admin: Must be True for any gated access
        source: Where the session came from (e.g. "entra")
        groups: Directory group display names (may be empty)
        entra: Directory identifiers
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    username: Optional[str] = None
    display_name: Optional[str] = Field(None, alias="displayName")
    is_admin: bool = Field(False, alias="isAdmin")
    source: Optional[str] = None
    groups: list[str] = Field(default_factory=list)
    entra: Optional[EntraIdentity] = None

    @field_validator("username", "display_name", "source", mode="before")
    @classmethod
    def drop_non_strings(cls, v):
        return v if isinstance(v, str) else None

    @field_validator("is_admin", mode="before")
    @classmethod
    def strict_admin_flag(cls, v):
        # Only a literal true grants admin
        return v is True

    @field_validator("groups", mode="before")
    @classmethod
    def keep_string_groups(cls, v):
        if not isinstance(v, (list, tuple)):
            return []
        return [g for g in v if isinstance(g, str)]

    @field_validator("entra", mode="before")
    @classmethod
    def entra_object_only(cls, v):
        return v if isinstance(v, (dict, EntraIdentity)) else None

    @property
    def normalized_groups(self) -> list[str]:
        return normalize_groups(self.groups)

    @property
    def is_superadmin(self) -> bool:
        return SUPERADMIN_GROUP in self.normalized_groups

    @property
    def has_group_claims(self) -> bool:
        return any(g.strip() for g in self.groups)

    def identity_hints(self) -> dict[str, Optional[str]]:
        """Identifiers for directory lookups, in preference order"""
        entra = self.entra or EntraIdentity()
        return {
            "username": self.username,
            "upn": entra.upn,
            "mail": entra.mail,
            "displayName": self.display_name,
        }

    def to_claims(self) -> dict:
        """Wire representation for signing"""
        return self.model_dump(by_alias=True)

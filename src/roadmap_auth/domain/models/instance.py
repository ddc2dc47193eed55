"""Roadmap Instance (tenant) Models

Purpose: The slice of a tenant record the access layer reads

Each roadmap instance carries an opaque metadata blob. The access layer
only consumes metadata.adminAccess:

    {"adminAccess": {"allowedUsers": ["jane@example.com"], "allowedGroups": []}}

Anything malformed is treated as "no configuration".
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


def normalize_identifier_list(values: Any) -> list[str]:
    """Trim, lower-case and dedupe a list, dropping non-strings and blanks"""
    if not isinstance(values, list):
        return []
    out: list[str] = []
    for value in values:
        if not isinstance(value, str):
            continue
        normalized = value.strip().lower()
        if normalized and normalized not in out:
            out.append(normalized)
    return out


class InstanceAdminAccessConfig(BaseModel):
    """Normalized admin access configuration of one instance"""

    allowed_users: list[str] = Field(default_factory=list)
    allowed_groups: list[str] = Field(default_factory=list)

    @classmethod
    def from_metadata(cls, metadata: Any) -> Optional["InstanceAdminAccessConfig"]:
        """Extract metadata.adminAccess, or None when absent/malformed"""
        if not isinstance(metadata, dict):
            return None
        raw = metadata.get("adminAccess")
        if not isinstance(raw, dict):
            return None
        return cls(
            allowed_users=normalize_identifier_list(raw.get("allowedUsers")),
            allowed_groups=normalize_identifier_list(raw.get("allowedGroups")),
        )


class RoadmapInstance(BaseModel):
    """Tenant record

    Attributes:
        slug: Unique lower-case identifier
        display_name: Human-readable name
        sharepoint_site_url: Backing SharePoint site (directory fallback)
        metadata: Opaque settings metadata
    """

    slug: str
    display_name: Optional[str] = None
    sharepoint_site_url: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("slug")
    @classmethod
    def normalize_slug(cls, v):
        return v.strip().lower()

    @field_validator("metadata", mode="before")
    @classmethod
    def metadata_object_only(cls, v):
        return v if isinstance(v, dict) else {}

    @property
    def admin_access(self) -> Optional[InstanceAdminAccessConfig]:
        return InstanceAdminAccessConfig.from_metadata(self.metadata)

    @property
    def allowed_users(self) -> list[str]:
        config = self.admin_access
        return config.allowed_users if config else []

    @property
    def allowed_groups(self) -> list[str]:
        config = self.admin_access
        return config.allowed_groups if config else []

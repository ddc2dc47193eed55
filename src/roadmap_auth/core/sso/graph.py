"""Microsoft Graph profile and group resolution.

Profile lookup is required for a session. Group lookup needs
GroupMember.Read.All (or similar) which many tenants never consent to,
so callers must treat GraphError from fetch_group_names as non-fatal.
"""

import logging
from typing import Optional

import httpx
from pydantic import BaseModel, field_validator

from .errors import GraphError
from .oidc import as_dict, optional_str, read_json

logger = logging.getLogger(__name__)

# Guards against a provider that keeps returning nextLink
MAX_GROUP_PAGES = 50


class EntraUserProfile(BaseModel):
    """Signed-in principal as returned by Graph /me.

    Attributes:
        id: Directory object id
        displayName: Human-readable name
        userPrincipalName: UPN (login name)
        mail: Primary SMTP address
    """
    id: Optional[str] = None
    displayName: Optional[str] = None
    userPrincipalName: Optional[str] = None
    mail: Optional[str] = None

    @field_validator("id", "displayName", "userPrincipalName", "mail", mode="before")
    @classmethod
    def drop_non_strings(cls, v):
        return v if isinstance(v, str) else None


def _graph_error_message(raw: dict, fallback: str) -> str:
    error = as_dict(raw.get("error"))
    return optional_str(error, "message") or fallback


class GraphClient:
    """Minimal Graph client bound to one delegated access token"""

    def __init__(self, client: httpx.AsyncClient, access_token: str,
                 base_url: str = "https://graph.microsoft.com/v1.0"):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.headers = {"Authorization": f"Bearer {access_token}"}

    async def fetch_profile(self) -> EntraUserProfile:
        """Fetch the signed-in user's profile.

        Raises:
            GraphError: If Graph answers non-2xx
        """
        response = await self.client.get(
            f"{self.base_url}/me",
            params={"$select": "id,displayName,userPrincipalName,mail"},
            headers=self.headers,
        )
        raw = as_dict(read_json(response))
        if not response.is_success:
            raise GraphError(_graph_error_message(raw, "Graph /me failed"))
        return EntraUserProfile.model_validate(raw)

    async def fetch_group_names(self) -> list[str]:
        """Collect display names of all groups the user is a transitive member of.

        Follows @odata.nextLink until exhausted. Names are deduplicated,
        first occurrence order preserved.

        Raises:
            GraphError: If any page answers non-2xx or links to a malformed URL
        """
        url: Optional[str] = f"{self.base_url}/me/transitiveMemberOf/microsoft.graph.group"
        params: Optional[dict] = {"$select": "displayName", "$top": "999"}
        names: list[str] = []
        seen: set[str] = set()

        for _ in range(MAX_GROUP_PAGES):
            try:
                response = await self.client.get(url, params=params, headers=self.headers)
            except httpx.InvalidURL as e:
                raise GraphError(f"Graph group lookup returned an invalid page link: {e}") from e
            raw = as_dict(read_json(response))
            if not response.is_success:
                raise GraphError(_graph_error_message(raw, "Graph group lookup failed"))

            entries = raw.get("value")
            for entry in entries if isinstance(entries, list) else []:
                name = optional_str(as_dict(entry), "displayName")
                if name and name.strip() and name not in seen:
                    seen.add(name)
                    names.append(name)

            url = optional_str(raw, "@odata.nextLink")
            params = None  # nextLink already carries the query
            if not url:
                break
        else:
            logger.warning(f"Graph group paging stopped after {MAX_GROUP_PAGES} pages")

        return names

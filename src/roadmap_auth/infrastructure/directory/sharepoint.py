"""SharePoint site-group membership checks.

Answers "is this principal in group G on instance X's SharePoint site"
through the SharePoint REST API:

    GET {site}/_api/web/sitegroups/getbyname('{title}')/users

Any failure (missing site, missing group, transport or permission error)
degrades to "not a member"; the caller's decision stays deterministic.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Mapping, Optional
from urllib.parse import quote

import httpx

from roadmap_auth.infrastructure.instances.store import InstanceStore

logger = logging.getLogger(__name__)

IDENTITY_HINT_ORDER = ("username", "upn", "mail", "displayName")


class GroupDirectory(ABC):
    """Directory that can answer point-in-time group membership questions"""

    @abstractmethod
    async def is_user_in_group(
        self,
        instance_slug: str,
        group_title: str,
        identifiers: Mapping[str, Optional[str]],
    ) -> bool:
        pass


def _normalize(value) -> str:
    return value.strip().lower() if isinstance(value, str) else ""


def login_name_account(login_name: str) -> str:
    """Strip a claims prefix ("i:0#.f|membership|user@x" -> "user@x")"""
    return login_name.rsplit("|", 1)[-1]


def member_identifiers(member: dict) -> set[str]:
    values = {
        _normalize(member.get("Email")),
        _normalize(member.get("UserPrincipalName")),
        _normalize(member.get("Title")),
    }
    login_name = member.get("LoginName")
    if isinstance(login_name, str):
        values.add(_normalize(login_name))
        values.add(_normalize(login_name_account(login_name)))
        # DOMAIN\user
        values.add(_normalize(login_name_account(login_name).rsplit("\\", 1)[-1]))
    values.discard("")
    return values


def extract_members(payload) -> list[dict]:
    """Members from either odata=nometadata or verbose responses"""
    if not isinstance(payload, dict):
        return []
    members = payload.get("value")
    if members is None:
        d = payload.get("d")
        members = d.get("results") if isinstance(d, dict) else None
    if not isinstance(members, list):
        return []
    return [m for m in members if isinstance(m, dict)]


class SharePointGroupDirectory(GroupDirectory):
    """Group membership via each instance's SharePoint site"""

    def __init__(
        self,
        instance_store: InstanceStore,
        http_client_factory: Callable[[], httpx.AsyncClient],
        access_token: Optional[str] = None,
    ):
        self.instance_store = instance_store
        self.http_client_factory = http_client_factory
        self.access_token = access_token

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json;odata=nometadata",
            "Cache-Control": "no-cache",
        }
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def is_user_in_group(
        self,
        instance_slug: str,
        group_title: str,
        identifiers: Mapping[str, Optional[str]],
    ) -> bool:
        hints = [_normalize(identifiers.get(key)) for key in IDENTITY_HINT_ORDER]
        hints = [hint for hint in hints if hint]
        if not hints:
            return False

        instance = await self.instance_store.get(instance_slug)
        if instance is None or not instance.sharepoint_site_url:
            logger.warning(f"No SharePoint site configured for instance {instance_slug}")
            return False

        site = instance.sharepoint_site_url.rstrip("/")
        escaped_title = quote(group_title.replace("'", "''"), safe="")
        url = f"{site}/_api/web/sitegroups/getbyname('{escaped_title}')/users"

        try:
            async with self.http_client_factory() as client:
                response = await client.get(
                    url,
                    params={"$select": "Id,Title,Email,LoginName,UserPrincipalName"},
                    headers=self._headers(),
                )
        except httpx.HTTPError as e:
            logger.warning(f"SharePoint group lookup failed for {instance_slug}/{group_title}: {e}")
            return False

        if response.status_code == 404:
            logger.info(f"SharePoint group {group_title} not found on instance {instance_slug}")
            return False
        if not response.is_success:
            logger.warning(
                f"SharePoint group lookup for {instance_slug}/{group_title} "
                f"returned {response.status_code}"
            )
            return False

        try:
            payload = response.json()
        except ValueError:
            logger.warning(f"SharePoint group lookup for {instance_slug}/{group_title} returned invalid JSON")
            return False

        for member in extract_members(payload):
            known = member_identifiers(member)
            for hint in hints:
                if hint in known:
                    logger.info(f"Directory membership confirmed: {group_title} on {instance_slug}")
                    return True
        return False

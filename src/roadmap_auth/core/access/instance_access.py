"""Instance-scoped admin access decisions.

Three trust sources can each be silently absent: the token's group claim
(provider denied group consent), the instance allowlist (never
configured) and the directory (transient or permission failure). The
cascade below always ends in a definite allow/deny:

1. superadmin in the token's groups                  -> allow
2. neither allowedUsers nor allowedGroups configured -> allow
3. a token group listed in allowedGroups             -> allow
4. token carries groups and allowedGroups is empty   -> allow
5. username/displayName on allowedUsers              -> allow
6. membership in directory group admin-<slug>        -> allow (only when
   the token has no group claim; not cached here)
"""

import logging
from typing import Iterable

from roadmap_auth.domain.models.instance import RoadmapInstance
from roadmap_auth.domain.models.session import SessionClaims
from roadmap_auth.infrastructure.directory.sharepoint import GroupDirectory

logger = logging.getLogger(__name__)


def instance_admin_group_title(slug: str) -> str:
    return f"admin-{(slug or '').strip().lower()}"


def _normalize(value) -> str:
    return value.strip().lower() if isinstance(value, str) else ""


def is_allowed_by_session_claims(session: SessionClaims, instance: RoadmapInstance) -> bool:
    """Steps 1-5 of the cascade, using only the token and instance metadata"""
    if session.is_superadmin:
        return True

    allowed_users = instance.allowed_users
    allowed_groups = instance.allowed_groups
    if not allowed_users and not allowed_groups:
        return True

    if allowed_groups:
        if any(group in allowed_groups for group in session.normalized_groups):
            return True
    elif session.has_group_claims:
        return True

    candidates = {_normalize(session.username), _normalize(session.display_name)}
    candidates.discard("")
    return any(candidate in allowed_users for candidate in candidates)


class InstanceAccessResolver:
    """Decides whether an admin session may administer an instance"""

    def __init__(self, directory: GroupDirectory):
        self.directory = directory

    async def is_allowed_for_instance(self, session: SessionClaims, instance: RoadmapInstance) -> bool:
        if not session.is_admin:
            return False

        if is_allowed_by_session_claims(session, instance):
            return True
        if session.has_group_claims:
            return False

        group_title = instance_admin_group_title(instance.slug)
        allowed = await self.directory.is_user_in_group(
            instance.slug, group_title, session.identity_hints()
        )
        logger.info(
            f"Directory fallback for {session.username} on {instance.slug}: "
            f"{'allowed' if allowed else 'denied'}"
        )
        return allowed

    async def filter_accessible(
        self, session: SessionClaims, instances: Iterable[RoadmapInstance]
    ) -> list[RoadmapInstance]:
        """Instances the session may administer

        Evaluated one instance at a time to keep directory load flat.
        """
        accessible = []
        for instance in instances:
            if await self.is_allowed_for_instance(session, instance):
                accessible.append(instance)
        return accessible

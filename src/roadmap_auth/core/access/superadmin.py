"""Superadmin determination with a directory fallback.

A token whose group claim contains "superadmin" is a superadmin. A token
with any other group claim is authoritative and is not. Only when the
claim is empty (no group consent) are instance directories probed for a
"superadmin" group, one instance at a time, stopping at the first hit.
The outcome is memoised per principal for a short TTL.
"""

import logging
from typing import Iterable, Optional

from roadmap_auth.config.settings import parse_csv
from roadmap_auth.domain.models.session import SUPERADMIN_GROUP, SessionClaims
from roadmap_auth.infrastructure.cache.determination_cache import DeterminationCache
from roadmap_auth.infrastructure.directory.sharepoint import GroupDirectory
from roadmap_auth.infrastructure.instances.store import InstanceStore

logger = logging.getLogger(__name__)

ALL_INSTANCES_MARKERS = {"all", "*"}


def _normalize(value) -> str:
    return value.strip().lower() if isinstance(value, str) else ""


def superadmin_cache_key(session: SessionClaims) -> str:
    hints = session.identity_hints()
    primary = hints["upn"] or hints["mail"] or hints["username"] or hints["displayName"] or "unknown"
    return _normalize(primary)


def _dedupe(values: Iterable[str]) -> list[str]:
    out: list[str] = []
    for value in values:
        if value and value not in out:
            out.append(value)
    return out


class SuperAdminResolver:
    """Resolves superadmin status for admin sessions"""

    def __init__(
        self,
        directory: GroupDirectory,
        instance_store: InstanceStore,
        cache: DeterminationCache,
        configured_slugs: Optional[str] = None,
        ttl_seconds: int = 120,
    ):
        """
        Args:
            directory: Group membership backend
            instance_store: Source of all known instance slugs
            cache: Determination memo
            configured_slugs: CSV of instances to probe, or "all"/"*"
            ttl_seconds: Memo lifetime
        """
        self.directory = directory
        self.instance_store = instance_store
        self.cache = cache
        self.configured_slugs = [_normalize(s) for s in parse_csv(configured_slugs)]
        self.ttl_seconds = ttl_seconds

    async def instance_slugs_to_check(self, candidate_slugs: Optional[Iterable[str]] = None) -> list[str]:
        configured = _dedupe(s for s in self.configured_slugs if s)
        wants_all = any(s in ALL_INSTANCES_MARKERS for s in configured)
        if configured and not wants_all:
            return configured

        candidates = _dedupe(_normalize(s) for s in (candidate_slugs or []))
        if candidates:
            return candidates

        return await self.instance_store.list_slugs()

    async def is_superadmin(
        self,
        session: Optional[SessionClaims],
        candidate_slugs: Optional[Iterable[str]] = None,
    ) -> bool:
        if session is None or not session.is_admin:
            return False
        if session.is_superadmin:
            return True
        if session.has_group_claims:
            return False

        key = superadmin_cache_key(session)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        slugs = await self.instance_slugs_to_check(candidate_slugs)
        if not slugs:
            return False

        # One instance at a time, first hit wins
        is_superadmin = False
        hints = session.identity_hints()
        for slug in slugs:
            if await self.directory.is_user_in_group(slug, SUPERADMIN_GROUP, hints):
                is_superadmin = True
                break

        await self.cache.set(key, is_superadmin, self.ttl_seconds)
        logger.info(f"Superadmin fallback for {key}: {is_superadmin} ({len(slugs)} instances)")
        return is_superadmin

"""Dependency wiring for the API layer.

Stateless collaborators are built per request from settings. The tenant
store and the determination cache live for the whole process so cached
determinations survive between requests; reset_dependencies() drops them.
"""

import logging
from typing import Optional

import httpx
from fastapi import Depends
from redis.exceptions import RedisError

from roadmap_auth.config.settings import Settings, get_settings
from roadmap_auth.core.access import InstanceAccessResolver, SuperAdminResolver
from roadmap_auth.core.sso import EntraSsoFlow
from roadmap_auth.core.sso.flow import HttpClientFactory
from roadmap_auth.infrastructure.auth.session_tokens import SessionTokenManager
from roadmap_auth.infrastructure.cache.determination_cache import (
    DeterminationCache,
    InMemoryDeterminationCache,
    RedisDeterminationCache,
)
from roadmap_auth.infrastructure.directory.sharepoint import GroupDirectory, SharePointGroupDirectory
from roadmap_auth.infrastructure.instances.store import (
    InMemoryInstanceStore,
    InstanceStore,
    load_instances_file,
)
from roadmap_auth.infrastructure.redis.client import get_redis_client

logger = logging.getLogger(__name__)

_instance_store: Optional[InstanceStore] = None
_determination_cache: Optional[DeterminationCache] = None


def get_http_client_factory(settings: Settings = Depends(get_settings)) -> HttpClientFactory:
    """Factory for upstream (IdP, Graph, SharePoint) HTTP clients"""
    timeout = settings.upstream_timeout_seconds
    return lambda: httpx.AsyncClient(timeout=timeout)


def get_session_manager(settings: Settings = Depends(get_settings)) -> SessionTokenManager:
    return SessionTokenManager(
        secret_key=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        ttl_seconds=settings.jwt_ttl_seconds,
        allow_default_secret=settings.is_development,
    )


def get_entra_flow(
    settings: Settings = Depends(get_settings),
    session_manager: SessionTokenManager = Depends(get_session_manager),
    http_client_factory: HttpClientFactory = Depends(get_http_client_factory),
) -> EntraSsoFlow:
    return EntraSsoFlow(settings, session_manager, http_client_factory)


def get_instance_store(settings: Settings = Depends(get_settings)) -> InstanceStore:
    """Process-wide tenant store, loaded from INSTANCES_FILE when set"""
    global _instance_store
    if _instance_store is None:
        if settings.instances_file:
            _instance_store = load_instances_file(settings.instances_file)
        else:
            logger.warning("INSTANCES_FILE not set; no roadmap instances are known")
            _instance_store = InMemoryInstanceStore()
    return _instance_store


async def get_determination_cache(settings: Settings = Depends(get_settings)) -> DeterminationCache:
    """Process-wide superadmin determination cache

    An unreachable Redis falls back to the in-process cache for the life
    of the process.
    """
    global _determination_cache
    if _determination_cache is None:
        if settings.superadmin_cache_backend.strip().lower() == "redis":
            try:
                redis_client = await get_redis_client()
                _determination_cache = RedisDeterminationCache(redis_client.get_client())
            except RedisError as e:
                logger.warning(f"Redis unavailable for the determination cache, using in-process cache: {e}")
                _determination_cache = InMemoryDeterminationCache()
        else:
            _determination_cache = InMemoryDeterminationCache()
    return _determination_cache


def get_group_directory(
    settings: Settings = Depends(get_settings),
    instance_store: InstanceStore = Depends(get_instance_store),
    http_client_factory: HttpClientFactory = Depends(get_http_client_factory),
) -> GroupDirectory:
    return SharePointGroupDirectory(
        instance_store,
        http_client_factory,
        access_token=settings.sharepoint_access_token,
    )


def get_instance_access_resolver(
    directory: GroupDirectory = Depends(get_group_directory),
) -> InstanceAccessResolver:
    return InstanceAccessResolver(directory)


def get_superadmin_resolver(
    settings: Settings = Depends(get_settings),
    directory: GroupDirectory = Depends(get_group_directory),
    instance_store: InstanceStore = Depends(get_instance_store),
    cache: DeterminationCache = Depends(get_determination_cache),
) -> SuperAdminResolver:
    return SuperAdminResolver(
        directory,
        instance_store,
        cache,
        configured_slugs=settings.superadmin_instance_slugs,
        ttl_seconds=settings.superadmin_cache_ttl_seconds,
    )


def reset_dependencies() -> None:
    """Drop process-wide singletons (for testing)."""
    global _instance_store, _determination_cache
    _instance_store = None
    _determination_cache = None

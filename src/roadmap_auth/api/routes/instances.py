"""Instance Access Routes

Key Endpoints:
- GET /api/instances/accessible: Instances the current session may administer
- GET /api/instances/{slug}/access: Admin access configuration (superadmin only)
- GET /api/instances/{slug}/admin-check: Whether the session may administer {slug}
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from roadmap_auth.api.dependencies import get_instance_access_resolver, get_instance_store
from roadmap_auth.api.middleware.auth import (
    require_admin_session,
    require_instance_admin,
    require_superadmin,
)
from roadmap_auth.core.access import InstanceAccessResolver
from roadmap_auth.domain.models.instance import RoadmapInstance
from roadmap_auth.domain.models.session import SessionClaims
from roadmap_auth.infrastructure.instances.store import InstanceStore

router = APIRouter(prefix="/api/instances", tags=["instances"])
logger = logging.getLogger(__name__)


@router.get("/accessible")
async def list_accessible_instances(
    session: SessionClaims = Depends(require_admin_session),
    instance_store: InstanceStore = Depends(get_instance_store),
    resolver: InstanceAccessResolver = Depends(get_instance_access_resolver),
):
    """Slugs of every instance the session passes the access cascade for"""
    instances = await instance_store.list_instances()
    accessible = await resolver.filter_accessible(session, instances)
    logger.info(f"{session.username} may administer {len(accessible)}/{len(instances)} instances")
    return {
        "instances": [
            {"slug": instance.slug, "name": instance.display_name}
            for instance in accessible
        ]
    }


@router.get("/{slug}/access")
async def get_instance_access_config(
    slug: str,
    _: SessionClaims = Depends(require_superadmin),
    instance_store: InstanceStore = Depends(get_instance_store),
):
    instance = await instance_store.get(slug)
    if instance is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Instance not found")

    config = instance.admin_access
    return {
        "slug": instance.slug,
        "allowedUsers": config.allowed_users if config else [],
        "allowedGroups": config.allowed_groups if config else [],
    }


@router.get("/{slug}/admin-check")
async def instance_admin_check(instance: RoadmapInstance = Depends(require_instance_admin)):
    return {"slug": instance.slug, "allowed": True}

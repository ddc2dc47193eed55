"""Domain models for the Roadmap Auth Service"""

from roadmap_auth.domain.models.instance import (
    InstanceAdminAccessConfig,
    RoadmapInstance,
)
from roadmap_auth.domain.models.session import (
    SUPERADMIN_GROUP,
    EntraIdentity,
    SessionClaims,
    normalize_groups,
)

__all__ = [
    # Session models
    "SessionClaims",
    "EntraIdentity",
    "SUPERADMIN_GROUP",
    "normalize_groups",
    # Instance models
    "RoadmapInstance",
    "InstanceAdminAccessConfig",
]

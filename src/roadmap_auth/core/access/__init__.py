"""Instance-scoped authorization for admin sessions."""

from .instance_access import InstanceAccessResolver, instance_admin_group_title
from .superadmin import SuperAdminResolver

__all__ = [
    "InstanceAccessResolver",
    "SuperAdminResolver",
    "instance_admin_group_title",
]

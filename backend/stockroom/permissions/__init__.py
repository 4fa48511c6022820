# Overview: Permission system package.
# Re-exports all public APIs for shorter imports.

from .roles import Role, ADMIN_ROLES, WRITE_ROLES, READ_ROLES, NULL_ROLE_SENTINELS
from .helpers import has_permission

__all__ = [
    "Role",
    "ADMIN_ROLES",
    "WRITE_ROLES",
    "READ_ROLES",
    "NULL_ROLE_SENTINELS",
    "has_permission",
]

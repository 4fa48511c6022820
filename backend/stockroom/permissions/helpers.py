# Overview: Pure permission gate over membership roles.

from __future__ import annotations

from typing import Iterable

from .roles import NULL_ROLE_SENTINELS, Role


def _coerce(role) -> Role | None:
    if role is None:
        return None
    if isinstance(role, Role):
        return role
    if not isinstance(role, str) or role.strip() in NULL_ROLE_SENTINELS:
        return None
    try:
        return Role(role.strip())
    except ValueError:
        return None


def has_permission(role, required_roles: Iterable) -> bool:
    """
    Return True if `role` satisfies any of `required_roles`.

    - No role (None, blank, sentinel strings, unknown strings) -> False
    - admin -> True regardless of required_roles
    - otherwise exact membership in required_roles

    Never raises and performs no I/O.
    """
    resolved = _coerce(role)
    if resolved is None:
        return False

    if resolved is Role.ADMIN:
        return True

    required = {r for r in (_coerce(r) for r in (required_roles or ())) if r is not None}
    return resolved in required

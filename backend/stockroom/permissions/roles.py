# Overview: Membership roles and the role tiers each operation requires.

from __future__ import annotations

from enum import Enum

from ..errors import ValidationError


# Values that upstream callers have historically sent in place of "no role".
NULL_ROLE_SENTINELS = frozenset({"", "null", "NULL", "undefined", "None"})


class Role(str, Enum):
    """Closed set of membership roles. Matching is exact and case-sensitive."""
    ADMIN = "admin"
    WRITER = "writer"
    READ_WRITE = "read-write"
    READER = "reader"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value) -> "Role | None":
        """
        Parse a stored or client-supplied role.

        None and sentinel strings -> None.
        Unknown strings (including wrong case, e.g. "Admin") -> ValidationError.
        """
        if value is None or isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValidationError("Role must be a string")
        cleaned = value.strip()
        if cleaned in NULL_ROLE_SENTINELS:
            return None
        try:
            return cls(cleaned)
        except ValueError:
            allowed = ", ".join(r.value for r in cls)
            raise ValidationError(f"Unknown role {value!r}. Allowed roles: {allowed}")


ADMIN_ROLES = frozenset({Role.ADMIN})
WRITE_ROLES = frozenset({Role.WRITER, Role.READ_WRITE, Role.ADMIN})
READ_ROLES = frozenset({Role.READER, Role.WRITER, Role.READ_WRITE, Role.ADMIN})

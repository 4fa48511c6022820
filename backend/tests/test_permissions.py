# Overview: Pytest coverage for the role model and the pure permission gate.

"""
Permission gate tests.

has_permission is pure and total: it never raises, never touches the
database, and answers False for anything that is not a recognised role.
"""

import pytest

from stockroom.errors import ValidationError
from stockroom.permissions import (
    Role,
    ADMIN_ROLES,
    WRITE_ROLES,
    READ_ROLES,
    NULL_ROLE_SENTINELS,
    has_permission,
)


class TestRoleTiers:

    def test_admin_is_in_every_tier(self):
        assert Role.ADMIN in ADMIN_ROLES
        assert Role.ADMIN in WRITE_ROLES
        assert Role.ADMIN in READ_ROLES

    def test_write_tier(self):
        assert WRITE_ROLES == {Role.WRITER, Role.READ_WRITE, Role.ADMIN}

    def test_reader_only_reads(self):
        assert Role.READER in READ_ROLES
        assert Role.READER not in WRITE_ROLES


class TestHasPermission:

    @pytest.mark.parametrize("required", [ADMIN_ROLES, WRITE_ROLES, READ_ROLES, [], None])
    def test_admin_always_allowed(self, required):
        assert has_permission("admin", required) is True
        assert has_permission(Role.ADMIN, required) is True

    @pytest.mark.parametrize("role", ["writer", "read-write"])
    def test_writer_tier(self, role):
        assert has_permission(role, WRITE_ROLES) is True
        assert has_permission(role, READ_ROLES) is True
        assert has_permission(role, ADMIN_ROLES) is False

    def test_reader(self):
        assert has_permission("reader", READ_ROLES) is True
        assert has_permission("reader", WRITE_ROLES) is False
        assert has_permission("reader", ADMIN_ROLES) is False

    @pytest.mark.parametrize("role", [None, *sorted(NULL_ROLE_SENTINELS)])
    def test_no_role_is_denied(self, role):
        assert has_permission(role, READ_ROLES) is False

    @pytest.mark.parametrize("role", ["Admin", "ADMIN", "owner", "read_write", 42, 3.5, object()])
    def test_unknown_roles_are_denied_without_raising(self, role):
        assert has_permission(role, READ_ROLES) is False

    def test_plain_string_required_roles(self):
        assert has_permission("writer", ["writer"]) is True
        assert has_permission("reader", ["writer", "garbage"]) is False


class TestRoleParse:

    def test_parses_known_values(self):
        assert Role.parse("read-write") is Role.READ_WRITE
        assert Role.parse(" reader ") is Role.READER

    @pytest.mark.parametrize("value", [None, "", "null", "undefined", "None"])
    def test_sentinels_parse_to_none(self, value):
        assert Role.parse(value) is None

    def test_matching_is_case_sensitive(self):
        with pytest.raises(ValidationError):
            Role.parse("Admin")

    def test_non_string_rejected(self):
        with pytest.raises(ValidationError):
            Role.parse(7)

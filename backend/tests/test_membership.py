# Overview: Pytest coverage for identity provisioning, role resolution and membership guarantees.

"""
Identity and Membership Tests

SECURITY TESTS:
1. Principals are provisioned exactly once
2. The creator of an organization always resolves to admin and ends up
   with an admin membership row
3. Non-members are denied (fail closed); unknown orgs are NotFound
4. Cross-tenant access is denied
"""

import pytest

from stockroom.errors import (
    AccessDeniedError,
    AuthenticationError,
    IdentityError,
    NotFoundError,
    ValidationError,
)
from stockroom.extensions import db
from stockroom.models import OrganizationMember, User
from stockroom.permissions import Role, WRITE_ROLES, ADMIN_ROLES, READ_ROLES
from stockroom.services.identity_service import Principal, get_or_create_user
from stockroom.services.membership_service import (
    authorize,
    ensure_organization_member,
    get_user_role,
    list_user_organizations,
    reassert_access,
)

from conftest import add_member


class TestIdentity:

    def test_creates_user_on_first_sight(self, db_session, alice):
        user = get_or_create_user(alice)
        assert user.id is not None
        assert user.email == "alice@acme.com"
        assert user.external_id == "user_alice"

    def test_is_idempotent(self, db_session, alice):
        first = get_or_create_user(alice)
        second = get_or_create_user(alice)
        assert first.id == second.id
        assert db_session.query(User).filter_by(external_id="user_alice").count() == 1

    def test_email_captured_at_creation_only(self, db_session, alice):
        get_or_create_user(alice)
        user = get_or_create_user(Principal(external_id="user_alice", email="new@acme.com"))
        assert user.email == "alice@acme.com"

    def test_missing_principal(self, db_session):
        with pytest.raises(AuthenticationError):
            get_or_create_user(None)
        with pytest.raises(AuthenticationError):
            get_or_create_user(Principal(external_id=""))

    def test_missing_email_for_new_user(self, db_session):
        with pytest.raises(IdentityError):
            get_or_create_user(Principal(external_id="user_noemail", email="   "))
        assert db_session.query(User).count() == 0


class TestRoleResolution:

    def test_creator_is_admin(self, db_session, org_id, alice):
        assert get_user_role(org_id, alice) is Role.ADMIN

    def test_member_role(self, db_session, org_id, bob):
        add_member(org_id, bob, "writer")
        assert get_user_role(org_id, bob) is Role.WRITER

    def test_non_member_has_no_role(self, db_session, org_id, bob):
        assert get_user_role(org_id, bob) is None

    def test_unknown_org_has_no_role(self, db_session, alice):
        assert get_user_role("99999", alice) is None

    @pytest.mark.parametrize("bad_id", ["", "abc", "1.5", "-3", "undefined"])
    def test_malformed_org_id(self, db_session, alice, bad_id):
        with pytest.raises(ValidationError):
            get_user_role(bad_id, alice)

    def test_creator_membership_row_is_restored(self, db_session, org_id, alice):
        user = get_or_create_user(alice)
        db_session.query(OrganizationMember).filter_by(org_id=int(org_id), user_id=user.id).delete()
        db_session.commit()

        assert get_user_role(org_id, alice) is Role.ADMIN
        member = db_session.query(OrganizationMember).filter_by(org_id=int(org_id), user_id=user.id).one()
        assert member.role == "admin"

    def test_creator_demotion_is_undone(self, db_session, org_id, alice):
        user = get_or_create_user(alice)
        member = db_session.query(OrganizationMember).filter_by(org_id=int(org_id), user_id=user.id).one()
        member.role = "reader"
        db_session.commit()

        assert get_user_role(org_id, alice) is Role.ADMIN
        db_session.refresh(member)
        assert member.role == "admin"

    def test_unrecognised_stored_role_is_no_role(self, db_session, org_id, bob):
        add_member(org_id, bob, "Owner")
        assert get_user_role(org_id, bob) is None


class TestMembershipGuarantee:

    def test_unknown_org(self, db_session, alice):
        with pytest.raises(NotFoundError) as exc:
            ensure_organization_member("424242", alice)
        assert "424242" in str(exc.value)

    def test_non_member_denied(self, db_session, org_id, bob):
        with pytest.raises(AccessDeniedError) as exc:
            ensure_organization_member(org_id, bob)
        assert "not a member" in str(exc.value)
        assert "Acme Corp" in str(exc.value)

    def test_member_passes(self, db_session, org_id, bob):
        add_member(org_id, bob, "reader")
        ensure_organization_member(org_id, bob)

    def test_cross_tenant_denied(self, db_session, org_id, other_org_id, alice, carol):
        with pytest.raises(AccessDeniedError):
            ensure_organization_member(other_org_id, alice)
        with pytest.raises(AccessDeniedError):
            ensure_organization_member(org_id, carol)


class TestAuthorize:

    def test_reader_cannot_write(self, db_session, org_id, bob):
        add_member(org_id, bob, "reader")
        with pytest.raises(AccessDeniedError) as exc:
            authorize(org_id, bob, WRITE_ROLES, "add products")
        assert str(exc.value) == 'Insufficient permissions to add products. Current role: "reader"'

    def test_writer_cannot_admin(self, db_session, org_id, bob):
        add_member(org_id, bob, "read-write")
        with pytest.raises(AccessDeniedError):
            authorize(org_id, bob, ADMIN_ROLES, "invite employees")

    def test_context(self, db_session, org_id, alice, bob):
        add_member(org_id, bob, "writer")
        ctx = authorize(org_id, bob, READ_ROLES, "view products")
        assert ctx.org_id == int(org_id)
        assert ctx.role is Role.WRITER
        assert ctx.is_creator is False

        admin_ctx = authorize(org_id, alice, ADMIN_ROLES, "delete organizations")
        assert admin_ctx.is_creator is True

    def test_reassert_sees_revocation(self, db_session, org_id, bob):
        member = add_member(org_id, bob, "writer")
        ctx = authorize(org_id, bob, WRITE_ROLES, "add products")

        db_session.delete(member)
        db_session.commit()

        with pytest.raises(AccessDeniedError):
            reassert_access(ctx, WRITE_ROLES, "add products")


class TestListOrganizations:

    def test_created_and_member_orgs(self, db_session, org_id, other_org_id, alice, carol):
        add_member(other_org_id, alice, "reader")

        orgs = list_user_organizations(alice)
        assert [o["id"] for o in orgs] == [org_id, other_org_id]
        assert orgs[0]["role"] == "admin"
        assert orgs[1]["role"] == "reader"

    def test_no_duplicates_for_creator(self, db_session, org_id, alice):
        orgs = list_user_organizations(alice)
        assert len(orgs) == 1
        assert orgs[0] == {"id": org_id, "name": "Acme Corp", "role": "admin"}

    def test_empty(self, db_session, bob):
        assert list_user_organizations(bob) == []

from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class User(db.Model):
    """
    Internal identity record for an externally authenticated principal.

    Created lazily the first time a principal performs an action. The
    external_id is immutable once written; email is captured at creation.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(191), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<User id={self.id} external_id={self.external_id!r}>"

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "email": self.email,
        }


class Organization(db.Model):
    """
    Multi-tenant root: Every tenant is an Organization.

    Names are not globally unique; a creator cannot own two organizations
    whose names match case-insensitively (enforced in the service layer).
    The creator is implicitly admin.
    """
    __tablename__ = "organizations"
    __table_args__ = (
        db.Index("ix_organizations_created_by_name", "created_by", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    creator = db.relationship("User", backref=db.backref("created_organizations", lazy=True))

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "created_by": str(self.created_by),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrganizationMember(db.Model):
    """(organization, user) -> role. One row per pair."""
    __tablename__ = "organization_members"
    __table_args__ = (
        db.UniqueConstraint("org_id", "user_id", name="uq_organization_members_org_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    role = db.Column(db.String(32), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("members", lazy=True))
    user = db.relationship("User", backref=db.backref("memberships", lazy=True))

    def __repr__(self) -> str:
        return f"<OrganizationMember org_id={self.org_id} user_id={self.user_id} role={self.role!r}>"

    def to_dict(self) -> dict:
        return {
            "org_id": str(self.org_id),
            "user_id": str(self.user_id),
            "role": self.role,
            "created_at": to_utc_z(self.created_at),
        }


class OrganizationInvite(db.Model):
    """
    Time-boxed, single-use invitation to join an organization.

    Status moves pending -> accepted once. Expiry is checked at redemption,
    never swept.
    """
    __tablename__ = "organization_invites"
    __table_args__ = (
        db.Index("ix_organization_invites_org_email_status", "org_id", "email", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(32), nullable=False)
    token = db.Column(db.String(128), nullable=False, unique=True, index=True)
    status = db.Column(db.String(16), nullable=False, default="pending")
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("invites", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "org_id": str(self.org_id),
            "email": self.email,
            "role": self.role,
            "status": self.status,
            "expires_at": to_utc_z(self.expires_at),
            "created_at": to_utc_z(self.created_at),
        }

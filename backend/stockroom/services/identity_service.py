# Overview: Maps externally authenticated principals to internal user records.

"""
Identity Resolver

The identity gateway in front of the app verifies the caller and passes two
facts along: a stable principal id and the principal's primary email. This
module turns that principal into a User row, creating it the first time the
principal is seen (lazy provisioning).

RACE: two first-time requests for the same principal may both try to insert.
The unique constraint on users.external_id decides the winner; the loser
rolls back and re-reads the row instead of failing.
"""
from __future__ import annotations

from dataclasses import dataclass

from flask import current_app, g, request
from sqlalchemy.exc import IntegrityError

from ..errors import AuthenticationError, IdentityError
from ..extensions import db
from ..models import User


@dataclass(frozen=True)
class Principal:
    """The authenticated caller as asserted by the identity provider."""
    external_id: str
    email: str | None = None

    def primary_email(self) -> str | None:
        if self.email is None:
            return None
        email = self.email.strip()
        return email or None


def principal_from_request() -> Principal | None:
    """Build a Principal from the identity gateway headers, or None."""
    principal_id = request.headers.get(current_app.config["IDENTITY_PRINCIPAL_HEADER"])
    if not principal_id or not principal_id.strip():
        return None
    email = request.headers.get(current_app.config["IDENTITY_EMAIL_HEADER"])
    return Principal(external_id=principal_id.strip(), email=email)


def current_principal() -> Principal:
    """Principal established by @require_principal for this request."""
    principal = getattr(g, "principal", None)
    if principal is None:
        raise AuthenticationError()
    return principal


def find_user(principal: Principal) -> User | None:
    return db.session.query(User).filter_by(external_id=principal.external_id).first()


def get_or_create_user(principal: Principal) -> User:
    """
    Resolve a principal to its User, creating the record on first sight.

    Raises:
        AuthenticationError: no principal
        IdentityError: the provider has no usable email for a new principal
    """
    if principal is None or not principal.external_id:
        raise AuthenticationError()

    user = find_user(principal)
    if user:
        return user

    email = principal.primary_email()
    if not email:
        raise IdentityError()

    user = User(external_id=principal.external_id, email=email)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost the race against a concurrent first request - the row exists now.
        db.session.rollback()
        user = find_user(principal)
        if user is None:
            raise
        current_app.logger.debug("Recovered concurrent user provisioning for %s", principal.external_id)
        return user

    current_app.logger.info("Provisioned user %s for principal %s", user.id, principal.external_id)
    return user

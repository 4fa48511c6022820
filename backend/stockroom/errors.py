# Overview: Typed service errors shared by services, routes, and the CLI.

"""
Service error taxonomy.

Every error a service can raise on purpose derives from ServiceError and
carries the HTTP status the API layer answers with. Messages are user-safe:
internal details stay in the logs.
"""
from __future__ import annotations


class ServiceError(Exception):
    """Base class for expected, user-facing failures."""

    status_code = 500
    retryable = False

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    default_message = "Operation failed"

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        return {"error": self.message, "code": type(self).__name__}


class AuthenticationError(ServiceError):
    """No authenticated principal on the request."""
    status_code = 401
    default_message = "Authentication required"


class ValidationError(ServiceError, ValueError):
    """400-level input problem."""
    status_code = 400
    default_message = "Invalid input"


class NotFoundError(ServiceError):
    status_code = 404
    default_message = "Not found"


class AccessDeniedError(ServiceError):
    """Authenticated but not allowed to perform the action."""
    status_code = 403
    default_message = "Access denied"


class ConflictError(ServiceError, ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""
    status_code = 409
    default_message = "Conflict"


class InsufficientStockError(ServiceError):
    status_code = 409
    default_message = "Insufficient stock"


class InvalidInviteError(ServiceError):
    status_code = 400
    default_message = "Invalid invitation"


class ExpiredInviteError(ServiceError):
    status_code = 410
    default_message = "Invitation has expired"


class EmailMismatchError(ServiceError):
    status_code = 403
    default_message = "Email mismatch - invitation not for this user"


class TransactionTimeoutError(ServiceError, TimeoutError):
    """A transaction waited or ran longer than its bound. Safe to retry."""
    status_code = 503
    retryable = True
    default_message = "Operation timed out. Please try again."

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["retryable"] = True
        return payload


class IdentityError(ServiceError):
    """The identity provider gave no usable email for the principal."""
    status_code = 502
    default_message = "Unable to get user email from identity provider"


class OperationFailedError(ServiceError):
    """Generic, operation-specific fallback for unrecognised failures."""
    status_code = 500

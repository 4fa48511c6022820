# Overview: Request decorators for API routes.

from functools import wraps
from flask import jsonify, g

from .services.identity_service import principal_from_request


def require_principal(f):
    """
    Require an authenticated principal from the identity gateway.

    Sets g.principal (a Principal) for the route and the services it calls.
    The User row is provisioned lazily by the services, not here.

    SECURITY: Returns 401 if the gateway did not forward a principal id.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        principal = principal_from_request()
        if principal is None:
            return jsonify({"error": "Authentication required", "code": "AuthenticationError"}), 401

        g.principal = principal
        return f(*args, **kwargs)

    return decorated_function

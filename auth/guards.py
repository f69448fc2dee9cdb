"""Route guards. Use as FastAPI dependencies.

Middleware only attaches request.state.auth; these decide access.
"""

from fastapi import Request

from auth.exceptions import InsufficientRoleError, NotAuthenticatedError
from auth.types import AuthContext, UserRole


def current_auth(request: Request) -> AuthContext | None:
    """Attached auth context, or None for anonymous requests."""
    return getattr(request.state, "auth", None)


def require_auth(request: Request) -> AuthContext:
    """Reject anonymous requests.

    Raises:
        NotAuthenticatedError: If no valid session is attached.
    """
    auth = current_auth(request)
    if auth is None:
        raise NotAuthenticatedError("Authentication required")
    return auth


def require_role(role: UserRole):
    """Guard factory: authenticated and holding role."""

    def guard(request: Request) -> AuthContext:
        auth = require_auth(request)
        if auth.user.role != role:
            raise InsufficientRoleError("Insufficient permissions")
        return auth

    return guard

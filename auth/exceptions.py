"""Typed exceptions for auth failures.

Each subclass maps to one HTTP status in api/errors.py.
"""


class AuthError(Exception):
    """Base class for authentication/authorization errors."""


class AuthValidationError(AuthError):
    """Malformed input. The message is safe to show to the caller."""


class UnauthorizedError(AuthError):
    """Bad credentials or missing session. Surfaced generically."""


class InvalidCredentialsError(UnauthorizedError):
    """
    Email/password did not match.

    Raised for unknown accounts too - callers must never learn
    which part of the credential was wrong.
    """


class NotAuthenticatedError(UnauthorizedError):
    """Route requires an authenticated session and none was attached."""


class InvalidTokenError(UnauthorizedError):
    """One-time token is unknown, expired, or already used."""


class ForbiddenError(AuthError):
    """Authenticated (or correctly identified) but not allowed."""


class AccountLockedError(ForbiddenError):
    """Account is locked. Only raised after the password verified."""


class InsufficientRoleError(ForbiddenError):
    """Caller lacks the role the route requires."""


class ConflictError(AuthError):
    """Duplicate unique key."""


class EmailTakenError(ConflictError):
    """An account with this email already exists."""


class AdminSetupCompleteError(ConflictError):
    """First-run admin setup was attempted after an admin already exists."""


class NotFoundError(AuthError):
    """Target resource does not exist or is not owned by the caller."""


class SessionNotFoundError(NotFoundError):
    """Session does not belong to the caller."""


class UserNotFoundError(NotFoundError):
    """No user with that id."""


class BadRequestError(AuthError):
    """Request is well-formed but makes no sense in the current state."""


class AlreadyVerifiedError(BadRequestError):
    """Email address is already verified."""


class RateLimitedError(AuthError):
    """Too many attempts. Client should wait before retrying."""

    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Rate limited. Retry after {retry_after_seconds} seconds.")

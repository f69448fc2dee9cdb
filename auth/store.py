"""Storage contract consumed by the auth core.

The core never talks to a database directly. It depends on AuthStore,
implemented by InMemoryAuthStore (auth/memory_store.py) and
PostgresAuthStore (auth/database.py).

Validity of sessions and one-time tokens is decided here, in the data
layer: get_valid_session and get_user_sessions only ever return sessions
that are unrevoked and unexpired.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any
from uuid import UUID

from auth.types import AuthContext, OneTimeToken, Session, TokenPurpose, User

# Columns update_user may touch
UPDATABLE_USER_FIELDS = frozenset({
    "email",
    "password_hash",
    "display_name",
    "email_verified_at",
    "status",
    "role",
    "mfa_enabled",
    "mfa_secret",
})


class AuthStore(ABC):
    """Durable record of users, sessions, and one-time tokens."""

    # Users

    @abstractmethod
    def get_user_by_email(self, email: str) -> User | None:
        """Find user by email (case-insensitive)."""

    @abstractmethod
    def get_user_by_id(self, user_id: UUID) -> User | None:
        """Find user by ID."""

    @abstractmethod
    def create_user(
        self,
        email: str,
        password_hash: str | None,
        display_name: str | None = None,
        role: str = "user",
    ) -> User:
        """Create user with lowercased email.

        Raises:
            EmailTakenError: If the email is already registered.
        """

    @abstractmethod
    def update_user(self, user_id: UUID, **fields: Any) -> User | None:
        """Update the given columns. Returns None if no such user."""

    @abstractmethod
    def delete_user(self, user_id: UUID) -> bool:
        """Delete user with their sessions and tokens. False if not found."""

    @abstractmethod
    def count_users_with_role(self, role: str) -> int:
        """Users holding role, not counting status deleted."""

    # Sessions

    @abstractmethod
    def create_session(
        self,
        session_id: str,
        user_id: UUID,
        expires_at: datetime,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Session:
        """Persist a new session."""

    @abstractmethod
    def get_valid_session(self, session_id: str) -> AuthContext | None:
        """Session joined to its user, or None if unknown, revoked, or expired."""

    @abstractmethod
    def get_user_sessions(self, user_id: UUID) -> list[Session]:
        """Valid sessions of user, most recently seen first."""

    @abstractmethod
    def update_session_last_seen(self, session_id: str) -> None:
        """Bump last_seen_at to now."""

    @abstractmethod
    def revoke_session(self, session_id: str) -> bool:
        """Set revoked_at. False if no active session had that id."""

    @abstractmethod
    def revoke_all_user_sessions(
        self,
        user_id: UUID,
        except_session_id: str | None = None,
    ) -> int:
        """Revoke every active session of user, optionally sparing one.

        Expired sessions are left alone and not counted. Returns number revoked.
        """

    # One-time tokens

    @abstractmethod
    def create_one_time_token(
        self,
        purpose: TokenPurpose,
        user_id: UUID,
        token_hash: str,
        expires_at: datetime,
    ) -> OneTimeToken:
        """Store a token hash."""

    @abstractmethod
    def get_one_time_token(self, purpose: TokenPurpose, token_hash: str) -> OneTimeToken | None:
        """Look up token by hash, regardless of used/expired state."""

    @abstractmethod
    def mark_one_time_token_used(self, purpose: TokenPurpose, token_id: UUID) -> bool:
        """Set used_at if still unused. False if it was already used or unknown."""

    # Named wrappers for each token table

    def create_email_verification_token(
        self, user_id: UUID, token_hash: str, expires_at: datetime
    ) -> OneTimeToken:
        return self.create_one_time_token(
            TokenPurpose.EMAIL_VERIFICATION, user_id, token_hash, expires_at
        )

    def get_email_verification_token(self, token_hash: str) -> OneTimeToken | None:
        return self.get_one_time_token(TokenPurpose.EMAIL_VERIFICATION, token_hash)

    def mark_email_verification_token_used(self, token_id: UUID) -> bool:
        return self.mark_one_time_token_used(TokenPurpose.EMAIL_VERIFICATION, token_id)

    def create_password_reset_token(
        self, user_id: UUID, token_hash: str, expires_at: datetime
    ) -> OneTimeToken:
        return self.create_one_time_token(
            TokenPurpose.PASSWORD_RESET, user_id, token_hash, expires_at
        )

    def get_password_reset_token(self, token_hash: str) -> OneTimeToken | None:
        return self.get_one_time_token(TokenPurpose.PASSWORD_RESET, token_hash)

    def mark_password_reset_token_used(self, token_id: UUID) -> bool:
        return self.mark_one_time_token_used(TokenPurpose.PASSWORD_RESET, token_id)


def check_user_fields(fields: dict[str, Any]) -> None:
    """Reject update_user columns outside UPDATABLE_USER_FIELDS."""
    unknown = set(fields) - UPDATABLE_USER_FIELDS
    if unknown:
        raise ValueError(f"Cannot update user fields: {', '.join(sorted(unknown))}")

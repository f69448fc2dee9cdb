"""Authentication service - orchestrates password auth and session flows."""

import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

from auth.config import AuthConfig
from auth.exceptions import (
    AccountLockedError,
    AdminSetupCompleteError,
    AlreadyVerifiedError,
    AuthValidationError,
    EmailTakenError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotAuthenticatedError,
    SessionNotFoundError,
    UserNotFoundError,
)
from auth.passwords import PasswordHasher
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.session import SessionManager
from auth.store import AuthStore
from auth.tokens import generate_one_time_token, hash_lookup_token, token_expiry
from auth.types import (
    AdminAccount,
    AuthContext,
    AuthenticatedUser,
    PublicUser,
    SessionInfo,
    TokenPurpose,
    User,
    UserRole,
    UserStatus,
)
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
ACCOUNT_LOCKED_MESSAGE = "Account is locked. Please contact support."


@dataclass
class IssuedToken:
    """A freshly issued one-time token. raw_token exists only in memory."""

    purpose: TokenPurpose
    user_id: UUID
    raw_token: str
    expires_at: datetime


class TokenDelivery(Protocol):
    """Sends a raw one-time token to its owner out of band (email etc.)."""

    def deliver(self, purpose: TokenPurpose, user: User, raw_token: str, expires_at: datetime) -> None:
        ...


class LoggingTokenDelivery:
    """Default delivery: records that a token was issued, without the token."""

    def deliver(self, purpose: TokenPurpose, user: User, raw_token: str, expires_at: datetime) -> None:
        logger.info(
            f"Issued {purpose.value} token for user {user.id}, expires {expires_at.isoformat()}; "
            "no delivery channel configured"
        )


def sanitize_user(user: User) -> PublicUser:
    """Strip password hash and MFA secret before a user leaves the service."""
    return PublicUser.from_user(user)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    """Orchestrates password authentication.

    Handles:
    - Registration and login (with timing-equalised credential checks)
    - Logout, logout everywhere, per-session revocation
    - Password change and reset
    - Email verification tokens
    - Admin status changes and first-run admin setup
    """

    def __init__(
        self,
        config: AuthConfig,
        store: AuthStore,
        hasher: PasswordHasher,
        session_manager: SessionManager,
        security_logger: SecurityLogger,
        token_delivery: TokenDelivery | None = None,
    ):
        self._config = config
        self._store = store
        self._hasher = hasher
        self._session_manager = session_manager
        self._security_logger = security_logger
        self._token_delivery = token_delivery or LoggingTokenDelivery()
        self._setup_lock = threading.Lock()

    def check_password_policy(self, password: str) -> None:
        """Raises AuthValidationError naming every unmet requirement."""
        config = self._config
        problems = []
        if len(password) < config.password_min_length:
            problems.append(f"be at least {config.password_min_length} characters")
        if len(password) > config.password_max_length:
            problems.append(f"be at most {config.password_max_length} characters")
        if config.password_require_digit and not re.search(r"\d", password):
            problems.append("contain a number")
        if config.password_require_uppercase and not re.search(r"[A-Z]", password):
            problems.append("contain an uppercase letter")
        if config.password_require_lowercase and not re.search(r"[a-z]", password):
            problems.append("contain a lowercase letter")
        if problems:
            raise AuthValidationError("Password must " + ", ".join(problems))

    def register(
        self,
        email: str,
        password: str,
        display_name: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthenticatedUser:
        """Create account and log it in with a default-length session.

        Raises:
            AuthValidationError: If password fails policy.
            EmailTakenError: If email already registered.
        """
        email = normalize_email(email)
        self.check_password_policy(password)

        if self._store.get_user_by_email(email) is not None:
            raise EmailTakenError("An account with this email already exists")

        user = self._store.create_user(
            email=email,
            password_hash=self._hasher.hash(password),
            display_name=display_name or email.split("@")[0],
        )
        session = self._session_manager.create_session(
            user.id,
            remember_me=False,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        self._security_logger.log(
            SecurityEvent.USER_REGISTERED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self._security_logger.log(
            SecurityEvent.SESSION_CREATED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        return AuthenticatedUser(user=user, session=session)

    def login(
        self,
        email: str,
        password: str,
        remember_me: bool = False,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthenticatedUser:
        """Verify credentials and create a session.

        Exactly one bcrypt comparison runs per call, whether or not the
        account exists, so response time does not reveal account existence.

        Raises:
            InvalidCredentialsError: Unknown email, no local password, wrong
                password, or deleted account. One message for all of them.
            AccountLockedError: Correct password on a locked account (unless
                uniform_lock_failure is set).
        """
        email = normalize_email(email)
        user = self._store.get_user_by_email(email)

        stored_hash = user.password_hash if user is not None else None
        valid = self._hasher.verify_or_dummy(password, stored_hash)

        if user is None or stored_hash is None or not valid or user.status == UserStatus.DELETED:
            if user is None:
                reason = "unknown_email"
            elif stored_hash is None:
                reason = "no_password"
            elif not valid:
                reason = "wrong_password"
            else:
                reason = "deleted"
            self._security_logger.log(
                SecurityEvent.LOGIN_FAILED,
                email=email,
                user_id=user.id if user else None,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": reason},
            )
            raise InvalidCredentialsError(INVALID_CREDENTIALS_MESSAGE)

        if user.status == UserStatus.LOCKED:
            self._security_logger.log(
                SecurityEvent.LOGIN_LOCKED,
                email=email,
                user_id=user.id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            if self._config.uniform_lock_failure:
                raise InvalidCredentialsError(INVALID_CREDENTIALS_MESSAGE)
            raise AccountLockedError(ACCOUNT_LOCKED_MESSAGE)

        session = self._session_manager.create_session(
            user.id,
            remember_me=remember_me,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        self._security_logger.log(
            SecurityEvent.LOGIN_SUCCEEDED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"remember_me": remember_me},
        )

        return AuthenticatedUser(user=user, session=session)

    def logout(self, auth: AuthContext | None, ip_address: str | None = None) -> None:
        """Revoke the current session. Safe to call anonymously."""
        if auth is None:
            return

        if self._session_manager.revoke(auth.session.id):
            self._security_logger.log(
                SecurityEvent.SESSION_REVOKED,
                email=auth.user.email,
                user_id=auth.user.id,
                ip_address=ip_address,
            )

    def logout_all(self, auth: AuthContext, ip_address: str | None = None) -> int:
        """Revoke every session of the caller, including the current one."""
        revoked = self._session_manager.revoke_all(auth.user.id)

        self._security_logger.log(
            SecurityEvent.SESSIONS_REVOKED_ALL,
            email=auth.user.email,
            user_id=auth.user.id,
            ip_address=ip_address,
            details={"revoked": revoked},
        )
        return revoked

    def list_sessions(self, auth: AuthContext) -> list[SessionInfo]:
        """Caller's valid sessions, each flagged if it is the current one."""
        return [
            SessionInfo(
                id=session.id,
                is_current=session.id == auth.session.id,
                created_at=session.created_at,
                last_seen_at=session.last_seen_at,
                expires_at=session.expires_at,
                ip_address=session.ip_address,
                user_agent=session.user_agent,
            )
            for session in self._session_manager.list_sessions(auth.user.id)
        ]

    def revoke_session(
        self,
        auth: AuthContext,
        session_id: str,
        ip_address: str | None = None,
    ) -> bool:
        """Revoke one of the caller's sessions.

        Returns:
            True if the revoked session was the current one.

        Raises:
            SessionNotFoundError: If session_id is not one of the caller's
                valid sessions.
        """
        owned = {s.id for s in self._session_manager.list_sessions(auth.user.id)}
        if session_id not in owned:
            raise SessionNotFoundError("Session not found")

        self._session_manager.revoke(session_id)

        self._security_logger.log(
            SecurityEvent.SESSION_REVOKED,
            email=auth.user.email,
            user_id=auth.user.id,
            ip_address=ip_address,
        )
        return session_id == auth.session.id

    def change_password(
        self,
        auth: AuthContext,
        current_password: str,
        new_password: str,
        ip_address: str | None = None,
    ) -> int:
        """Replace the caller's password and revoke all their other sessions.

        The session that made the change stays valid.

        Returns:
            Number of other sessions revoked.

        Raises:
            InvalidCredentialsError: If current_password is wrong.
            AuthValidationError: If new_password fails policy.
        """
        user = self._store.get_user_by_id(auth.user.id)
        if user is None:
            raise NotAuthenticatedError("Authentication required")

        if not self._hasher.verify_or_dummy(current_password, user.password_hash):
            self._security_logger.log(
                SecurityEvent.PASSWORD_CHANGE_FAILED,
                email=user.email,
                user_id=user.id,
                ip_address=ip_address,
            )
            raise InvalidCredentialsError("Current password is incorrect")

        self.check_password_policy(new_password)

        self._store.update_user(user.id, password_hash=self._hasher.hash(new_password))
        revoked = self._session_manager.revoke_others(user.id, auth.session.id)

        self._security_logger.log(
            SecurityEvent.PASSWORD_CHANGED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
        )
        self._security_logger.log(
            SecurityEvent.SESSIONS_REVOKED_OTHERS,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            details={"revoked": revoked},
        )
        return revoked

    def request_email_verification(
        self,
        auth: AuthContext,
        ip_address: str | None = None,
    ) -> IssuedToken:
        """Issue a verification token for the caller and hand it to delivery.

        Raises:
            AlreadyVerifiedError: If the caller's email is already verified.
        """
        user = self._store.get_user_by_id(auth.user.id)
        if user is None:
            raise NotAuthenticatedError("Authentication required")
        if user.is_verified:
            raise AlreadyVerifiedError("Email is already verified")

        issued = self._issue_token(TokenPurpose.EMAIL_VERIFICATION, user)

        self._security_logger.log(
            SecurityEvent.VERIFICATION_REQUESTED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
        )
        return issued

    def verify_email(self, raw_token: str, ip_address: str | None = None) -> User:
        """Consume a verification token and mark the owner's email verified.

        Raises:
            InvalidTokenError: If token unknown, expired, or already used.
        """
        user_id = self._consume_token(TokenPurpose.EMAIL_VERIFICATION, raw_token, ip_address)

        user = self._store.update_user(user_id, email_verified_at=now_utc())
        if user is None:
            raise InvalidTokenError("Invalid or expired token")

        self._security_logger.log(
            SecurityEvent.EMAIL_VERIFIED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
        )
        return user

    def request_password_reset(
        self,
        email: str,
        ip_address: str | None = None,
    ) -> IssuedToken | None:
        """Issue a reset token if an active account with a password exists.

        Returns None otherwise. Callers must respond identically in both
        cases so the endpoint cannot be used to enumerate accounts.
        """
        email = normalize_email(email)
        user = self._store.get_user_by_email(email)

        if user is None or user.status != UserStatus.ACTIVE or user.password_hash is None:
            self._security_logger.log(
                SecurityEvent.PASSWORD_RESET_REQUESTED,
                email=email,
                ip_address=ip_address,
                details={"issued": False},
            )
            return None

        issued = self._issue_token(TokenPurpose.PASSWORD_RESET, user)

        self._security_logger.log(
            SecurityEvent.PASSWORD_RESET_REQUESTED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            details={"issued": True},
        )
        return issued

    def reset_password(
        self,
        raw_token: str,
        new_password: str,
        ip_address: str | None = None,
    ) -> User:
        """Consume a reset token, replace the password, revoke every session.

        Raises:
            AuthValidationError: If new_password fails policy.
            InvalidTokenError: If token unknown, expired, or already used.
        """
        self.check_password_policy(new_password)

        user_id = self._consume_token(TokenPurpose.PASSWORD_RESET, raw_token, ip_address)

        user = self._store.update_user(user_id, password_hash=self._hasher.hash(new_password))
        if user is None:
            raise InvalidTokenError("Invalid or expired token")

        revoked = self._session_manager.revoke_all(user.id)

        self._security_logger.log(
            SecurityEvent.PASSWORD_RESET,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            details={"revoked": revoked},
        )
        return user

    # Admin operations

    def provision_user(
        self,
        email: str,
        password: str,
        role: UserRole = UserRole.USER,
        display_name: str | None = None,
    ) -> User:
        """Create an account without logging it in (admin provisioning).

        Raises:
            AuthValidationError: If password fails policy.
            EmailTakenError: If email already registered.
        """
        email = normalize_email(email)
        self.check_password_policy(password)

        if self._store.get_user_by_email(email) is not None:
            raise EmailTakenError("An account with this email already exists")

        user = self._store.create_user(
            email=email,
            password_hash=self._hasher.hash(password),
            display_name=display_name or email.split("@")[0],
            role=role.value,
        )
        self._security_logger.log(
            SecurityEvent.USER_REGISTERED,
            email=user.email,
            user_id=user.id,
            details={"provisioned": True, "role": role.value},
        )
        return user

    def admin_setup_complete(self) -> bool:
        return self._store.count_users_with_role(UserRole.ADMIN.value) > 0

    def bootstrap_admins(
        self,
        admins: list[AdminAccount],
        ip_address: str | None = None,
    ) -> list[User]:
        """First-run setup: create the initial admins while none exist.

        Every account is validated before any is created.

        Raises:
            AdminSetupCompleteError: If an admin already exists.
            AuthValidationError: If a password fails policy or emails repeat.
            EmailTakenError: If an email already belongs to a shopper.
        """
        with self._setup_lock:
            if self.admin_setup_complete():
                raise AdminSetupCompleteError("Admin setup has already been completed")

            emails = [normalize_email(admin.email) for admin in admins]
            if len(set(emails)) != len(emails):
                raise AuthValidationError("Admin emails must be distinct")
            for email, admin in zip(emails, admins):
                self.check_password_policy(admin.password)
                if self._store.get_user_by_email(email) is not None:
                    raise EmailTakenError("An account with this email already exists")

            created = [
                self.provision_user(email, admin.password, UserRole.ADMIN, admin.display_name)
                for email, admin in zip(emails, admins)
            ]

        self._security_logger.log(
            SecurityEvent.ADMIN_BOOTSTRAPPED,
            ip_address=ip_address,
            details={"count": len(created)},
        )
        return created

    def set_user_status(self, user_id: UUID, status: UserStatus) -> User:
        """Change account status. Leaving ACTIVE revokes every session.

        Raises:
            UserNotFoundError: If no such user.
        """
        user = self._store.update_user(user_id, status=status)
        if user is None:
            raise UserNotFoundError("User not found")

        revoked = 0
        if status != UserStatus.ACTIVE:
            revoked = self._session_manager.revoke_all(user_id)

        event = {
            UserStatus.ACTIVE: SecurityEvent.USER_UNLOCKED,
            UserStatus.LOCKED: SecurityEvent.USER_LOCKED,
            UserStatus.DELETED: SecurityEvent.USER_DELETED,
        }[status]
        self._security_logger.log(
            event,
            email=user.email,
            user_id=user.id,
            details={"revoked": revoked},
        )
        return user

    def delete_user(self, user_id: UUID) -> None:
        """Hard-delete a user; sessions and tokens go with them.

        Raises:
            UserNotFoundError: If no such user.
        """
        if not self._store.delete_user(user_id):
            raise UserNotFoundError("User not found")

        self._security_logger.log(
            SecurityEvent.USER_DELETED,
            user_id=user_id,
            details={"hard_delete": True},
        )

    # One-time token helpers

    def _issue_token(self, purpose: TokenPurpose, user: User) -> IssuedToken:
        raw_token = generate_one_time_token()
        expires_at = token_expiry(self._config.token_expiry_hours)
        self._store.create_one_time_token(
            purpose,
            user.id,
            hash_lookup_token(raw_token),
            expires_at,
        )
        self._token_delivery.deliver(purpose, user, raw_token, expires_at)
        return IssuedToken(
            purpose=purpose,
            user_id=user.id,
            raw_token=raw_token,
            expires_at=expires_at,
        )

    def _consume_token(
        self,
        purpose: TokenPurpose,
        raw_token: str,
        ip_address: str | None,
    ) -> UUID:
        """Validate and mark a token used. Returns its owner's id."""
        token = self._store.get_one_time_token(purpose, hash_lookup_token(raw_token))

        if token is None:
            reason = "not_found"
        elif token.used_at is not None:
            reason = "already_used"
        elif not token.is_usable_at(now_utc()):
            reason = "expired"
        elif not self._store.mark_one_time_token_used(purpose, token.id):
            # Lost a race with a concurrent use of the same token
            reason = "already_used"
        else:
            return token.user_id

        self._security_logger.log(
            SecurityEvent.TOKEN_REJECTED,
            user_id=token.user_id if token else None,
            ip_address=ip_address,
            details={"purpose": purpose.value, "reason": reason},
        )
        raise InvalidTokenError("Invalid or expired token")

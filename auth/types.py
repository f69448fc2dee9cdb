"""Pydantic models for auth domain."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class UserStatus(str, Enum):
    ACTIVE = "active"
    LOCKED = "locked"
    DELETED = "deleted"


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class TokenPurpose(str, Enum):
    """Kinds of one-time token. Each has its own table."""

    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


class User(BaseModel):
    """
    A registered user, as stored.

    Carries credential material - never return this from a route.
    Use PublicUser for anything crossing the boundary.
    """

    id: UUID
    email: EmailStr
    password_hash: str | None = None
    display_name: str | None = None
    email_verified_at: datetime | None = None
    status: UserStatus = UserStatus.ACTIVE
    role: UserRole = UserRole.USER
    mfa_enabled: bool = False
    mfa_secret: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_verified(self) -> bool:
        return self.email_verified_at is not None


class PublicUser(BaseModel):
    """User without password hash or MFA secret."""

    id: UUID
    email: EmailStr
    display_name: str | None = None
    email_verified_at: datetime | None = None
    status: UserStatus
    role: UserRole
    mfa_enabled: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "PublicUser":
        return cls.model_validate(user.model_dump(exclude={"password_hash", "mfa_secret"}))


class Session(BaseModel):
    """Server-side session. The id is also the cookie value."""

    id: str = Field(..., description="Session token (opaque string)")
    user_id: UUID
    expires_at: datetime
    last_seen_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    revoked_at: datetime | None = None
    created_at: datetime

    def is_valid_at(self, now: datetime) -> bool:
        """The one validity predicate: not revoked and not yet expired."""
        return self.revoked_at is None and self.expires_at > now


class AuthContext(BaseModel):
    """A valid session joined to its owner. Attached to request.state.auth."""

    user: User
    session: Session


class OneTimeToken(BaseModel):
    """Email verification or password reset token. Only the hash is stored."""

    id: UUID
    user_id: UUID
    token_hash: str
    expires_at: datetime
    used_at: datetime | None = None
    created_at: datetime

    def is_usable_at(self, now: datetime) -> bool:
        return self.used_at is None and self.expires_at > now


class SessionInfo(BaseModel):
    """One entry in the caller's session list."""

    id: str
    is_current: bool
    created_at: datetime
    last_seen_at: datetime
    expires_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None


class AuthenticatedUser(BaseModel):
    """Result of a successful register or login."""

    user: User
    session: Session


# Request payloads


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    display_name: str | None = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    remember_me: bool = False


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)


class VerifyEmailRequest(BaseModel):
    token: str = Field(..., min_length=1)


class PasswordResetRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)


class ProvisionUserRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    role: UserRole = UserRole.USER
    display_name: str | None = Field(default=None, max_length=100)


class AdminAccount(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    display_name: str | None = Field(default=None, max_length=100)


class AdminSetupRequest(BaseModel):
    """First-run setup: one to three initial admin accounts."""

    admins: list[AdminAccount] = Field(..., min_length=1, max_length=3)

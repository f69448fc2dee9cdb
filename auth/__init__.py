"""Authentication and authorization modules."""

from auth.exceptions import (
    AuthError,
    AuthValidationError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotAuthenticatedError,
    AccountLockedError,
    InsufficientRoleError,
    EmailTakenError,
    AdminSetupCompleteError,
    SessionNotFoundError,
    UserNotFoundError,
    AlreadyVerifiedError,
    RateLimitedError,
)
from auth.types import (
    User,
    PublicUser,
    Session,
    SessionInfo,
    AuthContext,
    AuthenticatedUser,
    OneTimeToken,
    UserStatus,
    UserRole,
    TokenPurpose,
)
from auth.config import AuthConfig, RateLimitRule
from auth.passwords import PasswordHasher
from auth.store import AuthStore
from auth.memory_store import InMemoryAuthStore
from auth.database import PostgresAuthStore
from auth.rate_limiter import RateLimiter, InMemoryRateLimitStore, RateLimitSweeper
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.session import SessionManager
from auth.service import AuthService, IssuedToken, TokenDelivery
from auth.security_middleware import AuthMiddleware
from auth.guards import current_auth, require_auth, require_role
from auth.api import create_auth_router, create_admin_router

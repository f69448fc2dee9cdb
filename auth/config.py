"""Authentication configuration."""

import os

from pydantic import BaseModel, Field


class RateLimitRule(BaseModel):
    """Budget for one rate-limited route."""

    max_attempts: int = Field(..., description="Requests allowed per window", ge=1)
    window_minutes: int = Field(..., description="Fixed window length", ge=1, le=1440)


def _default_rate_limits() -> dict[str, RateLimitRule]:
    return {
        "register": RateLimitRule(max_attempts=5, window_minutes=15),
        "login": RateLimitRule(max_attempts=10, window_minutes=15),
        "change_password": RateLimitRule(max_attempts=5, window_minutes=15),
        "request_verification": RateLimitRule(max_attempts=3, window_minutes=60),
        "password_reset": RateLimitRule(max_attempts=5, window_minutes=15),
        "admin_setup": RateLimitRule(max_attempts=5, window_minutes=15),
    }


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    Durations use their natural units: days for sessions, hours for
    one-time tokens, minutes for rate limit windows.
    """

    environment: str = Field(
        default="development",
        description="Deployment environment; anything but 'development' sets secure cookies",
    )

    # Credential hashing
    bcrypt_rounds: int = Field(
        default=12,
        description="bcrypt cost factor",
        ge=4,
        le=31,
    )

    # Session settings
    session_cookie_name: str = Field(default="sid", min_length=1)
    session_expiry_days: int = Field(
        default=7,
        description="Session lifetime without remember-me",
        ge=1,
        le=365,
    )
    remember_me_expiry_days: int = Field(
        default=30,
        description="Session lifetime with remember-me",
        ge=1,
        le=365,
    )

    # One-time tokens (email verification, password reset)
    token_expiry_hours: int = Field(
        default=24,
        description="How long verification and reset tokens remain valid",
        ge=1,
        le=168,
    )

    # Password policy
    password_min_length: int = Field(default=8, ge=1, le=128)
    password_max_length: int = Field(default=128, ge=8, le=1024)
    password_require_digit: bool = True
    password_require_uppercase: bool = True
    password_require_lowercase: bool = False

    # Login behaviour
    uniform_lock_failure: bool = Field(
        default=False,
        description="Report locked accounts with the generic invalid-credentials error",
    )

    # Rate limiting
    rate_limits: dict[str, RateLimitRule] = Field(default_factory=_default_rate_limits)
    rate_limit_sweep_seconds: int = Field(
        default=60,
        description="Interval between sweeps of elapsed rate limit windows",
        ge=1,
    )
    trust_forwarded_for: bool = Field(
        default=False,
        description="Take the client IP from X-Forwarded-For (only behind a trusted proxy)",
    )

    @property
    def cookie_secure(self) -> bool:
        return self.environment != "development"

    @classmethod
    def from_env(cls, prefix: str = "AUTH_") -> "AuthConfig":
        """Build config from AUTH_* environment variables.

        Only scalar settings are read; unset variables keep their defaults.
        The rate limit table is overridden with AUTH_RATE_LIMIT_<ROUTE>=attempts/minutes.
        """
        values: dict = {}
        for name in cls.model_fields:
            if name == "rate_limits":
                continue
            raw = os.getenv(f"{prefix}{name.upper()}")
            if raw is not None:
                values[name] = raw

        limits = _default_rate_limits()
        limit_prefix = f"{prefix}RATE_LIMIT_"
        field_keys = {f"{prefix}{name.upper()}" for name in cls.model_fields}
        for key, raw in os.environ.items():
            if not key.startswith(limit_prefix) or key in field_keys:
                continue
            route = key[len(limit_prefix):].lower()
            try:
                attempts, minutes = raw.split("/", 1)
            except ValueError:
                raise ValueError(f"{key} must look like '<attempts>/<minutes>', got {raw!r}")
            limits[route] = RateLimitRule(max_attempts=int(attempts), window_minutes=int(minutes))
        values["rate_limits"] = limits

        return cls.model_validate(values)

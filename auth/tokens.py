"""Session identifiers, one-time tokens, and expiry arithmetic.

Session ids go into the cookie as-is. One-time tokens (verification,
reset) are only ever stored as their SHA-256 digest.
"""

import hashlib
import secrets
from datetime import datetime, timedelta

from auth.config import AuthConfig
from utils.timezone import now_utc

TOKEN_BYTES = 32  # 256 bits


def generate_session_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def generate_one_time_token() -> str:
    """URL-safe token for links sent out of band."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_lookup_token(raw: str) -> str:
    """Unsalted SHA-256 hex digest, so tokens can be found by hash."""
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def session_lifetime(remember_me: bool, config: AuthConfig) -> timedelta:
    days = config.remember_me_expiry_days if remember_me else config.session_expiry_days
    return timedelta(days=days)


def session_expiry(
    remember_me: bool,
    config: AuthConfig,
    now: datetime | None = None,
) -> datetime:
    return (now or now_utc()) + session_lifetime(remember_me, config)


def token_expiry(hours: int = 24, now: datetime | None = None) -> datetime:
    return (now or now_utc()) + timedelta(hours=hours)


def session_cookie_max_age(remember_me: bool, config: AuthConfig) -> int:
    """Cookie Max-Age in seconds, equal to the configured session lifetime."""
    return int(session_lifetime(remember_me, config).total_seconds())

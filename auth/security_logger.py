"""Security event logging for the auth audit trail.

Every event goes to the 'auth.security' logger. When a PostgresClient is
supplied, events are also appended to the security_events table.
Passwords and raw tokens never appear in events.
"""

import logging
from enum import Enum
from typing import Any
from uuid import UUID

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from utils.timezone import now_utc

logger = logging.getLogger("auth.security")


class SecurityEvent(Enum):
    """Auth security event types."""

    USER_REGISTERED = "user_registered"
    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    LOGIN_LOCKED = "login_locked"
    SESSION_CREATED = "session_created"
    SESSION_REVOKED = "session_revoked"
    SESSIONS_REVOKED_ALL = "sessions_revoked_all"
    SESSIONS_REVOKED_OTHERS = "sessions_revoked_others"
    PASSWORD_CHANGED = "password_changed"
    PASSWORD_CHANGE_FAILED = "password_change_failed"
    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_RESET = "password_reset"
    VERIFICATION_REQUESTED = "verification_requested"
    EMAIL_VERIFIED = "email_verified"
    TOKEN_REJECTED = "token_rejected"
    RATE_LIMITED = "rate_limited"
    USER_LOCKED = "user_locked"
    USER_UNLOCKED = "user_unlocked"
    USER_DELETED = "user_deleted"
    ADMIN_BOOTSTRAPPED = "admin_bootstrapped"


# Events that indicate someone probing or being blocked
_WARNING_EVENTS = {
    SecurityEvent.LOGIN_FAILED,
    SecurityEvent.LOGIN_LOCKED,
    SecurityEvent.PASSWORD_CHANGE_FAILED,
    SecurityEvent.TOKEN_REJECTED,
    SecurityEvent.RATE_LIMITED,
}


class SecurityLogger:
    """Append-only security event logger."""

    def __init__(self, postgres: PostgresClient | None = None):
        self._db = postgres

    def log(
        self,
        event: SecurityEvent,
        email: str | None = None,
        user_id: UUID | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Record event. Persistence failures are logged, never raised."""
        level = logging.WARNING if event in _WARNING_EVENTS else logging.INFO
        logger.log(
            level,
            f"{event.value} email={email} user_id={user_id} ip={ip_address}"
            + (f" details={details}" if details else ""),
            extra={"security_event": event.value},
        )

        if self._db is None:
            return

        try:
            self._db.execute_returning(
                """INSERT INTO security_events
                   (event_type, email, user_id, ip_address, user_agent, details, created_at)
                   VALUES (%s, %s, %s, %s, %s, %s, %s)
                   RETURNING id""",
                (
                    event.value,
                    email,
                    str(user_id) if user_id else None,
                    ip_address,
                    user_agent,
                    Json(details) if details else None,
                    now_utc(),
                ),
            )
        except Exception:
            logger.exception(f"Failed to persist security event {event.value}")

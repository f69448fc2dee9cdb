"""Session lifecycle management.

A session is ACTIVE until it expires or is revoked; both are terminal.
The store decides validity. SessionManager only creates, resolves,
touches and revokes.
"""

import logging
from uuid import UUID

from auth.config import AuthConfig
from auth.store import AuthStore
from auth.tokens import generate_session_token, session_expiry
from auth.types import AuthContext, Session

logger = logging.getLogger(__name__)


class SessionManager:
    """Session lifecycle over an AuthStore."""

    def __init__(self, store: AuthStore, config: AuthConfig):
        self._store = store
        self._config = config

    def create_session(
        self,
        user_id: UUID,
        remember_me: bool = False,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Session:
        """Create a session whose lifetime depends on remember_me."""
        return self._store.create_session(
            session_id=generate_session_token(),
            user_id=user_id,
            expires_at=session_expiry(remember_me, self._config),
            ip_address=ip_address,
            user_agent=user_agent,
        )

    def resolve(self, token: str | None) -> AuthContext | None:
        """Session token to AuthContext, or None.

        Never raises: unknown, expired and revoked tokens, as well as store
        failures, all come back as None (anonymous).
        """
        if not token:
            return None
        try:
            return self._store.get_valid_session(token)
        except Exception:
            logger.exception("Session lookup failed; treating request as anonymous")
            return None

    def touch(self, session_id: str) -> None:
        """Best-effort last-seen update. Failures are logged and dropped."""
        try:
            self._store.update_session_last_seen(session_id)
        except Exception as e:
            logger.warning(f"Could not update session last_seen_at: {e}")

    def list_sessions(self, user_id: UUID) -> list[Session]:
        return self._store.get_user_sessions(user_id)

    def revoke(self, session_id: str) -> bool:
        """Revoke one session. Safe to call with an unknown id."""
        return self._store.revoke_session(session_id)

    def revoke_all(self, user_id: UUID) -> int:
        return self._store.revoke_all_user_sessions(user_id)

    def revoke_others(self, user_id: UUID, keep_session_id: str) -> int:
        return self._store.revoke_all_user_sessions(user_id, except_session_id=keep_session_id)

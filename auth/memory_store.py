"""In-process AuthStore for local development and tests."""

import threading
from datetime import datetime
from typing import Any, Callable
from uuid import UUID, uuid4

from auth.exceptions import EmailTakenError
from auth.store import AuthStore, check_user_fields
from auth.types import (
    AuthContext,
    OneTimeToken,
    Session,
    TokenPurpose,
    User,
    UserRole,
    UserStatus,
)
from utils.timezone import now_utc


class InMemoryAuthStore(AuthStore):
    """AuthStore backed by dicts.

    All access goes through one lock, so concurrent requests see the same
    consistency a transactional database would give single-row updates.
    """

    def __init__(self, clock: Callable[[], datetime] = now_utc):
        self._clock = clock
        self._lock = threading.RLock()
        self._users: dict[UUID, User] = {}
        self._sessions: dict[str, Session] = {}
        self._tokens: dict[TokenPurpose, dict[UUID, OneTimeToken]] = {
            purpose: {} for purpose in TokenPurpose
        }

    # Users

    def get_user_by_email(self, email: str) -> User | None:
        email = email.lower()
        with self._lock:
            for user in self._users.values():
                if user.email == email:
                    return user
        return None

    def get_user_by_id(self, user_id: UUID) -> User | None:
        with self._lock:
            return self._users.get(user_id)

    def create_user(
        self,
        email: str,
        password_hash: str | None,
        display_name: str | None = None,
        role: str = "user",
    ) -> User:
        email = email.lower()
        with self._lock:
            if self.get_user_by_email(email) is not None:
                raise EmailTakenError("An account with this email already exists")
            now = self._clock()
            user = User(
                id=uuid4(),
                email=email,
                password_hash=password_hash,
                display_name=display_name,
                status=UserStatus.ACTIVE,
                role=UserRole(role),
                created_at=now,
                updated_at=now,
            )
            self._users[user.id] = user
            return user

    def update_user(self, user_id: UUID, **fields: Any) -> User | None:
        check_user_fields(fields)
        if "email" in fields:
            fields["email"] = fields["email"].lower()
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            if "email" in fields:
                other = self.get_user_by_email(fields["email"])
                if other is not None and other.id != user_id:
                    raise EmailTakenError("An account with this email already exists")
            updated = User.model_validate(
                {**user.model_dump(), **fields, "updated_at": self._clock()}
            )
            self._users[user_id] = updated
            return updated

    def delete_user(self, user_id: UUID) -> bool:
        with self._lock:
            if self._users.pop(user_id, None) is None:
                return False
            for session_id in [s.id for s in self._sessions.values() if s.user_id == user_id]:
                del self._sessions[session_id]
            for tokens in self._tokens.values():
                for token_id in [t.id for t in tokens.values() if t.user_id == user_id]:
                    del tokens[token_id]
            return True

    def count_users_with_role(self, role: str) -> int:
        with self._lock:
            return sum(
                1 for user in self._users.values()
                if user.role == role and user.status != UserStatus.DELETED
            )

    # Sessions

    def create_session(
        self,
        session_id: str,
        user_id: UUID,
        expires_at: datetime,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Session:
        now = self._clock()
        session = Session(
            id=session_id,
            user_id=user_id,
            expires_at=expires_at,
            last_seen_at=now,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=now,
        )
        with self._lock:
            if session_id in self._sessions:
                raise ValueError("Session id collision")
            self._sessions[session_id] = session
        return session

    def get_valid_session(self, session_id: str) -> AuthContext | None:
        now = self._clock()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not session.is_valid_at(now):
                return None
            user = self._users.get(session.user_id)
            if user is None:
                return None
            return AuthContext(user=user, session=session)

    def get_user_sessions(self, user_id: UUID) -> list[Session]:
        now = self._clock()
        with self._lock:
            sessions = [
                s for s in self._sessions.values()
                if s.user_id == user_id and s.is_valid_at(now)
            ]
        return sorted(sessions, key=lambda s: s.last_seen_at, reverse=True)

    def update_session_last_seen(self, session_id: str) -> None:
        now = self._clock()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._sessions[session_id] = session.model_copy(update={"last_seen_at": now})

    def revoke_session(self, session_id: str) -> bool:
        now = self._clock()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.revoked_at is not None:
                return False
            self._sessions[session_id] = session.model_copy(update={"revoked_at": now})
            return True

    def revoke_all_user_sessions(
        self,
        user_id: UUID,
        except_session_id: str | None = None,
    ) -> int:
        now = self._clock()
        revoked = 0
        with self._lock:
            for session in list(self._sessions.values()):
                if session.user_id != user_id or not session.is_valid_at(now):
                    continue
                if session.id == except_session_id:
                    continue
                self._sessions[session.id] = session.model_copy(update={"revoked_at": now})
                revoked += 1
        return revoked

    # One-time tokens

    def create_one_time_token(
        self,
        purpose: TokenPurpose,
        user_id: UUID,
        token_hash: str,
        expires_at: datetime,
    ) -> OneTimeToken:
        token = OneTimeToken(
            id=uuid4(),
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at,
            created_at=self._clock(),
        )
        with self._lock:
            self._tokens[purpose][token.id] = token
        return token

    def get_one_time_token(self, purpose: TokenPurpose, token_hash: str) -> OneTimeToken | None:
        with self._lock:
            for token in self._tokens[purpose].values():
                if token.token_hash == token_hash:
                    return token
        return None

    def mark_one_time_token_used(self, purpose: TokenPurpose, token_id: UUID) -> bool:
        now = self._clock()
        with self._lock:
            token = self._tokens[purpose].get(token_id)
            if token is None or token.used_at is not None:
                return False
            self._tokens[purpose][token_id] = token.model_copy(update={"used_at": now})
            return True

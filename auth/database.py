"""PostgreSQL implementation of AuthStore.

Tables: users, sessions, email_verification_tokens, password_reset_tokens
(DDL in sql/auth_schema.sql). Validity predicates live in the WHERE
clauses below; nothing above this layer re-checks expiry.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

import psycopg2.errors

from auth.exceptions import EmailTakenError
from auth.store import AuthStore, check_user_fields
from auth.types import AuthContext, OneTimeToken, Session, TokenPurpose, User, UserStatus
from clients.postgres_client import PostgresClient
from utils.timezone import ensure_utc, now_utc

logger = logging.getLogger(__name__)

USER_COLUMNS = """id, email, password_hash, display_name, email_verified_at, status, role,
                  mfa_enabled, mfa_secret, created_at, updated_at"""

SESSION_COLUMNS = "id, user_id, expires_at, last_seen_at, ip_address, user_agent, revoked_at, created_at"

TOKEN_COLUMNS = "id, user_id, token_hash, expires_at, used_at, created_at"

TOKEN_TABLES = {
    TokenPurpose.EMAIL_VERIFICATION: "email_verification_tokens",
    TokenPurpose.PASSWORD_RESET: "password_reset_tokens",
}


def _uuid(value: Any) -> UUID:
    return UUID(value) if isinstance(value, str) else value


def _ts(value: datetime | None) -> datetime | None:
    return ensure_utc(value) if value is not None else None


def _row_to_user(row: dict, prefix: str = "") -> User:
    return User(
        id=_uuid(row[f"{prefix}id"]),
        email=row[f"{prefix}email"],
        password_hash=row[f"{prefix}password_hash"],
        display_name=row[f"{prefix}display_name"],
        email_verified_at=_ts(row[f"{prefix}email_verified_at"]),
        status=row[f"{prefix}status"],
        role=row[f"{prefix}role"],
        mfa_enabled=row[f"{prefix}mfa_enabled"],
        mfa_secret=row[f"{prefix}mfa_secret"],
        created_at=_ts(row[f"{prefix}created_at"]),
        updated_at=_ts(row[f"{prefix}updated_at"]),
    )


def _row_to_session(row: dict) -> Session:
    return Session(
        id=row["id"],
        user_id=_uuid(row["user_id"]),
        expires_at=_ts(row["expires_at"]),
        last_seen_at=_ts(row["last_seen_at"]),
        ip_address=row["ip_address"],
        user_agent=row["user_agent"],
        revoked_at=_ts(row["revoked_at"]),
        created_at=_ts(row["created_at"]),
    )


def _row_to_token(row: dict) -> OneTimeToken:
    return OneTimeToken(
        id=_uuid(row["id"]),
        user_id=_uuid(row["user_id"]),
        token_hash=row["token_hash"],
        expires_at=_ts(row["expires_at"]),
        used_at=_ts(row["used_at"]),
        created_at=_ts(row["created_at"]),
    )


class PostgresAuthStore(AuthStore):
    """AuthStore over PostgresClient."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    # Users

    def get_user_by_email(self, email: str) -> User | None:
        row = self._db.execute_single(
            f"SELECT {USER_COLUMNS} FROM users WHERE email = lower(%s)",
            (email,),
        )
        return _row_to_user(row) if row else None

    def get_user_by_id(self, user_id: UUID) -> User | None:
        row = self._db.execute_single(
            f"SELECT {USER_COLUMNS} FROM users WHERE id = %s",
            (user_id,),
        )
        return _row_to_user(row) if row else None

    def create_user(
        self,
        email: str,
        password_hash: str | None,
        display_name: str | None = None,
        role: str = "user",
    ) -> User:
        now = now_utc()
        try:
            rows = self._db.execute_returning(
                f"""INSERT INTO users (email, password_hash, display_name, role, created_at, updated_at)
                    VALUES (lower(%s), %s, %s, %s, %s, %s)
                    RETURNING {USER_COLUMNS}""",
                (email, password_hash, display_name, role, now, now),
            )
        except psycopg2.errors.UniqueViolation:
            raise EmailTakenError("An account with this email already exists")
        return _row_to_user(rows[0])

    def update_user(self, user_id: UUID, **fields: Any) -> User | None:
        check_user_fields(fields)
        if not fields:
            return self.get_user_by_id(user_id)

        assignments = []
        params: list[Any] = []
        for column, value in sorted(fields.items()):
            if column == "email":
                assignments.append("email = lower(%s)")
            else:
                assignments.append(f"{column} = %s")
            params.append(value.value if hasattr(value, "value") else value)
        assignments.append("updated_at = %s")
        params.extend([now_utc(), user_id])

        try:
            rows = self._db.execute_returning(
                f"""UPDATE users SET {', '.join(assignments)}
                    WHERE id = %s
                    RETURNING {USER_COLUMNS}""",
                tuple(params),
            )
        except psycopg2.errors.UniqueViolation:
            raise EmailTakenError("An account with this email already exists")
        return _row_to_user(rows[0]) if rows else None

    def delete_user(self, user_id: UUID) -> bool:
        """Sessions and tokens go with it (ON DELETE CASCADE)."""
        rows = self._db.execute_returning(
            "DELETE FROM users WHERE id = %s RETURNING id",
            (user_id,),
        )
        return len(rows) > 0

    def count_users_with_role(self, role: str) -> int:
        row = self._db.execute_single(
            "SELECT count(*) AS n FROM users WHERE role = %s AND status <> %s",
            (role, UserStatus.DELETED.value),
        )
        return row["n"] if row else 0

    # Sessions

    def create_session(
        self,
        session_id: str,
        user_id: UUID,
        expires_at: datetime,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Session:
        now = now_utc()
        rows = self._db.execute_returning(
            f"""INSERT INTO sessions (id, user_id, expires_at, last_seen_at, ip_address, user_agent, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING {SESSION_COLUMNS}""",
            (session_id, user_id, expires_at, now, ip_address, user_agent, now),
        )
        return _row_to_session(rows[0])

    def get_valid_session(self, session_id: str) -> AuthContext | None:
        row = self._db.execute_single(
            """SELECT s.id, s.user_id, s.expires_at, s.last_seen_at, s.ip_address,
                      s.user_agent, s.revoked_at, s.created_at,
                      u.id AS u_id, u.email AS u_email, u.password_hash AS u_password_hash,
                      u.display_name AS u_display_name, u.email_verified_at AS u_email_verified_at,
                      u.status AS u_status, u.role AS u_role, u.mfa_enabled AS u_mfa_enabled,
                      u.mfa_secret AS u_mfa_secret, u.created_at AS u_created_at,
                      u.updated_at AS u_updated_at
               FROM sessions s
               JOIN users u ON u.id = s.user_id
               WHERE s.id = %s AND s.revoked_at IS NULL AND s.expires_at > %s""",
            (session_id, now_utc()),
        )
        if row is None:
            return None
        return AuthContext(user=_row_to_user(row, prefix="u_"), session=_row_to_session(row))

    def get_user_sessions(self, user_id: UUID) -> list[Session]:
        rows = self._db.execute(
            f"""SELECT {SESSION_COLUMNS} FROM sessions
                WHERE user_id = %s AND revoked_at IS NULL AND expires_at > %s
                ORDER BY last_seen_at DESC""",
            (user_id, now_utc()),
        )
        return [_row_to_session(row) for row in rows]

    def update_session_last_seen(self, session_id: str) -> None:
        self._db.execute_returning(
            "UPDATE sessions SET last_seen_at = %s WHERE id = %s RETURNING id",
            (now_utc(), session_id),
        )

    def revoke_session(self, session_id: str) -> bool:
        rows = self._db.execute_returning(
            """UPDATE sessions SET revoked_at = %s
               WHERE id = %s AND revoked_at IS NULL
               RETURNING id""",
            (now_utc(), session_id),
        )
        return len(rows) > 0

    def revoke_all_user_sessions(
        self,
        user_id: UUID,
        except_session_id: str | None = None,
    ) -> int:
        now = now_utc()
        if except_session_id is None:
            rows = self._db.execute_returning(
                """UPDATE sessions SET revoked_at = %s
                   WHERE user_id = %s AND revoked_at IS NULL AND expires_at > %s
                   RETURNING id""",
                (now, user_id, now),
            )
        else:
            rows = self._db.execute_returning(
                """UPDATE sessions SET revoked_at = %s
                   WHERE user_id = %s AND revoked_at IS NULL AND expires_at > %s AND id <> %s
                   RETURNING id""",
                (now, user_id, now, except_session_id),
            )
        return len(rows)

    # One-time tokens

    def create_one_time_token(
        self,
        purpose: TokenPurpose,
        user_id: UUID,
        token_hash: str,
        expires_at: datetime,
    ) -> OneTimeToken:
        rows = self._db.execute_returning(
            f"""INSERT INTO {TOKEN_TABLES[purpose]} (user_id, token_hash, expires_at, created_at)
                VALUES (%s, %s, %s, %s)
                RETURNING {TOKEN_COLUMNS}""",
            (user_id, token_hash, expires_at, now_utc()),
        )
        return _row_to_token(rows[0])

    def get_one_time_token(self, purpose: TokenPurpose, token_hash: str) -> OneTimeToken | None:
        row = self._db.execute_single(
            f"SELECT {TOKEN_COLUMNS} FROM {TOKEN_TABLES[purpose]} WHERE token_hash = %s",
            (token_hash,),
        )
        return _row_to_token(row) if row else None

    def mark_one_time_token_used(self, purpose: TokenPurpose, token_id: UUID) -> bool:
        rows = self._db.execute_returning(
            f"""UPDATE {TOKEN_TABLES[purpose]} SET used_at = %s
                WHERE id = %s AND used_at IS NULL
                RETURNING id""",
            (now_utc(), token_id),
        )
        return len(rows) > 0

    def cleanup_expired(self) -> int:
        """Delete expired sessions and tokens. Returns rows deleted."""
        now = now_utc()
        deleted = len(self._db.execute_returning(
            "DELETE FROM sessions WHERE expires_at < %s RETURNING id",
            (now,),
        ))
        for table in TOKEN_TABLES.values():
            deleted += len(self._db.execute_returning(
                f"DELETE FROM {table} WHERE expires_at < %s RETURNING id",
                (now,),
            ))
        logger.info(f"Deleted {deleted} expired sessions and tokens")
        return deleted

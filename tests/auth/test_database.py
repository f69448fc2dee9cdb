"""Tests for PostgresAuthStore - SQL shape and row mapping over a mocked client."""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock
from uuid import uuid4

import psycopg2.errors
import pytest

from auth.database import PostgresAuthStore
from auth.exceptions import EmailTakenError
from auth.types import TokenPurpose, UserRole, UserStatus
from clients.postgres_client import PostgresClient

NOW = datetime(2026, 2, 1, 10, 0, tzinfo=timezone.utc)


def user_row(prefix: str = "", **overrides) -> dict:
    row = {
        "id": str(uuid4()),
        "email": "shopper@example.com",
        "password_hash": "$2b$04$hash",
        "display_name": "shopper",
        "email_verified_at": None,
        "status": "active",
        "role": "user",
        "mfa_enabled": False,
        "mfa_secret": None,
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(overrides)
    return {f"{prefix}{key}": value for key, value in row.items()}


def session_row(**overrides) -> dict:
    row = {
        "id": "a" * 64,
        "user_id": str(uuid4()),
        "expires_at": NOW + timedelta(days=7),
        "last_seen_at": NOW,
        "ip_address": "203.0.113.7",
        "user_agent": "Mozilla/5.0",
        "revoked_at": None,
        "created_at": NOW,
    }
    row.update(overrides)
    return row


@pytest.fixture
def db():
    return Mock(spec=PostgresClient)


@pytest.fixture
def pg_store(db):
    return PostgresAuthStore(db)


class TestUsers:

    def test_lookup_by_email_lowercases_in_sql(self, pg_store, db):
        db.execute_single.return_value = user_row()

        user = pg_store.get_user_by_email("Shopper@Example.com")

        query = db.execute_single.call_args.args[0]
        assert "lower(%s)" in query
        assert user.email == "shopper@example.com"

    def test_missing_user_none(self, pg_store, db):
        db.execute_single.return_value = None
        assert pg_store.get_user_by_id(uuid4()) is None

    def test_naive_timestamps_become_utc(self, pg_store, db):
        db.execute_single.return_value = user_row(created_at=datetime(2026, 2, 1, 10, 0))

        user = pg_store.get_user_by_id(uuid4())

        assert user.created_at.tzinfo == timezone.utc

    def test_duplicate_email_maps_to_conflict(self, pg_store, db):
        db.execute_returning.side_effect = psycopg2.errors.UniqueViolation()

        with pytest.raises(EmailTakenError):
            pg_store.create_user("shopper@example.com", "$2b$04$hash")

    def test_create_passes_role(self, pg_store, db):
        db.execute_returning.return_value = [user_row(role="admin")]

        user = pg_store.create_user("admin@example.com", "$2b$04$hash", role="admin")

        assert "admin" in db.execute_returning.call_args.args[1]
        assert user.role == UserRole.ADMIN

    def test_update_converts_enums(self, pg_store, db):
        db.execute_returning.return_value = [user_row(status="locked")]
        user_id = uuid4()

        user = pg_store.update_user(user_id, status=UserStatus.LOCKED)

        query, params = db.execute_returning.call_args.args
        assert "status = %s" in query
        assert params[0] == "locked"
        assert params[-1] == user_id
        assert user.status == UserStatus.LOCKED

    def test_update_rejects_unknown_column(self, pg_store, db):
        with pytest.raises(ValueError):
            pg_store.update_user(uuid4(), created_at=NOW)
        db.execute_returning.assert_not_called()

    def test_delete_reports_whether_found(self, pg_store, db):
        db.execute_returning.return_value = []
        assert pg_store.delete_user(uuid4()) is False

    def test_count_by_role_excludes_deleted(self, pg_store, db):
        db.execute_single.return_value = {"n": 2}

        assert pg_store.count_users_with_role("admin") == 2
        query, params = db.execute_single.call_args.args
        assert "count(*)" in query
        assert params == ("admin", "deleted")


class TestSessions:

    def test_valid_session_filters_in_sql(self, pg_store, db):
        db.execute_single.return_value = {**session_row(), **user_row(prefix="u_")}

        auth = pg_store.get_valid_session("a" * 64)

        query = db.execute_single.call_args.args[0]
        assert "revoked_at IS NULL" in query
        assert "expires_at > %s" in query
        assert auth.session.id == "a" * 64
        assert auth.user.email == "shopper@example.com"

    def test_invalid_session_none(self, pg_store, db):
        db.execute_single.return_value = None
        assert pg_store.get_valid_session("a" * 64) is None

    def test_user_sessions_newest_first(self, pg_store, db):
        db.execute.return_value = [session_row(id="b" * 64), session_row()]

        sessions = pg_store.get_user_sessions(uuid4())

        assert "ORDER BY last_seen_at DESC" in db.execute.call_args.args[0]
        assert [s.id for s in sessions] == ["b" * 64, "a" * 64]

    def test_revoke_only_unrevoked(self, pg_store, db):
        db.execute_returning.return_value = [{"id": "a" * 64}]

        assert pg_store.revoke_session("a" * 64) is True
        assert "revoked_at IS NULL" in db.execute_returning.call_args.args[0]

    def test_revoke_all_except(self, pg_store, db):
        db.execute_returning.return_value = [{"id": "b"}, {"id": "c"}]

        revoked = pg_store.revoke_all_user_sessions(uuid4(), except_session_id="a")

        query, params = db.execute_returning.call_args.args
        assert "id <> %s" in query
        assert params[-1] == "a"
        assert revoked == 2

    def test_revoke_all_skips_expired(self, pg_store, db):
        db.execute_returning.return_value = []

        assert pg_store.revoke_all_user_sessions(uuid4()) == 0
        query, params = db.execute_returning.call_args.args
        assert "expires_at > %s" in query
        assert params[0] == params[2]


class TestOneTimeTokens:

    def test_tables_by_purpose(self, pg_store, db):
        db.execute_single.return_value = None

        pg_store.get_one_time_token(TokenPurpose.PASSWORD_RESET, "h" * 64)
        assert "password_reset_tokens" in db.execute_single.call_args.args[0]

        pg_store.get_email_verification_token("h" * 64)
        assert "email_verification_tokens" in db.execute_single.call_args.args[0]

    def test_mark_used_is_conditional(self, pg_store, db):
        db.execute_returning.return_value = []

        assert pg_store.mark_password_reset_token_used(uuid4()) is False
        assert "used_at IS NULL" in db.execute_returning.call_args.args[0]


class TestCleanup:

    def test_counts_rows_from_every_table(self, pg_store, db):
        db.execute_returning.side_effect = [[{"id": 1}, {"id": 2}], [{"id": 3}], []]

        assert pg_store.cleanup_expired() == 3
        assert db.execute_returning.call_count == 3

"""Tests for auth/security_logger.py - audit trail to log and database."""

import logging
from unittest.mock import Mock
from uuid import uuid4

from psycopg2.extras import Json

from auth.security_logger import SecurityEvent, SecurityLogger
from clients.postgres_client import PostgresClient


class TestLogging:
    """Every event reaches the auth.security logger."""

    def test_success_event_logged_at_info(self, caplog):
        with caplog.at_level(logging.INFO, logger="auth.security"):
            SecurityLogger().log(SecurityEvent.LOGIN_SUCCEEDED, email="a@example.com")

        record = caplog.records[-1]
        assert record.levelno == logging.INFO
        assert record.security_event == "login_succeeded"
        assert "a@example.com" in record.getMessage()

    def test_failed_login_logged_at_warning(self, caplog):
        with caplog.at_level(logging.INFO, logger="auth.security"):
            SecurityLogger().log(
                SecurityEvent.LOGIN_FAILED,
                email="a@example.com",
                details={"reason": "wrong_password"},
            )

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert "wrong_password" in record.getMessage()


class TestPersistence:
    """Optional security_events table."""

    def test_inserts_event_row(self):
        db = Mock(spec=PostgresClient)
        user_id = uuid4()

        SecurityLogger(db).log(
            SecurityEvent.PASSWORD_CHANGED,
            email="a@example.com",
            user_id=user_id,
            ip_address="203.0.113.7",
            details={"revoked": 2},
        )

        db.execute_returning.assert_called_once()
        query, params = db.execute_returning.call_args.args
        assert "INSERT INTO security_events" in query
        assert params[0] == "password_changed"
        assert params[2] == str(user_id)
        assert isinstance(params[5], Json)

    def test_no_details_stored_as_null(self):
        db = Mock(spec=PostgresClient)

        SecurityLogger(db).log(SecurityEvent.SESSION_REVOKED)

        params = db.execute_returning.call_args.args[1]
        assert params[5] is None

    def test_database_failure_swallowed(self, caplog):
        db = Mock(spec=PostgresClient)
        db.execute_returning.side_effect = RuntimeError("db down")

        SecurityLogger(db).log(SecurityEvent.LOGIN_SUCCEEDED, email="a@example.com")

        assert any("Failed to persist" in r.getMessage() for r in caplog.records)

"""Tests for PostgresClient - shared pools and per-statement transactions."""

from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest

from clients.postgres_client import PostgresClient

DB_URL = "postgresql://storefront@localhost/storefront_test"


@pytest.fixture
def pool():
    with patch("clients.postgres_client.psycopg2.pool.ThreadedConnectionPool") as pool_cls:
        pool = pool_cls.return_value
        pool.getconn.return_value = MagicMock()
        yield pool
    PostgresClient._connection_pools.clear()


@pytest.fixture
def conn(pool):
    return pool.getconn.return_value


@pytest.fixture
def cursor(conn):
    cur = conn.cursor.return_value.__enter__.return_value
    cur.description = [("id",)]
    cur.fetchall.return_value = [{"id": 1}]
    return cur


class TestPools:
    """One pool per DSN, shared across client instances."""

    def test_second_client_reuses_pool(self, pool):
        first = PostgresClient(DB_URL)
        second = PostgresClient(DB_URL)

        assert first._pool() is second._pool()

    def test_close_drops_and_closes_pool(self, pool):
        PostgresClient(DB_URL).close()

        pool.closeall.assert_called_once()
        assert DB_URL not in PostgresClient._connection_pools

    def test_close_all_pools(self, pool):
        PostgresClient(DB_URL)
        PostgresClient.close_all_pools()

        assert PostgresClient._connection_pools == {}
        pool.closeall.assert_called_once()


class TestStatements:

    def test_rows_come_back_as_dicts(self, pool, conn, cursor):
        assert PostgresClient(DB_URL).execute("SELECT id FROM users") == [{"id": 1}]
        conn.commit.assert_called_once()
        pool.putconn.assert_called_once_with(conn)

    def test_no_result_set_gives_empty_list(self, pool, cursor):
        cursor.description = None

        assert PostgresClient(DB_URL).execute("DELETE FROM sessions") == []
        cursor.fetchall.assert_not_called()

    def test_uuid_bound_without_conversion(self, pool, cursor):
        user_id = uuid4()

        PostgresClient(DB_URL).execute("SELECT * FROM users WHERE id = %s", (user_id,))

        assert cursor.execute.call_args.args == ("SELECT * FROM users WHERE id = %s", (user_id,))

    def test_execute_single_none_when_no_rows(self, pool, cursor):
        cursor.fetchall.return_value = []
        assert PostgresClient(DB_URL).execute_single("SELECT 1") is None

    def test_failure_rolls_back_and_releases(self, pool, conn, cursor):
        cursor.execute.side_effect = RuntimeError("syntax error")

        with pytest.raises(RuntimeError):
            PostgresClient(DB_URL).execute_returning("UPDATE nope RETURNING id")

        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
        pool.putconn.assert_called_once_with(conn)

    def test_empty_pool_raises(self, pool):
        pool.getconn.return_value = None

        with pytest.raises(RuntimeError, match="no connection"):
            PostgresClient(DB_URL).execute("SELECT 1")

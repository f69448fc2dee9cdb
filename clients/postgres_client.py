"""
Pooled PostgreSQL access for the auth store and the security log.

One ThreadedConnectionPool per DSN, shared by every PostgresClient built
for that DSN. Sync route handlers run in the threadpool, so each worker
thread borrows its own connection for the length of one statement.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Tuple

import psycopg2
import psycopg2.extras
import psycopg2.pool

logger = logging.getLogger(__name__)

Params = Tuple | Dict | None

# UUID parameters bind natively and uuid columns come back as uuid.UUID
psycopg2.extras.register_uuid()


class PostgresClient:
    """
    Statement runner over a shared pool. Every call is its own transaction.

        db = PostgresClient(url)
        db.execute_single("SELECT * FROM users WHERE email = %s", (email,))
    """

    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str, min_connections: int = 2, max_connections: int = 20):
        self._database_url = database_url
        self._pool_bounds = (min_connections, max_connections)
        self._pool()

    def _pool(self) -> psycopg2.pool.ThreadedConnectionPool:
        with self._pools_lock:
            pool = self._connection_pools.get(self._database_url)
            if pool is None:
                low, high = self._pool_bounds
                pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=low, maxconn=high, dsn=self._database_url, connect_timeout=30
                )
                self._connection_pools[self._database_url] = pool
                logger.info(f"Opened Postgres pool ({low}-{high} connections)")
            return pool

    @contextmanager
    def transaction(self):
        """Yield a dict cursor. Commits on clean exit, rolls back on error."""
        pool = self._pool()
        conn = pool.getconn()
        if conn is None:
            raise RuntimeError("Postgres pool returned no connection")
        try:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            pool.putconn(conn)

    def _run(self, query: str, params: Params) -> List[Dict[str, Any]]:
        with self.transaction() as cur:
            cur.execute(query, params)
            if cur.description is None:
                return []
            return [dict(row) for row in cur.fetchall()]

    def execute(self, query: str, params: Params = None) -> List[Dict[str, Any]]:
        """Rows as dicts; statements without a result set give []."""
        return self._run(query, params)

    def execute_single(self, query: str, params: Params = None) -> Dict[str, Any] | None:
        rows = self._run(query, params)
        return rows[0] if rows else None

    def execute_returning(self, query: str, params: Params = None) -> List[Dict[str, Any]]:
        """INSERT/UPDATE/DELETE ... RETURNING. Same path as execute, named for intent."""
        return self._run(query, params)

    def close(self) -> None:
        with self._pools_lock:
            pool = self._connection_pools.pop(self._database_url, None)
        if pool is not None:
            pool.closeall()

    @classmethod
    def close_all_pools(cls) -> None:
        with cls._pools_lock:
            pools = list(cls._connection_pools.values())
            cls._connection_pools.clear()
        for pool in pools:
            pool.closeall()

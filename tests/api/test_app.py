"""Tests for api/app.py - application wiring and lifespan."""

from unittest.mock import patch

from fastapi.testclient import TestClient

from api.app import create_app
from auth.memory_store import InMemoryAuthStore
from auth.rate_limiter import InMemoryRateLimitStore


class TestCreateApp:

    def test_routes_mounted(self, app):
        paths = set(app.openapi()["paths"])

        assert "/api/auth/register" in paths
        assert "/api/auth/me" in paths
        assert "/api/admin/users/{user_id}/lock" in paths
        assert "/api/admin/setup" in paths

    def test_responses_tagged_with_request_id(self, client):
        response = client.get("/api/auth/me")
        assert "X-Request-ID" in response.headers

    def test_uses_injected_store(self, app, store):
        assert app.state.store is store

    def test_default_store_from_database_url(self, config, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://storefront@localhost/storefront")
        with patch("clients.postgres_client.psycopg2.pool.ThreadedConnectionPool"):
            from auth.database import PostgresAuthStore
            from clients.postgres_client import PostgresClient

            app = create_app(config=config)

            assert isinstance(app.state.store, PostgresAuthStore)
            PostgresClient._connection_pools.clear()


class TestLifespan:

    def test_sweeper_runs_only_while_app_is_up(self, config):
        app = create_app(
            config=config,
            store=InMemoryAuthStore(),
            rate_limit_store=InMemoryRateLimitStore(),
        )
        sweeper = app.state.sweeper

        with TestClient(app):
            assert sweeper.running

        assert not sweeper.running

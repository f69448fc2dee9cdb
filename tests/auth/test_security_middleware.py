"""Tests for AuthMiddleware - session cookie to request.state.auth."""

from unittest.mock import Mock

import pytest
from fastapi import FastAPI, Request, Response
from fastapi.testclient import TestClient

from auth.config import AuthConfig
from auth.security_middleware import AuthMiddleware
from auth.session import SessionManager


@pytest.fixture
def user(store):
    return store.create_user("shopper@example.com", "$2b$04$hash")


def make_app(session_manager, config: AuthConfig) -> FastAPI:
    app = FastAPI()
    app.add_middleware(AuthMiddleware, session_manager=session_manager, config=config)

    @app.get("/whoami")
    async def whoami(request: Request):
        auth = request.state.auth
        return {"email": auth.user.email if auth else None}

    @app.get("/fresh-cookie")
    async def fresh_cookie(response: Response):
        response.set_cookie(config.session_cookie_name, "new-session-id")
        return {"ok": True}

    return app


class TestAnonymous:
    """Requests without a usable session proceed anonymously."""

    def test_no_cookie(self, session_manager, config):
        response = TestClient(make_app(session_manager, config)).get("/whoami")

        assert response.status_code == 200
        assert response.json() == {"email": None}
        assert "set-cookie" not in response.headers

    def test_unknown_cookie_cleared(self, session_manager, config):
        client = TestClient(make_app(session_manager, config))
        client.cookies.set("sid", "f" * 64)

        response = client.get("/whoami")

        assert response.status_code == 200
        assert response.json() == {"email": None}
        assert 'sid=""' in response.headers["set-cookie"]

    def test_expired_session_cleared(self, session_manager, config, user, clock):
        session = session_manager.create_session(user.id)
        clock.advance(days=8)
        client = TestClient(make_app(session_manager, config))
        client.cookies.set("sid", session.id)

        response = client.get("/whoami")

        assert response.json() == {"email": None}
        assert 'sid=""' in response.headers["set-cookie"]

    def test_resolution_error_fails_open(self, config):
        session_manager = Mock(spec=SessionManager)
        session_manager.resolve.side_effect = RuntimeError("store exploded")
        client = TestClient(make_app(session_manager, config))
        client.cookies.set("sid", "a" * 64)

        response = client.get("/whoami")

        assert response.status_code == 200
        assert response.json() == {"email": None}

    def test_fresh_cookie_not_clobbered(self, session_manager, config):
        """A route issuing a new session cookie wins over stale-cookie cleanup."""
        client = TestClient(make_app(session_manager, config))
        client.cookies.set("sid", "f" * 64)

        response = client.get("/fresh-cookie")

        cookies = response.headers.get_list("set-cookie")
        assert len(cookies) == 1
        assert cookies[0].startswith("sid=new-session-id")


class TestAuthenticated:

    def test_valid_session_attached(self, session_manager, config, user):
        session = session_manager.create_session(user.id)
        client = TestClient(make_app(session_manager, config))
        client.cookies.set("sid", session.id)

        response = client.get("/whoami")

        assert response.json() == {"email": "shopper@example.com"}
        assert "set-cookie" not in response.headers

    def test_touch_failure_does_not_fail_request(self, config, user, session_manager):
        session = session_manager.create_session(user.id)
        flaky = Mock(spec=SessionManager)
        flaky.resolve.side_effect = session_manager.resolve
        flaky.touch.side_effect = RuntimeError("write failed")
        client = TestClient(make_app(flaky, config))
        client.cookies.set("sid", session.id)

        response = client.get("/whoami")

        assert response.status_code == 200
        assert response.json() == {"email": "shopper@example.com"}

    def test_custom_cookie_name(self, session_manager, user):
        config = AuthConfig(session_cookie_name="storefront_session", bcrypt_rounds=4)
        session = session_manager.create_session(user.id)
        client = TestClient(make_app(session_manager, config))
        client.cookies.set("storefront_session", session.id)

        assert client.get("/whoami").json() == {"email": "shopper@example.com"}

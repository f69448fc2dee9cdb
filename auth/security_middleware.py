"""Security middleware for FastAPI - session cookie to request.state.auth."""

import asyncio
import logging

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from auth.config import AuthConfig
from auth.session import SessionManager

logger = logging.getLogger(__name__)


class AuthMiddleware(BaseHTTPMiddleware):
    """Resolves the session cookie and attaches the result to the request.

    For every request:
    1. Reads the session cookie; no cookie means anonymous
    2. Resolves it via SessionManager (in a worker thread)
    3. Valid: sets request.state.auth and bumps last-seen without waiting
    4. Invalid, expired, revoked or lookup error: anonymous, and the
       stale cookie is deleted on the response

    Never rejects a request. Route guards (auth/guards.py) decide who
    gets in.
    """

    def __init__(self, app, session_manager: SessionManager, config: AuthConfig):
        super().__init__(app)
        self._session_manager = session_manager
        self._config = config

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        cookie_name = self._config.session_cookie_name
        session_token = request.cookies.get(cookie_name)

        auth = None
        stale_cookie = False
        if session_token:
            try:
                auth = await run_in_threadpool(self._session_manager.resolve, session_token)
            except Exception:
                logger.exception("Session resolution failed; continuing anonymously")
                auth = None
            stale_cookie = auth is None

        request.state.auth = auth

        if auth is not None:
            self._touch_in_background(auth.session.id)

        response = await call_next(request)

        # Leave it alone if the route just issued a fresh cookie (login, register)
        if stale_cookie and not self._sets_cookie(response, cookie_name):
            response.delete_cookie(key=cookie_name, path="/")

        return response

    @staticmethod
    def _sets_cookie(response, cookie_name: str) -> bool:
        prefix = f"{cookie_name}="
        return any(
            header.startswith(prefix)
            for header in response.headers.getlist("set-cookie")
        )

    def _touch_in_background(self, session_id: str) -> None:
        """Fire-and-forget last-seen update on the default executor."""
        try:
            asyncio.get_running_loop().run_in_executor(
                None, self._session_manager.touch, session_id
            )
        except Exception as e:
            logger.warning(f"Could not schedule last-seen update: {e}")

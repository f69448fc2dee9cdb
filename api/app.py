"""Application factory: wires config, store, services, middleware and routes."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from auth.api import create_admin_router, create_auth_router
from auth.config import AuthConfig
from auth.passwords import PasswordHasher
from auth.rate_limiter import (
    InMemoryRateLimitStore,
    RateLimiter,
    RateLimitStore,
    RateLimitSweeper,
)
from auth.security_logger import SecurityLogger
from auth.security_middleware import AuthMiddleware
from auth.service import AuthService, TokenDelivery
from auth.session import SessionManager
from auth.store import AuthStore

logger = logging.getLogger(__name__)


def _default_store() -> tuple[AuthStore, SecurityLogger]:
    from auth.database import PostgresAuthStore
    from clients.postgres_client import PostgresClient
    from clients.vault_client import get_database_url

    postgres = PostgresClient(get_database_url())
    return PostgresAuthStore(postgres), SecurityLogger(postgres)


def create_app(
    config: AuthConfig | None = None,
    store: AuthStore | None = None,
    security_logger: SecurityLogger | None = None,
    token_delivery: TokenDelivery | None = None,
    rate_limit_store: RateLimitStore | None = None,
) -> FastAPI:
    """
    Build the storefront auth application.

    Without a store, connects to PostgreSQL (URL from DATABASE_URL or Vault)
    and persists security events there too.
    """
    config = config or AuthConfig.from_env()
    if store is None:
        store, default_logger = _default_store()
        security_logger = security_logger or default_logger
    security_logger = security_logger or SecurityLogger()
    rate_limit_store = rate_limit_store or InMemoryRateLimitStore()

    hasher = PasswordHasher(config.bcrypt_rounds)
    session_manager = SessionManager(store, config)
    rate_limiter = RateLimiter(rate_limit_store, config, security_logger)
    auth_service = AuthService(
        config=config,
        store=store,
        hasher=hasher,
        session_manager=session_manager,
        security_logger=security_logger,
        token_delivery=token_delivery,
    )
    sweeper = RateLimitSweeper(rate_limit_store, config.rate_limit_sweep_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper.start()
        try:
            yield
        finally:
            await sweeper.stop()

    app = FastAPI(title="Storefront Auth", lifespan=lifespan)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(AuthMiddleware, session_manager=session_manager, config=config)
    register_error_handlers(app)

    app.include_router(create_auth_router(auth_service, rate_limiter, config), prefix="/api/auth")
    app.include_router(create_admin_router(auth_service, rate_limiter, config), prefix="/api/admin")

    app.state.config = config
    app.state.store = store
    app.state.auth_service = auth_service
    app.state.session_manager = session_manager
    app.state.rate_limiter = rate_limiter
    app.state.sweeper = sweeper

    logger.info(f"Auth app created (environment={config.environment})")
    return app

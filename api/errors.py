"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from auth.exceptions import (
    AccountLockedError,
    AuthError,
    AuthValidationError,
    BadRequestError,
    ConflictError,
    ForbiddenError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    RateLimitedError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins
_AUTH_ERROR_MAP: list[tuple[type[AuthError], int, str]] = [
    (InvalidCredentialsError, 401, ErrorCodes.INVALID_CREDENTIALS),
    (InvalidTokenError, 401, ErrorCodes.INVALID_TOKEN),
    (UnauthorizedError, 401, ErrorCodes.NOT_AUTHENTICATED),
    (AccountLockedError, 403, ErrorCodes.ACCOUNT_LOCKED),
    (ForbiddenError, 403, ErrorCodes.FORBIDDEN),
    (ConflictError, 409, ErrorCodes.ALREADY_EXISTS),
    (NotFoundError, 404, ErrorCodes.NOT_FOUND),
    (AuthValidationError, 400, ErrorCodes.VALIDATION_ERROR),
    (BadRequestError, 400, ErrorCodes.INVALID_REQUEST),
]


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def status_for(exc: AuthError) -> tuple[int, str]:
    """HTTP status and error code for an auth exception."""
    for exc_type, status_code, code in _AUTH_ERROR_MAP:
        if isinstance(exc, exc_type):
            return status_code, code
    return 400, ErrorCodes.INVALID_REQUEST


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(RateLimitedError)
    async def rate_limited_handler(request: Request, exc: RateLimitedError):
        return JSONResponse(
            status_code=429,
            headers={"Retry-After": str(exc.retry_after_seconds)},
            content=error_response(
                ErrorCodes.RATE_LIMITED,
                "Too many attempts. Please try again later.",
                _request_id(request),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        status_code, code = status_for(exc)
        return JSONResponse(
            status_code=status_code,
            content=error_response(code, str(exc), _request_id(request)).model_dump(mode="json"),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCodes.VALIDATION_ERROR,
                "; ".join(
                    f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                    for error in exc.errors()
                ),
                _request_id(request),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content=error_response(
                ErrorCodes.INTERNAL_ERROR,
                "An internal error occurred",
                _request_id(request),
            ).model_dump(mode="json"),
        )

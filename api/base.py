"""Response envelope shared by every storefront auth endpoint.

    {"success": bool, "data": ..., "error": {"code", "message"} | null,
     "meta": {"timestamp", "request_id"}}
"""

from typing import Any
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from utils.timezone import now_utc


class APIError(BaseModel):
    code: str = Field(..., description="Stable machine-readable code, see ErrorCodes")
    message: str = Field(..., description="Safe to show to the end user")


class APIMeta(BaseModel):
    timestamp: datetime = Field(..., description="When the response was built (UTC)")
    request_id: str = Field(..., description="Matches the X-Request-ID header")


class APIResponse(BaseModel):
    """Envelope. Exactly one of data/error is meaningful, chosen by success."""

    success: bool
    data: Any | None = None
    error: APIError | None = None
    meta: APIMeta


def _stamp(request_id: str | None) -> APIMeta:
    return APIMeta(timestamp=now_utc(), request_id=request_id or str(uuid4()))


def success_response(data: Any, request_id: str | None = None) -> APIResponse:
    return APIResponse(success=True, data=data, meta=_stamp(request_id))


def error_response(
    code: str,
    message: str,
    request_id: str | None = None,
    data: Any | None = None,
) -> APIResponse:
    """Failure envelope. data is normally None; /me uses it for {"user": null}."""
    return APIResponse(
        success=False,
        data=data,
        error=APIError(code=code, message=message),
        meta=_stamp(request_id),
    )


class ErrorCodes:
    """Every code the auth API can put in error.code."""

    # 401 / 403 / 429
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    INVALID_TOKEN = "INVALID_TOKEN"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    FORBIDDEN = "FORBIDDEN"
    RATE_LIMITED = "RATE_LIMITED"

    # 404 / 409
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"

    # 400 / 422
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"

    # 500
    INTERNAL_ERROR = "INTERNAL_ERROR"

"""HTTP layer: response envelope, error mapping, app factory."""

from api.base import APIResponse, ErrorCodes, error_response, success_response

__all__ = ["APIResponse", "ErrorCodes", "error_response", "success_response"]

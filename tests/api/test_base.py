"""Tests for api/base.py - the response envelope."""

from datetime import timezone

import pytest

from api.base import ErrorCodes, error_response, success_response


class TestEnvelopeMeta:
    """Both builders stamp the same meta block."""

    @pytest.mark.parametrize("build", [
        lambda rid: success_response({"ok": 1}, request_id=rid),
        lambda rid: error_response("X", "y", request_id=rid),
    ])
    def test_given_request_id_is_used(self, build):
        assert build("req-9").meta.request_id == "req-9"

    @pytest.mark.parametrize("build", [
        lambda: success_response(None),
        lambda: error_response("X", "y"),
    ])
    def test_missing_request_id_is_generated(self, build):
        first, second = build(), build()

        assert first.meta.request_id
        assert first.meta.request_id != second.meta.request_id
        assert first.meta.timestamp.tzinfo == timezone.utc


class TestSuccessResponse:

    def test_data_without_error(self):
        resp = success_response({"user": {"email": "a@example.com"}})

        assert resp.success is True
        assert resp.data["user"]["email"] == "a@example.com"
        assert resp.error is None


class TestErrorResponse:

    def test_error_without_data(self):
        resp = error_response(ErrorCodes.INVALID_CREDENTIALS, "Invalid email or password")

        assert resp.success is False
        assert resp.data is None
        assert resp.error.code == "INVALID_CREDENTIALS"
        assert resp.error.message == "Invalid email or password"

    def test_error_may_carry_data(self):
        resp = error_response(ErrorCodes.NOT_AUTHENTICATED, "Not authenticated", data={"user": None})

        assert resp.model_dump()["data"] == {"user": None}


class TestErrorCodes:

    def test_codes_equal_their_names(self):
        codes = {k: v for k, v in vars(ErrorCodes).items() if k.isupper()}

        assert codes
        assert all(name == value for name, value in codes.items())

    def test_auth_codes_present(self):
        for name in ("NOT_AUTHENTICATED", "INVALID_TOKEN", "ACCOUNT_LOCKED", "RATE_LIMITED", "FORBIDDEN"):
            assert hasattr(ErrorCodes, name)

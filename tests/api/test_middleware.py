"""Tests for api/middleware.py - request id tagging."""

from uuid import UUID

import pytest
from fastapi import FastAPI, Request
from starlette.testclient import TestClient

from api.middleware import RequestIDMiddleware


@pytest.fixture
def client():
    app = FastAPI()
    app.add_middleware(RequestIDMiddleware)

    @app.get("/echo")
    async def echo(request: Request):
        return {"seen": request.state.request_id}

    return TestClient(app)


class TestRequestIDMiddleware:

    def test_fresh_id_is_a_uuid(self, client):
        response = client.get("/echo")

        UUID(response.headers["X-Request-ID"])

    def test_handler_sees_same_id_as_header(self, client):
        response = client.get("/echo")

        assert response.json()["seen"] == response.headers["X-Request-ID"]

    def test_ids_differ_between_requests(self, client):
        ids = {client.get("/echo").headers["X-Request-ID"] for _ in range(3)}

        assert len(ids) == 3

    def test_proxy_id_propagated(self, client):
        """A well-formed id from the edge proxy is reused, not replaced."""
        response = client.get("/echo", headers={"X-Request-ID": "edge-7f3a.42"})

        assert response.headers["X-Request-ID"] == "edge-7f3a.42"
        assert response.json()["seen"] == "edge-7f3a.42"

    @pytest.mark.parametrize("incoming", ["", "has spaces", "x" * 65, "<script>"])
    def test_junk_proxy_id_replaced(self, client, incoming):
        response = client.get("/echo", headers={"X-Request-ID": incoming})

        assert response.headers["X-Request-ID"] != incoming
        UUID(response.headers["X-Request-ID"])

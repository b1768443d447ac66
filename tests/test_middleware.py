# tests/test_middleware.py
"""Tests for civic_dispatch/transport/middleware.py (request ID, logging, error handling)."""
from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.testclient import TestClient

from civic_dispatch.transport.middleware import (
    ErrorHandlingMiddleware,
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    _issue_id_from_path,
)


def _build_app(raise_for: set[str] | None = None, logging_enabled: bool = False):
    """Build a minimal FastAPI app with middleware for testing."""
    app = FastAPI()
    # Order matters: ErrorHandling wraps RequestLogging wraps RequestID
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLoggingMiddleware, enabled=logging_enabled)
    app.add_middleware(RequestIDMiddleware)

    raise_for = raise_for or set()

    @app.get("/test")
    def test_endpoint():
        if "/test" in raise_for:
            raise RuntimeError("boom")
        return {"ok": True}

    @app.post("/issues/{issue_id}/dispatch")
    def dispatch_endpoint(issue_id: str):
        return {"issue_id": issue_id}

    return app


# ============================================================================
# RequestIDMiddleware
# ============================================================================

class TestRequestIDMiddleware:
    def test_generates_request_id(self):
        client = TestClient(_build_app())
        resp = client.get("/test")
        assert resp.status_code == 200
        assert len(resp.headers["X-Request-ID"]) == 32

    def test_preserves_existing_request_id(self):
        client = TestClient(_build_app())
        resp = client.get("/test", headers={"X-Request-ID": "my-custom-id"})
        assert resp.headers["X-Request-ID"] == "my-custom-id"

    def test_ids_differ_per_request(self):
        client = TestClient(_build_app())
        first = client.get("/test").headers["X-Request-ID"]
        second = client.get("/test").headers["X-Request-ID"]
        assert first != second


# ============================================================================
# RequestLoggingMiddleware
# ============================================================================

class TestRequestLoggingMiddleware:
    def test_issue_id_from_path(self):
        assert _issue_id_from_path("/issues/iss-1/dispatch") == "iss-1"
        assert _issue_id_from_path("/issues/iss-1/submissions") == "iss-1"
        assert _issue_id_from_path("/targets/pune") is None

    def test_logs_with_issue_context(self, caplog):
        client = TestClient(_build_app(logging_enabled=True))
        with caplog.at_level(logging.INFO, logger="civic_dispatch.transport.middleware"):
            resp = client.post("/issues/iss-9/dispatch")

        assert resp.status_code == 200
        records = [r for r in caplog.records if r.name == "civic_dispatch.transport.middleware"]
        assert records
        assert records[-1].issue_id == "iss-9"
        assert records[-1].status_code == 200

    def test_disabled_logs_nothing(self, caplog):
        client = TestClient(_build_app(logging_enabled=False))
        with caplog.at_level(logging.DEBUG, logger="civic_dispatch.transport.middleware"):
            client.get("/test")
        assert not [r for r in caplog.records if r.name == "civic_dispatch.transport.middleware"]


# ============================================================================
# ErrorHandlingMiddleware
# ============================================================================

class TestErrorHandlingMiddleware:
    def test_normal_request_passes_through(self):
        client = TestClient(_build_app())
        resp = client.get("/test")
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}

    def test_generic_error_returns_500(self):
        client = TestClient(_build_app(raise_for={"/test"}), raise_server_exceptions=False)
        resp = client.get("/test", headers={"X-Request-ID": "req-err"})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error", "request_id": "req-err"}

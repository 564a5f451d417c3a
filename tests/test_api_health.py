"""
Tests: health probes, the JSON error handlers registered by the app factory
and the request-aware log formatting.
"""

import json
import logging

from flask import g

from dacum.core.exceptions import DacumError
from dacum.middleware.logging_config import JSONFormatter, ReadableFormatter, RequestContextFilter
from dacum.utils.errors import E, api_error, error_from_exception


class TestHealth:
    def test_ready(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "healthy"
        checks = data["checks"]
        assert checks["database"]["status"] == "ok"
        assert checks["ai"] == {"status": "local_stub", "generation_enabled": False}
        assert checks["catalog"]["status"] == "empty"
        assert checks["app"]["testing"] is True


class TestErrorHandlers:
    def test_unknown_route_is_json(self, client):
        res = client.get("/api/v1/nope")
        assert res.status_code == 404
        body = res.get_json()
        assert body["code"] == "ERR_NOT_FOUND"
        assert body["details"]["path"] == "/api/v1/nope"

    def test_method_not_allowed_is_json(self, client):
        res = client.delete("/api/v1/health/ready")
        assert res.status_code == 405
        assert res.get_json() == {"error": "Method not allowed", "code": "ERR_METHOD_NOT_ALLOWED"}

    def test_api_error_status_follows_code(self):
        _, status = api_error(E.RATE_LIMITED, "slow down")
        assert status == 429
        response, status = api_error("SOMETHING_ELSE", "bad", details={"field": "x"})
        assert status == 400
        assert response.get_json() == {"error": "bad", "code": "SOMETHING_ELSE", "details": {"field": "x"}}

    def test_exception_body_keeps_component(self):
        response, status = error_from_exception(DacumError("boom", component="matching", details={"n": 1}))
        assert status == 500
        assert response.get_json() == {"error": "boom", "code": "ERR_INTERNAL",
                                       "details": {"n": 1, "component": "matching"}}

    def test_response_time_header(self, client):
        res = client.get("/api/v1/health/ready")
        assert "X-Request-Duration-Ms" in res.headers
        assert res.headers["X-Request-ID"]


class TestLogging:
    @staticmethod
    def _record(**extra):
        record = logging.LogRecord("dacum.test", logging.INFO, __file__, 1, "Lock rejected", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_formatter_includes_context(self):
        line = json.loads(JSONFormatter().format(self._record(session_id="s1", cu_code="CU-01", code="LOCK_REJECTED")))
        assert line["message"] == "Lock rejected"
        assert line["session_id"] == "s1"
        assert line["cu_code"] == "CU-01"
        assert "request_id" not in line

    def test_readable_formatter_tags_scope(self):
        text = ReadableFormatter().format(self._record(request_id="abc", session_id="s1", cu_code="CU-01"))
        assert "[abc s1/CU-01]" in text

    def test_filter_stamps_request_id(self, app):
        with app.test_request_context("/api/v1/health/ready"):
            g.request_id = "req-1"
            record = self._record()
            assert RequestContextFilter().filter(record) is True
            assert record.request_id == "req-1"

    def test_filter_outside_request(self):
        record = self._record()
        assert RequestContextFilter().filter(record) is True
        assert getattr(record, "request_id", None) is None

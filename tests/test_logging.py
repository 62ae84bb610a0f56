"""
Tests for request-scoped log context.
"""
import json
import logging

from flask import g

from approvals.middleware.logging_config import JSONFormatter, RequestContextFilter


def _record(**extra):
    record = logging.LogRecord("approvals.services.request_lifecycle", logging.INFO,
                               __file__, 1, "Request %s approved", (7,), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestRequestContextFilter:
    def test_stamps_ids_inside_request(self, app):
        with app.test_request_context("/api/v1/requests/7/decide", method="POST"):
            g.request_id = "abc123"
            g.jwt_user_id = 42
            record = _record()
            assert RequestContextFilter().filter(record) is True

        assert record.request_id == "abc123"
        assert record.user_id == 42
        assert record.approval_id == 7

    def test_explicit_extra_wins(self, app):
        with app.test_request_context("/api/v1/requests/7"):
            g.request_id = "abc123"
            record = _record(request_id="given", approval_id=9)
            RequestContextFilter().filter(record)

        assert record.request_id == "given"
        assert record.approval_id == 9

    def test_outside_request_untouched(self):
        record = _record()
        assert RequestContextFilter().filter(record) is True
        assert not hasattr(record, "request_id")

    def test_json_output_carries_context(self, app):
        with app.test_request_context("/api/v1/requests/7"):
            g.request_id = "abc123"
            g.jwt_user_id = 3
            record = _record()
            RequestContextFilter().filter(record)

        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "Request 7 approved"
        assert entry["request_id"] == "abc123"
        assert entry["user_id"] == 3
        assert entry["approval_id"] == 7

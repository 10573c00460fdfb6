"""Tests for the response-header, CORS, audit and error-reporting layers."""

import logging

import pytest

from api.audit import resource_for_path
from api.middleware import CORSErrorWrapper, parse_allowed_origins
from main import _before_send, _scrub_phi


class TestAllowedOrigins:
    def test_unset_allows_all(self):
        assert parse_allowed_origins("") == ["*"]

    def test_parsed_and_normalised(self):
        assert parse_allowed_origins(" https://app.example.com/ ,http://localhost:5173") == [
            "https://app.example.com",
            "http://localhost:5173",
        ]

    def test_wrapper_origin_check(self):
        wrapper = CORSErrorWrapper(app=None, allowed_origins=["https://app.example.com"])
        assert wrapper.origin_allowed("https://app.example.com")
        assert not wrapper.origin_allowed("https://evil.example.com")


class TestResourceForPath:
    @pytest.mark.parametrize("path,resource", [
        ("/health-data/labs", "labs"),
        ("/health-data/vitals/abc", "vitals"),
        ("/profile/me/health-data/abnormal", "health_data"),
        ("/profile/me/conditions", "profile"),
        ("/profile/dashboard/me", "dashboard"),
        ("/request-batches/123/documents", "record_request"),
        ("/facilities/1/providers/2", "facility"),
        ("/nowhere", "other"),
    ])
    def test_mapping(self, path, resource):
        assert resource_for_path(path) == resource


class TestHeaders:
    def test_request_id_generated(self, client, auth_headers):
        resp = client.get("/alerts", headers=auth_headers)
        assert len(resp.headers["x-request-id"]) == 16

    def test_request_id_echoed(self, client, auth_headers):
        resp = client.get("/alerts", headers={**auth_headers, "X-Request-ID": "trace-42"})
        assert resp.headers["x-request-id"] == "trace-42"

    def test_hardening_headers(self, client, auth_headers):
        resp = client.get("/alerts", headers=auth_headers)
        assert resp.headers["x-frame-options"] == "DENY"
        assert resp.headers["referrer-policy"] == "no-referrer"

    def test_cors_on_unauthenticated_response(self, client):
        resp = client.get("/alerts", headers={"Origin": "http://localhost:5173"})
        assert resp.status_code == 401
        assert "access-control-allow-origin" in resp.headers

    def test_audit_log_line(self, client, auth_headers, caplog):
        with caplog.at_level(logging.INFO, logger="audit"):
            client.get("/health-data/labs", headers=auth_headers)
        messages = [r.getMessage() for r in caplog.records if r.name == "audit"]
        assert any("resource=labs" in m and "status=200" in m for m in messages)

    def test_health_checks_not_audited(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="audit"):
            client.get("/health")
        assert not [r for r in caplog.records if r.name == "audit"]


class TestPhiScrubbing:
    def test_scrubs_identifiers(self):
        text = "patient: Jane Roe dob 1980-04-02 phone 555-123-4567 jane@example.com REQ-123456-2025"
        scrubbed = _scrub_phi(text)
        for fragment in ("Jane Roe", "1980-04-02", "555-123-4567", "jane@example.com", "REQ-123456-2025"):
            assert fragment not in scrubbed

    def test_before_send_redacts_request_body(self):
        event = {
            "exception": {"values": [{"value": "bad lab for jane@example.com"}]},
            "request": {"data": {"value": 130}},
        }
        result = _before_send(event, None)
        assert "jane@example.com" not in result["exception"]["values"][0]["value"]
        assert result["request"]["data"] == "[REDACTED]"

"""429 responses from the sign-up, login and upload limits."""

import pytest

from api.rate_limit import LOGIN_RATE_LIMIT, SIGN_UP_RATE_LIMIT, UPLOAD_RATE_LIMIT, limiter

from conftest import PASSWORD


def _limit_count(limit: str) -> int:
    return int(limit.split("/")[0])


@pytest.fixture
def limited(client, monkeypatch):
    limiter.reset()
    monkeypatch.setattr(limiter, "enabled", True)
    yield client
    limiter.reset()


def _login(client, headers=None):
    return client.post(
        "/auth/login",
        json={"email": "nobody@example.com", "password": PASSWORD},
        headers=headers or {},
    )


class TestLoginLimit:
    def test_429_after_limit(self, limited):
        allowed = _limit_count(LOGIN_RATE_LIMIT)
        for _ in range(allowed):
            assert _login(limited).status_code == 401
        resp = _login(limited)
        assert resp.status_code == 429
        body = resp.json()
        assert body["detail"] == "Too many attempts. Please wait before trying again."
        assert body["retry_after"]

    def test_forwarded_header_does_not_reset_budget(self, limited):
        allowed = _limit_count(LOGIN_RATE_LIMIT)
        statuses = [
            _login(limited, {"X-Forwarded-For": f"10.0.0.{i}"}).status_code
            for i in range(allowed + 1)
        ]
        assert statuses[:allowed] == [401] * allowed
        assert statuses[-1] == 429


class TestSignUpLimit:
    def test_429_after_limit(self, limited):
        allowed = _limit_count(SIGN_UP_RATE_LIMIT)
        for i in range(allowed):
            resp = limited.post("/auth/sign-up", json={"email": f"user{i}@example.com", "password": PASSWORD})
            assert resp.status_code == 201
        resp = limited.post("/auth/sign-up", json={"email": "late@example.com", "password": PASSWORD})
        assert resp.status_code == 429
        assert "retry_after" in resp.json()


class TestUploadLimit:
    def test_limit_is_per_user(self, client, auth_headers, other_headers, monkeypatch):
        def create(headers):
            body = {"request_type": "lab_results", "provider_name": "City Clinic", "record_types": ["lab_results"]}
            return client.post("/request-batches", json=body, headers=headers).json()["id"]

        def upload(headers, request_id):
            return client.post(
                f"/request-batches/{request_id}/documents",
                files={"file": ("consent.pdf", b"%PDF-1.4 test", "application/pdf")},
                headers=headers,
            )

        mine, theirs = create(auth_headers), create(other_headers)
        limiter.reset()
        monkeypatch.setattr(limiter, "enabled", True)
        try:
            for _ in range(_limit_count(UPLOAD_RATE_LIMIT)):
                assert upload(auth_headers, mine).status_code == 201
            assert upload(auth_headers, mine).status_code == 429
            assert upload(other_headers, theirs).status_code == 201
        finally:
            limiter.reset()

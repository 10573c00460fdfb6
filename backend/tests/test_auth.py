"""Tests for sign-up, login and bearer-token enforcement."""

from api.auth import create_access_token, hash_password, password_problems, verify_password
from conftest import PASSWORD, sign_up


class TestPasswordRules:
    def test_strong_password(self):
        assert password_problems("Secur3Pass") == []

    def test_every_rule_reported(self):
        problems = password_problems("abc")
        assert len(problems) == 3
        assert any("8 characters" in p for p in problems)
        assert any("uppercase" in p for p in problems)
        assert any("number" in p for p in problems)

    def test_hash_and_verify(self):
        hashed = hash_password(PASSWORD)
        assert hashed != PASSWORD
        assert verify_password(PASSWORD, hashed)
        assert not verify_password("Wrong1Pass", hashed)

    def test_verify_rejects_garbage_hash(self):
        assert verify_password(PASSWORD, "not-a-bcrypt-hash") is False


class TestSignUp:
    def test_returns_token_and_user(self, client):
        data = sign_up(client, profile_json={"name": "Pat Doe"})
        assert data["token_type"] == "bearer"
        assert data["access_token"]
        assert data["user"]["email"] == "pat@example.com"
        assert data["user"]["name"] == "Pat Doe"
        assert data["user"]["role"] == "patient"
        assert "password_hash" not in data["user"]

    def test_name_defaults_to_email_local_part(self, client):
        data = sign_up(client, email="jamie.lee@example.com")
        assert data["user"]["name"] == "jamie.lee"

    def test_duplicate_email_is_case_insensitive(self, client):
        sign_up(client)
        resp = client.post("/auth/sign-up", json={"email": "PAT@example.com", "password": PASSWORD})
        assert resp.status_code == 409
        assert resp.json()["detail"] == "An account with this email already exists."

    def test_weak_password_rejected(self, client):
        resp = client.post("/auth/sign-up", json={"email": "pat@example.com", "password": "password"})
        assert resp.status_code == 422

    def test_invalid_email_rejected(self, client):
        resp = client.post("/auth/sign-up", json={"email": "not-an-email", "password": PASSWORD})
        assert resp.status_code == 422

    def test_short_profile_name_rejected(self, client):
        resp = client.post(
            "/auth/sign-up",
            json={"email": "pat@example.com", "password": PASSWORD, "profile_json": {"name": " A "}},
        )
        assert resp.status_code == 422


class TestLogin:
    def test_login_success(self, client):
        sign_up(client)
        resp = client.post("/auth/login", json={"email": "pat@example.com", "password": PASSWORD})
        assert resp.status_code == 200
        body = resp.json()
        assert body["access_token"]
        assert body["user"]["last_sign_in_at"] is not None

    def test_wrong_password(self, client):
        sign_up(client)
        resp = client.post("/auth/login", json={"email": "pat@example.com", "password": "Wrong1Pass"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid email or password"

    def test_unknown_email(self, client):
        resp = client.post("/auth/login", json={"email": "nobody@example.com", "password": PASSWORD})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid email or password"

    def test_login_token_works(self, client):
        sign_up(client)
        token = client.post(
            "/auth/login", json={"email": "pat@example.com", "password": PASSWORD}
        ).json()["access_token"]
        resp = client.get("/profile/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200


class TestAuthMiddleware:
    def test_health_is_public(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert client.get("/healthz").status_code == 200

    def test_missing_header(self, client):
        resp = client.get("/profile/me")
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Missing authorization header"

    def test_invalid_token(self, client):
        resp = client.get("/profile/me", headers={"Authorization": "Bearer not.a.jwt"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid token"

    def test_expired_token(self, client):
        user = sign_up(client)["user"]
        token = create_access_token(user["id"], user["email"], ttl_minutes=-1)
        resp = client.get("/profile/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Token expired"

    def test_token_for_deleted_user(self, client, app_db):
        user = sign_up(client)["user"]
        token = create_access_token(user["id"], user["email"])
        app_db.delete_user(user["id"])
        resp = client.get("/profile/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid token"

    def test_responses_are_not_cached(self, client, auth_headers):
        resp = client.get("/profile/me", headers=auth_headers)
        assert "no-store" in resp.headers["cache-control"]
        assert resp.headers["x-content-type-options"] == "nosniff"

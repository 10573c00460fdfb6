"""Shared fixtures: an isolated database and an authenticated API client."""

import os

# Must be set before the app modules read their configuration
os.environ.setdefault("JWT_SECRET", "test-signing-secret-with-enough-length-for-hs256")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from storage.database import Database

PASSWORD = "Secur3Pass"


@pytest.fixture
def app_db(tmp_path, monkeypatch):
    """Point the module-level Database singleton at a temp file."""
    monkeypatch.setenv("UPLOADS_DIR", str(tmp_path / "uploads"))
    database = Database(db_path=str(tmp_path / "fountain-test.db"))
    monkeypatch.setattr("storage.database._db_instance", database)
    return database


@pytest.fixture
def client(app_db):
    from main import create_app

    with TestClient(create_app()) as c:
        yield c


def sign_up(client: TestClient, email: str = "pat@example.com", **extra) -> dict:
    body = {"email": email, "password": PASSWORD, **extra}
    resp = client.post("/auth/sign-up", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.fixture
def auth_headers(client) -> dict:
    token = sign_up(client, profile_json={"name": "Pat Doe"})["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_headers(client) -> dict:
    token = sign_up(client, email="other@example.com")["access_token"]
    return {"Authorization": f"Bearer {token}"}

"""API tests for the profile, settings, dashboard, export and account deletion."""

from conftest import PASSWORD


class TestProfile:
    def test_get_profile(self, client, auth_headers):
        resp = client.get("/profile/me", headers=auth_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["email"] == "pat@example.com"
        assert body["name"] == "Pat Doe"

    def test_update_merges_profile(self, client, auth_headers):
        resp = client.put(
            "/profile/me",
            json={"profile_json": {"phone": "555-111-2222", "date_of_birth": "1980-04-02"}},
            headers=auth_headers,
        )
        assert resp.status_code == 200
        profile = resp.json()["profile_json"]
        assert profile["name"] == "Pat Doe"
        assert profile["phone"] == "555-111-2222"
        assert profile["date_of_birth"] == "1980-04-02"

    def test_change_password(self, client, auth_headers):
        resp = client.put(
            "/profile/me/password",
            json={"current_password": PASSWORD, "new_password": "N3wPassword"},
            headers=auth_headers,
        )
        assert resp.json() == {"updated": True}

        old = client.post("/auth/login", json={"email": "pat@example.com", "password": PASSWORD})
        assert old.status_code == 401
        new = client.post("/auth/login", json={"email": "pat@example.com", "password": "N3wPassword"})
        assert new.status_code == 200

    def test_change_password_wrong_current(self, client, auth_headers):
        resp = client.put(
            "/profile/me/password",
            json={"current_password": "Wrong1Pass", "new_password": "N3wPassword"},
            headers=auth_headers,
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Current password is incorrect."

    def test_change_password_rules(self, client, auth_headers):
        resp = client.put(
            "/profile/me/password",
            json={"current_password": PASSWORD, "new_password": "short"},
            headers=auth_headers,
        )
        assert resp.status_code == 422


class TestSettingsEndpoints:
    def test_defaults(self, client, auth_headers):
        settings = client.get("/settings", headers=auth_headers).json()
        assert settings["theme"] == "light"
        assert settings["session_timeout"] == 30
        assert settings["show_abnormal_only"] is False

    def test_patch_and_reset(self, client, auth_headers):
        resp = client.patch("/settings", json={"theme": "dark", "session_timeout": 60}, headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["theme"] == "dark"
        assert resp.json()["session_timeout"] == 60
        assert client.get("/settings", headers=auth_headers).json()["theme"] == "dark"

        reset = client.post("/settings/reset", headers=auth_headers).json()
        assert reset["theme"] == "light"
        assert reset["session_timeout"] == 30

    def test_invalid_value(self, client, auth_headers):
        resp = client.patch("/settings", json={"session_timeout": 1}, headers=auth_headers)
        assert resp.status_code == 422

    def test_per_user(self, client, auth_headers, other_headers):
        client.patch("/settings", json={"theme": "dark"}, headers=auth_headers)
        assert client.get("/settings", headers=other_headers).json()["theme"] == "light"


class TestDashboard:
    def test_summary(self, client, auth_headers):
        client.post("/health-data/conditions", json={"name": "Asthma"}, headers=auth_headers)
        client.post(
            "/health-data/labs",
            json={"test_name": "Glucose", "value": 150, "reference_range": "70-100"},
            headers=auth_headers,
        )
        client.post(
            "/request-batches",
            json={"request_type": "imaging", "provider_name": "X", "record_types": ["imaging"]},
            headers=auth_headers,
        )

        summary = client.get("/profile/dashboard/me", headers=auth_headers).json()
        assert summary["totals"]["conditions"] == 1
        assert summary["totals"]["labs"] == 1
        assert summary["abnormal"] == {"labs": 1, "vitals": 0}
        assert summary["active_conditions"] == 1
        assert summary["active_alerts"] == 1
        assert summary["requests"]["total"] == 1
        assert summary["requests"]["pending"] == 1

    def test_detail(self, client, auth_headers):
        client.post("/health-data/conditions", json={"name": "Asthma"}, headers=auth_headers)
        client.post(
            "/request-batches",
            json={"request_type": "imaging", "provider_name": "X", "record_types": ["imaging"]},
            headers=auth_headers,
        )
        detail = client.get("/profile/dashboard/me/detail", headers=auth_headers).json()
        assert len(detail["recent"]["conditions"]) == 1
        assert detail["recent"]["labs"] == []
        assert len(detail["open_requests"]) == 1

    def test_detail_lists_every_open_request(self, client, auth_headers, monkeypatch):
        monkeypatch.setattr("api.routes._OPEN_PAGE_SIZE", 2)
        ids = []
        for _ in range(4):
            resp = client.post(
                "/request-batches",
                json={"request_type": "imaging", "provider_name": "X", "record_types": ["imaging"]},
                headers=auth_headers,
            )
            ids.append(resp.json()["id"])
        client.patch(f"/request-batches/{ids[0]}", json={"status": "in_progress"}, headers=auth_headers)
        client.put(f"/request-batches/{ids[1]}/cancel", headers=auth_headers)

        detail = client.get("/profile/dashboard/me/detail", headers=auth_headers).json()
        assert sorted(r["id"] for r in detail["open_requests"]) == sorted([ids[0], ids[2], ids[3]])


class TestExportAndDelete:
    def test_export(self, client, auth_headers):
        client.post("/health-data/conditions", json={"name": "Asthma"}, headers=auth_headers)
        client.patch("/settings", json={"theme": "dark"}, headers=auth_headers)

        resp = client.get("/account/export", headers=auth_headers)
        assert resp.status_code == 200
        assert 'filename="fountain-data-export.json"' in resp.headers["content-disposition"]
        data = resp.json()
        assert data["user"]["email"] == "pat@example.com"
        assert "password_hash" not in data["user"]
        assert [c["name"] for c in data["conditions"]] == ["Asthma"]
        assert data["settings"]["theme"] == "dark"

    def test_delete_requires_confirmation(self, client, auth_headers):
        resp = client.post("/account/delete", json={"confirmation": "yes"}, headers=auth_headers)
        assert resp.status_code == 400

    def test_delete_account(self, client, auth_headers, app_db):
        req = client.post(
            "/request-batches",
            json={"request_type": "imaging", "provider_name": "X", "record_types": ["imaging"]},
            headers=auth_headers,
        ).json()
        client.post(
            f"/request-batches/{req['id']}/documents",
            files={"file": ("scan.png", b"\x89PNG", "image/png")},
            headers=auth_headers,
        )

        resp = client.post("/account/delete", json={"confirmation": "DELETE"}, headers=auth_headers)
        assert resp.json() == {"deleted": True, "documents_removed": 1}

        assert app_db.get_user_by_email("pat@example.com") is None
        assert client.get("/profile/me", headers=auth_headers).status_code == 401
        login = client.post("/auth/login", json={"email": "pat@example.com", "password": PASSWORD})
        assert login.status_code == 401

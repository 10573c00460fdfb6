"""API tests for health records, abnormal flags and the disease catalog."""

import pytest

DIABETES_ID = "123e4567-e89b-12d3-a456-426614174001"


def _create(client, headers, category, body):
    resp = client.post(f"/health-data/{category}", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestRecordCrud:
    def test_condition_lifecycle(self, client, auth_headers):
        created = _create(client, auth_headers, "conditions", {"name": "Asthma", "onset_date": "2020-05-01"})
        assert created["clinical_status"] == "active"
        assert created["verification_status"] == "provisional"

        resp = client.get(f"/health-data/conditions/{created['id']}", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["name"] == "Asthma"

        resp = client.patch(
            f"/health-data/conditions/{created['id']}",
            json={"clinical_status": "resolved"},
            headers=auth_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["clinical_status"] == "resolved"
        assert resp.json()["name"] == "Asthma"

        resp = client.delete(f"/health-data/conditions/{created['id']}", headers=auth_headers)
        assert resp.json() == {"deleted": True, "id": created["id"]}
        resp = client.get(f"/health-data/conditions/{created['id']}", headers=auth_headers)
        assert resp.status_code == 404

    def test_put_is_partial_update(self, client, auth_headers):
        med = _create(client, auth_headers, "medications", {"name": "Metformin", "dosage": "500mg"})
        resp = client.put(
            f"/health-data/medications/{med['id']}", json={"frequency": "twice daily"}, headers=auth_headers
        )
        assert resp.status_code == 200
        assert resp.json()["dosage"] == "500mg"
        assert resp.json()["frequency"] == "twice daily"

    def test_list_search_and_status(self, client, auth_headers):
        _create(client, auth_headers, "medications", {"name": "Metformin"})
        _create(client, auth_headers, "medications", {"name": "Lisinopril", "status": "discontinued"})

        names = [m["name"] for m in client.get("/health-data/medications", headers=auth_headers).json()]
        assert sorted(names) == ["Lisinopril", "Metformin"]

        resp = client.get("/health-data/medications", params={"search": "metf"}, headers=auth_headers)
        assert [m["name"] for m in resp.json()] == ["Metformin"]

        resp = client.get("/health-data/medications", params={"status": "discontinued"}, headers=auth_headers)
        assert [m["name"] for m in resp.json()] == ["Lisinopril"]

    def test_procedure_defaults(self, client, auth_headers):
        proc = _create(client, auth_headers, "procedures", {"name": "Colonoscopy", "date": "2024-02-02"})
        assert proc["type"] == "diagnostic"
        assert proc["status"] == "scheduled"
        assert proc["date"] == "2024-02-02"

    def test_records_are_private(self, client, auth_headers, other_headers):
        cond = _create(client, auth_headers, "conditions", {"name": "Asthma"})
        assert client.get(f"/health-data/conditions/{cond['id']}", headers=other_headers).status_code == 404
        assert client.delete(f"/health-data/conditions/{cond['id']}", headers=other_headers).status_code == 404
        assert client.get("/health-data/conditions", headers=other_headers).json() == []

    def test_unknown_category(self, client, auth_headers):
        resp = client.get("/profile/me/health-data/allergies", headers=auth_headers)
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Unknown health data category: allergies"


class TestValidation:
    def test_condition_needs_name_or_disease(self, client, auth_headers):
        resp = client.post("/health-data/conditions", json={"notes": "x"}, headers=auth_headers)
        assert resp.status_code == 422

    def test_medication_end_before_start(self, client, auth_headers):
        resp = client.post(
            "/health-data/medications",
            json={"name": "Amoxicillin", "start_date": "2024-03-10", "end_date": "2024-03-01"},
            headers=auth_headers,
        )
        assert resp.status_code == 422

    def test_medication_update_checks_stored_dates(self, client, auth_headers):
        med = _create(client, auth_headers, "medications", {"name": "Amoxicillin", "start_date": "2024-03-10"})
        resp = client.patch(
            f"/health-data/medications/{med['id']}", json={"end_date": "2024-03-01"}, headers=auth_headers
        )
        assert resp.status_code == 422

    def test_required_field_cannot_be_cleared(self, client, auth_headers):
        med = _create(client, auth_headers, "medications", {"name": "Metformin"})
        resp = client.patch(f"/health-data/medications/{med['id']}", json={"name": None}, headers=auth_headers)
        assert resp.status_code == 422

    @pytest.mark.parametrize("body", [
        {"type": "blood_pressure", "systolic": 120},
        {"type": "blood_pressure", "systolic": 80, "diastolic": 90},
        {"type": "heart_rate", "value": 350},
        {"type": "temperature"},
    ])
    def test_invalid_vitals(self, client, auth_headers, body):
        resp = client.post("/health-data/vitals", json=body, headers=auth_headers)
        assert resp.status_code == 422


class TestAbnormalFlags:
    def test_normal_lab(self, client, auth_headers):
        lab = _create(client, auth_headers, "labs", {"test_name": "Glucose", "value": 90, "reference_range": "70-100"})
        assert lab["is_abnormal"] is False
        assert lab["severity"] is None

    def test_abnormal_lab_raises_alert(self, client, auth_headers):
        lab = _create(
            client, auth_headers, "labs",
            {"test_name": "Glucose", "value": 130, "unit": "mg/dL", "reference_range": "70-100"},
        )
        assert lab["is_abnormal"] is True
        assert lab["severity"] == "high"

        alerts = client.get("/alerts", headers=auth_headers).json()
        assert len(alerts) == 1
        assert alerts[0]["alert_type"] == "lab"
        assert alerts[0]["severity"] == "high"
        assert alerts[0]["title"] == "Abnormal Glucose"
        assert alerts[0]["data"] == {"category": "labs", "record_id": lab["id"]}

    def test_medium_vital_has_no_alert(self, client, auth_headers):
        vital = _create(client, auth_headers, "vitals", {"type": "heart_rate", "value": 110})
        assert vital["is_abnormal"] is True
        assert vital["severity"] == "medium"
        assert vital["unit"] == "bpm"
        assert client.get("/alerts", headers=auth_headers).json() == []

    def test_high_blood_pressure_alert(self, client, auth_headers):
        vital = _create(client, auth_headers, "vitals", {"type": "blood_pressure", "systolic": 190, "diastolic": 100})
        assert vital["severity"] == "high"
        alerts = client.get("/alerts", headers=auth_headers).json()
        assert alerts[0]["alert_type"] == "health"
        assert "190/100" in alerts[0]["message"]

    def test_update_reclassifies(self, client, auth_headers):
        lab = _create(client, auth_headers, "labs", {"test_name": "TSH", "value": 2.0, "reference_range": "0.4-4.0"})
        resp = client.patch(f"/health-data/labs/{lab['id']}", json={"value": 9.5}, headers=auth_headers)
        assert resp.json()["is_abnormal"] is True

        resp = client.patch(f"/health-data/labs/{lab['id']}", json={"value": 1.1}, headers=auth_headers)
        assert resp.json()["is_abnormal"] is False
        assert resp.json()["severity"] is None

    def test_abnormal_views(self, client, auth_headers):
        _create(client, auth_headers, "labs", {"test_name": "Glucose", "value": 90, "reference_range": "70-100"})
        high = _create(client, auth_headers, "labs", {"test_name": "LDL", "value": 190, "reference_range": "<130"})
        _create(client, auth_headers, "vitals", {"type": "oxygen_saturation", "value": 88})

        data = client.get("/profile/me/health-data/abnormal", headers=auth_headers).json()
        assert [r["id"] for r in data["labs"]] == [high["id"]]
        assert len(data["vitals"]) == 1

        resp = client.get("/profile/me/health-data/abnormal/labs", headers=auth_headers)
        assert [r["id"] for r in resp.json()] == [high["id"]]

        resp = client.get("/health-data/labs", params={"abnormal_only": "true"}, headers=auth_headers)
        assert [r["id"] for r in resp.json()] == [high["id"]]

    def test_abnormal_only_for_flagged_categories(self, client, auth_headers):
        resp = client.get("/profile/me/health-data/abnormal/conditions", headers=auth_headers)
        assert resp.status_code == 404


class TestCatalogAndAggregates:
    def test_disease_facts(self, client, auth_headers):
        facts = client.get("/facts/diseases", headers=auth_headers).json()
        assert len(facts) == 10
        assert all({"id", "name", "code"} <= set(f) for f in facts)

    def test_condition_from_catalog(self, client, auth_headers):
        facts = {f["id"]: f for f in client.get("/facts/diseases", headers=auth_headers).json()}
        cond = _create(client, auth_headers, "conditions", {"disease_id": DIABETES_ID})
        assert cond["name"] == facts[DIABETES_ID]["name"]
        assert cond["icd10_code"] == facts[DIABETES_ID]["code"]

    def test_catalog_keeps_given_name(self, client, auth_headers):
        cond = _create(client, auth_headers, "conditions", {"disease_id": DIABETES_ID, "name": "My diabetes"})
        assert cond["name"] == "My diabetes"

    def test_unknown_disease_id(self, client, auth_headers):
        resp = client.post("/health-data/conditions", json={"disease_id": "nope"}, headers=auth_headers)
        assert resp.status_code == 400

    def test_all_health_data(self, client, auth_headers):
        _create(client, auth_headers, "conditions", {"name": "Asthma"})
        _create(client, auth_headers, "vitals", {"type": "weight", "value": 160})
        data = client.get("/profile/me/health-data", headers=auth_headers).json()
        assert set(data) == {"conditions", "medications", "labs", "vitals", "procedures"}
        assert len(data["conditions"]) == 1
        assert len(data["vitals"]) == 1
        assert data["labs"] == []

    def test_category_aliases(self, client, auth_headers):
        cond = _create(client, auth_headers, "conditions", {"name": "Asthma"})
        for path in ("/profile/me/health-data/conditions", "/profile/me/conditions"):
            resp = client.get(path, headers=auth_headers)
            assert resp.status_code == 200
            assert [r["id"] for r in resp.json()] == [cond["id"]]

    def test_phi_access_logged(self, client, auth_headers, app_db):
        cond = _create(client, auth_headers, "conditions", {"name": "Asthma"})
        client.get(f"/health-data/conditions/{cond['id']}", headers=auth_headers)
        user_id = client.get("/profile/me", headers=auth_headers).json()["id"]
        actions = {row["action"] for row in app_db.list_phi_access(user_id)}
        assert {"create_record", "view_record"} <= actions

"""
Tests — HTTP API via the Flask test client.

Covers the assessment, task, audit, dashboard, export and health
blueprints, plus the error mapping (404 / 422 / 400 / 500 with purge).
"""

import io
import json

from docx import Document
from openpyxl import load_workbook

from pp_assessment.core.exceptions import ImportFormatError
from pp_assessment.services.persistence import SqlStorage

PID = "contoso-assessment"
BASE = "/api/v1"


def _create(client, name="Contoso Assessment", **extra):
    res = client.post(f"{BASE}/projects", json={"name": name, **extra})
    assert res.status_code == 201
    return res.get_json()


def _answer(client, qid, value, **extra):
    return client.put(f"{BASE}/projects/{PID}/responses/{qid}", json={"value": value, **extra})


def _plan(client):
    _answer(client, "sec-2025-3", 2)
    res = client.post(f"{BASE}/projects/{PID}/plans", json={})
    assert res.status_code == 201
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════════
# Projects & responses
# ═════════════════════════════════════════════════════════════════════════════

class TestProjectsApi:
    def test_catalog(self, client):
        pillars = client.get(f"{BASE}/catalog/pillars").get_json()
        assert [p["id"] for p in pillars] == [
            "governance", "security", "reliability", "performance", "operations", "experience"]

    def test_crud(self, client):
        body = _create(client, client_name="Contoso Ltd")
        assert body["id"] == PID

        listing = client.get(f"{BASE}/projects").get_json()
        assert listing["total"] == 1

        res = client.put(f"{BASE}/projects/{PID}", json={"client_name": "Contoso Group"})
        assert res.get_json()["client_name"] == "Contoso Group"

        assert client.delete(f"{BASE}/projects/{PID}").status_code == 200
        assert client.get(f"{BASE}/projects/{PID}").status_code == 404

    def test_create_requires_name(self, client):
        res = client.post(f"{BASE}/projects", json={"name": "  "})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"name": "required"}

    def test_duplicate_project_is_422(self, client):
        _create(client)
        assert client.post(f"{BASE}/projects", json={"name": "Contoso Assessment"}).status_code == 422

    def test_non_object_body_is_422(self, client):
        _create(client)
        res = client.put(f"{BASE}/projects/{PID}", data="[1, 2]", content_type="application/json")
        assert res.status_code == 422

    def test_set_response_and_scores(self, client):
        _create(client)
        res = _answer(client, "rel-2025-1", 4, user="Dana")
        assert res.status_code == 200
        assert res.get_json()["new_score"] == 80.0

        scores = client.get(f"{BASE}/projects/{PID}/scores").get_json()
        reliability = next(p for p in scores["pillars"] if p["pillar_id"] == "reliability")
        assert reliability["score"] == 80.0
        assert scores["maturity"]["level"] == 1

    def test_response_validation(self, client):
        _create(client)
        assert _answer(client, "rel-2025-1", 7).status_code == 422
        assert client.put(f"{BASE}/projects/{PID}/responses/rel-2025-1", json={}).status_code == 422
        assert _answer(client, "unknown-1", 3).status_code == 404
        assert client.delete(f"{BASE}/projects/{PID}/responses/rel-2025-1").status_code == 404

    def test_metadata_and_demo(self, client):
        _create(client)
        res = client.put(f"{BASE}/projects/{PID}/questions/sec-2025-1/metadata",
                         json={"note": "Pilot", "risk_owner": "CISO"})
        assert res.get_json()["risk_owner"] == "CISO"

        summary = client.post(f"{BASE}/projects/{PID}/demo", json={}).get_json()
        assert summary["answered"] == 21
        assert summary["has_baseline"] is True

    def test_baseline_endpoints(self, client):
        _create(client)
        assert client.get(f"{BASE}/projects/{PID}/baseline").status_code == 404
        assert client.get(f"{BASE}/projects/{PID}/gap-closure").status_code == 404

        _answer(client, "rel-2025-1", 2)
        baseline = client.get(f"{BASE}/projects/{PID}/baseline").get_json()
        _answer(client, "rel-2025-1", 5)
        assert client.get(f"{BASE}/projects/{PID}/baseline").get_json() == baseline

        closure = client.get(f"{BASE}/projects/{PID}/gap-closure").get_json()
        reliability = next(g for g in closure["gap_progress"] if g["pillar"] == "reliability")
        assert reliability["improvement"] == 60.0

        reset = client.post(f"{BASE}/projects/{PID}/baseline/reset", json={}).get_json()
        assert reset["pillar_scores"]["reliability"] == 100.0
        assert client.get(f"{BASE}/projects/{PID}/snapshot").status_code == 200

    def test_advice_endpoints(self, client):
        _create(client)
        recs = client.get(f"{BASE}/projects/{PID}/recommendations").get_json()
        assert recs["total"] == 11
        security = client.get(f"{BASE}/projects/{PID}/security").get_json()
        assert security["score"] == "Low"
        assert len(security["recommendations"]) == 5
        compliance = client.get(f"{BASE}/projects/{PID}/compliance").get_json()
        assert compliance["compliant"] is False


# ═════════════════════════════════════════════════════════════════════════════
# Tasks & evidence
# ═════════════════════════════════════════════════════════════════════════════

class TestTasksApi:
    def test_plans_and_tasks(self, client):
        _create(client)
        plans = _plan(client)
        assert plans["total"] == 11
        assert client.get(f"{BASE}/projects/{PID}/plans").get_json()["total"] == 11

        tasks = client.get(f"{BASE}/projects/{PID}/tasks?pillar=security").get_json()
        assert tasks["total"] > 0
        assert all(t["pillar_id"] == "security" for t in tasks["items"])

        task = client.get(f"{BASE}/projects/{PID}/tasks/sec-2025-3-prep").get_json()
        assert task["timeline"][0]["type"] == "status_change"

    def test_status_change_moves_score(self, client):
        _create(client)
        _plan(client)
        res = client.patch(f"{BASE}/projects/{PID}/tasks/sec-2025-3-prep/status",
                           json={"status": "Completed"}, headers={"X-User": "Sam"})
        body = res.get_json()
        assert res.status_code == 200
        assert body["score_impact"]["delta"] > 0
        assert body["task"]["last_updated_by"] == "Sam"

        res = client.patch(f"{BASE}/projects/{PID}/tasks/sec-2025-3-prep/status",
                           json={"status": "Not Started"})
        assert res.get_json()["pillar_score"] == 40.0

    def test_task_validation(self, client):
        _create(client)
        _plan(client)
        url = f"{BASE}/projects/{PID}/tasks/sec-2025-3-prep"
        assert client.patch(f"{url}/status", json={}).status_code == 422
        assert client.patch(f"{url}/status", json={"status": "Done"}).status_code == 422
        assert client.patch(f"{BASE}/projects/{PID}/tasks/missing/status",
                            json={"status": "Completed"}).status_code == 404
        assert client.patch(f"{url}/estimate", json={"estimated_hours": -3}).status_code == 422

    def test_assign_estimate_comment(self, client):
        _create(client)
        _plan(client)
        url = f"{BASE}/projects/{PID}/tasks/sec-2025-3-prep"
        assert client.post(f"{url}/assign", json={"member": "Alex"}).get_json()["assigned_to"][-1] == "Alex"
        assert client.patch(f"{url}/estimate", json={"estimated_hours": 6}).get_json()["estimated_hours"] == 6
        res = client.post(f"{url}/comments", json={"comment": "Started"})
        assert res.status_code == 201

    def test_evidence(self, client):
        _create(client)
        _plan(client)
        res = client.post(f"{BASE}/projects/{PID}/evidence", json={
            "recommendation_title": "Configure Customer-Managed Keys",
            "files": [{"name": "kv.pdf", "size": 100, "content_type": "application/pdf"}],
        })
        assert res.status_code == 201
        evidence = client.get(f"{BASE}/projects/{PID}/evidence").get_json()
        assert evidence["Configure Customer-Managed Keys"][0]["name"] == "kv.pdf"

        res = client.post(f"{BASE}/projects/{PID}/evidence",
                          json={"recommendation_title": "X", "files": "nope"})
        assert res.status_code == 422

        res = client.post(f"{BASE}/projects/{PID}/evidence", json={
            "recommendation_title": "Configure Customer-Managed Keys",
            "files": [{"name": "a.pdf", "size": "big"}],
        })
        assert res.status_code == 422
        assert res.get_json()["details"]["files"] == {"0": "size must be a non-negative number of bytes"}


# ═════════════════════════════════════════════════════════════════════════════
# Audit & dashboard
# ═════════════════════════════════════════════════════════════════════════════

class TestAuditAndDashboardApi:
    def test_audit_listing(self, client):
        _create(client)
        _answer(client, "rel-2025-1", 2)
        _answer(client, "sec-2025-1", 3)

        body = client.get(f"{BASE}/projects/{PID}/audit").get_json()
        assert body["total"] == 3
        timestamps = [e["timestamp"] for e in body["items"]]
        assert timestamps == sorted(timestamps, reverse=True)

        asc = client.get(f"{BASE}/projects/{PID}/audit?order=asc").get_json()
        assert asc["items"][0]["details"]["question_id"] == "rel-2025-1"

        assert client.get(f"{BASE}/projects/{PID}/audit?pillar=security").get_json()["total"] == 1
        assert client.get(f"{BASE}/projects/{PID}/audit?type=bogus").status_code == 422

        report = client.get(f"{BASE}/projects/{PID}/audit/report").get_json()
        assert report["summary"]["total_entries"] == 3

    def test_dashboard(self, client):
        _create(client)
        assert len(client.get(f"{BASE}/dashboard/sections").get_json()) == 7
        body = client.get(f"{BASE}/projects/{PID}/dashboard?sections=scores,tasks").get_json()
        assert set(body["sections"]) == {"scores", "tasks"}
        section = client.get(f"{BASE}/projects/{PID}/dashboard/compliance").get_json()
        assert section["title"] == "Compliance Readiness"
        assert client.get(f"{BASE}/projects/ghost/dashboard").status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# Export / import / storage
# ═════════════════════════════════════════════════════════════════════════════

class TestExportApi:
    def test_json_export_and_import(self, client):
        _create(client)
        _answer(client, "rel-2025-1", 4)
        res = client.get(f"{BASE}/projects/{PID}/export/json")
        assert res.status_code == 200
        assert "attachment" in res.headers["Content-Disposition"]
        envelope = json.loads(res.data)

        client.delete(f"{BASE}/projects/{PID}")
        res = client.post(f"{BASE}/import", data=json.dumps(envelope), content_type="application/json")
        assert res.status_code == 201
        assert res.get_json() == {"imported": [PID], "total": 1}
        assert client.get(f"{BASE}/projects/{PID}").get_json()["responses"]

    def test_import_multipart(self, client):
        _create(client)
        payload = client.get(f"{BASE}/export/json").data
        res = client.post(f"{BASE}/import", data={"file": (io.BytesIO(payload), "export.json")},
                          content_type="multipart/form-data")
        assert res.status_code == 201

    def test_bad_import_is_400(self, client):
        res = client.post(f"{BASE}/import", data="not json", content_type="application/json")
        assert res.status_code == 400
        assert res.get_json()["error"] == ImportFormatError.USER_MESSAGE
        assert client.post(f"{BASE}/import").status_code == 400
        res = client.post(f"{BASE}/import", data=json.dumps({"version": "1.0.0"}),
                          content_type="application/json")
        assert res.status_code == 400

    def test_xlsx_and_docx(self, client):
        _create(client)
        client.post(f"{BASE}/projects/{PID}/demo", json={})

        res = client.get(f"{BASE}/projects/{PID}/export/xlsx")
        assert res.status_code == 200
        assert load_workbook(io.BytesIO(res.data)).sheetnames[0] == "Assessment Results"

        res = client.get(f"{BASE}/projects/{PID}/export/docx?type=technical")
        assert res.status_code == 200
        assert "Technical_Guide" in res.headers["Content-Disposition"]
        assert Document(io.BytesIO(res.data)).paragraphs[0].text.endswith("Technical Implementation Guide")

        res = client.get(f"{BASE}/projects/{PID}/export/docx?type=slides")
        assert res.status_code == 400
        assert res.get_json()["code"] == "INVALID_TYPE"

    def test_storage_info_and_purge(self, client):
        _create(client)
        info = client.get(f"{BASE}/storage").get_json()
        assert info["used"] > 0

        SqlStorage().set_item("power-platform-assessment-draft", "garbage")
        body = client.post(f"{BASE}/storage/purge").get_json()
        assert body["removed"] == ["power-platform-assessment-draft"]

    def test_corrupted_storage_is_purged(self, client):
        SqlStorage().set_item("power-platform-assessments", "{oops")
        res = client.get(f"{BASE}/projects")
        assert res.status_code == 500
        assert res.get_json()["purged"] == []

        SqlStorage().set_item("power-platform-assessments", "oops")
        res = client.get(f"{BASE}/projects")
        assert res.status_code == 500
        assert res.get_json()["purged"] == ["power-platform-assessments"]
        assert client.get(f"{BASE}/projects").get_json()["total"] == 0


# ═════════════════════════════════════════════════════════════════════════════
# Health
# ═════════════════════════════════════════════════════════════════════════════

class TestHealthApi:
    def test_ready(self, client):
        assert client.get(f"{BASE}/health/ready").get_json() == {"status": "ok"}

    def test_live(self, client):
        res = client.get(f"{BASE}/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["storage"]["status"] == "ok"
        assert "X-Request-ID" in res.headers

    def test_errors_listing(self, client):
        res = client.get(f"{BASE}/health/errors?limit=5")
        assert res.status_code == 200
        assert isinstance(res.get_json(), list)

    def test_unknown_route(self, client):
        assert client.get(f"{BASE}/nope").status_code == 404

"""API tests for the grade/attendance endpoints."""

import pytest
from datetime import date
from fastapi.testclient import TestClient
from sqlalchemy import select, func

from academic_records.api.app import create_app
from academic_records.api.deps import get_audit_trail
from academic_records.core.database import get_db
from academic_records.models import ClassSession, Evaluation, EvaluationGrade, EvaluationType
from academic_records.services.audit_trail import AuditTrail

HEADERS = {"X-Actor-Id": "42"}


@pytest.fixture
def client(session_factory, academic_class, enrollments, class_sessions, evaluations):
    app = create_app(initialize_database=False)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_audit_trail] = lambda: AuditTrail(session_factory=session_factory, enabled=True)
    return TestClient(app)


class TestAttendanceEndpoints:

    def test_bulk_upsert(self, client):
        payload = {"items": [
            {"session_id": 1, "enrollment_id": 1, "present": True},
            {"session_id": 2, "enrollment_id": 1, "present": True},
            {"session_id": 3, "enrollment_id": 1, "present": True},
            {"session_id": 4, "enrollment_id": 1, "present": False, "justification": "Sick"},
        ]}

        response = client.post("/api/v1/attendance/bulk-upsert", json=payload, headers=HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["created"] == 4
        assert data["aggregates"] == {"1": 75.0}
        assert data["audit_entries_written"] == 4

        status_response = client.get("/api/v1/enrollments/1/attendance-status")
        assert status_response.status_code == 200
        status_data = status_response.json()
        assert status_data["attendance_percentage"] == 75.0
        assert status_data["alert_level"] == "critical"
        assert status_data["needs_alert"] is True

        audit_response = client.get("/api/v1/audit/attendance_record", params={"entity_id": 4})
        assert audit_response.status_code == 200
        assert audit_response.json()[0]["new_value"] == {"present": False}

    def test_missing_actor_header(self, client):
        payload = {"items": [{"session_id": 1, "enrollment_id": 1, "present": True}]}

        response = client.post("/api/v1/attendance/bulk-upsert", json=payload)

        assert response.status_code == 422

    def test_unknown_session(self, client):
        payload = {"items": [{"session_id": 500, "enrollment_id": 1, "present": True}]}

        response = client.post("/api/v1/attendance/bulk-upsert", json=payload, headers=HEADERS)

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_recompute(self, client):
        response = client.post("/api/v1/enrollments/2/recompute", headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == {"enrollment_id": 2, "grade_average": None, "attendance_percentage": 0.0}


class TestGradeEndpoints:

    def test_submit_grades(self, client, evaluations):
        payload = {"items": [{"student_id": "20240001", "grade": 7.25, "note": "Good"}]}

        response = client.post(f"/api/v1/evaluations/{evaluations[0].id}/grades", json=payload, headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["aggregates"] == {"1": 7.3}

    def test_weight_gate(self, client, db_session, evaluations):
        db_session.add(Evaluation(
            class_id=1, evaluation_date=date(2024, 5, 1), evaluation_type=EvaluationType.OTHER,
            code="EXTRA", description="Extra credit", weight=10
        ))
        db_session.commit()
        payload = {"items": [{"student_id": "20240001", "grade": 9}]}

        response = client.post(f"/api/v1/evaluations/{evaluations[0].id}/grades", json=payload, headers=HEADERS)

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "invariant_violation"
        assert "exceeds by 10%, total 110%" in body["message"]
        assert body["details"]["difference"] == -10
        assert db_session.scalar(select(func.count(EvaluationGrade.id))) == 0

    def test_unknown_evaluation(self, client):
        payload = {"items": [{"student_id": "20240001", "grade": 9}]}

        response = client.post("/api/v1/evaluations/999/grades", json=payload, headers=HEADERS)

        assert response.status_code == 404

    def test_out_of_range_grade(self, client, evaluations):
        payload = {"items": [{"student_id": "20240001", "grade": 11}]}

        response = client.post(f"/api/v1/evaluations/{evaluations[0].id}/grades", json=payload, headers=HEADERS)

        assert response.status_code == 422

    def test_class_weights(self, client):
        response = client.get("/api/v1/classes/1/weights")

        assert response.status_code == 200
        data = response.json()
        assert data["is_valid"] is True
        assert data["total"] == 100
        assert data["message"] is None
        assert [e["weight"] for e in data["evaluations"]] == [40, 30, 30]


class TestSessionEndpoints:

    def test_generate_dry_run_then_materialize(self, client, db_session):
        body = {"weekday": 1, "start_date": "2024-04-01", "end_date": "2024-04-29", "dry_run": True}

        preview = client.post("/api/v1/classes/1/sessions/generate", json=body, headers=HEADERS)

        assert preview.status_code == 200
        assert preview.json()["dates"] == ["2024-04-01", "2024-04-08", "2024-04-15", "2024-04-22", "2024-04-29"]
        assert preview.json()["created_ids"] == []

        body["dry_run"] = False
        created = client.post("/api/v1/classes/1/sessions/generate", json=body, headers=HEADERS)

        assert created.status_code == 200
        assert len(created.json()["created_ids"]) == 5
        assert db_session.scalar(
            select(func.count(ClassSession.id)).where(ClassSession.class_id == 1)
        ) == 9

    def test_generate_invalid_range(self, client):
        body = {"weekday": 1, "start_date": "2024-04-29", "end_date": "2024-04-01"}

        response = client.post("/api/v1/classes/1/sessions/generate", json=body, headers=HEADERS)

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_create_session_conflict(self, client):
        response = client.post(
            "/api/v1/classes/1/sessions", json={"session_date": "2024-03-04", "topic": "Repeat"}, headers=HEADERS
        )

        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    def test_create_session(self, client):
        response = client.post(
            "/api/v1/classes/1/sessions",
            json={"session_date": "2024-04-02", "start_time": "19:00:00", "end_time": "22:30:00"},
            headers=HEADERS
        )

        assert response.status_code == 201
        assert response.json()["session_date"] == "2024-04-02"
        assert response.json()["class_id"] == 1

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"

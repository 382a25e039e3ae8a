"""Incident and workflow endpoints over the in-memory world"""
import pytest
from fastapi.testclient import TestClient

from incidentflow.api.deps import get_engine_dep
from incidentflow.main import create_app


@pytest.fixture
def client(world):
    app = create_app()
    app.dependency_overrides[get_engine_dep] = lambda: world.engine
    # No context manager: the lifespan (MongoDB, SLA monitor) is not run
    return TestClient(app)


def _headers(user_id="USR-A", roles="ROLE-AGENT"):
    return {"X-User-Id": user_id, "X-User-Roles": roles, "X-Correlation-Id": "COR-test"}


def _create(client, world, **body):
    payload = {"title": "VPN down", "classification_id": "CLS-HW", "location_id": "LOC-HQ",
               "department_id": "DEP-IT", "workflow_id": world.workflow_id}
    payload.update(body)
    return client.post("/api/v1/incidents/", json=payload, headers=_headers())


class TestIncidentEndpoints:

    def test_create_and_get(self, client, world):
        response = _create(client, world)

        assert response.status_code == 201
        assert response.headers["X-Correlation-Id"] == "COR-test"
        body = response.json()
        assert body["current_state_id"] == world.states["open"]
        assert body["incident_number"].startswith("INC-")

        fetched = client.get(f"/api/v1/incidents/{body['incident_id']}", headers=_headers())
        assert fetched.status_code == 200
        assert fetched.json()["title"] == "VPN down"

    def test_missing_user_header_is_401(self, client, world):
        response = client.get("/api/v1/incidents/", headers={})
        assert response.status_code == 401
        assert response.json()["detail"]["error"]["code"] == "AUTHENTICATION_ERROR"

    def test_unknown_incident_is_404(self, client):
        response = client.get("/api/v1/incidents/ICD-missing", headers=_headers())
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "INCIDENT_NOT_FOUND"

    def test_schema_violation_is_400(self, client, world):
        response = _create(client, world, priority=9)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_transition_flow(self, client, world):
        incident_id = _create(client, world).json()["incident_id"]

        available = client.get(f"/api/v1/incidents/{incident_id}/transitions", headers=_headers())
        assert [t["transition"]["transition_id"] for t in available.json()] == [world.transitions["start"]]

        missing_comment = client.post(
            f"/api/v1/incidents/{incident_id}/transitions",
            json={"transition_id": world.transitions["start"]},
            headers=_headers()
        )
        assert missing_comment.status_code == 422
        assert missing_comment.json()["error"]["code"] == "REQUIREMENT_NOT_MET"

        started = client.post(
            f"/api/v1/incidents/{incident_id}/transitions",
            json={"transition_id": world.transitions["start"], "comment": "looking"},
            headers=_headers()
        )
        assert started.status_code == 200
        assert started.json()["incident"]["current_state_id"] == world.states["in_progress"]

        again = client.post(
            f"/api/v1/incidents/{incident_id}/transitions",
            json={"transition_id": world.transitions["start"], "comment": "again"},
            headers=_headers()
        )
        assert again.status_code == 409
        assert again.json()["error"]["code"] == "INVALID_TRANSITION"

        history = client.get(f"/api/v1/incidents/{incident_id}/history", headers=_headers())
        assert len(history.json()) == 1

    def test_role_gated_transition_is_403(self, client, world):
        incident_id = _create(client, world).json()["incident_id"]
        client.post(
            f"/api/v1/incidents/{incident_id}/transitions",
            json={"transition_id": world.transitions["start"], "comment": "looking"},
            headers=_headers()
        )

        response = client.post(
            f"/api/v1/incidents/{incident_id}/transitions",
            json={"transition_id": world.transitions["escalate"]},
            headers=_headers()
        )
        assert response.status_code == 403

    def test_comment_ownership(self, client, world):
        incident_id = _create(client, world).json()["incident_id"]
        comment = client.post(
            f"/api/v1/incidents/{incident_id}/comments",
            json={"content": "first look"},
            headers=_headers()
        ).json()

        response = client.patch(
            f"/api/v1/incidents/comments/{comment['comment_id']}",
            json={"content": "rewritten"},
            headers=_headers(user_id="USR-B")
        )
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "PERMISSION_DENIED"


class TestWorkflowEndpoints:

    def test_validate_seeded_workflow(self, client, world):
        response = client.get(f"/api/v1/workflows/{world.workflow_id}/validate", headers=_headers())
        assert response.status_code == 200
        assert response.json()["is_valid"] is True

    def test_duplicate_code_is_409(self, client, world):
        response = client.post(
            "/api/v1/workflows/",
            json={"name": "Again", "code": "IT_INC"},
            headers=_headers()
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ALREADY_EXISTS"
